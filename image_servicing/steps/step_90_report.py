from __future__ import annotations

import logging
from typing import Any, Dict

from ..models import ApplyStatus, BatchSummary
from ..services import BatchServices

logger = logging.getLogger(__name__)


def summarize(state: Dict[str, Any]) -> BatchSummary:
    batch = state.get("batch") or {}
    resolve = batch.get("resolve") or {}
    audit = batch.get("audit") or {}
    fetch = batch.get("fetch") or {}
    outcomes = (batch.get("apply") or {}).get("outcomes") or []

    def applied(status: ApplyStatus) -> int:
        return sum(1 for o in outcomes if o.get("status") == status.value)

    return BatchSummary(
        descriptors=len(resolve.get("descriptors") or []),
        fetched=int(fetch.get("fetched", 0)),
        skipped_cached=int(fetch.get("skipped_cached", 0)),
        validation_deleted=int(fetch.get("validation_deleted", 0)),
        transfer_failed=int(fetch.get("transfer_failed", 0)),
        rejected=int(fetch.get("rejected", 0)),
        pruned=len(audit.get("pruned") or []),
        applied_success=applied(ApplyStatus.SUCCESS),
        applied_fallback=applied(ApplyStatus.FALLBACK_SUCCESS),
        applied_failed=applied(ApplyStatus.FAILURE),
    )


class ReportStep:
    step_id = "90_report"

    def __init__(self, services: BatchServices) -> None:
        self.services = services

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        summary = summarize(state)
        state.setdefault("execution", {})["batch_summary"] = summary.to_dict()
        logger.info(
            "Batch %s: %s",
            self.services.ctx.partition_key,
            " ".join(f"{k}={v}" for k, v in summary.to_dict().items()),
        )
        return state
