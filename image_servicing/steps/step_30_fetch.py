from __future__ import annotations

import logging
from typing import Any, Dict

from ..catalog.resolver import ResolveResult
from ..services import BatchServices
from ..servicing.fetcher import ContentFetcher

logger = logging.getLogger(__name__)


class FetchStep:
    step_id = "30_fetch"

    def __init__(self, services: BatchServices) -> None:
        self.services = services

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        svc = self.services
        raw = (state.get("batch") or {}).get("resolve")
        if raw is None:
            raise RuntimeError("batch.resolve missing (run 10_resolve first)")
        resolved = ResolveResult.from_dict(raw)

        fetcher = ContentFetcher(
            backend=svc.backend,
            rules=svc.rules,
            cache_root=svc.ctx.cache_root,
            download=svc.download,
            validator=svc.validator,
            dry_run=svc.ctx.dry_run,
        )
        report = fetcher.fetch_all(resolved.descriptors)

        state.setdefault("batch", {})["fetch"] = {
            "fetched": report.fetched,
            "skipped_cached": report.skipped_cached,
            "validation_deleted": report.validation_deleted,
            "transfer_failed": report.transfer_failed,
            "rejected": report.rejected,
            "failed_updates": sorted(set(report.failed_updates)),
            "artifacts": [a.to_dict() for a in report.artifacts],
            "appliable": [a.to_dict() for a in report.appliable()],
        }
        if report.failed_updates:
            logger.warning("%d updates excluded from apply after fetch failures", len(set(report.failed_updates)))
        return state
