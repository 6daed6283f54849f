from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..errors import BatchCancelled, MountPreconditionError
from ..models import ApplyOutcome, ApplyStatus, LocalArtifact
from ..services import BatchServices
from ..servicing.apply_engine import ApplyEngine, order_artifacts

logger = logging.getLogger(__name__)

_DONE = {ApplyStatus.SUCCESS.value, ApplyStatus.FALLBACK_SUCCESS.value}


class ApplyStep:
    step_id = "40_apply"

    def __init__(self, services: BatchServices) -> None:
        self.services = services

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        svc = self.services
        batch = state.setdefault("batch", {})
        fetch = batch.get("fetch")
        if fetch is None:
            raise RuntimeError("batch.fetch missing (run 30_fetch first)")

        artifacts = [LocalArtifact.from_dict(a) for a in fetch.get("appliable") or []]

        # Resuming an interrupted apply: keep what already landed, retry the rest.
        prior = [o for o in (batch.get("apply") or {}).get("outcomes") or [] if o.get("status") in _DONE]
        done = {(o.get("update_id"), o.get("filename")) for o in prior}
        pending = [a for a in artifacts if (a.update_id, a.filename) not in done]

        apply_state: Dict[str, Any] = {"outcomes": prior, "cancelled": False, "not_started": 0}
        batch["apply"] = apply_state

        if not pending:
            logger.info("Nothing to apply for %s", svc.ctx.partition_key)
            return state

        mount_dir = ((state.get("execution") or {}).get("mounts") or {}).get("mount_dir")
        if not mount_dir:
            raise MountPreconditionError("execution.mounts.mount_dir missing")

        relabel = svc.relabel_cabinets
        if svc.ctx.dry_run:
            for a in order_artifacts(pending):
                logger.info("Would apply [%s] %s (relabel=%s)", a.classification.value, a.path, relabel)
            return state

        outcomes: List[Dict[str, Any]] = apply_state["outcomes"]

        def record(outcome: ApplyOutcome) -> None:
            outcomes.append(outcome.to_dict())

        engine = ApplyEngine(applier=svc.applier, relabel=relabel)
        try:
            report = engine.apply_batch(mount_dir, pending, cancel=svc.cancel, on_outcome=record)
        finally:
            # The engine renames files in place; keep recorded paths in step with the disk.
            by_key = {(a.update_id, a.filename): a for a in pending}
            fetch["appliable"] = [
                by_key.get((a["update_id"], a["filename"]), LocalArtifact.from_dict(a)).to_dict()
                for a in fetch.get("appliable") or []
            ]

        apply_state["cancelled"] = report.cancelled
        apply_state["not_started"] = report.not_started
        logger.info(
            "Apply pass: success=%d fallback=%d failed=%d",
            report.count(ApplyStatus.SUCCESS),
            report.count(ApplyStatus.FALLBACK_SUCCESS),
            report.count(ApplyStatus.FAILURE),
        )
        if report.cancelled:
            raise BatchCancelled(f"Apply cancelled with {report.not_started} artifacts not started")
        return state
