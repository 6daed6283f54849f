from __future__ import annotations

import logging
from typing import Any, Dict

from ..catalog.resolver import ResolveResult
from ..services import BatchServices
from ..servicing.auditor import SupersedenceAuditor

logger = logging.getLogger(__name__)


class AuditCacheStep:
    step_id = "20_audit_cache"

    def __init__(self, services: BatchServices) -> None:
        self.services = services

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        svc = self.services
        raw = (state.get("batch") or {}).get("resolve")
        if raw is None:
            raise RuntimeError("batch.resolve missing (run 10_resolve first)")
        fresh = ResolveResult.from_dict(raw)
        if fresh.partition_key != svc.ctx.partition_key:
            raise RuntimeError(f"Resolve result is for {fresh.partition_key}, batch is {svc.ctx.partition_key}")

        auditor = SupersedenceAuditor(cache_dir=svc.ctx.cache_dir, backend=svc.backend, dry_run=svc.ctx.dry_run)
        report = auditor.audit(fresh)

        state.setdefault("batch", {})["audit"] = {
            "partition": report.partition,
            "pruned": report.pruned,
            "retained": report.retained,
            "skipped": report.skipped,
        }
        return state
