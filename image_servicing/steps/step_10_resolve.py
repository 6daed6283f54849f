from __future__ import annotations

import logging
from typing import Any, Dict

from ..catalog.resolver import CatalogueResolver
from ..services import BatchServices

logger = logging.getLogger(__name__)


class ResolveStep:
    step_id = "10_resolve"

    def __init__(self, services: BatchServices) -> None:
        self.services = services

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        svc = self.services
        resolver = CatalogueResolver(svc.backend, svc.rules)
        # CatalogUnavailable propagates and aborts the batch here, before any fetch/apply.
        result = resolver.resolve(svc.ctx)

        batch = state.setdefault("batch", {})
        batch["resolve"] = result.to_dict()
        # Fetch and apply outputs belong to the previous resolution.
        batch.pop("fetch", None)
        batch.pop("apply", None)

        by_class: Dict[str, int] = {}
        for d in result.descriptors:
            by_class[d.classification.value] = by_class.get(d.classification.value, 0) + 1
        logger.info("Resolved %d updates for %s: %s", len(result.descriptors), svc.ctx.partition_key, by_class)
        return state
