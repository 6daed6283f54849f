from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from ..config import ServicingConfig, ServicingContext
from ..lib.http import build_session
from ..models import Classification, UpdateDescriptor
from .base import CatalogBackend, CatalogFilter
from .classifier import CatalogRules
from .curated import CuratedIndexBackend
from .enterprise import EnterpriseCatalogBackend

logger = logging.getLogger(__name__)


@dataclass
class ResolveResult:
    """Descriptors applicable to exactly one product/build/architecture."""

    product: str
    build: str
    architecture: str
    descriptors: List[UpdateDescriptor] = field(default_factory=list)
    dropped: Dict[str, int] = field(default_factory=dict)

    @property
    def partition_key(self) -> str:
        return f"{self.product}|{self.build}|{self.architecture}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product,
            "build": self.build,
            "architecture": self.architecture,
            "descriptors": [d.to_dict() for d in self.descriptors],
            "dropped": dict(self.dropped),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ResolveResult":
        return cls(
            product=str(d["product"]),
            build=str(d["build"]),
            architecture=str(d["architecture"]),
            descriptors=[UpdateDescriptor.from_dict(x) for x in d.get("descriptors") or []],
            dropped=dict(d.get("dropped") or {}),
        )


class CatalogueResolver:
    def __init__(self, backend: CatalogBackend, rules: CatalogRules) -> None:
        self.backend = backend
        self.rules = rules

    def resolve(self, ctx: ServicingContext) -> ResolveResult:
        """Query the backend and keep only updates appliable to an offline image.

        Backend errors (CatalogUnavailable) propagate. An empty result is a warning.
        """

        flt = CatalogFilter(
            product=ctx.product,
            build=ctx.build,
            architecture=ctx.architecture,
            category=self.rules.category_for(ctx.product, ctx.build),
        )
        logger.info("Querying %s catalog: %s", self.backend.name, flt)
        raw = self.backend.query(flt)

        result = ResolveResult(product=ctx.product, build=ctx.build, architecture=ctx.architecture)
        if not raw:
            logger.warning("Catalog returned no updates for %s %s %s", ctx.product, ctx.build, ctx.architecture)
            return result

        def drop(reason: str, title: str) -> None:
            result.dropped[reason] = result.dropped.get(reason, 0) + 1
            logger.debug("Dropped (%s): %s", reason, title)

        seen: set[str] = set()
        for item in raw:
            if item.update_id in seen:
                continue
            seen.add(item.update_id)

            if item.superseded:
                drop("superseded", item.title)
                continue
            if self.rules.excluded(item.title):
                drop("excluded", item.title)
                continue

            classification = self.rules.classify(item.title)
            if classification == Classification.DEFINITION:
                drop("definition", item.title)
                continue
            if classification == Classification.OPTIONAL and not ctx.include_optional:
                drop("optional", item.title)
                continue
            if classification == Classification.DYNAMIC_UPDATE and not ctx.include_dynamic:
                drop("dynamic", item.title)
                continue

            result.descriptors.append(
                UpdateDescriptor(
                    update_id=item.update_id,
                    name=item.title,
                    product=item.product,
                    build=item.build,
                    classification=classification,
                    superseded=item.superseded,
                    revised=item.revised,
                    architecture=item.architecture,
                    source=dict(item.source),
                )
            )

        if not result.descriptors:
            logger.warning("No applicable updates for %s %s after filtering (%s)", ctx.product, ctx.build, result.dropped)
        else:
            logger.info("Resolved %d updates (dropped=%s)", len(result.descriptors), result.dropped)
        return result


def build_backend(
    cfg: ServicingConfig,
    *,
    backend: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> CatalogBackend:
    name = backend or cfg.backend
    s = session or build_session(username=cfg.username, password=cfg.password, verify_tls=cfg.verify_tls)
    if name == "curated":
        return CuratedIndexBackend(cfg.index_url, session=s, timeout_s=cfg.timeout_s)
    if name == "enterprise":
        return EnterpriseCatalogBackend(cfg.admin_service_url, session=s, timeout_s=cfg.timeout_s)
    raise ValueError(f"Unknown catalog backend: {name!r} (expected curated|enterprise)")
