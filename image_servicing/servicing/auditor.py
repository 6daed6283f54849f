from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Set

from ..catalog.base import CatalogBackend
from ..catalog.resolver import ResolveResult
from ..config import partition_root
from ..models import ContainerFormat
from .fetcher import LEDGER_NAME

logger = logging.getLogger(__name__)


@dataclass
class AuditReport:
    partition: str
    pruned: List[str] = field(default_factory=list)
    retained: int = 0
    skipped: bool = False


def current_filenames(fresh: ResolveResult, backend: CatalogBackend) -> Set[str]:
    """Filenames the catalog currently lists, including relabeled cabinet names."""

    names: Set[str] = set()
    for d in fresh.descriptors:
        for item in backend.content_items(d):
            names.add(item.filename.lower())
            if item.container_format == ContainerFormat.CAB:
                names.add(str(Path(item.filename).with_suffix(ContainerFormat.MSU.suffix)).lower())
    return names


class SupersedenceAuditor:
    """Prune cached files the catalog no longer lists for one product/build.

    The partition is derived from the fresh result itself, so a result for one
    build can never prune another build's cache.
    """

    def __init__(self, *, cache_dir: str, backend: CatalogBackend, dry_run: bool = False) -> None:
        self.cache_dir = cache_dir
        self.backend = backend
        self.dry_run = dry_run

    def partition_for(self, fresh: ResolveResult) -> Path:
        return partition_root(self.cache_dir, fresh.product, fresh.build, fresh.architecture)

    def audit(self, fresh: ResolveResult) -> AuditReport:
        root = self.partition_for(fresh)
        report = AuditReport(partition=str(root))

        if not root.is_dir():
            logger.info("No cache partition yet at %s", str(root))
            return report

        if not fresh.descriptors:
            # Never empty a partition on the strength of an empty listing.
            logger.warning("Fresh result for %s is empty; skipping prune of %s", fresh.partition_key, str(root))
            report.skipped = True
            return report

        keep = current_filenames(fresh, self.backend)

        for p in sorted(root.rglob("*")):
            if not p.is_file() or p.name == LEDGER_NAME:
                continue
            if p.name.lower() in keep:
                report.retained += 1
                continue
            if self.dry_run:
                logger.info("Would prune superseded %s", str(p))
            else:
                logger.warning("Pruning superseded or withdrawn %s", str(p))
                p.unlink()
            report.pruned.append(str(p))

        if not self.dry_run:
            # Deepest first so parents empty out after their children.
            for d in sorted((d for d in root.rglob("*") if d.is_dir()), key=lambda x: len(x.parts), reverse=True):
                if not any(d.iterdir()):
                    d.rmdir()

        logger.info("Audit %s: pruned=%d retained=%d", str(root), len(report.pruned), report.retained)
        return report
