from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from .catalog.base import CatalogBackend
from .catalog.classifier import CatalogRules
from .catalog.resolver import build_backend
from .config import ServicingConfig, ServicingContext
from .lib.dism import add_package
from .lib.http import build_session, download_file
from .servicing.apply_engine import Applier
from .servicing.fetcher import Downloader
from .servicing.validator import ArtifactValidator


@dataclass
class BatchServices:
    """Collaborators shared by the batch steps."""

    cfg: ServicingConfig
    ctx: ServicingContext
    rules: CatalogRules
    backend: CatalogBackend
    download: Downloader
    validator: ArtifactValidator
    applier: Applier
    cancel: Optional[Callable[[], bool]] = None

    @classmethod
    def create(
        cls,
        cfg: ServicingConfig,
        ctx: ServicingContext,
        *,
        session: Optional[requests.Session] = None,
        cancel: Optional[Callable[[], bool]] = None,
    ) -> "BatchServices":
        s = session or build_session(username=cfg.username, password=cfg.password, verify_tls=cfg.verify_tls)
        return cls(
            cfg=cfg,
            ctx=ctx,
            rules=CatalogRules.load(cfg.rules_path),
            backend=build_backend(cfg, backend=ctx.backend, session=s),
            download=functools.partial(download_file, s),
            validator=ArtifactValidator(marker=cfg.marker, fail_open=cfg.fail_open),
            applier=functools.partial(add_package, argv_template=cfg.apply_argv, dry_run=ctx.dry_run),
            cancel=cancel,
        )

    @property
    def relabel_cabinets(self) -> bool:
        override = self.cfg.relabel_cabinets
        if override is not None:
            return override
        return self.rules.relabel_capable(self.ctx.product)
