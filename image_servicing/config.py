from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .lib.dism import DEFAULT_APPLY_ARGV


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    return raw.get(key) or {}


@dataclass(frozen=True)
class ServicingConfig:
    raw: Dict[str, Any]

    @property
    def product(self) -> str:
        return str(self.raw.get("product") or "")

    @property
    def build(self) -> str:
        return str(self.raw.get("build") or "")

    @property
    def architecture(self) -> str:
        return str(self.raw.get("architecture") or "x64")

    @property
    def include_optional(self) -> bool:
        return bool(_section(self.raw, "toggles").get("include_optional", False))

    @property
    def include_dynamic(self) -> bool:
        return bool(_section(self.raw, "toggles").get("include_dynamic", False))

    @property
    def backend(self) -> str:
        return str(_section(self.raw, "catalog").get("backend") or "curated")

    @property
    def index_url(self) -> str:
        return str(_section(self.raw, "catalog").get("index_url") or "")

    @property
    def admin_service_url(self) -> str:
        return str(_section(self.raw, "catalog").get("admin_service_url") or "")

    @property
    def username(self) -> Optional[str]:
        return _section(self.raw, "catalog").get("username")

    @property
    def password(self) -> Optional[str]:
        return _section(self.raw, "catalog").get("password")

    @property
    def timeout_s(self) -> float:
        return float(_section(self.raw, "catalog").get("timeout_s") or 60)

    @property
    def verify_tls(self) -> bool:
        return bool(_section(self.raw, "catalog").get("verify_tls", True))

    @property
    def rules_path(self) -> Optional[str]:
        return _section(self.raw, "catalog").get("rules_path")

    @property
    def cache_dir(self) -> str:
        return str(_section(self.raw, "paths").get("cache_dir") or "cache/updates")

    @property
    def mount_dir(self) -> str:
        return str(_section(self.raw, "paths").get("mount_dir") or "")

    @property
    def marker(self) -> str:
        return str(_section(self.raw, "validation").get("marker") or "update.mum")

    @property
    def fail_open(self) -> bool:
        return bool(_section(self.raw, "validation").get("fail_open", True))

    @property
    def relabel_cabinets(self) -> Optional[bool]:
        """Explicit platform-family override; None means decide from the product."""
        v = _section(self.raw, "apply").get("relabel_cabinets")
        return None if v is None else bool(v)

    @property
    def apply_argv(self) -> List[str]:
        return [str(a) for a in (_section(self.raw, "apply").get("tool") or DEFAULT_APPLY_ARGV)]

    @property
    def dry_run(self) -> bool:
        return bool(self.raw.get("dry_run", False))


def load_config(path: str) -> ServicingConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("servicing config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the servicing config") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("servicing config must contain a mapping/object")

    return ServicingConfig(raw=raw)


def merge_overrides(cfg: ServicingConfig, overrides: Dict[str, Any]) -> ServicingConfig:
    """Return a config with dotted-key overrides applied (e.g. 'toggles.include_dynamic')."""

    raw: Dict[str, Any] = {k: (dict(v) if isinstance(v, dict) else v) for k, v in cfg.raw.items()}
    for dotted, value in overrides.items():
        if value is None:
            continue
        *parents, leaf = dotted.split(".")
        node = raw
        for key in parents:
            node = node.setdefault(key, {})
        node[leaf] = value
    return ServicingConfig(raw=raw)


def _slug(s: str) -> str:
    return re.sub(r"[^a-z0-9._-]+", "-", s.strip().lower()).strip("-") or "unknown"


def partition_root(cache_dir: str, product: str, build: str, architecture: str) -> Path:
    """Cache partition for one product/build/architecture."""
    return Path(cache_dir) / _slug(product) / _slug(build) / _slug(architecture)


@dataclass(frozen=True)
class ServicingContext:
    """Explicit parameters for one product/build batch."""

    product: str
    build: str
    architecture: str
    backend: str
    cache_dir: str
    include_optional: bool = False
    include_dynamic: bool = False
    dry_run: bool = False

    @classmethod
    def from_config(cls, cfg: ServicingConfig) -> "ServicingContext":
        if not cfg.product or not cfg.build:
            raise ValueError("config must name a product and build")
        return cls(
            product=cfg.product,
            build=cfg.build,
            architecture=cfg.architecture,
            backend=cfg.backend,
            cache_dir=cfg.cache_dir,
            include_optional=cfg.include_optional,
            include_dynamic=cfg.include_dynamic,
            dry_run=cfg.dry_run,
        )

    @property
    def partition_key(self) -> str:
        return f"{self.product}|{self.build}|{self.architecture}"

    @property
    def cache_root(self) -> Path:
        return partition_root(self.cache_dir, self.product, self.build, self.architecture)
