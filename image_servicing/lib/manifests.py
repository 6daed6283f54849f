from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_RULES = Path(__file__).resolve().parents[1] / "manifests" / "catalog_rules.yaml"


def load_yaml(path: Path) -> Dict[str, Any]:
    try:
        import yaml  # type: ignore
    except Exception as e:  # pragma: no cover
        raise RuntimeError("PyYAML required to load manifests") from e

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Manifest must be a mapping/dict: {path}")
    return data


def load_catalog_rules(path: Optional[str] = None) -> Dict[str, Any]:
    """Load catalog rule tables (packaged default unless a path is configured)."""
    return load_yaml(Path(path) if path else DEFAULT_RULES)
