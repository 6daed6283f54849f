from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..lib.manifests import load_catalog_rules
from ..models import Classification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogRules:
    """Priority-ordered rule tables; see manifests/catalog_rules.yaml."""

    exclusions: Tuple[str, ...]
    classification_rules: Tuple[Tuple[str, Classification], ...]
    fallback: Classification
    incompatible_files: Tuple[Tuple[str, str], ...]
    categories: Dict[str, List[Dict[str, Any]]]
    relabel_products: Tuple[str, ...]

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "CatalogRules":
        rules: List[Tuple[str, Classification]] = []
        for r in raw.get("classification_rules") or []:
            if not isinstance(r, dict) or "match" not in r or "classification" not in r:
                raise ValueError(f"Invalid classification rule: {r!r}")
            rules.append((str(r["match"]), Classification(r["classification"])))

        files: List[Tuple[str, str]] = []
        for f in raw.get("incompatible_files") or []:
            if isinstance(f, str):
                files.append((f, "incompatible"))
            else:
                files.append((str(f["pattern"]), str(f.get("reason") or "incompatible")))

        categories = raw.get("categories") or {}
        if not isinstance(categories, dict):
            raise ValueError("categories must be a mapping of product -> list")

        return cls(
            exclusions=tuple(str(e) for e in raw.get("exclusions") or []),
            classification_rules=tuple(rules),
            fallback=Classification(raw.get("fallback_classification") or Classification.OPTIONAL.value),
            incompatible_files=tuple(files),
            categories=categories,
            relabel_products=tuple(str(p) for p in raw.get("relabel_products") or []),
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "CatalogRules":
        return cls.from_raw(load_catalog_rules(path))

    def excluded(self, title: str) -> Optional[str]:
        """Return the exclusion that matches title, if any."""
        t = title.lower()
        for e in self.exclusions:
            if e.lower() in t:
                return e
        return None

    def classify(self, title: str) -> Classification:
        t = title.lower()
        for needle, classification in self.classification_rules:
            if needle.lower() in t:
                return classification
        return self.fallback

    def incompatible(self, filename: str) -> Optional[str]:
        """Return the reason filename can't be applied to a clean image, if any."""
        name = filename.lower()
        for pattern, reason in self.incompatible_files:
            if fnmatch.fnmatchcase(name, pattern.lower()):
                return reason
        return None

    def category_for(self, product: str, build: str) -> str:
        """Broaden a build to the catalog category that lists its updates.

        Unknown builds fall back to the product name itself.
        """

        for entry in self.categories.get(product) or []:
            if build in [str(b) for b in entry.get("builds") or []]:
                return str(entry["category"])
        logger.warning("No category mapping for %s %s; using product name", product, build)
        return product

    def relabel_capable(self, product: str) -> bool:
        return product in self.relabel_products
