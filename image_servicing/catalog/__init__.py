from .base import CatalogBackend, CatalogFilter, RawUpdate
from .classifier import CatalogRules
from .curated import CuratedIndexBackend
from .enterprise import EnterpriseCatalogBackend
from .resolver import CatalogueResolver, ResolveResult, build_backend

__all__ = [
    "CatalogBackend",
    "CatalogFilter",
    "RawUpdate",
    "CatalogRules",
    "CuratedIndexBackend",
    "EnterpriseCatalogBackend",
    "CatalogueResolver",
    "ResolveResult",
    "build_backend",
]
