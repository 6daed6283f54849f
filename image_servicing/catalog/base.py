from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from ..models import ContentItem, UpdateDescriptor


@dataclass(frozen=True)
class CatalogFilter:
    product: str
    build: str
    architecture: str
    # Lifecycle category the build belongs to (may cover several builds).
    category: str


@dataclass(frozen=True)
class RawUpdate:
    """One catalog entry before exclusion and classification."""

    update_id: str
    title: str
    product: str
    build: str
    architecture: Optional[str] = None
    superseded: bool = False
    revised: Optional[str] = None
    source: Dict[str, Any] = field(default_factory=dict, compare=False)


class CatalogBackend(Protocol):
    """A catalog that can list updates and resolve their downloadable files."""

    name: str

    def query(self, flt: CatalogFilter) -> List[RawUpdate]:
        ...

    def content_items(self, descriptor: UpdateDescriptor) -> List[ContentItem]:
        ...
