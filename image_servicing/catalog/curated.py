from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from ..errors import CatalogUnavailable
from ..lib.http import DEFAULT_TIMEOUT_S, get_json
from ..models import ContentItem, UpdateDescriptor
from .base import CatalogFilter, RawUpdate

logger = logging.getLogger(__name__)


class CuratedIndexBackend:
    """Curated update index: a JSON list of per-file rows.

    Row fields: UpdateId, Title, UpdateOS, UpdateArch, UpdateBuild, UpdateGroup,
    FileName, OriginUri, CreationDate and optionally IsSuperseded. Rows sharing
    an UpdateId are files of the same update.

    The index location is either an http(s) URL or a local file path.
    """

    name = "curated"

    def __init__(
        self,
        index_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        if not index_url:
            raise ValueError("catalog.index_url is required for the curated backend")
        self.index_url = index_url
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self._rows: Optional[List[Dict[str, Any]]] = None

    def _load_rows(self) -> List[Dict[str, Any]]:
        if self._rows is not None:
            return self._rows

        if self.index_url.startswith(("http://", "https://")):
            data = get_json(self.session, self.index_url, timeout_s=self.timeout_s)
        else:
            p = Path(self.index_url)
            try:
                data = json.loads(p.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise CatalogUnavailable(f"Cannot read curated index {p}: {e}") from e

        if isinstance(data, dict):
            data = data.get("updates")
        if not isinstance(data, list):
            raise CatalogUnavailable("Curated index must be a list of rows (or {'updates': [...]})")

        self._rows = [r for r in data if isinstance(r, dict)]
        logger.info("Curated index loaded: %d rows from %s", len(self._rows), self.index_url)
        return self._rows

    def query(self, flt: CatalogFilter) -> List[RawUpdate]:
        grouped: Dict[str, Dict[str, Any]] = {}
        for row in self._load_rows():
            if str(row.get("UpdateOS") or "") != flt.product:
                continue
            if str(row.get("UpdateArch") or "").lower() != flt.architecture.lower():
                continue
            if str(row.get("UpdateBuild") or "") != flt.build:
                continue

            uid = str(row.get("UpdateId") or row.get("Title") or "")
            if not uid:
                continue
            entry = grouped.setdefault(
                uid,
                {
                    "title": str(row.get("Title") or uid),
                    "superseded": bool(row.get("IsSuperseded", False)),
                    "revised": row.get("CreationDate"),
                    "group": row.get("UpdateGroup"),
                    "files": [],
                },
            )
            if row.get("FileName") and row.get("OriginUri"):
                entry["files"].append({"filename": str(row["FileName"]), "url": str(row["OriginUri"])})

        return [
            RawUpdate(
                update_id=uid,
                title=e["title"],
                product=flt.product,
                build=flt.build,
                architecture=flt.architecture,
                superseded=e["superseded"],
                revised=e["revised"],
                source={"group": e["group"], "files": e["files"]},
            )
            for uid, e in grouped.items()
        ]

    def content_items(self, descriptor: UpdateDescriptor) -> List[ContentItem]:
        files = descriptor.source.get("files") or []
        return [ContentItem(filename=f["filename"], url=f["url"], update_id=descriptor.update_id) for f in files]
