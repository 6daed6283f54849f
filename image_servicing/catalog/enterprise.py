from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

import requests

from ..errors import CatalogUnavailable
from ..lib.http import DEFAULT_TIMEOUT_S, get_json
from ..models import ContentItem, UpdateDescriptor
from .base import CatalogFilter, RawUpdate

logger = logging.getLogger(__name__)

# Architecture token as it appears in update display names.
_ARCH_TOKENS = {
    "x64": "x64",
    "amd64": "x64",
    "x86": "x86",
    "arm64": "arm64",
}


def _odata_quote(s: str) -> str:
    return s.replace("'", "''")


class EnterpriseCatalogBackend:
    """Enterprise software-distribution catalog behind an AdminService (OData) endpoint.

    Updates are queried by category, then filtered locally by display name
    (build and architecture) and supersession. Content files are resolved
    per update through the CI -> content -> file relations.
    """

    name = "enterprise"

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        if not base_url:
            raise ValueError("catalog.admin_service_url is required for the enterprise backend")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        # CI_ID -> content files; the audit and fetch steps of one batch share it.
        self._content: Dict[int, List[Tuple[str, str]]] = {}

    def _wmi(self, cls: str, odata_filter: str) -> Iterator[Dict[str, Any]]:
        url: Optional[str] = f"{self.base_url}/wmi/{cls}"
        params: Optional[Dict[str, str]] = {"$filter": odata_filter}
        while url:
            doc = get_json(self.session, url, params=params, timeout_s=self.timeout_s)
            if not isinstance(doc, dict) or not isinstance(doc.get("value"), list):
                raise CatalogUnavailable(f"Unexpected {cls} response shape")
            for item in doc["value"]:
                if isinstance(item, dict):
                    yield item
            # nextLink already carries the query string.
            url = doc.get("@odata.nextLink")
            params = None

    def query(self, flt: CatalogFilter) -> List[RawUpdate]:
        category = _odata_quote(flt.category)
        items = self._wmi(
            "SMS_SoftwareUpdate",
            f"LocalizedCategoryInstanceNames/any(c: c eq '{category}')",
        )

        build = flt.build.lower()
        arch = _ARCH_TOKENS.get(flt.architecture.lower(), flt.architecture.lower())

        out: List[RawUpdate] = []
        for it in items:
            title = str(it.get("LocalizedDisplayName") or "")
            t = title.lower()
            if build not in t or arch not in t:
                continue
            if bool(it.get("IsExpired", False)):
                continue
            out.append(
                RawUpdate(
                    update_id=str(it.get("CI_UniqueID") or it.get("CI_ID")),
                    title=title,
                    product=flt.product,
                    build=flt.build,
                    architecture=flt.architecture,
                    superseded=bool(it.get("IsSuperseded", False)),
                    revised=it.get("DateRevised"),
                    source={"ci_id": it.get("CI_ID")},
                )
            )
        logger.info("Enterprise catalog: %d updates for %s %s %s", len(out), flt.product, flt.build, flt.architecture)
        return out

    def _content_files(self, ci_id: int) -> List[Tuple[str, str]]:
        if ci_id in self._content:
            return self._content[ci_id]

        files: List[Tuple[str, str]] = []
        for link in self._wmi("SMS_CIToContent", f"CI_ID eq {ci_id}"):
            content_id = link.get("ContentID")
            if content_id is None:
                continue
            for f in self._wmi("SMS_CIContentFiles", f"ContentID eq {int(content_id)}"):
                if f.get("FileName") and f.get("SourceURL"):
                    files.append((str(f["FileName"]), str(f["SourceURL"])))
        self._content[ci_id] = files
        return files

    def content_items(self, descriptor: UpdateDescriptor) -> List[ContentItem]:
        ci_id = descriptor.source.get("ci_id")
        if ci_id is None:
            return []
        return [
            ContentItem(filename=name, url=url, update_id=descriptor.update_id)
            for name, url in self._content_files(int(ci_id))
        ]
