"""Shared fakes: catalog backend, downloader, cabinet inspectors and apply tool."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from image_servicing.catalog.base import CatalogFilter, RawUpdate
from image_servicing.catalog.classifier import CatalogRules
from image_servicing.errors import ApplyError, InspectionUnavailable, TransferError
from image_servicing.models import ContentItem, UpdateDescriptor


class FakeBackend:
    name = "fake"

    def __init__(self, updates: Sequence[RawUpdate] = (), files: Optional[Dict[str, List[str]]] = None) -> None:
        self.updates = list(updates)
        self.files = files or {}
        self.queries: List[CatalogFilter] = []

    def query(self, flt: CatalogFilter) -> List[RawUpdate]:
        self.queries.append(flt)
        return [u for u in self.updates if u.product == flt.product and u.build == flt.build]

    def content_items(self, descriptor: UpdateDescriptor) -> List[ContentItem]:
        return [
            ContentItem(filename=f, url=f"https://dl.example.invalid/{f}", update_id=descriptor.update_id)
            for f in self.files.get(descriptor.update_id, [])
        ]


class FakeDownloader:
    def __init__(self, fail: Sequence[str] = ()) -> None:
        self.calls: List[str] = []
        self.fail = set(fail)

    def __call__(self, url: str, dest: Path) -> int:
        self.calls.append(url)
        if url.rsplit("/", 1)[-1] in self.fail:
            raise TransferError(f"Download failed: {url}: connection reset")
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"MSCF payload")
        return 12


def members_inspector(members: Dict[str, List[str]]):
    """Inspector returning canned member lists keyed by filename."""

    def inspect(path: Path) -> List[str]:
        return members.get(path.name, [])

    return inspect


def unavailable_inspector(path: Path) -> List[str]:
    raise InspectionUnavailable("7z not installed")


class FakeApplier:
    """Records apply calls; fails for the filenames listed in fail."""

    def __init__(self, fail: Sequence[str] = ()) -> None:
        self.calls: List[str] = []
        self.fail = set(fail)

    def __call__(self, mount_dir: str, package: Path) -> None:
        self.calls.append(package.name)
        if package.name in self.fail:
            raise ApplyError(f"{package.name}: exit 0x800f081e: The specified package is not applicable")


def raw_update(update_id: str, title: str, *, product: str = "Windows 10", build: str = "22H2", **kw) -> RawUpdate:
    return RawUpdate(update_id=update_id, title=title, product=product, build=build, architecture="x64", **kw)


@pytest.fixture
def rules() -> CatalogRules:
    return CatalogRules.load()


@pytest.fixture
def mount_dir(tmp_path: Path) -> Path:
    d = tmp_path / "mount"
    (d / "Windows").mkdir(parents=True)
    return d
