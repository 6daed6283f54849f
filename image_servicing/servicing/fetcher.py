from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional

from ..catalog.base import CatalogBackend
from ..catalog.classifier import CatalogRules
from ..errors import TransferError
from ..models import ContainerFormat, ContentItem, FetchReport, LocalArtifact, UpdateDescriptor, ValidationState
from ..state_store import load_state, save_state
from .validator import ArtifactValidator

logger = logging.getLogger(__name__)

Downloader = Callable[[str, Path], int]

_UNSAFE = re.compile(r'[<>:"/\\|?*\x00-\x1f]+')

LEDGER_NAME = ".validation.json"


def safe_dirname(name: str) -> str:
    return _UNSAFE.sub("_", name).strip(" .") or "_"


def cached_file(dest: Path) -> Optional[Path]:
    """Return the cached copy of dest, if any.

    A cabinet may sit in the cache under its relabeled .msu name after an
    apply pass; that still counts as the same cached item.
    """

    if dest.exists():
        return dest
    if ContainerFormat.from_filename(dest.name) == ContainerFormat.CAB:
        relabeled = dest.with_suffix(ContainerFormat.MSU.suffix)
        if relabeled.exists():
            return relabeled
    return None


class ValidationLedger:
    """Validation state of cached files, kept at the root of a cache partition.

    Keys are destination paths relative to the partition root, so a cabinet
    keeps its entry while it sits in the cache under its relabeled name.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.path = root / LEDGER_NAME
        self._entries: Optional[Dict[str, str]] = None

    def _load(self) -> Dict[str, str]:
        if self._entries is None:
            try:
                self._entries = dict(load_state(str(self.path)).get("files") or {})
            except ValueError as e:
                logger.warning("Unreadable validation ledger %s (%s); cached cabinets are validated again", str(self.path), e)
                self._entries = {}
        return self._entries

    def _key(self, dest: Path) -> str:
        return dest.relative_to(self.root).as_posix()

    def get(self, dest: Path) -> Optional[ValidationState]:
        raw = self._load().get(self._key(dest))
        return ValidationState(raw) if raw else None

    def record(self, dest: Path, state: ValidationState) -> None:
        entries = self._load()
        if state == ValidationState.INVALID_DELETED:
            entries.pop(self._key(dest), None)
        else:
            entries[self._key(dest)] = state.value
        save_state(str(self.path), {"version": 1, "files": entries})


class ContentFetcher:
    def __init__(
        self,
        *,
        backend: CatalogBackend,
        rules: CatalogRules,
        cache_root: Path,
        download: Downloader,
        validator: Optional[ArtifactValidator] = None,
        dry_run: bool = False,
    ) -> None:
        self.backend = backend
        self.rules = rules
        self.cache_root = Path(cache_root)
        self.download = download
        self.validator = validator or ArtifactValidator()
        self.dry_run = dry_run
        self.ledger = ValidationLedger(self.cache_root)

    def destination(self, descriptor: UpdateDescriptor, item: ContentItem) -> Path:
        return self.cache_root / descriptor.classification.folder / safe_dirname(descriptor.name) / item.filename

    def _artifact(self, descriptor: UpdateDescriptor, item: ContentItem, path: Path) -> LocalArtifact:
        return LocalArtifact(
            classification=descriptor.classification,
            descriptor_name=descriptor.name,
            filename=item.filename,
            update_id=descriptor.update_id,
            path=str(path),
        )

    def _validate(self, dest: Path, path: Path, fmt: ContainerFormat) -> ValidationState:
        """Validate path (dest or its relabeled copy) and record the result for later cache hits."""

        try:
            state = self.validator.validate(path, fmt)
        except Exception:
            logger.exception("Validation of %s failed unexpectedly; deleting", path.name)
            path.unlink(missing_ok=True)
            state = ValidationState.INVALID_DELETED
        self.ledger.record(dest, state)
        return state

    def fetch(self, descriptor: UpdateDescriptor) -> FetchReport:
        """Materialize every usable content item of one update into the cache."""

        report = FetchReport()
        items = self.backend.content_items(descriptor)
        if not items:
            logger.warning("No content files listed for %s", descriptor.name)
            return report

        for item in items:
            fmt = item.container_format
            if fmt is None:
                logger.debug("Skipping %s: unsupported container", item.filename)
                report.rejected += 1
                continue
            reason = self.rules.incompatible(item.filename)
            if reason:
                logger.info("Skipping %s: incompatible with offline images (%s)", item.filename, reason)
                report.rejected += 1
                continue

            dest = self.destination(descriptor, item)
            existing = cached_file(dest)
            if existing is not None:
                known = self.ledger.get(dest) if fmt == ContainerFormat.CAB else ValidationState.NOT_INSPECTED
                if known is None and self.dry_run:
                    logger.info("Would validate cached %s (no recorded validation)", str(existing))
                    continue

                art = self._artifact(descriptor, item, existing)
                art.cached = True
                if known is None:
                    # Cached but never validated, e.g. interrupted right after the download.
                    logger.warning("Cached %s has no recorded validation; validating it now", str(existing))
                    known = self._validate(dest, existing, fmt)
                else:
                    logger.info("Cached: %s (%s)", str(existing), known.value)
                art.state = known
                report.artifacts.append(art)
                if known == ValidationState.INVALID_DELETED:
                    report.validation_deleted += 1
                    report.failed_updates.append(descriptor.update_id)
                else:
                    report.skipped_cached += 1
                continue

            if self.dry_run:
                logger.info("Would download %s -> %s", item.url, str(dest))
                continue

            try:
                self.download(item.url, dest)
            except TransferError as e:
                logger.error("Transfer failed for %s (%s): %s", item.filename, descriptor.name, e)
                report.transfer_failed += 1
                report.failed_updates.append(descriptor.update_id)
                break

            report.fetched += 1
            art = self._artifact(descriptor, item, dest)
            art.state = self._validate(dest, dest, fmt)
            report.artifacts.append(art)
            if art.state == ValidationState.INVALID_DELETED:
                report.validation_deleted += 1
                report.failed_updates.append(descriptor.update_id)

        return report

    def fetch_all(self, descriptors: Iterable[UpdateDescriptor]) -> FetchReport:
        total = FetchReport()
        for d in descriptors:
            total.merge(self.fetch(d))
        logger.info(
            "Fetch pass: fetched=%d cached=%d deleted=%d transfer_failed=%d rejected=%d",
            total.fetched,
            total.skipped_cached,
            total.validation_deleted,
            total.transfer_failed,
            total.rejected,
        )
        return total
