from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..errors import ApplyError
from ..lib.mount import check_mount
from ..models import (
    ApplyOutcome,
    ApplyReport,
    ApplyStatus,
    Classification,
    ContainerFormat,
    LocalArtifact,
)

logger = logging.getLogger(__name__)

Applier = Callable[[str, Path], object]

# Applied strictly in this order; anything else follows, in input order.
PRECEDENCE = (Classification.SERVICING_STACK, Classification.CUMULATIVE_UPDATE)


class FileState(str, Enum):
    CAB = "cab"
    RELABELED = "relabeled"  # a cabinet renamed to .msu
    MSU = "msu"  # shipped as .msu


class ArtifactFile:
    """On-disk name of one artifact across the relabel/fallback transitions.

        CAB --relabel--> RELABELED --restore--> CAB

    The path always names the format the file currently claims to be.
    """

    def __init__(self, path: Path, original_format: ContainerFormat) -> None:
        self.path = path
        current = ContainerFormat.from_filename(path.name)
        if original_format == ContainerFormat.MSU:
            self.state = FileState.MSU
        elif current == ContainerFormat.MSU:
            self.state = FileState.RELABELED
        else:
            self.state = FileState.CAB

    @classmethod
    def for_artifact(cls, artifact: LocalArtifact) -> "ArtifactFile":
        original = ContainerFormat.from_filename(artifact.filename) or ContainerFormat.CAB
        return cls(Path(artifact.path), original)

    @property
    def container_format(self) -> ContainerFormat:
        return ContainerFormat.CAB if self.state == FileState.CAB else ContainerFormat.MSU

    def _rename(self, fmt: ContainerFormat, new_state: FileState) -> None:
        target = self.path.with_suffix(fmt.suffix)
        if target.exists():
            raise FileExistsError(f"Cannot relabel {self.path.name}: {target.name} already exists")
        self.path = self.path.rename(target)
        self.state = new_state
        logger.debug("Relabeled -> %s", self.path.name)

    def relabel(self) -> None:
        if self.state != FileState.CAB:
            raise ValueError(f"relabel from {self.state.value} not allowed")
        self._rename(ContainerFormat.MSU, FileState.RELABELED)

    def restore(self) -> None:
        if self.state != FileState.RELABELED:
            raise ValueError(f"restore from {self.state.value} not allowed")
        self._rename(ContainerFormat.CAB, FileState.CAB)


def order_artifacts(artifacts: Sequence[LocalArtifact]) -> List[LocalArtifact]:
    """Servicing stack first, then cumulative updates, then the rest (stable)."""

    def rank(a: LocalArtifact) -> int:
        try:
            return PRECEDENCE.index(a.classification)
        except ValueError:
            return len(PRECEDENCE)

    return sorted(artifacts, key=rank)


class ApplyEngine:
    def __init__(self, *, applier: Applier, relabel: bool) -> None:
        """relabel selects the platform family for the whole batch:
        True relabels cabinets to .msu with a cabinet fallback, False applies files as-is."""
        self.applier = applier
        self.relabel = relabel

    def _attempt(self, mount_dir: str, path: Path) -> Optional[str]:
        try:
            self.applier(mount_dir, path)
        except ApplyError as e:
            return str(e)
        return None

    def _apply_with_fallback(self, mount_dir: str, art: LocalArtifact) -> ApplyOutcome:
        f = ArtifactFile.for_artifact(art)
        errors: List[str] = []

        if f.state == FileState.CAB:
            try:
                f.relabel()
            except OSError as e:
                # Nothing was attempted as .msu; the cabinet is the primary attempt.
                logger.warning("Cannot relabel %s (%s); applying it as .cab", f.path.name, e)
                errors.append(f"relabel failed: {e}")
                return self._apply_once(mount_dir, art, f, errors)

        art.path = str(f.path)
        primary_error = self._attempt(mount_dir, f.path)
        if primary_error is None:
            return self._outcome(art, f, ApplyStatus.SUCCESS, errors)

        errors.append(primary_error)
        if f.state == FileState.MSU:
            logger.error("Apply failed for %s: %s", f.path.name, primary_error)
            return self._outcome(art, f, ApplyStatus.FAILURE, errors)

        logger.warning("Apply as .msu failed for %s (%s); retrying as .cab", f.path.name, primary_error)
        try:
            if f.state == FileState.RELABELED:
                f.restore()
        except OSError as e:
            errors.append(f"restore failed: {e}")
            art.path = str(f.path)
            logger.error("Apply failed for %s: %s", f.path.name, "; ".join(errors))
            return self._outcome(art, f, ApplyStatus.FAILURE, errors)

        art.path = str(f.path)
        fallback_error = self._attempt(mount_dir, f.path)
        if fallback_error is None:
            return self._outcome(art, f, ApplyStatus.FALLBACK_SUCCESS, errors)

        errors.append(fallback_error)
        logger.error("Apply failed for %s in both formats: %s", f.path.name, " | ".join(errors))
        return self._outcome(art, f, ApplyStatus.FAILURE, errors)

    def _apply_direct(self, mount_dir: str, art: LocalArtifact) -> ApplyOutcome:
        f = ArtifactFile.for_artifact(art)
        errors: List[str] = []
        if f.state == FileState.RELABELED:
            # Left relabeled by an earlier batch; this platform applies cabinets as-is.
            try:
                f.restore()
            except OSError as e:
                errors.append(f"restore failed: {e}")
                logger.error("Apply failed for %s: %s", f.path.name, errors[-1])
                return self._outcome(art, f, ApplyStatus.FAILURE, errors)
        return self._apply_once(mount_dir, art, f, errors)

    def _apply_once(self, mount_dir: str, art: LocalArtifact, f: ArtifactFile, errors: List[str]) -> ApplyOutcome:
        art.path = str(f.path)
        err = self._attempt(mount_dir, f.path)
        if err is None:
            return self._outcome(art, f, ApplyStatus.SUCCESS, errors)
        errors.append(err)
        logger.error("Apply failed for %s: %s", f.path.name, "; ".join(errors))
        return self._outcome(art, f, ApplyStatus.FAILURE, errors)

    @staticmethod
    def _outcome(art: LocalArtifact, f: ArtifactFile, status: ApplyStatus, errors: List[str]) -> ApplyOutcome:
        if status != ApplyStatus.FAILURE:
            logger.info("Applied %s as %s (%s)", f.path.name, f.container_format.suffix, status.value)
        return ApplyOutcome(
            artifact_path=str(f.path),
            classification=art.classification,
            container_format=f.container_format,
            status=status,
            errors=list(errors),
            update_id=art.update_id,
            filename=art.filename,
        )

    def apply_batch(
        self,
        mount_dir: str,
        artifacts: Sequence[LocalArtifact],
        *,
        cancel: Optional[Callable[[], bool]] = None,
        on_outcome: Optional[Callable[[ApplyOutcome], None]] = None,
    ) -> ApplyReport:
        """Apply artifacts in precedence order; one outcome per artifact started.

        MountPreconditionError propagates: before the first artifact, or between
        artifacts if the mount disappears. cancel is polled between artifacts.
        """

        check_mount(mount_dir)
        ordered = order_artifacts(artifacts)
        report = ApplyReport()
        logger.info("Applying %d artifacts to %s (relabel=%s)", len(ordered), mount_dir, self.relabel)

        for i, art in enumerate(ordered):
            if cancel is not None and cancel():
                report.cancelled = True
                report.not_started = len(ordered) - i
                logger.warning("Apply cancelled; %d artifacts not started", report.not_started)
                break
            if i:
                check_mount(mount_dir)

            if self.relabel:
                outcome = self._apply_with_fallback(mount_dir, art)
            else:
                outcome = self._apply_direct(mount_dir, art)

            report.outcomes.append(outcome)
            if on_outcome is not None:
                on_outcome(outcome)

        return report
