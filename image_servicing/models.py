from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import Any, Dict, List, Optional


class Classification(str, Enum):
    SERVICING_STACK = "SSU"
    CUMULATIVE_UPDATE = "LCU"
    RUNTIME_COMPONENT = "DotNet"
    RUNTIME_COMPONENT_CUMULATIVE = "DotNetCU"
    DYNAMIC_UPDATE = "Dynamic"
    OPTIONAL = "Optional"
    DEFINITION = "Definition"

    @property
    def folder(self) -> str:
        return self.value


class ContainerFormat(str, Enum):
    CAB = "A"
    MSU = "B"

    @property
    def suffix(self) -> str:
        return _SUFFIXES[self]

    @classmethod
    def from_filename(cls, filename: str) -> Optional["ContainerFormat"]:
        ext = PurePath(filename).suffix.lower()
        for fmt, suffix in _SUFFIXES.items():
            if ext == suffix:
                return fmt
        return None


_SUFFIXES = {ContainerFormat.CAB: ".cab", ContainerFormat.MSU: ".msu"}


class ValidationState(str, Enum):
    UNVALIDATED = "unvalidated"
    VALID = "valid"
    # Neither inspection method could run; kept under the fail-open policy.
    VALID_UNVERIFIED = "valid_unverified"
    INVALID_DELETED = "invalid_deleted"
    # Format B containers are not inspected.
    NOT_INSPECTED = "not_inspected"

    @property
    def appliable(self) -> bool:
        return self in {ValidationState.VALID, ValidationState.VALID_UNVERIFIED, ValidationState.NOT_INSPECTED}


class ApplyStatus(str, Enum):
    SUCCESS = "success"
    FALLBACK_SUCCESS = "fallback_success"
    FAILURE = "failure"


@dataclass(frozen=True)
class UpdateDescriptor:
    update_id: str
    name: str
    product: str
    build: str
    classification: Classification
    superseded: bool = False
    revised: Optional[str] = None
    architecture: Optional[str] = None
    # Backend-specific locator data (file rows, CI ids) needed to resolve content later.
    source: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["classification"] = self.classification.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "UpdateDescriptor":
        return cls(
            update_id=str(d["update_id"]),
            name=str(d["name"]),
            product=str(d["product"]),
            build=str(d["build"]),
            classification=Classification(d["classification"]),
            superseded=bool(d.get("superseded", False)),
            revised=d.get("revised"),
            architecture=d.get("architecture"),
            source=dict(d.get("source") or {}),
        )


@dataclass(frozen=True)
class ContentItem:
    filename: str
    url: str
    update_id: str

    @property
    def container_format(self) -> Optional[ContainerFormat]:
        return ContainerFormat.from_filename(self.filename)


@dataclass
class LocalArtifact:
    classification: Classification
    descriptor_name: str
    filename: str
    update_id: str
    path: str
    state: ValidationState = ValidationState.UNVALIDATED
    cached: bool = False

    @property
    def container_format(self) -> Optional[ContainerFormat]:
        return ContainerFormat.from_filename(self.path)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["classification"] = self.classification.value
        d["state"] = self.state.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LocalArtifact":
        return cls(
            classification=Classification(d["classification"]),
            descriptor_name=str(d["descriptor_name"]),
            filename=str(d["filename"]),
            update_id=str(d["update_id"]),
            path=str(d["path"]),
            state=ValidationState(d.get("state", ValidationState.UNVALIDATED.value)),
            cached=bool(d.get("cached", False)),
        )


@dataclass(frozen=True)
class ApplyOutcome:
    artifact_path: str
    classification: Classification
    container_format: ContainerFormat
    status: ApplyStatus
    errors: List[str] = field(default_factory=list)
    update_id: str = ""
    filename: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "artifact_path": self.artifact_path,
            "classification": self.classification.value,
            "container_format": self.container_format.value,
            "status": self.status.value,
            "errors": list(self.errors),
            "update_id": self.update_id,
            "filename": self.filename,
        }


@dataclass
class FetchReport:
    artifacts: List[LocalArtifact] = field(default_factory=list)
    failed_updates: List[str] = field(default_factory=list)
    fetched: int = 0
    skipped_cached: int = 0
    validation_deleted: int = 0
    transfer_failed: int = 0
    rejected: int = 0

    def merge(self, other: "FetchReport") -> None:
        self.artifacts.extend(other.artifacts)
        self.failed_updates.extend(other.failed_updates)
        self.fetched += other.fetched
        self.skipped_cached += other.skipped_cached
        self.validation_deleted += other.validation_deleted
        self.transfer_failed += other.transfer_failed
        self.rejected += other.rejected

    def appliable(self) -> List[LocalArtifact]:
        """Artifacts eligible for apply: valid, and not owned by a failed update."""

        failed = set(self.failed_updates)
        return [a for a in self.artifacts if a.state.appliable and a.update_id not in failed]


@dataclass
class ApplyReport:
    outcomes: List[ApplyOutcome] = field(default_factory=list)
    cancelled: bool = False
    not_started: int = 0

    def count(self, status: ApplyStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)


@dataclass
class BatchSummary:
    descriptors: int = 0
    fetched: int = 0
    skipped_cached: int = 0
    validation_deleted: int = 0
    transfer_failed: int = 0
    rejected: int = 0
    pruned: int = 0
    applied_success: int = 0
    applied_fallback: int = 0
    applied_failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
