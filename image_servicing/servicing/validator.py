from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import InspectionUnavailable
from ..lib.cabinet import has_member, list_members_listing, list_members_structured
from ..models import ContainerFormat, ValidationState

logger = logging.getLogger(__name__)

Inspector = Callable[[Path], List[str]]

DEFAULT_INSPECTORS: Tuple[Tuple[str, Inspector], ...] = (
    ("structured", list_members_structured),
    ("listing", list_members_listing),
)


@dataclass
class ArtifactValidator:
    """Check that cabinets carry the servicing metadata marker.

    Inspectors are tried in order. A cabinet is valid as soon as one of them
    finds the marker. If at least one inspector ran and none found it, the file
    is deleted. If no inspector could run, fail_open decides: keep the file as
    valid-unverified, or delete it.
    """

    marker: str = "update.mum"
    fail_open: bool = True
    inspectors: Sequence[Tuple[str, Inspector]] = DEFAULT_INSPECTORS

    def validate(self, path: Path, fmt: Optional[ContainerFormat] = None) -> ValidationState:
        """fmt is the container the file really is; a relabeled cabinet passes CAB."""

        fmt = fmt or ContainerFormat.from_filename(path.name)
        if fmt != ContainerFormat.CAB:
            return ValidationState.NOT_INSPECTED

        ran: List[str] = []
        for name, inspect in self.inspectors:
            try:
                members = inspect(path)
            except InspectionUnavailable as e:
                logger.info("Inspection method %s unavailable for %s: %s", name, path.name, e)
                continue
            except Exception as e:
                logger.warning("Inspection method %s failed for %s: %r", name, path.name, e)
                continue
            ran.append(name)
            if has_member(members, self.marker):
                logger.info("Validated %s (%s found via %s)", path.name, self.marker, name)
                return ValidationState.VALID

        if ran:
            logger.error("%s lacks %s (checked via %s); deleting", path.name, self.marker, ",".join(ran))
            path.unlink(missing_ok=True)
            return ValidationState.INVALID_DELETED

        if self.fail_open:
            logger.warning("No inspection method could run for %s; keeping it unverified", path.name)
            return ValidationState.VALID_UNVERIFIED

        logger.error("No inspection method could run for %s and fail_open is off; deleting", path.name)
        path.unlink(missing_ok=True)
        return ValidationState.INVALID_DELETED
