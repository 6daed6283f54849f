from __future__ import annotations

import logging
import platform
import subprocess
from pathlib import Path, PurePosixPath
from typing import Iterable, List

from ..errors import InspectionUnavailable
from .command import CommandError, run_cmd

logger = logging.getLogger(__name__)

INSPECT_TIMEOUT_S = 120.0


def _run_inspector(argv: List[str]) -> str:
    try:
        return run_cmd(argv, timeout_s=INSPECT_TIMEOUT_S).stdout
    except FileNotFoundError as e:
        raise InspectionUnavailable(f"{argv[0]} not installed") from e
    except (CommandError, subprocess.TimeoutExpired) as e:
        raise InspectionUnavailable(str(e)) from e
    except (OSError, ValueError) as e:
        # Not executable, or member names the tool printed in another encoding.
        raise InspectionUnavailable(f"{argv[0]} could not list members: {e}") from e


def list_members_structured(cab_path: Path) -> List[str]:
    """List cabinet members from 7-Zip's technical listing (-slt).

    The header block before the '----------' separator describes the archive
    itself and is skipped.
    """

    out = _run_inspector(["7z", "l", "-slt", str(cab_path)])
    members: List[str] = []
    in_entries = False
    for line in out.splitlines():
        if line.strip() == "----------":
            in_entries = True
            continue
        if in_entries and line.startswith("Path = "):
            members.append(line[len("Path = "):].strip())
    if not in_entries:
        raise InspectionUnavailable(f"Unrecognized 7z listing for {cab_path}")
    return members


def list_members_listing(cab_path: Path) -> List[str]:
    """List cabinet members from the platform's file-table listing tool."""

    if platform.system() == "Windows":
        # expand -D prints "<cab>: <member>" per file.
        out = _run_inspector(["expand", "-D", str(cab_path)])
        return [line.split(": ", 1)[1].strip() for line in out.splitlines() if ": " in line]

    out = _run_inspector(["cabextract", "-l", str(cab_path)])
    members: List[str] = []
    for line in out.splitlines():
        parts = line.split(" | ")
        if len(parts) == 3 and not parts[0].strip().startswith("File size"):
            members.append(parts[2].strip())
    return members


def has_member(members: Iterable[str], marker: str) -> bool:
    want = marker.lower()
    for m in members:
        if PurePosixPath(m.replace("\\", "/")).name.lower() == want:
            return True
    return False
