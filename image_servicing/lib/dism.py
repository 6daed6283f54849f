from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from ..errors import ApplyError
from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)

DEFAULT_APPLY_ARGV = (
    "dism.exe",
    "/Image:{mount}",
    "/Add-Package",
    "/PackagePath:{package}",
    "/Quiet",
    "/NoRestart",
)

# 3010: ERROR_SUCCESS_REBOOT_REQUIRED
_OK_CODES = {0, 3010}


def render_argv(template: Sequence[str], *, mount: str, package: str) -> list[str]:
    return [a.format(mount=mount, package=package) for a in template]


def add_package(
    mount_dir: str,
    package: Path,
    *,
    argv_template: Sequence[str] = DEFAULT_APPLY_ARGV,
    dry_run: bool = False,
) -> CmdResult:
    """Add one update package to an offline image. Raises ApplyError on failure."""

    argv = render_argv(argv_template, mount=mount_dir, package=str(package))
    try:
        r = run_cmd(argv, check=False, dry_run=dry_run)
    except (OSError, ValueError) as e:
        raise ApplyError(f"{argv[0]} could not run: {e}") from e

    if r.returncode not in _OK_CODES:
        detail = (r.stderr or r.stdout).strip().splitlines()
        raise ApplyError(f"{package.name}: exit {r.returncode}: {detail[-1] if detail else 'no output'}")
    if r.returncode == 3010:
        logger.info("%s applied (image reports restart required)", package.name)
    return r
