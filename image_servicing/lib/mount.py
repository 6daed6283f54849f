from __future__ import annotations

import os
from pathlib import Path

from ..errors import MountPreconditionError


def check_mount(mount_dir: str) -> Path:
    """Verify the mount target supplied by the mount-lifecycle owner is usable."""

    if not mount_dir:
        raise MountPreconditionError("No mount target given")
    p = Path(mount_dir)
    try:
        if not p.is_dir():
            raise MountPreconditionError(f"Mount target is not a directory: {p}")
        if not os.access(p, os.R_OK | os.W_OK | os.X_OK):
            raise MountPreconditionError(f"Mount target is not writable: {p}")
    except OSError as e:
        raise MountPreconditionError(f"Mount target inaccessible: {p}: {e}") from e
    return p
