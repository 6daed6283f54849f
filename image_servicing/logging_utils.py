from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

DEFAULT_LOG_PATH = "/var/log/image-servicing.log"
FALLBACK_LOG_NAME = "image-servicing.log"

# Marks handlers owned by configure_logging so a later call replaces them.
_OWNED = "_image_servicing_handler"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _file_handler(path: str) -> logging.Handler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")


def configure_logging(log_path: str = DEFAULT_LOG_PATH, *, verbose: bool = False, console: bool = True) -> str:
    """Send the batch log to log_path (and stderr); return the file actually used.

    Every catalog decision, transfer, validation result and apply outcome ends
    up in this file. When log_path cannot be opened the log goes to
    image-servicing.log in the working directory instead.
    """

    root = logging.getLogger()
    for h in [h for h in root.handlers if getattr(h, _OWNED, False)]:
        root.removeHandler(h)
        h.close()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    chosen = log_path
    try:
        handlers: List[logging.Handler] = [_file_handler(log_path)]
    except OSError:
        chosen = str(Path.cwd() / FALLBACK_LOG_NAME)
        handlers = [_file_handler(chosen)]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))

    fmt = logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    for h in handlers:
        h.setFormatter(fmt)
        setattr(h, _OWNED, True)
        root.addHandler(h)

    # urllib3 logs every pooled connection at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    log = logging.getLogger(__name__)
    if chosen != log_path:
        log.warning("Cannot write log file %s; logging to %s", log_path, chosen)
    log.debug("Logging to %s (verbose=%s)", chosen, verbose)
    return chosen
