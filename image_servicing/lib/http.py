from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import requests

from ..errors import CatalogUnavailable, TransferError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0
DOWNLOAD_TIMEOUT_S = 300.0
CHUNK_SIZE = 65536


def build_session(
    *,
    username: Optional[str] = None,
    password: Optional[str] = None,
    verify_tls: bool = True,
) -> requests.Session:
    s = requests.Session()
    if username:
        s.auth = (username, password or "")
    s.verify = verify_tls
    s.headers["User-Agent"] = "image-servicing/0.1"
    return s


def get_json(session: requests.Session, url: str, *, params: Any = None, timeout_s: float = DEFAULT_TIMEOUT_S) -> Any:
    """GET a catalog document. Every failure mode here is fatal for the batch."""

    try:
        r = session.get(url, params=params, timeout=timeout_s)
    except requests.RequestException as e:
        raise CatalogUnavailable(f"Catalog unreachable: {url}: {e}") from e

    if r.status_code in (401, 403):
        raise CatalogUnavailable(f"Catalog rejected credentials ({r.status_code}): {url}")
    try:
        r.raise_for_status()
    except requests.HTTPError as e:
        raise CatalogUnavailable(f"Catalog request failed: {e}") from e

    try:
        return r.json()
    except ValueError as e:
        raise CatalogUnavailable(f"Catalog returned invalid JSON: {url}") from e


def download_file(
    session: requests.Session,
    url: str,
    dest: Path,
    *,
    timeout_s: float = DOWNLOAD_TIMEOUT_S,
) -> int:
    """Stream url into dest, via a .part file renamed into place on completion.

    Returns the number of bytes written. Raises TransferError on any failure;
    the partial file is removed.
    """

    dest.parent.mkdir(parents=True, exist_ok=True)
    part = dest.with_name(dest.name + ".part")

    written = 0
    try:
        with session.get(url, stream=True, timeout=timeout_s) as r:
            r.raise_for_status()
            with part.open("wb") as f:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        part.replace(dest)
    except (requests.RequestException, OSError) as e:
        part.unlink(missing_ok=True)
        raise TransferError(f"Download failed: {url}: {e}") from e

    logger.info("Downloaded %s (%d bytes) -> %s", url, written, str(dest))
    return written
