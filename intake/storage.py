"""
Durable writes into the target directory: history copies and the final commit.

Design decisions:
- History copy first: written before the commit so a committed file always
  has its history entry when history is enabled
- Exclusive create for history names: timestamp + random hex, regenerated
  on the (practically impossible) clash instead of overwriting
- os.replace as the commit point: atomic rename, never copy + unlink at the
  destination name
- Cross-device temp files: copied to a hidden staging file inside the target
  directory, then renamed, so no half-written file ever carries the final name
"""

from __future__ import annotations

import errno
import logging
import os
import secrets
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Callable

from .errors import UploadError, UploadErrorKind
from .files import compose_name

logger = logging.getLogger(__name__)

HISTORY_TIMESTAMP_FORMAT = "%Y_%m_%d_%H_%M_%S"
HISTORY_NAME_ATTEMPTS = 5


def _token_hex(nbytes: int = 4) -> str:
    return secrets.token_hex(nbytes)


def history_name(
    base: str,
    ext: str,
    now: datetime | None = None,
    token: str | None = None,
) -> str:
    """
    Build a history file name: base_YYYY_mm_dd_HH_MM_SS_<hex>.ext

    Args:
        base: Sanitized base name
        ext: Extension without dot
        now: Timestamp (current local time when None)
        token: Random suffix (8 hex chars when None)
    """
    now = now or datetime.now()
    token = token or _token_hex()
    return compose_name(f"{base}_{now.strftime(HISTORY_TIMESTAMP_FORMAT)}_{token}", ext)


def archive_copy(
    source: Path,
    target_dir: Path,
    base: str,
    ext: str,
    clock: Callable[[], datetime] = datetime.now,
    token_source: Callable[[], str] = _token_hex,
) -> Path:
    """
    Copy the incoming content to a uniquely named history file.

    Args:
        source: Temp file holding the incoming content
        target_dir: Directory the history file is written into
        base: Sanitized base name
        ext: Extension without dot
        clock: Timestamp source
        token_source: Random suffix source

    Returns:
        Path of the history copy

    Raises:
        UploadError(HISTORY_COPY_FAILED): on any copy failure (partial copy removed)
    """
    target_dir = Path(target_dir)
    for _ in range(HISTORY_NAME_ATTEMPTS):
        path = target_dir / history_name(base, ext, now=clock(), token=token_source())
        created = False
        try:
            with open(source, "rb") as src:
                with open(path, "xb") as dst:
                    created = True
                    shutil.copyfileobj(src, dst)
        except FileExistsError:
            continue
        except OSError as e:
            if created:
                path.unlink(missing_ok=True)
            logger.warning("History copy failed", extra={"error_code": "HISTORY_COPY_ERROR"})
            raise UploadError(
                UploadErrorKind.HISTORY_COPY_FAILED, "Failed to create history copy"
            ) from e
        logger.debug("History copy written")
        return path

    logger.warning("No free history name", extra={"error_code": "HISTORY_NAME_EXHAUSTED"})
    raise UploadError(UploadErrorKind.HISTORY_COPY_FAILED, "Failed to create history copy")


def _stage_and_replace(source: Path, destination: Path) -> None:
    """Copy source next to destination under a hidden name, then rename it in place."""
    fd, staging_name = tempfile.mkstemp(
        dir=destination.parent, prefix=".", suffix=".part"
    )
    staging = Path(staging_name)
    try:
        with os.fdopen(fd, "wb") as dst, open(source, "rb") as src:
            shutil.copyfileobj(src, dst)
        os.replace(staging, destination)
    except OSError:
        staging.unlink(missing_ok=True)
        raise
    source.unlink(missing_ok=True)


def commit(source: Path, destination: Path) -> Path:
    """
    Move the validated temp file to its destination. This is the commit point.

    Args:
        source: Temp file holding the content
        destination: Resolved destination (may be a reserved empty placeholder)

    Returns:
        destination

    Raises:
        UploadError(MOVE_FAILED): the move failed; the temp file has been removed
    """
    source, destination = Path(source), Path(destination)
    try:
        try:
            os.replace(source, destination)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            _stage_and_replace(source, destination)
    except OSError as e:
        source.unlink(missing_ok=True)
        logger.warning("Commit failed", extra={"error_code": "MOVE_ERROR"})
        raise UploadError(
            UploadErrorKind.MOVE_FAILED, "Failed to move file to target location"
        ) from e
    return destination
