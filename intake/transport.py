"""
Boundary with the web layer that delivers uploaded files.

The pipeline never parses HTTP. This module covers the two directions of
the boundary:
- inbound: platform transfer status codes -> TransportError, and Streamlit
  UploadedFile objects -> RawSubmission spooled to a temp file
- outbound: form helpers (accept attribute, MAX_FILE_SIZE input, file_uploader types)

Size limits are enforced here, before the pipeline runs, the same way a
web server rejects oversize bodies.
"""

from __future__ import annotations

import html
import logging
import tempfile
from enum import IntEnum
from pathlib import Path
from typing import Any, Iterable

from .errors import TransportError, TransportReason
from .models import RawSubmission, normalize_extensions

logger = logging.getLogger(__name__)


class TransferStatus(IntEnum):
    """Platform transfer status codes, numbered like the UPLOAD_ERR_* constants of form uploads."""

    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


_STATUS_ERRORS = {
    TransferStatus.INI_SIZE: (
        TransportReason.SIZE_EXCEEDED,
        "File exceeds upload_max_filesize directive",
    ),
    TransferStatus.FORM_SIZE: (
        TransportReason.SIZE_EXCEEDED,
        "File exceeds MAX_FILE_SIZE directive",
    ),
    TransferStatus.PARTIAL: (
        TransportReason.PARTIAL_TRANSFER,
        "File was only partially uploaded",
    ),
    TransferStatus.NO_FILE: (TransportReason.NO_FILE, "No file was uploaded"),
    TransferStatus.NO_TMP_DIR: (TransportReason.NO_TEMP_DIR, "Missing temporary folder"),
    TransferStatus.CANT_WRITE: (TransportReason.WRITE_FAILED, "Failed to write file to disk"),
    TransferStatus.EXTENSION: (
        TransportReason.POLICY_BLOCKED,
        "File upload stopped by extension",
    ),
}


def map_transfer_status(status: Any) -> TransportError | None:
    """
    Translate a platform transfer status into a typed error.

    Args:
        status: Status code as reported by the transport layer

    Returns:
        None for OK, otherwise the TransportError describing the failure
    """
    if isinstance(status, bool) or not isinstance(status, int):
        return TransportError(TransportReason.UNKNOWN, "Invalid file upload parameters")
    if status == TransferStatus.OK:
        return None
    try:
        reason, message = _STATUS_ERRORS[TransferStatus(status)]
    except (ValueError, KeyError):
        return TransportError(TransportReason.UNKNOWN, "Unknown upload error")
    return TransportError(reason, message)


def spool_upload(
    uploaded: Any,
    spool_dir: Path,
    max_bytes: int | None = None,
) -> RawSubmission:
    """
    Write an uploaded file to a temp file and describe it as a RawSubmission.

    Transfer problems are reported through the status code, never raised,
    so the pipeline can turn them into a field-specific message.

    Args:
        uploaded: Streamlit UploadedFile, or anything with name/type/getvalue()
        spool_dir: Directory holding temp files until commit
        max_bytes: Size limit; larger files are rejected with FORM_SIZE

    Returns:
        RawSubmission pointing at the temp file (None when nothing was written)
    """
    name = getattr(uploaded, "name", "") or ""
    content_type = getattr(uploaded, "type", None) or None
    raw = uploaded.getvalue()
    size = len(raw)

    if max_bytes is not None and size > max_bytes:
        return RawSubmission(name, None, size, TransferStatus.FORM_SIZE, content_type)

    spool_dir = Path(spool_dir)
    if not spool_dir.is_dir():
        logger.warning("Spool directory missing", extra={"error_code": "SPOOL_MISSING"})
        return RawSubmission(name, None, size, TransferStatus.NO_TMP_DIR, content_type)

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=spool_dir, prefix="upload_", delete=False
        ) as fh:
            temp_path = Path(fh.name)
            fh.write(raw)
    except OSError:
        logger.warning("Failed to spool upload", extra={"error_code": "SPOOL_WRITE_ERROR"})
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        return RawSubmission(name, None, size, TransferStatus.CANT_WRITE, content_type)

    return RawSubmission(name, temp_path, size, TransferStatus.OK, content_type)


def file_uploader_types(extensions: Iterable[str]) -> list[str]:
    """Extensions in the form st.file_uploader(type=...) expects: ["pdf", "png"]."""
    return sorted(ext.lstrip(".") for ext in normalize_extensions(extensions))


def accept_attribute(
    extensions: Iterable[str] = (),
    mime_types: Iterable[str] = (),
) -> str:
    """
    Build an HTML accept attribute for a file input.

    Extensions win when given (best cross-browser support); MIME types are
    only used as a fallback.

    Returns:
        'accept=".png,.jpg"' or an empty string when nothing is usable
    """
    accepts: list[str] = []
    for ext in extensions:
        ext = (ext or "").strip()
        if ext:
            accepts.append(ext if ext.startswith(".") else f".{ext}")
    if not accepts:
        accepts = [m.strip() for m in mime_types if m and m.strip()]
    if not accepts:
        return ""
    return f'accept="{html.escape(",".join(accepts))}"'


def max_file_size_input(size: int) -> str:
    """Hidden MAX_FILE_SIZE input; must precede the file input in the form."""
    return f'<input type="hidden" name="MAX_FILE_SIZE" value="{int(size)}" />'
