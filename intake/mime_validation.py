"""
Extension and MIME type validation for uploaded files.

Design decisions:
- python-magic (libmagic): Industry standard for MIME detection
- Graceful fallback: Works without libmagic (declared type, then extension-only)
- Whitelist approach: Only extensions in the UploadSpec allow-list pass
- Injected policy: lookup tables are immutable values passed in, never
  module state mutated by callers, so tests can supply custom tables

Why MIME validation matters:
- Extension can be spoofed (malicious.exe -> malicious.png)
- Magic bytes reveal true file type
- Prevents storing unexpected formats under a trusted extension

Mismatch rule:
- Sniffed type known to the table -> extension must be one of its extensions
- Sniffed type unknown (or no detection at all) -> advisory pass
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from .errors import TransportError, TransportReason, UploadError, UploadErrorKind
from .files import split_name
from .models import RawSubmission, normalize_extensions
from .transport import map_transfer_status

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".svg"})

DOCUMENT_EXTENSIONS = frozenset(
    {
        # Text and PDF
        ".txt", ".pdf",
        # Microsoft Word
        ".doc", ".docx", ".docm", ".dot", ".dotx",
        # Microsoft Excel
        ".xls", ".xlsx", ".xlsm", ".xlt", ".xltx",
        # Microsoft PowerPoint
        ".ppt", ".pptx", ".pptm", ".pot", ".potx",
    }
)

ALL_SUPPORTED_EXTENSIONS = IMAGE_EXTENSIONS | DOCUMENT_EXTENSIONS

# Common MIME strings returned by libmagic, mapped to the extensions they may carry
DEFAULT_MIME_EXTENSIONS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        # Images
        "image/jpeg": frozenset({".jpg", ".jpeg"}),
        "image/png": frozenset({".png"}),
        "image/gif": frozenset({".gif"}),
        "image/webp": frozenset({".webp"}),
        "image/bmp": frozenset({".bmp"}),
        "image/svg+xml": frozenset({".svg"}),
        # Text and PDF
        "application/pdf": frozenset({".pdf"}),
        "text/plain": frozenset({".txt", ".csv"}),
        "text/csv": frozenset({".csv"}),
        "text/html": frozenset({".html", ".htm"}),
        # Microsoft Word
        "application/msword": frozenset({".doc", ".dot"}),
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document": frozenset({".docx"}),
        "application/vnd.ms-word.document.macroEnabled.12": frozenset({".docm"}),
        "application/vnd.openxmlformats-officedocument.wordprocessingml.template": frozenset({".dotx"}),
        # Microsoft Excel
        "application/vnd.ms-excel": frozenset({".xls", ".xlt", ".csv"}),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": frozenset({".xlsx"}),
        "application/vnd.ms-excel.sheet.macroEnabled.12": frozenset({".xlsm"}),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.template": frozenset({".xltx"}),
        # Microsoft PowerPoint
        "application/vnd.ms-powerpoint": frozenset({".ppt", ".pot"}),
        "application/vnd.openxmlformats-officedocument.presentationml.presentation": frozenset({".pptx"}),
        "application/vnd.ms-powerpoint.presentation.macroEnabled.12": frozenset({".pptm"}),
        "application/vnd.openxmlformats-officedocument.presentationml.template": frozenset({".potx"}),
    }
)


@dataclass(frozen=True)
class UploadPolicy:
    """
    Content-type policy shared by all specs an orchestrator processes.

    Attributes:
        sniff_content_type: Cross-check the content against the extension
        mime_extensions: MIME type -> extensions it may be stored under
    """

    sniff_content_type: bool = True
    mime_extensions: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: DEFAULT_MIME_EXTENSIONS
    )

    def __post_init__(self) -> None:
        table = {
            normalize_mime(mime): normalize_extensions(exts)
            for mime, exts in self.mime_extensions.items()
        }
        object.__setattr__(self, "mime_extensions", MappingProxyType(table))

    def extensions_for(self, mime: str | None) -> frozenset[str]:
        """Extensions known for mime; empty when the type is not in the table."""
        if not mime:
            return frozenset()
        return self.mime_extensions.get(normalize_mime(mime), frozenset())


def normalize_mime(mime: str) -> str:
    """'Text/Plain; charset=us-ascii' -> 'text/plain'."""
    return (mime or "").split(";")[0].strip().lower()


def detect_mime(path: Path) -> str | None:
    """
    Detect MIME type of a file using python-magic (libmagic).

    Args:
        path: File to inspect

    Returns:
        Detected MIME type or None if unavailable
    """
    try:
        import magic  # type: ignore
    except Exception:
        logger.warning(
            "python-magic unavailable, falling back to declared type",
            extra={"error_code": "MAGIC_UNAVAILABLE"},
        )
        return None

    try:
        out = magic.from_file(str(path), mime=True)
        if not out:
            return None
        return normalize_mime(out)
    except Exception:
        logger.warning(
            "MIME detection failed, falling back to declared type",
            extra={"error_code": "MIME_DETECTION_ERROR"},
        )
        return None


def check_extension(
    file_name: str,
    status: int,
    allowed_extensions: Iterable[str],
    sniffed_type: str | None = None,
    policy: UploadPolicy | None = None,
) -> str:
    """
    Validate a submission's name, transfer status and content type.

    Checks, in order: transfer status, extension allow-list, then (when the
    policy enables it) the sniffed type against the extension.

    Args:
        file_name: Name as submitted
        status: Platform transfer status code
        allowed_extensions: Allowed ".ext" values
        sniffed_type: Detected MIME type, if any
        policy: Content-type policy (default policy when None)

    Returns:
        Validated extension, lower-case, without dot

    Raises:
        TransportError: transfer did not complete
        UploadError(EXTENSION_NOT_ALLOWED | TYPE_MISMATCH)
    """
    policy = policy or UploadPolicy()

    transport_error = map_transfer_status(status)
    if transport_error is not None:
        raise transport_error

    ext = split_name(file_name)[1].lower()
    if not ext or f".{ext}" not in normalize_extensions(allowed_extensions):
        raise UploadError(UploadErrorKind.EXTENSION_NOT_ALLOWED, "File extension not allowed")

    if policy.sniff_content_type:
        expected = policy.extensions_for(sniffed_type)
        if expected and f".{ext}" not in expected:
            raise UploadError(
                UploadErrorKind.TYPE_MISMATCH, "File type does not match its extension"
            )

    return ext


def validate_submission(
    submission: RawSubmission,
    allowed_extensions: Iterable[str],
    policy: UploadPolicy | None = None,
) -> str:
    """
    Validate a RawSubmission, sniffing its temp file when the policy asks for it.

    The client-declared content type is only used when libmagic gives no answer.

    Returns:
        Validated extension, lower-case, without dot
    """
    policy = policy or UploadPolicy()

    sniffed = None
    if policy.sniff_content_type and map_transfer_status(submission.status) is None:
        if submission.temp_path is not None:
            sniffed = detect_mime(submission.temp_path)
        if sniffed is None and submission.content_type:
            sniffed = normalize_mime(submission.content_type)

    ext = check_extension(
        submission.original_name,
        submission.status,
        allowed_extensions,
        sniffed_type=sniffed,
        policy=policy,
    )

    if submission.temp_path is None or not Path(submission.temp_path).is_file():
        raise TransportError(TransportReason.UNKNOWN, "Invalid file upload parameters")
    return ext
