"""
Error taxonomy for the intake pipeline.

Every step raises UploadError (or its TransportError subclass); the
orchestrator catches it and records an UploadFailure. Nothing raised here
crosses the pipeline boundary.
"""

from __future__ import annotations

from enum import Enum


class UploadErrorKind(str, Enum):
    """Machine-readable failure kind, also used as audit error_code."""

    DIRECTORY_MISSING = "directory_missing"
    DIRECTORY_CREATE_FAILED = "directory_create_failed"
    DIRECTORY_NOT_WRITABLE = "directory_not_writable"
    MISSING_REQUIRED_FILE = "missing_required_file"
    TRANSPORT_ERROR = "transport_error"
    EXTENSION_NOT_ALLOWED = "extension_not_allowed"
    TYPE_MISMATCH = "type_mismatch"
    UNSAFE_PATH = "unsafe_path"
    DESTINATION_EXHAUSTED = "destination_exhausted"
    HISTORY_COPY_FAILED = "history_copy_failed"
    MOVE_FAILED = "move_failed"


class TransportReason(str, Enum):
    """Why the platform layer failed to hand over the file."""

    SIZE_EXCEEDED = "size_exceeded"
    PARTIAL_TRANSFER = "partial_transfer"
    NO_FILE = "no_file"
    NO_TEMP_DIR = "no_temp_dir"
    WRITE_FAILED = "write_failed"
    POLICY_BLOCKED = "policy_blocked"
    UNKNOWN = "unknown"


class UploadError(Exception):
    """A step of the pipeline refused or failed to process a submission."""

    def __init__(self, kind: UploadErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def reason(self) -> TransportReason | None:
        return None


class TransportError(UploadError):
    """The transfer itself failed before the pipeline saw the content."""

    def __init__(self, reason: TransportReason, message: str):
        super().__init__(UploadErrorKind.TRANSPORT_ERROR, message)
        self._reason = reason

    @property
    def reason(self) -> TransportReason:
        return self._reason
