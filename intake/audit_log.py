"""
Per-upload audit trail, one JSON line per item and per batch.

Only identifiers, counters and enum codes are written. Anything that came
from the client stays out of the audit file.

Written:
- request_id: Correlates the items of one batch
- timestamp: UTC, ISO 8601
- field_key: Form field named by the caller's UploadSpec
- verdict: "committed", "skipped" or "failed"
- error_code / stage / transport_reason: UploadErrorKind, UploadStage, TransportReason values
- size_bytes / latency_ms: Numbers
- history: True when a history copy was written
- total / failed: Batch counters

Never written:
- submitted or sanitized file names
- destination and history paths
- file content, declared content types, error messages

Design decisions:
- Dedicated "audit" logger that does not propagate to the application log
- JSON lines on a RotatingFileHandler (10 MB x 5)
- Callers pass outcomes, never strings, so free text has no way in
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Literal

from .models import UploadFailure, UploadOutcome, UploadSkipped, UploadSuccess
from .settings import settings

AUDIT_LOGGER_NAME = "audit"
AUDIT_MAX_BYTES = 10 * 1024 * 1024
AUDIT_BACKUPS = 5

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """
    One audit line.

    Every field is a code, a counter or an identifier generated server-side.
    """
    event_type: Literal["upload", "batch"]
    request_id: str
    timestamp: str
    field_key: str = ""
    verdict: Literal["committed", "skipped", "failed", ""] = ""
    error_code: str = ""
    stage: str = ""
    transport_reason: str = ""
    size_bytes: int = 0
    latency_ms: int = 0
    history: bool = False
    total: int = 0
    failed: int = 0

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False)


def _get_audit_logger() -> logging.Logger:
    """Return the audit logger, attaching the rotating file handler on first use."""
    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    if audit.handlers:
        return audit

    audit.setLevel(logging.INFO)
    audit.propagate = False

    settings.audit_log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        settings.audit_log_path,
        maxBytes=AUDIT_MAX_BYTES,
        backupCount=AUDIT_BACKUPS,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit.addHandler(handler)
    return audit


def _write(event: AuditEvent) -> None:
    """Emit one audit line. A broken audit file never fails the upload it describes."""
    try:
        _get_audit_logger().info(event.to_json())
    except OSError:
        logger.warning("Audit write failed", extra={"error_code": "AUDIT_WRITE_ERROR"})


def generate_request_id() -> str:
    """16 hex chars, shared by every item of one batch."""
    return uuid.uuid4().hex[:16]


def utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def outcome_event(
    request_id: str,
    outcome: UploadOutcome,
    size_bytes: int = 0,
    latency_ms: int = 0,
) -> AuditEvent:
    """Build the audit event for one item. Paths and names are dropped."""
    event = AuditEvent(
        event_type="upload",
        request_id=request_id,
        timestamp=utcnow_iso(),
        field_key=outcome.field_key,
        size_bytes=size_bytes,
        latency_ms=latency_ms,
    )
    if isinstance(outcome, UploadSuccess):
        return replace(event, verdict="committed", history=outcome.history_path is not None)
    if isinstance(outcome, UploadSkipped):
        return replace(event, verdict="skipped")
    failure: UploadFailure = outcome
    return replace(
        event,
        verdict="failed",
        error_code=failure.kind.value,
        stage=failure.stage.value,
        transport_reason=failure.reason.value if failure.reason else "",
    )


def log_outcome(
    request_id: str,
    outcome: UploadOutcome,
    size_bytes: int = 0,
    latency_ms: int = 0,
) -> None:
    """Write the audit line for one processed item."""
    if not settings.audit_enabled:
        return
    _write(outcome_event(request_id, outcome, size_bytes, latency_ms))


def log_batch(request_id: str, total: int, failed: int, latency_ms: int = 0) -> None:
    """Write the summary line closing a batch."""
    if not settings.audit_enabled:
        return
    summary = AuditEvent(
        event_type="batch",
        request_id=request_id,
        timestamp=utcnow_iso(),
        total=total,
        failed=failed,
        latency_ms=latency_ms,
    )
    _write(summary)


class RequestTimer:
    """Wall-clock duration of a block, in whole milliseconds."""

    def __init__(self):
        self._started: float = 0
        self.elapsed_ms: int = 0

    def __enter__(self) -> RequestTimer:
        self._started = time.perf_counter()
        return self

    def __exit__(self, *exc_info) -> None:
        self.elapsed_ms = int((time.perf_counter() - self._started) * 1000)
