"""
Upload orchestration: one spec, one submission, one outcome.

Pipeline per item:
1. Ensure the target directory exists (create it if the UploadSpec allows) and is writable
2. Look up the submission for the UploadSpec's field key (absent -> skipped or error)
3. Validate transfer status, extension and content type
4. Sanitize the base name (forced name or submitted name) within the byte budget
5. Resolve and reserve the destination inside the target directory
6. Write the history copy (optional)
7. Commit with an atomic rename

Error handling:
- Steps raise UploadError; it is caught here and becomes an UploadFailure
  carrying the last stage reached
- The transferred temp file is discarded on every exit path
- A reserved destination placeholder is released when the item fails
- A batch never stops because one item failed
- Audit write failures are logged, never raised (see audit_log)
"""

from __future__ import annotations

import logging
import os
import secrets
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .audit_log import RequestTimer, generate_request_id, log_batch, log_outcome
from .errors import UploadError, UploadErrorKind
from .files import (
    Claim,
    base_byte_budget,
    claim_destination,
    compose_name,
    safe_join,
    sanitize_base_name,
    split_name,
)
from .mime_validation import UploadPolicy, validate_submission
from .models import (
    BatchResult,
    RawSubmission,
    UploadFailure,
    UploadOutcome,
    UploadSkipped,
    UploadSpec,
    UploadStage,
    UploadSuccess,
)
from .settings import settings
from .storage import archive_copy, commit
from .transport import TransferStatus

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """
    Runs UploadSpecs against the submissions of one request.

    Args:
        policy: Content-type policy (MIME sniffing toggle and table)
        max_collision_attempts: Bound on name_N candidates per item
        clock: Timestamp source for history names
        token_source: Random suffix source for history names
    """

    def __init__(
        self,
        policy: UploadPolicy | None = None,
        max_collision_attempts: int | None = None,
        clock: Callable[[], datetime] = datetime.now,
        token_source: Callable[[], str] | None = None,
    ):
        self.policy = policy or UploadPolicy(sniff_content_type=settings.mime_sniffing)
        self.max_collision_attempts = max_collision_attempts or settings.max_collision_attempts
        self.clock = clock
        self.token_source = token_source or partial(
            secrets.token_hex, settings.history_token_bytes
        )

    def process(
        self,
        spec: UploadSpec,
        submissions: Mapping[str, RawSubmission],
        request_id: str | None = None,
    ) -> UploadOutcome:
        """
        Process the submission bound to spec.field_key.

        Never raises UploadError: every failure is returned as an UploadFailure.
        """
        request_id = request_id or generate_request_id()
        submission = submissions.get(spec.field_key)

        with RequestTimer() as timer:
            try:
                outcome = self._run(spec, submission)
            finally:
                if submission is not None:
                    _discard_temp(submission)

        if isinstance(outcome, UploadFailure):
            logger.warning(
                "Upload failed",
                extra={
                    "field_key": spec.field_key,
                    "error_code": outcome.kind.value,
                    "stage": outcome.stage.value,
                },
            )
        elif isinstance(outcome, UploadSuccess):
            logger.info("Upload committed", extra={"field_key": spec.field_key})

        log_outcome(
            request_id,
            outcome,
            size_bytes=submission.size if submission else 0,
            latency_ms=timer.elapsed_ms,
        )
        return outcome

    def process_batch(
        self,
        specs: Iterable[UploadSpec],
        submissions: Mapping[str, RawSubmission],
        request_id: str | None = None,
    ) -> BatchResult:
        """
        Process specs in declaration order, continuing past failures.

        A submission is consumed by the first spec naming its field key;
        later specs for the same key see it as absent.
        """
        request_id = request_id or generate_request_id()
        available = dict(submissions)
        result = BatchResult()

        with RequestTimer() as timer:
            for spec in specs:
                result.outcomes.append(self.process(spec, available, request_id))
                available.pop(spec.field_key, None)

        # Submissions no spec asked for still own a spooled temp file
        for leftover in available.values():
            _discard_temp(leftover)

        logger.info(
            "Batch processed",
            extra={"total": result.total, "failed": result.failed_count},
        )
        log_batch(request_id, result.total, result.failed_count, timer.elapsed_ms)
        return result

    def _run(self, spec: UploadSpec, submission: RawSubmission | None) -> UploadOutcome:
        stage = UploadStage.PENDING
        claim: Claim | None = None
        try:
            _ensure_directory(spec.target_dir, spec.create_dir_if_missing)
            stage = UploadStage.DIRECTORY_READY

            if submission is None or submission.status == TransferStatus.NO_FILE:
                if spec.required:
                    raise UploadError(
                        UploadErrorKind.MISSING_REQUIRED_FILE,
                        f"No file uploaded for key: {spec.field_key}",
                    )
                return UploadSkipped(spec.field_key)

            ext = validate_submission(submission, spec.allowed_extensions, self.policy)
            stage = UploadStage.VALIDATED

            base = sanitize_base_name(_requested_base(spec, submission), base_byte_budget(ext))
            file_name = compose_name(base, ext)
            stage = UploadStage.SANITIZED

            claim = claim_destination(
                safe_join(spec.target_dir, file_name),
                spec.replace_existing,
                self.max_collision_attempts,
            )
            stage = UploadStage.PATH_RESOLVED

            history_path = None
            if spec.keep_history:
                history_path = archive_copy(
                    submission.temp_path,
                    claim.path.parent,
                    base,
                    ext,
                    clock=self.clock,
                    token_source=self.token_source,
                )
                stage = UploadStage.ARCHIVED

            commit(submission.temp_path, claim.path)
            return UploadSuccess(spec.field_key, claim.path.name, claim.path, history_path)

        except UploadError as e:
            if claim is not None:
                claim.release()
            return UploadFailure(spec.field_key, e.kind, e.message, stage, e.reason)


def _requested_base(spec: UploadSpec, submission: RawSubmission) -> str:
    """Forced name wins over the submitted one; either way its extension is dropped."""
    if spec.force_file_name:
        return split_name(spec.force_file_name)[0]
    return split_name(submission.original_name)[0]


def _ensure_directory(target_dir: Path, create: bool) -> None:
    target_dir = Path(target_dir)
    if not target_dir.is_dir():
        if not create:
            raise UploadError(
                UploadErrorKind.DIRECTORY_MISSING, "Upload directory does not exist"
            )
        try:
            target_dir.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise UploadError(
                UploadErrorKind.DIRECTORY_CREATE_FAILED,
                f"Failed to create upload directory: {target_dir}",
            ) from e

    if not os.access(target_dir, os.W_OK | os.X_OK):
        raise UploadError(
            UploadErrorKind.DIRECTORY_NOT_WRITABLE, "Upload directory is not writable"
        )


def _discard_temp(submission: RawSubmission) -> None:
    """Remove the transferred temp file if it is still there (it is gone after a commit)."""
    if submission.temp_path is None:
        return
    try:
        Path(submission.temp_path).unlink(missing_ok=True)
    except OSError:
        logger.warning("Failed to remove temp file", extra={"error_code": "TEMP_CLEANUP_ERROR"})
