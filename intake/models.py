"""
Value types exchanged with the intake pipeline.

Design decisions:
- Frozen dataclasses: specs, submissions and outcomes never change after creation
- Outcome as a tagged union: UploadSuccess | UploadSkipped | UploadFailure,
  so a success can never carry an error and a failure can never carry a path
- Extensions normalized once in UploadSpec (lower-case, leading dot)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable

from .errors import TransportReason, UploadErrorKind


class UploadStage(str, Enum):
    """Progress of one item through the pipeline."""

    PENDING = "pending"
    DIRECTORY_READY = "directory_ready"
    VALIDATED = "validated"
    SANITIZED = "sanitized"
    PATH_RESOLVED = "path_resolved"
    ARCHIVED = "archived"
    COMMITTED = "committed"


def normalize_extensions(extensions: Iterable[str]) -> frozenset[str]:
    """
    Normalize extensions to lower-case with a leading dot.

    Args:
        extensions: Iterable such as [".PNG", "jpg", " .pdf "]

    Returns:
        frozenset like {".png", ".jpg", ".pdf"}; blanks are dropped
    """
    out = set()
    for ext in extensions:
        ext = (ext or "").strip().lower()
        if not ext or ext == ".":
            continue
        out.add(ext if ext.startswith(".") else f".{ext}")
    return frozenset(out)


@dataclass(frozen=True)
class UploadSpec:
    """
    Caller-declared rules for processing one field's submission.

    Attributes:
        field_key: Request field whose submission is processed
        target_dir: Directory the file is committed into
        allowed_extensions: Allowed ".ext" values (case-insensitive)
        force_file_name: Base name override; its own extension is ignored
        replace_existing: Overwrite an existing file instead of suffixing
        keep_history: Also write a timestamped copy next to the file
        create_dir_if_missing: Create target_dir when it does not exist
        required: Absence of a submission is an error
    """

    field_key: str
    target_dir: Path
    allowed_extensions: frozenset[str]
    force_file_name: str | None = None
    replace_existing: bool = False
    keep_history: bool = False
    create_dir_if_missing: bool = True
    required: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_dir", Path(self.target_dir))
        object.__setattr__(
            self, "allowed_extensions", normalize_extensions(self.allowed_extensions)
        )


@dataclass(frozen=True)
class RawSubmission:
    """
    One transferred file as handed over by the transport layer.

    temp_path is None when the transfer failed before anything was stored.
    content_type is what the client declared; it is never trusted on its own.
    """

    original_name: str
    temp_path: Path | None
    size: int = 0
    status: int = 0
    content_type: str | None = None


@dataclass(frozen=True)
class UploadSuccess:
    """The file was committed."""

    field_key: str
    file_name: str
    full_path: Path
    history_path: Path | None = None

    @property
    def success(self) -> bool:
        return True

    @property
    def uploaded(self) -> bool:
        return True


@dataclass(frozen=True)
class UploadSkipped:
    """No submission for an optional field. Not an error."""

    field_key: str
    message: str = "Not uploaded"

    @property
    def success(self) -> bool:
        return True

    @property
    def uploaded(self) -> bool:
        return False


@dataclass(frozen=True)
class UploadFailure:
    """The item stopped at `stage` with a failure of `kind`."""

    field_key: str
    kind: UploadErrorKind
    message: str
    stage: UploadStage = UploadStage.PENDING
    reason: TransportReason | None = None

    @property
    def success(self) -> bool:
        return False

    @property
    def uploaded(self) -> bool:
        return False


UploadOutcome = UploadSuccess | UploadSkipped | UploadFailure


@dataclass
class BatchResult:
    """Outcomes of a batch, in the order the specs were declared."""

    outcomes: list[UploadOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def succeeded_count(self) -> int:
        return self.total - self.failed_count

    @property
    def failures(self) -> list[UploadFailure]:
        return [o for o in self.outcomes if isinstance(o, UploadFailure)]

    def get(self, field_key: str) -> UploadOutcome | None:
        """First outcome recorded for field_key, or None."""
        for o in self.outcomes:
            if o.field_key == field_key:
                return o
        return None
