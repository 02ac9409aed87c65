"""
Tests for pipeline value types.

Tests cover:
- Extension normalization
- UploadSpec defaults
- Outcome flags and BatchResult counters
"""

from pathlib import Path

import pytest

from intake.errors import UploadErrorKind
from intake.models import (
    BatchResult,
    UploadFailure,
    UploadSkipped,
    UploadSpec,
    UploadSuccess,
    normalize_extensions,
)


def test_normalize_extensions():
    """Test lower-casing, leading dots and blank removal."""
    assert normalize_extensions([".PNG", "jpg", " .pdf ", "", ".", None]) == frozenset(
        {".png", ".jpg", ".pdf"}
    )


def test_upload_spec_defaults():
    """Test the documented defaults."""
    spec = UploadSpec("photo", "/tmp/uploads", ["PNG"])

    assert spec.target_dir == Path("/tmp/uploads")
    assert spec.allowed_extensions == frozenset({".png"})
    assert spec.force_file_name is None
    assert spec.replace_existing is False
    assert spec.keep_history is False
    assert spec.create_dir_if_missing is True
    assert spec.required is False


def test_upload_spec_is_frozen():
    """Test that a spec cannot change after creation."""
    spec = UploadSpec("photo", Path("/tmp"), [".png"])

    with pytest.raises(AttributeError):
        spec.required = True  # type: ignore


@pytest.mark.parametrize(
    "outcome, success, uploaded",
    [
        (UploadSuccess("a", "a.png", Path("/tmp/a.png")), True, True),
        (UploadSkipped("a"), True, False),
        (UploadFailure("a", UploadErrorKind.MOVE_FAILED, "x"), False, False),
    ],
)
def test_outcome_flags(outcome, success, uploaded):
    """Test success/uploaded per variant."""
    assert outcome.success is success
    assert outcome.uploaded is uploaded


def test_batch_result_counters():
    """Test totals, failures and lookup by field key."""
    failure = UploadFailure("c", UploadErrorKind.EXTENSION_NOT_ALLOWED, "x")
    result = BatchResult(
        [UploadSuccess("a", "a.png", Path("/tmp/a.png")), UploadSkipped("b"), failure]
    )

    assert result.total == 3
    assert result.failed_count == 1
    assert result.succeeded_count == 2
    assert result.failures == [failure]
    assert result.get("c") is failure
    assert result.get("missing") is None


def test_empty_batch():
    """Test that an empty batch has zero counts."""
    result = BatchResult()

    assert result.total == 0
    assert result.failed_count == 0
