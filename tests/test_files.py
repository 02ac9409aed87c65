"""
Tests for file naming utilities.

Tests cover:
- Extension splitting
- Base name sanitization (idempotence, allowed characters, start character, byte cap)
- Path containment
- Collision resolution (check-then-act and exclusive claim)
"""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from intake.errors import UploadError, UploadErrorKind
from intake.files import (
    MAX_BASE_BYTES,
    NAME_MAX_BYTES,
    SUFFIX_RESERVE_BYTES,
    base_byte_budget,
    claim_destination,
    compose_name,
    resolve_collision,
    safe_join,
    sanitize_base_name,
    sanitize_filename,
    split_name,
)

FORBIDDEN_CHARS = set("/\\|#&%!?<>")

AWKWARD_NAMES = [
    "",
    " ",
    "My Photo!!",
    "  lots   of   space  ",
    "../../etc/passwd",
    "..\\..\\windows\\system32",
    "_leading_underscore",
    "trailing___",
    ".hidden",
    "-dash-first",
    "a|b#c&d%e!f?g<h>i",
    "tab\tand\nnewline",
    "null\x00byte",
    "été à la plage",
    "___",
    "!!!",
    "x" * 500,
    "é" + "y" * 400,
    "写真" * 45,
    "x" * 199 + "é",
    "file_",
    "report.final",
]

# ============================================================================
# SPLIT NAME TESTS
# ============================================================================


def test_split_name_basic():
    """Test splitting base and extension."""
    assert split_name("photo.png") == ("photo", "png")


def test_split_name_keeps_extension_case():
    """Test that split_name does not lower-case (sanitize_filename does)."""
    assert split_name("PHOTO.PNG") == ("PHOTO", "PNG")


def test_split_name_multiple_dots():
    """Test that only the last dot splits."""
    assert split_name("archive.tar.gz") == ("archive.tar", "gz")


def test_split_name_no_extension():
    """Test name without extension."""
    assert split_name("README") == ("README", "")


def test_split_name_leading_dot_is_extension():
    """Test that a dotfile splits into an empty base and its extension."""
    assert split_name(".png") == ("", "png")


def test_split_name_dot_in_directory_only():
    """Test that a dot before the last separator is not an extension."""
    assert split_name("some.dir/file") == ("some.dir/file", "")
    assert split_name("some.dir\\file") == ("some.dir\\file", "")


def test_split_name_none():
    """Test None handling."""
    assert split_name(None) == ("", "")  # type: ignore


# ============================================================================
# SANITIZE BASE NAME TESTS
# ============================================================================


def test_sanitize_example_photo():
    """Test the reference example: spaces and bangs."""
    assert sanitize_base_name("My Photo!!") == "My_Photo"


def test_sanitize_collapses_whitespace():
    """Test that whitespace runs become a single underscore."""
    assert sanitize_base_name("  lots   of   space  ") == "lots_of_space"


def test_sanitize_path_traversal():
    """Test that separators are replaced and the name cannot start with a dot."""
    result = sanitize_base_name("../../etc/passwd")

    assert "/" not in result
    assert result[0].isalnum()
    assert result.endswith("etc_passwd")


def test_sanitize_empty_gives_fallback():
    """Test empty and punctuation-only names."""
    assert sanitize_base_name("") == "file"
    assert sanitize_base_name("!!!") == "file"
    assert sanitize_base_name("___") == "file"


def test_sanitize_none():
    """Test None handling."""
    assert sanitize_base_name(None) == "file"  # type: ignore


def test_sanitize_non_alnum_start_is_prefixed():
    """Test that names starting with a dot or dash get a safe prefix."""
    assert sanitize_base_name(".hidden") == "file_.hidden"
    assert sanitize_base_name("-dash-first") == "file_-dash-first"


def test_sanitize_keeps_unicode_letters_inside():
    """Test that accented letters are kept after an ASCII start."""
    assert sanitize_base_name("Café crème") == "Café_crème"


def test_sanitize_allows_dashes_dots_underscores():
    """Test that ordinary punctuation survives."""
    assert sanitize_base_name("my-doc_v2.final") == "my-doc_v2.final"


def test_sanitize_max_length():
    """Test that base names are truncated."""
    assert len(sanitize_base_name("x" * 500)) == MAX_BASE_BYTES


def test_sanitize_caps_multibyte_names_in_bytes():
    """Test that the cap counts UTF-8 bytes, not characters."""
    result = sanitize_base_name("Photo_" + "写真" * 100)

    assert len(result.encode("utf-8")) <= MAX_BASE_BYTES
    assert result.startswith("Photo_写真")


def test_sanitize_never_splits_a_character():
    """Test that truncation stops before a partial multi-byte character."""
    result = sanitize_base_name("x" * 199 + "é")

    assert result == "x" * 199


def test_sanitize_custom_byte_cap_is_idempotent():
    """Test idempotence with a smaller cap, including the prefixed case."""
    for name in ["写真" * 30, "-" + "é" * 50, "a" * 80]:
        once = sanitize_base_name(name, 40)
        assert len(once.encode("utf-8")) <= 40
        assert sanitize_base_name(once, 40) == once


def test_base_byte_budget_leaves_room_for_suffixes():
    """Test that base + longest suffix + extension fits the filename limit."""
    for ext in ["png", "jpeg", "x" * 60, ""]:
        base = sanitize_base_name("写真" * 200, base_byte_budget(ext))
        longest = compose_name(base + "_2026_03_14_09_26_53_deadbeef", ext)

        assert len(longest.encode("utf-8")) <= NAME_MAX_BYTES


def test_base_byte_budget_default_extension():
    """Test that ordinary extensions keep the full base cap."""
    assert base_byte_budget("png") == MAX_BASE_BYTES


def test_sanitize_filename_applies_byte_budget():
    """Test that sanitize_filename fits a long non-ASCII name."""
    base, ext = sanitize_filename("写真" * 45 + ".PNG")

    assert ext == "png"
    assert len(compose_name(base, ext).encode("utf-8")) + SUFFIX_RESERVE_BYTES <= NAME_MAX_BYTES


@pytest.mark.parametrize("name", AWKWARD_NAMES)
def test_sanitize_is_idempotent(name):
    """sanitize(sanitize(x)) == sanitize(x)."""
    once = sanitize_base_name(name)
    assert sanitize_base_name(once) == once


@pytest.mark.parametrize("name", AWKWARD_NAMES)
def test_sanitize_output_invariants(name):
    """Output is non-empty, starts alphanumeric, has no forbidden chars or double underscores."""
    result = sanitize_base_name(name)

    assert result
    assert result[0].isascii() and result[0].isalnum()
    assert not FORBIDDEN_CHARS & set(result)
    assert "__" not in result
    assert not any(ch.isspace() for ch in result)
    assert len(result.encode("utf-8")) <= MAX_BASE_BYTES


def test_sanitize_filename_lowercases_extension():
    """Test that sanitize_filename returns a lower-case extension."""
    assert sanitize_filename("My Photo!!.PNG") == ("My_Photo", "png")


def test_compose_name():
    """Test joining base and extension."""
    assert compose_name("a", "png") == "a.png"
    assert compose_name("a", "") == "a"


# ============================================================================
# SAFE JOIN TESTS
# ============================================================================


def test_safe_join_inside_directory():
    """Test that plain names resolve inside the directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        result = safe_join(Path(tmpdir), "photo.png")

        assert result.parent == Path(tmpdir).resolve()
        assert result.name == "photo.png"


def test_safe_join_rejects_traversal():
    """Test that a name escaping the directory is refused."""
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(UploadError) as exc:
            safe_join(Path(tmpdir), "../escape.png")

        assert exc.value.kind == UploadErrorKind.UNSAFE_PATH


def test_safe_join_rejects_subdirectory():
    """Test that nested paths are refused too."""
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(UploadError):
            safe_join(Path(tmpdir), "sub/photo.png")


# ============================================================================
# RESOLVE COLLISION TESTS
# ============================================================================


def test_resolve_collision_free_path_unchanged():
    """Test that a free path is returned as-is."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"

        assert resolve_collision(path, replace_existing=False) == path


def test_resolve_collision_replace_returns_existing():
    """Test that replace mode keeps the existing path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"
        path.write_bytes(b"old")

        assert resolve_collision(path, replace_existing=True) == path


def test_resolve_collision_suffixes_existing():
    """Test that an existing file yields base_1.ext."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"
        path.write_bytes(b"old")

        result = resolve_collision(path, replace_existing=False)

        assert result.name == "photo_1.png"
        assert result != path
        assert not result.exists()


def test_resolve_collision_skips_taken_suffixes():
    """Test that taken suffixes are skipped."""
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir)
        for name in ["photo.png", "photo_1.png", "photo_2.png"]:
            (base / name).write_bytes(b"x")

        result = resolve_collision(base / "photo.png", replace_existing=False)

        assert result.name == "photo_3.png"


# ============================================================================
# CLAIM DESTINATION TESTS
# ============================================================================


def test_claim_destination_reserves_free_path():
    """Test that the desired path is created as an empty placeholder."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"

        claim = claim_destination(path, replace_existing=False)

        assert claim.path == path
        assert claim.reserved is True
        assert path.exists()
        assert path.read_bytes() == b""


def test_claim_destination_two_claims_never_share_a_path():
    """Test that back-to-back claims for one name get distinct files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"

        first = claim_destination(path, replace_existing=False)
        second = claim_destination(path, replace_existing=False)

        assert first.path.name == "photo.png"
        assert second.path.name == "photo_1.png"


def test_claim_destination_replace_does_not_reserve():
    """Test that replace mode returns the path without creating anything."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"

        claim = claim_destination(path, replace_existing=True)

        assert claim.path == path
        assert claim.reserved is False
        assert not path.exists()


def test_claim_destination_bounded_attempts():
    """Test that claiming gives up after max_attempts candidates."""
    with tempfile.TemporaryDirectory() as tmpdir:
        base = Path(tmpdir)
        for name in ["photo.png", "photo_1.png", "photo_2.png"]:
            (base / name).write_bytes(b"x")

        with pytest.raises(UploadError) as exc:
            claim_destination(base / "photo.png", replace_existing=False, max_attempts=3)

        assert exc.value.kind == UploadErrorKind.DESTINATION_EXHAUSTED


def test_claim_destination_permission_error_is_move_failed():
    """Test that an OS refusal maps to MOVE_FAILED with a reservation message."""
    with tempfile.TemporaryDirectory() as tmpdir:
        with patch("intake.files.os.open", side_effect=PermissionError("denied")):
            with pytest.raises(UploadError) as exc:
                claim_destination(Path(tmpdir) / "photo.png", replace_existing=False)

        assert exc.value.kind == UploadErrorKind.MOVE_FAILED
        assert exc.value.message == "Failed to reserve destination"


def test_claim_release_removes_placeholder():
    """Test that releasing a reservation deletes the placeholder."""
    with tempfile.TemporaryDirectory() as tmpdir:
        claim = claim_destination(Path(tmpdir) / "photo.png", replace_existing=False)

        claim.release()

        assert not claim.path.exists()


def test_claim_release_leaves_unreserved_file_alone():
    """Test that release never deletes a file it did not create."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "photo.png"
        path.write_bytes(b"keep me")

        claim_destination(path, replace_existing=True).release()

        assert path.read_bytes() == b"keep me"
