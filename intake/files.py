"""
File naming utilities for secure upload management.

Design decisions:
- Extension split before sanitizing: the extension is validated separately
  against the allow-list, only the base name is rewritten
- Idempotent sanitization: sanitize(sanitize(x)) == sanitize(x)
- Containment check on every destination: a name can never escape target_dir
- Exclusive create for collision handling: two concurrent uploads of the same
  name each get their own file instead of overwriting each other

Security considerations:
- Path separators and shell/URL meta characters become underscores
- Base names always start with an ASCII letter or digit (no dotfiles, no "-x")
- Base names are capped in UTF-8 bytes, leaving room in the 255-byte
  filename limit for the extension and the _N / history suffixes
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .errors import UploadError, UploadErrorKind

logger = logging.getLogger(__name__)

NAME_MAX_BYTES = 255
# "_<YYYY_mm_dd_HH_MM_SS>_<8 hex>" is 29 bytes, "_N" stays under that
SUFFIX_RESERVE_BYTES = 30
MAX_BASE_BYTES = 200
FALLBACK_BASE = "file"

_WHITESPACE = re.compile(r"\s+")
_FORBIDDEN = re.compile(r"[/\\|#&%!?<>\x00-\x1F\x7F]")
_UNDERSCORES = re.compile(r"_+")
_SAFE_START = re.compile(r"[A-Za-z0-9]")


def split_name(name: str) -> tuple[str, str]:
    """
    Split a submitted name into base and extension.

    The extension is whatever follows the last dot of the final path
    component, so ".png" splits into ("", "png") and "archive.tar.gz"
    into ("archive.tar", "gz").

    Args:
        name: Name as submitted (may contain directories)

    Returns:
        Tuple of (base, extension without dot, original case)
    """
    name = name or ""
    last_sep = max(name.rfind("/"), name.rfind("\\"))
    dot = name.rfind(".")
    if dot <= last_sep:
        return name, ""
    return name[:dot], name[dot + 1 :]


def _truncate_utf8(name: str, max_bytes: int) -> str:
    """Cut name to at most max_bytes of UTF-8 without splitting a character."""
    return name.encode("utf-8", "ignore")[:max_bytes].decode("utf-8", "ignore")


def base_byte_budget(ext: str) -> int:
    """
    Largest base name (in UTF-8 bytes) that still fits NAME_MAX_BYTES once
    ".ext" and the longest collision or history suffix are appended.
    """
    ext_bytes = len(ext.encode("utf-8")) + 1 if ext else 0
    budget = NAME_MAX_BYTES - SUFFIX_RESERVE_BYTES - ext_bytes
    return max(len(FALLBACK_BASE), min(MAX_BASE_BYTES, budget))


def sanitize_base_name(base: str, max_bytes: int = MAX_BASE_BYTES) -> str:
    """
    Turn an arbitrary string into a filesystem-safe base name.

    Args:
        base: Base name without extension
        max_bytes: Length cap in UTF-8 bytes (see base_byte_budget)

    Returns:
        Non-empty name starting with a letter or digit, free of
        separators, meta characters and repeated underscores
    """
    name = _WHITESPACE.sub(" ", base or "").strip()
    name = name.replace(" ", "_")
    name = _FORBIDDEN.sub("_", name)
    name = _UNDERSCORES.sub("_", name).strip("_")
    name = _truncate_utf8(name, max_bytes).rstrip("_")

    if not name:
        return FALLBACK_BASE
    if not _SAFE_START.match(name):
        name = _UNDERSCORES.sub("_", f"{FALLBACK_BASE}_{name}")
        name = _truncate_utf8(name, max_bytes).rstrip("_")
    return name


def sanitize_filename(name: str) -> tuple[str, str]:
    """
    Sanitize a full submitted name.

    Returns:
        Tuple of (safe base name, lower-case extension without dot)
    """
    base, ext = split_name(name)
    ext = ext.lower()
    return sanitize_base_name(base, base_byte_budget(ext)), ext


def compose_name(base: str, ext: str) -> str:
    """Join a base name and an extension (without dot)."""
    return f"{base}.{ext}" if ext else base


def safe_join(target_dir: Path, file_name: str) -> Path:
    """
    Join file_name onto target_dir and check containment.

    Raises:
        UploadError(UNSAFE_PATH): if the result is not a direct child of target_dir
    """
    base = Path(target_dir).resolve()
    candidate = (base / file_name).resolve()
    if candidate.parent != base:
        raise UploadError(UploadErrorKind.UNSAFE_PATH, "Resolved path escapes upload directory")
    return candidate


def candidate_paths(path: Path) -> Iterator[Path]:
    """Yield path, then base_1.ext, base_2.ext, ... in the same directory."""
    path = Path(path)
    base, ext = split_name(path.name)
    yield path
    counter = 1
    while True:
        yield path.with_name(compose_name(f"{base}_{counter}", ext))
        counter += 1


def resolve_collision(path: Path, replace_existing: bool) -> Path:
    """
    Find a destination that does not overwrite an existing file.

    Check-then-act: the returned path may be taken by a concurrent writer
    before it is used. The pipeline itself goes through claim_destination.

    Args:
        path: Desired destination
        replace_existing: Return path unchanged when True

    Returns:
        path, or the first free base_N.ext sibling
    """
    if replace_existing:
        return Path(path)
    return next(c for c in candidate_paths(path) if not c.exists())


@dataclass(frozen=True)
class Claim:
    """A destination chosen for commit. reserved=True means we created a placeholder."""

    path: Path
    reserved: bool

    def release(self) -> None:
        """Remove the placeholder if the commit did not happen."""
        if not self.reserved:
            return
        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "Failed to release reserved destination",
                extra={"error_code": "CLAIM_RELEASE_ERROR"},
            )


def claim_destination(path: Path, replace_existing: bool, max_attempts: int = 10_000) -> Claim:
    """
    Reserve a destination atomically.

    Without replace, the first free candidate is created empty with
    O_CREAT | O_EXCL; a FileExistsError moves on to the next suffix.
    The placeholder is later replaced by the committed file.

    Args:
        path: Desired destination
        replace_existing: Skip reservation and return path as-is
        max_attempts: Number of candidates tried before giving up

    Returns:
        Claim for the chosen destination

    Raises:
        UploadError(DESTINATION_EXHAUSTED): no free name within max_attempts
        UploadError(MOVE_FAILED): the directory refused the reservation
    """
    if replace_existing:
        return Claim(Path(path), reserved=False)

    for attempt, candidate in enumerate(candidate_paths(path)):
        if attempt >= max_attempts:
            break
        try:
            fd = os.open(candidate, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            continue
        except OSError as e:
            logger.warning(
                "Failed to reserve destination",
                extra={"error_code": "CLAIM_ERROR"},
            )
            raise UploadError(
                UploadErrorKind.MOVE_FAILED, "Failed to reserve destination"
            ) from e
        os.close(fd)
        return Claim(candidate, reserved=True)

    raise UploadError(
        UploadErrorKind.DESTINATION_EXHAUSTED,
        f"No free file name after {max_attempts} attempts",
    )
