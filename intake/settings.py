"""
Centralized configuration for the file intake pipeline.

Design decisions:
- Frozen dataclass: read once at import, never mutated by the pipeline
- Environment variables (optionally from .env via python-dotenv) override every default
- Defaults keep everything under ./data so a fresh checkout runs as-is

Key parameters explained:

Directories:
- upload_dir: Default target directory used by the web page
- spool_dir: Temp files live here between transfer and commit; keep it on the
  same filesystem as upload_dir so the commit is a plain rename

Validation:
- mime_sniffing=True: Cross-check libmagic's verdict against the extension.
  Unknown types pass (advisory check)

Limits:
- max_upload_size="10M": Enforced by the transport adapter, before the pipeline
  runs. Accepts bytes or a K/M/G suffix
- max_collision_attempts=10000: Upper bound on name_1, name_2, ... candidates

History:
- history_token_bytes=4: Random bytes in history names (8 hex chars). Names
  reserve 30 bytes for suffixes (files.SUFFIX_RESERVE_BYTES), which covers
  up to 4 token bytes

Audit:
- audit_enabled=True: One JSON line per processed item in audit_log_path
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("INTAKE_DATA_DIR", str(BASE_DIR / "data")))
UPLOAD_DIR = DATA_DIR / "uploads"
SPOOL_DIR = DATA_DIR / "spool"

_SIZE_UNITS = {"K": 1024, "M": 1024**2, "G": 1024**3}


def parse_size(value: int | str) -> int:
    """
    Convert a size such as "2M", "2048K" or "2097152" to bytes.

    Raises:
        ValueError: if the value is not a valid size
    """
    if isinstance(value, int):
        return value
    v = value.strip().upper()
    if v and v[-1] in _SIZE_UNITS:
        return int(v[:-1]) * _SIZE_UNITS[v[-1]]
    return int(v)


def _env_bool(name: str, default: bool) -> bool:
    """Parse boolean from environment variable."""
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    """Parse integer from environment variable."""
    v = os.getenv(name)
    if v is None:
        return default
    return int(v)


def _env_path(name: str, default: Path) -> Path:
    """Parse path from environment variable."""
    v = os.getenv(name)
    if not v:
        return default
    return Path(v).expanduser()


@dataclass(frozen=True)
class Settings:
    """
    Application settings.

    All settings can be overridden via environment variables.

    Attributes:
        upload_dir: Default target directory
        spool_dir: Directory for transferred temp files
        mime_sniffing: Enable the libmagic content-type cross-check
        max_upload_bytes: Size limit enforced by the transport adapter
        max_collision_attempts: Bound on suffix candidates per upload
        history_token_bytes: Random bytes in history file names
        audit_enabled: Write audit events
        audit_log_path: JSON-lines audit file
    """

    upload_dir: Path = _env_path("INTAKE_UPLOAD_DIR", UPLOAD_DIR)
    spool_dir: Path = _env_path("INTAKE_SPOOL_DIR", SPOOL_DIR)

    mime_sniffing: bool = _env_bool("MIME_SNIFFING", True)

    max_upload_bytes: int = parse_size(os.getenv("MAX_UPLOAD_SIZE", "10M"))
    max_collision_attempts: int = _env_int("MAX_COLLISION_ATTEMPTS", 10_000)

    history_token_bytes: int = _env_int("HISTORY_TOKEN_BYTES", 4)

    audit_enabled: bool = _env_bool("AUDIT_ENABLED", True)
    audit_log_path: Path = _env_path("AUDIT_LOG_PATH", DATA_DIR / "audit.jsonl")


settings = Settings()
