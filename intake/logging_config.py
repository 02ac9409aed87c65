"""
Logging configuration for the intake pipeline and its web page.

Design decisions:
- Basic format: Timestamp | Level | Logger | Message
- stdout output: Compatible with container logging (Docker, K8s)
- Level from LOG_LEVEL (INFO by default)
- Idempotent setup: Streamlit re-runs the page script on every interaction

SECURITY:
- Application logs never contain submitted file names or content
- Use audit_log.py for structured per-upload events
- Failures carry an error_code in `extra`, not user input

Usage:
    from intake.logging_config import setup_logging
    setup_logging()  # Call once at startup
"""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def level_from_env(default: int = logging.INFO) -> int:
    """Read LOG_LEVEL ("DEBUG", "warning", "10", ...); unknown values give default."""
    raw = (os.getenv("LOG_LEVEL") or "").strip()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def setup_logging(level: int | None = None) -> None:
    """
    Configure stdout logging for the application.
    Idempotent: won't add duplicate handlers if already configured.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    logging.basicConfig(
        level=level if level is not None else level_from_env(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
