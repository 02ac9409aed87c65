"""Shared fixtures: keep audit events out of the real audit file."""

from unittest.mock import MagicMock, patch

import pytest


@pytest.fixture(autouse=True)
def audit_logger():
    """Replace the rotating audit logger with a mock for every test."""
    mock_logger = MagicMock()
    with patch("intake.audit_log._get_audit_logger", return_value=mock_logger):
        yield mock_logger
