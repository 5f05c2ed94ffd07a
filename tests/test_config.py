"""
tests/test_config.py -- SECRET_KEY policy and defaults in core/config.py.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_debug_mode_generates_key():
    settings = Settings(debug=True, secret_key="")
    assert len(settings.secret_key) >= 32


def test_production_requires_key():
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(debug=False, secret_key="")


def test_short_key_rejected():
    with pytest.raises(ValidationError, match="at least 32"):
        Settings(debug=True, secret_key="too-short")


def test_defaults():
    settings = Settings(debug=True, secret_key="k" * 32)
    assert settings.token_expire_seconds == 24 * 3600
    assert settings.recovery_window_seconds == 24 * 3600
    assert settings.service_token == ""
    assert settings.login_rate_limit == "3/3seconds"
    assert settings.log_timezone_offset_hours == -3
    assert settings.audit_strict is False
