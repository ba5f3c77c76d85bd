"""
Unit tests for config helpers and the production guard.
"""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest

from backend import config
from backend.config import (
    PLACEHOLDER_ACCESS_SECRET,
    BaseConfig,
    parse_duration,
    validate_production_config,
)


@pytest.mark.parametrize(
    "raw, seconds",
    [("30m", 1800), ("7d", 604800), ("15", 15), ("2h", 7200), ("45s", 45)],
)
def test_parse_duration(raw, seconds):
    assert parse_duration(raw) == seconds


@pytest.mark.parametrize("raw", ["", "m", "10w", "-5m", "1.5h"])
def test_parse_duration_rejects_garbage(raw):
    with pytest.raises(ValueError):
        parse_duration(raw)


def test_testing_config_pins_policy_defaults():
    assert config.TestingConfig.ACCESS_TOKEN_TTL == timedelta(minutes=30)
    assert config.TestingConfig.REFRESH_TOKEN_TTL == timedelta(days=7)
    assert config.TestingConfig.MAX_LOGIN_ATTEMPTS == 5
    assert config.TestingConfig.LOCKOUT_DURATION == timedelta(minutes=15)
    assert config.TestingConfig.ACCESS_TOKEN_SECRET != config.TestingConfig.REFRESH_TOKEN_SECRET


def test_testing_config_pins_throttle_defaults():
    assert config.TestingConfig.THROTTLE_LIMIT == 100
    assert config.TestingConfig.THROTTLE_TTL == 60
    assert config.TestingConfig.AUTH_THROTTLE_LIMIT == 10
    assert config.TestingConfig.AUTH_THROTTLE_TTL == 900
    assert config.TestingConfig.RATELIMIT_STORAGE_URI == "memory://"


def test_base_config_algorithm():
    assert BaseConfig.JWT_ALGORITHM == "HS256"


def _app(**overrides):
    values = {
        "SQLALCHEMY_DATABASE_URI": "postgresql://db/accounts",
        "ACCESS_TOKEN_SECRET": "a" * 40,
        "REFRESH_TOKEN_SECRET": "b" * 40,
    }
    values.update(overrides)
    return SimpleNamespace(config=values)


def test_production_guard_accepts_sane_config():
    validate_production_config(_app())


@pytest.mark.parametrize(
    "override, fragment",
    [
        ({"SQLALCHEMY_DATABASE_URI": ""}, "DATABASE_URL"),
        ({"ACCESS_TOKEN_SECRET": PLACEHOLDER_ACCESS_SECRET}, "JWT_SECRET"),
        ({"REFRESH_TOKEN_SECRET": "a" * 40}, "different"),
    ],
)
def test_production_guard_rejects_insecure_config(override, fragment):
    with pytest.raises(ValueError) as exc_info:
        validate_production_config(_app(**override))
    assert fragment in str(exc_info.value)
