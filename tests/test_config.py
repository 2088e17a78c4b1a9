"""
Pacekeeper Configuration Tests

Tests cover:
- LimiterConfig defaults and validation
- Environment-driven settings
- JSON file round-trip
- Global settings accessors
- Logging setup
"""

from __future__ import annotations

import logging

import pytest
import structlog
from pydantic import ValidationError

from pacekeeper.core.config import (
    LimiterConfig,
    LogLevel,
    PacekeeperSettings,
    get_settings,
    reset_settings,
    set_settings,
)
from pacekeeper.core.log import setup_logging


@pytest.fixture(autouse=True)
def clean_settings():
    reset_settings()
    yield
    reset_settings()


class TestLimiterConfig:
    """Test limiter option validation."""

    def test_defaults(self):
        config = LimiterConfig(max_requests=5, interval_ms=1000)
        assert config.concurrency == 1
        assert config.retry_limit == 3
        assert config.run_sync_in_thread is True
        assert config.name == "default"
        assert config.interval_seconds == 1.0

    def test_zero_retry_limit_allowed(self):
        assert LimiterConfig(max_requests=1, interval_ms=10, retry_limit=0).retry_limit == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"max_requests": 0},
            {"interval_ms": 0},
            {"interval_ms": -5},
            {"concurrency": 0},
            {"retry_limit": -1},
        ],
    )
    def test_rejects_invalid_values(self, overrides):
        values = {"max_requests": 5, "interval_ms": 1000, **overrides}
        with pytest.raises(ValidationError):
            LimiterConfig(**values)

    def test_requires_limits(self):
        with pytest.raises(ValidationError):
            LimiterConfig(max_requests=5)

    def test_frozen(self):
        config = LimiterConfig(max_requests=5, interval_ms=1000)
        with pytest.raises(ValidationError):
            config.max_requests = 10


class TestSettings:
    """Test environment-backed settings."""

    def test_defaults(self, monkeypatch):
        for key in ("MAX_REQUESTS", "INTERVAL_MS", "CONCURRENCY", "RETRY_LIMIT", "LOG_LEVEL"):
            monkeypatch.delenv(f"PACEKEEPER_{key}", raising=False)

        settings = PacekeeperSettings()
        assert settings.max_requests == 10
        assert settings.interval_ms == 1000.0
        assert settings.log_level == LogLevel.INFO

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PACEKEEPER_MAX_REQUESTS", "7")
        monkeypatch.setenv("PACEKEEPER_INTERVAL_MS", "250")
        monkeypatch.setenv("PACEKEEPER_CONCURRENCY", "3")
        monkeypatch.setenv("PACEKEEPER_LOG_LEVEL", "debug")

        settings = PacekeeperSettings()
        assert settings.max_requests == 7
        assert settings.interval_ms == 250.0
        assert settings.concurrency == 3
        assert settings.log_level == LogLevel.DEBUG

    def test_invalid_env_rejected(self, monkeypatch):
        monkeypatch.setenv("PACEKEEPER_MAX_REQUESTS", "0")
        with pytest.raises(ValidationError):
            PacekeeperSettings()

    def test_to_limiter_config(self):
        settings = PacekeeperSettings(max_requests=4, interval_ms=500, scheduler_name="api")
        config = settings.to_limiter_config(concurrency=2)

        assert config.max_requests == 4
        assert config.interval_ms == 500
        assert config.concurrency == 2
        assert config.name == "api"

    def test_file_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "pacekeeper.json"
        PacekeeperSettings(max_requests=9, log_format="console").to_file(path)

        loaded = PacekeeperSettings.from_file(path)
        assert loaded.max_requests == 9
        assert loaded.log_format == "console"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            PacekeeperSettings.from_file(tmp_path / "absent.json")

    def test_global_accessors(self):
        first = get_settings()
        assert get_settings() is first

        custom = PacekeeperSettings(max_requests=2)
        set_settings(custom)
        assert get_settings() is custom

        reset_settings()
        assert get_settings() is not custom


class TestLogging:
    """Test structlog setup."""

    def teardown_method(self):
        structlog.reset_defaults()

    @pytest.mark.parametrize("fmt", ["json", "console"])
    def test_setup_logging(self, fmt):
        setup_logging("DEBUG", fmt)
        assert structlog.is_configured()
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_uses_settings(self):
        set_settings(PacekeeperSettings(log_level=LogLevel.WARNING))
        setup_logging()
        assert logging.getLogger().level == logging.WARNING
