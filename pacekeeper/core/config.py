"""
Pacekeeper Configuration

Scheduler limits and process-wide settings with:
- Type-safe limiter options validated by Pydantic
- Environment-based settings (PACEKEEPER_ prefix)
- JSON file round-tripping
- A lazily created global settings instance
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class LogLevel(str, Enum):
    """Logging levels for pacekeeper."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LimiterConfig(BaseModel):
    """Limits for one RateLimitedScheduler."""
    max_requests: int = Field(..., ge=1, description="Admissions allowed per window")
    interval_ms: float = Field(..., gt=0, description="Window length in milliseconds")
    concurrency: int = Field(default=1, ge=1, description="Max simultaneously executing tasks")
    retry_limit: int = Field(default=3, ge=0, description="Retries before permanent failure")
    run_sync_in_thread: bool = Field(default=True, description="Run plain callables on worker threads")
    name: str = Field(default="default", min_length=1)

    model_config = {"frozen": True}

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0


class PacekeeperSettings(BaseSettings):
    """
    Process-wide pacekeeper settings.

    Loads from environment variables prefixed with PACEKEEPER_
    (e.g., PACEKEEPER_MAX_REQUESTS=20, PACEKEEPER_LOG_LEVEL=DEBUG).
    """

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] = "json"

    # Default limiter
    scheduler_name: str = "default"
    max_requests: int = Field(default=10, ge=1)
    interval_ms: float = Field(default=1000.0, gt=0)
    concurrency: int = Field(default=1, ge=1)
    retry_limit: int = Field(default=3, ge=0)
    run_sync_in_thread: bool = True

    model_config = {
        "env_prefix": "PACEKEEPER_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: object) -> object:
        """Accept lower-case level names from the environment."""
        if isinstance(v, str):
            return v.upper()
        return v

    def to_limiter_config(self, **overrides) -> LimiterConfig:
        """Build a LimiterConfig from these settings."""
        values = {
            "name": self.scheduler_name,
            "max_requests": self.max_requests,
            "interval_ms": self.interval_ms,
            "concurrency": self.concurrency,
            "retry_limit": self.retry_limit,
            "run_sync_in_thread": self.run_sync_in_thread,
        }
        values.update(overrides)
        return LimiterConfig(**values)

    @classmethod
    def from_file(cls, config_path: Path) -> "PacekeeperSettings":
        """Load settings from a JSON file."""
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            config_data = json.load(f)

        return cls(**config_data)

    def to_file(self, config_path: Path) -> None:
        """Save settings to a JSON file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2)


# Global settings instance (lazy loaded)
_settings: Optional[PacekeeperSettings] = None


def get_settings() -> PacekeeperSettings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = PacekeeperSettings()
    return _settings


def set_settings(settings: PacekeeperSettings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset the global settings to default."""
    global _settings
    _settings = None
