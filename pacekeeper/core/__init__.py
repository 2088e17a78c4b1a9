"""Pacekeeper core - configuration, errors and logging setup."""

from pacekeeper.core.config import (
    LimiterConfig,
    LogLevel,
    PacekeeperSettings,
    get_settings,
    reset_settings,
    set_settings,
)
from pacekeeper.core.errors import (
    GateError,
    InvalidTransitionError,
    PacekeeperError,
    SchedulerClosedError,
    WindowExhaustedError,
)
from pacekeeper.core.log import setup_logging

__all__ = [
    "LimiterConfig",
    "LogLevel",
    "PacekeeperSettings",
    "get_settings",
    "set_settings",
    "reset_settings",
    "PacekeeperError",
    "SchedulerClosedError",
    "GateError",
    "WindowExhaustedError",
    "InvalidTransitionError",
    "setup_logging",
]
