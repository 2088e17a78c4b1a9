"""Structured logging setup for pacekeeper."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

import structlog

from pacekeeper.core.config import LogLevel, get_settings


def setup_logging(
    log_level: Optional[Union[str, LogLevel]] = None,
    log_format: Optional[str] = None,
) -> None:
    """
    Configure structlog on top of stdlib logging.

    Falls back to the global settings for anything not given. Call once,
    early, from the application that embeds the scheduler.
    """
    settings = get_settings()
    level = log_level or settings.log_level
    if isinstance(level, LogLevel):
        level = level.value
    fmt = log_format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, str(level).upper(), logging.INFO),
        force=True,
    )

    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
