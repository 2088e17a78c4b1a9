"""
Pacekeeper - rate-limited priority task scheduling

Admits asynchronous work from a priority queue under two limits at once:
- N admissions per fixed time window
- M tasks executing concurrently

Failed tasks are retried up to a configured limit before the failure
reaches the caller.
"""

__version__ = "1.0.0"
__author__ = "Pacekeeper Team"

from pacekeeper.core.config import LimiterConfig, PacekeeperSettings
from pacekeeper.core.errors import PacekeeperError, SchedulerClosedError
from pacekeeper.limiter import RateLimitedScheduler, Task, create_scheduler

__all__ = [
    "RateLimitedScheduler",
    "create_scheduler",
    "Task",
    "LimiterConfig",
    "PacekeeperSettings",
    "PacekeeperError",
    "SchedulerClosedError",
    "__version__",
]
