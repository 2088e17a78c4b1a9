"""
Pacekeeper Limiter

Priority queue, rate window and concurrency gate composed into a
rate-limited task scheduler.
"""

from pacekeeper.limiter.gate import ConcurrencyGate
from pacekeeper.limiter.models import Task, TaskRecord, TaskState
from pacekeeper.limiter.queue import PriorityTaskQueue
from pacekeeper.limiter.scheduler import RateLimitedScheduler, create_scheduler
from pacekeeper.limiter.window import WindowController

__all__ = [
    "RateLimitedScheduler",
    "create_scheduler",
    "Task",
    "TaskRecord",
    "TaskState",
    "PriorityTaskQueue",
    "WindowController",
    "ConcurrencyGate",
]
