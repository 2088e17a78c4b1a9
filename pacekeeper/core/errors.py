"""
Pacekeeper Exceptions

Everything the library raises on its own derives from PacekeeperError.
Failures raised by task thunks are never wrapped: the caller's future
fails with the thunk's own exception.
"""

from __future__ import annotations

from typing import Optional


class PacekeeperError(Exception):
    """Base class for pacekeeper errors."""
    pass


class SchedulerClosedError(PacekeeperError):
    """Raised when work is submitted to, or abandoned by, a shut down scheduler."""

    def __init__(self, name: str, task_id: Optional[str] = None):
        self.name = name
        self.task_id = task_id
        if task_id is None:
            message = f"Scheduler {name} is closed"
        else:
            message = f"Scheduler {name} closed before task {task_id} was admitted"
        super().__init__(message)


class GateError(PacekeeperError):
    """Raised on an unpaired acquire/release of the concurrency gate."""
    pass


class WindowExhaustedError(PacekeeperError):
    """Raised when an admission is recorded in a window with no headroom."""
    pass


class InvalidTransitionError(PacekeeperError):
    """Raised when a task record is moved to a state it cannot reach."""

    def __init__(self, task_id: str, source: str, target: str):
        self.task_id = task_id
        self.source = source
        self.target = target
        super().__init__(f"Task {task_id} cannot move from {source} to {target}")
