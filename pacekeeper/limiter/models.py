"""
Pacekeeper Limiter - Task Models

The caller-facing Task and the TaskRecord the scheduler wraps around it:
- Task lifecycle state machine (queued -> executing -> completed)
- Retry and attempt accounting
- A completion slot resolved exactly once
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

import structlog

from pacekeeper.core.errors import InvalidTransitionError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Thunk = Callable[[], Union[Awaitable[T], T]]


class TaskState(Enum):
    """
    Task record states.

    State transitions:
    QUEUED -> EXECUTING -> COMPLETED
       |          |
       |          v
       |     QUEUED (retry)
       v
    COMPLETED (abandoned at shutdown)
    """
    QUEUED = "queued"
    EXECUTING = "executing"
    COMPLETED = "completed"

    def is_terminal(self) -> bool:
        return self is TaskState.COMPLETED

    def can_transition_to(self, target: "TaskState") -> bool:
        """Validate state transition."""
        valid_transitions = {
            TaskState.QUEUED: {TaskState.EXECUTING, TaskState.COMPLETED},
            TaskState.EXECUTING: {TaskState.QUEUED, TaskState.COMPLETED},
            TaskState.COMPLETED: set(),  # Terminal
        }
        return target in valid_transitions[self]


@dataclass(frozen=True)
class Task(Generic[T]):
    """
    A unit of work submitted by the caller.

    ``execute`` takes no arguments. It may be a coroutine function, a plain
    function, or a plain function returning an awaitable. Higher ``priority``
    is scheduled sooner. ``id`` is not checked for uniqueness.
    """
    execute: Thunk
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    priority: int = 0

    def __post_init__(self) -> None:
        if not callable(self.execute):
            raise TypeError(f"Task {self.id} execute must be callable")


@dataclass(eq=False)
class TaskRecord(Generic[T]):
    """Scheduling metadata for one submitted task."""
    task: Task[T]
    future: asyncio.Future

    state: TaskState = TaskState.QUEUED
    retries: int = 0
    attempts: int = 0
    last_error: Optional[BaseException] = None

    submitted_at: float = field(default_factory=time.monotonic)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def priority(self) -> int:
        return self.task.priority

    @property
    def succeeded(self) -> Optional[bool]:
        """None until completed, then whether the result was a success."""
        if not self.state.is_terminal():
            return None
        return self.last_error is None

    def transition(self, target: TaskState) -> None:
        if not self.state.can_transition_to(target):
            raise InvalidTransitionError(self.id, self.state.value, target.value)
        self.state = target

    def mark_started(self) -> None:
        self.transition(TaskState.EXECUTING)
        self.attempts += 1
        self.started_at = time.monotonic()

    def mark_retry(self, error: BaseException) -> None:
        self.transition(TaskState.QUEUED)
        self.retries += 1
        self.last_error = error

    def resolve(self, result: Any) -> None:
        """Complete the record successfully."""
        self.transition(TaskState.COMPLETED)
        self.last_error = None
        self.completed_at = time.monotonic()
        self._settle(result=result)

    def fail(self, error: BaseException) -> None:
        """Complete the record with a permanent failure."""
        self.transition(TaskState.COMPLETED)
        self.last_error = error
        self.completed_at = time.monotonic()
        self._settle(error=error)

    def cancel(self) -> None:
        """Complete the record because its execution was cancelled by the loop."""
        self.transition(TaskState.COMPLETED)
        self.last_error = asyncio.CancelledError()
        self.completed_at = time.monotonic()
        if not self.future.done():
            self.future.cancel()

    def _settle(self, result: Any = None, error: Optional[BaseException] = None) -> None:
        # The caller may have cancelled the future it was handed.
        if self.future.done():
            logger.warning(
                "task_outcome_discarded",
                task_id=self.id,
                cancelled=self.future.cancelled(),
            )
            return

        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(result)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "priority": self.priority,
            "state": self.state.value,
            "retries": self.retries,
            "attempts": self.attempts,
            "last_error": repr(self.last_error) if self.last_error else None,
        }
