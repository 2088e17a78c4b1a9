"""
Pacekeeper Rate-Limited Scheduler

Admits submitted tasks from a priority queue under two limits at once:
- at most ``max_requests`` admissions per fixed window of ``interval_ms``
- at most ``concurrency`` tasks executing at the same instant

Failed tasks are re-queued (competing with new work on priority alone) until
``retry_limit`` retries are spent, then the caller's future fails with the
last exception.

The queue, window counter and gate counter are only touched under one
scheduler lock. The scheduling pass can therefore be triggered from
submissions, window ticks and task completions in any interleaving without
double-dispatching a task.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import inspect
import threading
from typing import Any, Dict, List, Optional, Set

import structlog

from pacekeeper.core.config import LimiterConfig
from pacekeeper.core.errors import SchedulerClosedError
from pacekeeper.limiter.gate import ConcurrencyGate
from pacekeeper.limiter.models import Task, TaskRecord, TaskState, Thunk
from pacekeeper.limiter.queue import PriorityTaskQueue
from pacekeeper.limiter.window import WindowController

logger = structlog.get_logger(__name__)


class RateLimitedScheduler:
    """
    Priority task scheduler bounded by a rate window and a concurrency gate.

    The scheduler binds to the event loop it first runs on. When constructed
    inside a running loop the window timer starts immediately; otherwise it
    starts on initialize() or the first submit(). Call shutdown() (or use
    ``async with``) to stop the timer.
    """

    def __init__(self, config: LimiterConfig):
        self.config = config
        self.name = config.name

        # One lock for queue, window and gate
        self._lock = threading.RLock()

        self._queue = PriorityTaskQueue()
        self._window = WindowController(
            max_requests=config.max_requests,
            interval_seconds=config.interval_seconds,
            name=config.name,
            lock=self._lock,
        )
        self._gate = ConcurrencyGate(config.concurrency)

        # Loop binding
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None

        # Execution tracking
        self._running: Set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

        # Lifecycle
        self._closed = False
        self._abandoning = False
        self._shutdown_complete = False

        # Statistics
        self._stats = {
            "submitted": 0,
            "admitted": 0,
            "succeeded": 0,
            "failed": 0,
            "retried": 0,
            "abandoned": 0,
            "windows": 0,
        }

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self._bind_loop()

    # === Lifecycle ===

    async def initialize(self) -> None:
        """Bind to the running loop and start the window timer."""
        if self._closed:
            raise SchedulerClosedError(self.name)
        self._bind_loop()

    async def shutdown(self, wait: bool = True) -> None:
        """
        Close the scheduler and stop its window timer.

        Args:
            wait: Keep admitting until every queued and running task has
                completed. When False, queued tasks fail with
                SchedulerClosedError, and running tasks that fail are not
                retried.
        """
        if self._shutdown_complete:
            return

        logger.info(
            "scheduler_shutting_down",
            scheduler=self.name,
            wait=wait,
            queued=len(self._queue),
            in_flight=self._gate.active,
        )
        self._closed = True

        if wait:
            await self._idle.wait()
        else:
            self._abandon_queued()

        await self._window.stop()

        if self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

        self._shutdown_complete = True
        logger.info("scheduler_shutdown_complete", scheduler=self.name, **self._stats)

    async def join(self) -> None:
        """Wait until the queue is empty and no task is executing."""
        await self._idle.wait()

    def _bind_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop
            self._loop_thread = threading.get_ident()
            self._window.start(self._on_window_tick)
            logger.info(
                "scheduler_started",
                scheduler=self.name,
                max_requests=self.config.max_requests,
                interval_ms=self.config.interval_ms,
                concurrency=self.config.concurrency,
                retry_limit=self.config.retry_limit,
            )
        elif self._loop is not loop:
            raise RuntimeError(f"Scheduler {self.name} is bound to a different event loop")

    def _abandon_queued(self) -> None:
        with self._lock:
            self._abandoning = True
            abandoned = self._queue.drain()
            for record in abandoned:
                record.fail(SchedulerClosedError(self.name, record.id))
            self._stats["abandoned"] += len(abandoned)
            self._update_idle()

        if abandoned:
            logger.warning(
                "queued_tasks_abandoned",
                scheduler=self.name,
                count=len(abandoned),
                task_ids=[r.id for r in abandoned],
            )

    # === Submission ===

    def submit(
        self,
        task: Optional[Task] = None,
        *,
        execute: Optional[Thunk] = None,
        id: Optional[str] = None,
        priority: int = 0,
    ) -> asyncio.Future:
        """
        Queue a task and return a future for its outcome.

        Pass either a Task or the ``execute``/``id``/``priority``
        keywords. The future resolves with the thunk's result, or fails with
        its last exception once retries are exhausted. Must be called on the
        scheduler's event loop; use submit_threadsafe() from other threads.
        """
        if task is None:
            if execute is None:
                raise TypeError("submit() needs a Task or an execute callable")
            if id is None:
                task = Task(execute=execute, priority=priority)
            else:
                task = Task(execute=execute, id=id, priority=priority)

        if self._closed:
            raise SchedulerClosedError(self.name)

        self._bind_loop()

        record = TaskRecord(task=task, future=self._loop.create_future())
        with self._lock:
            self._queue.enqueue(record)
            self._stats["submitted"] += 1
            self._idle.clear()
            queued = len(self._queue)

        logger.debug(
            "task_submitted",
            scheduler=self.name,
            task_id=task.id,
            priority=task.priority,
            queue_size=queued,
        )

        self.process_queue()
        return record.future

    def submit_threadsafe(self, task: Task) -> concurrent.futures.Future:
        """
        Submit from a thread other than the scheduler's loop thread.

        Blocking on the returned future from the loop thread itself would
        deadlock.
        """
        if self._loop is None:
            raise RuntimeError(f"Scheduler {self.name} is not bound to an event loop; call initialize() first")

        async def _submit() -> Any:
            return await self.submit(task)

        return asyncio.run_coroutine_threadsafe(_submit(), self._loop)

    # === Scheduling pass ===

    def process_queue(self) -> int:
        """
        Admit as many queued tasks as the window and gate allow.

        Returns the number of tasks launched. Safe to call any number of
        times; with no state change a repeat call launches nothing.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            return 0

        if threading.get_ident() != self._loop_thread:
            loop.call_soon_threadsafe(self.process_queue)
            return 0

        launched: List[TaskRecord] = []
        with self._lock:
            while self._queue and self._gate.has_headroom() and self._window.has_headroom():
                record = self._queue.dequeue_highest()
                self._gate.acquire(record.id)
                self._window.record_admission()
                record.mark_started()
                launched.append(record)
            self._stats["admitted"] += len(launched)
            window = self._window.window_number
            in_flight = self._gate.active

        for record in launched:
            logger.debug(
                "task_admitted",
                scheduler=self.name,
                task_id=record.id,
                priority=record.priority,
                attempt=record.attempts,
                window=window,
                in_flight=in_flight,
            )
            task = loop.create_task(self._execute(record), name=f"pacekeeper-{self.name}-{record.id}")
            self._running.add(task)
            task.add_done_callback(functools.partial(self._on_task_done, record))

        return len(launched)

    def _on_window_tick(self) -> None:
        with self._lock:
            self._stats["windows"] += 1
        self.process_queue()

    # === Execution ===

    async def _execute(self, record: TaskRecord) -> None:
        try:
            result = await self._invoke(record.task)
        except Exception as e:
            self._complete(record, error=e)
        else:
            self._complete(record, result=result)

        self.process_queue()

    def _on_task_done(self, record: TaskRecord, task: asyncio.Task) -> None:
        self._running.discard(task)
        if not task.cancelled():
            return

        # Cancelled by the loop, possibly before its first step ran.
        with self._lock:
            if record.state is not TaskState.EXECUTING:
                return
            record.cancel()
            self._gate.release(record.id)
            self._update_idle()

        logger.warning("task_cancelled", scheduler=self.name, task_id=record.id)
        self.process_queue()

    async def _invoke(self, task: Task) -> Any:
        execute = task.execute
        if inspect.iscoroutinefunction(execute):
            return await execute()

        if self.config.run_sync_in_thread:
            result = await asyncio.to_thread(execute)
        else:
            result = execute()

        if inspect.isawaitable(result):
            result = await result
        return result

    def _complete(
        self,
        record: TaskRecord,
        result: Any = None,
        error: Optional[BaseException] = None,
    ) -> None:
        with self._lock:
            try:
                if error is None:
                    record.resolve(result)
                    self._stats["succeeded"] += 1
                    outcome = "succeeded"
                elif record.retries < self.config.retry_limit and not self._abandoning:
                    record.mark_retry(error)
                    self._queue.enqueue(record)
                    self._stats["retried"] += 1
                    outcome = "retry"
                else:
                    record.fail(error)
                    self._stats["failed"] += 1
                    outcome = "failed"
            finally:
                self._gate.release(record.id)
                self._update_idle()

        if outcome == "succeeded":
            logger.debug(
                "task_succeeded",
                scheduler=self.name,
                task_id=record.id,
                attempts=record.attempts,
            )
        elif outcome == "retry":
            logger.warning(
                "task_retry_scheduled",
                scheduler=self.name,
                task_id=record.id,
                retry=record.retries,
                retry_limit=self.config.retry_limit,
                error=repr(error),
            )
        else:
            logger.error(
                "task_failed",
                scheduler=self.name,
                task_id=record.id,
                attempts=record.attempts,
                error=repr(error),
            )

    def _update_idle(self) -> None:
        if not self._queue and self._gate.active == 0:
            self._idle.set()
        else:
            self._idle.clear()

    # === Query Methods ===

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> int:
        return self._gate.active

    @property
    def window(self) -> WindowController:
        return self._window

    @property
    def gate(self) -> ConcurrencyGate:
        return self._gate

    def queued_tasks(self) -> List[Dict[str, Any]]:
        """Queued tasks in admission order."""
        with self._lock:
            return [record.to_dict() for record in self._queue.snapshot()]

    def get_stats(self) -> Dict[str, Any]:
        """Get scheduler statistics."""
        with self._lock:
            return {
                "name": self.name,
                **self._stats,
                "closed": self._closed,
                "queue": self._queue.get_stats(),
                "window": self._window.get_stats(),
                "gate": self._gate.get_stats(),
            }

    # === Context Manager ===

    async def __aenter__(self) -> "RateLimitedScheduler":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()


def create_scheduler(
    max_requests: int,
    interval_ms: float,
    concurrency: int = 1,
    retry_limit: int = 3,
    name: str = "default",
    run_sync_in_thread: bool = True,
) -> RateLimitedScheduler:
    """Create a configured scheduler."""
    config = LimiterConfig(
        max_requests=max_requests,
        interval_ms=interval_ms,
        concurrency=concurrency,
        retry_limit=retry_limit,
        name=name,
        run_sync_in_thread=run_sync_in_thread,
    )
    return RateLimitedScheduler(config)
