"""
Pacekeeper Limiter - Window Controller

Counts admissions in the current fixed window and resets the count on a
recurring asyncio timer. After each reset the owner's tick callback runs so
queued work can be admitted into the fresh window.

The timer runs until stop() is called; owners must stop it to avoid
leaking a background task.
"""

from __future__ import annotations

import asyncio
import contextlib
import threading
from typing import Any, Callable, ContextManager, Dict, Optional

import structlog

from pacekeeper.core.errors import WindowExhaustedError

logger = structlog.get_logger(__name__)


class WindowController:
    """Fixed-window admission counter with a periodic reset."""

    def __init__(
        self,
        max_requests: int,
        interval_seconds: float,
        name: str = "default",
        lock: Optional[ContextManager[Any]] = None,
    ):
        if max_requests < 1:
            raise ValueError(f"max_requests must be positive, got {max_requests}")
        if interval_seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval_seconds}")

        self.max_requests = max_requests
        self.interval_seconds = interval_seconds
        self.name = name

        # Guards count/reset against the owner's other mutations
        self._lock = lock if lock is not None else threading.RLock()

        self._count = 0
        self._window_number = 0
        self._admitted_total = 0

        self._timer_task: Optional[asyncio.Task] = None

    # === State machine ===

    @property
    def count(self) -> int:
        return self._count

    @property
    def remaining(self) -> int:
        return self.max_requests - self._count

    @property
    def window_number(self) -> int:
        return self._window_number

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    def has_headroom(self) -> bool:
        return self._count < self.max_requests

    def record_admission(self) -> None:
        with self._lock:
            if not self.has_headroom():
                raise WindowExhaustedError(
                    f"Window {self._window_number} of {self.name} already admitted "
                    f"{self._count}/{self.max_requests}"
                )
            self._count += 1
            self._admitted_total += 1

    def reset(self) -> None:
        with self._lock:
            admitted = self._count
            self._count = 0
            self._window_number += 1

        logger.debug(
            "window_reset",
            scheduler=self.name,
            window=self._window_number,
            previous_admissions=admitted,
        )

    # === Timer ===

    def start(self, on_tick: Callable[[], Any]) -> None:
        """Start the reset timer on the running event loop."""
        if self.running:
            return

        self._timer_task = asyncio.get_running_loop().create_task(
            self._run(on_tick),
            name=f"pacekeeper-window-{self.name}",
        )
        logger.debug(
            "window_timer_started",
            scheduler=self.name,
            interval_seconds=self.interval_seconds,
        )

    async def stop(self) -> None:
        """Cancel the reset timer and wait for it to finish."""
        task, self._timer_task = self._timer_task, None
        if task is None:
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        logger.debug("window_timer_stopped", scheduler=self.name, windows=self._window_number)

    async def _run(self, on_tick: Callable[[], Any]) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time()

        while True:
            # Ticks follow the loop clock; a stalled loop skips missed ticks.
            deadline = max(deadline + self.interval_seconds, loop.time())
            await asyncio.sleep(deadline - loop.time())

            self.reset()
            try:
                on_tick()
            except Exception:
                logger.exception("window_tick_failed", scheduler=self.name, window=self._window_number)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "max_requests": self.max_requests,
            "interval_seconds": self.interval_seconds,
            "count": self._count,
            "remaining": self.remaining,
            "window": self._window_number,
            "admitted_total": self._admitted_total,
            "timer_running": self.running,
        }
