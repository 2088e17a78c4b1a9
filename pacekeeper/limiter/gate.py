"""
Pacekeeper Limiter - Concurrency Gate

Bounds how many tasks execute at the same instant. Permits are tracked
per task id so every release pairs with an earlier acquire and the count
stays within [0, limit].
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List

from pacekeeper.core.errors import GateError


class ConcurrencyGate:
    """Counting gate with checked acquire/release."""

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"Concurrency limit must be positive, got {limit}")
        self.limit = limit

        self._active = 0
        self._holders: Counter = Counter()
        self._peak = 0
        self._acquired_total = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def available(self) -> int:
        return self.limit - self._active

    @property
    def holders(self) -> List[str]:
        return sorted(self._holders.elements())

    def has_headroom(self) -> bool:
        return self._active < self.limit

    def acquire(self, task_id: str) -> None:
        """Take a permit for ``task_id``."""
        if not self.has_headroom():
            raise GateError(f"Gate full ({self._active}/{self.limit}), cannot admit {task_id}")

        self._active += 1
        self._holders[task_id] += 1
        self._acquired_total += 1
        self._peak = max(self._peak, self._active)

    def release(self, task_id: str) -> None:
        """Return the permit held by ``task_id``."""
        if self._holders[task_id] <= 0:
            del self._holders[task_id]
            raise GateError(f"Task {task_id} holds no permit")

        self._holders[task_id] -= 1
        if self._holders[task_id] == 0:
            del self._holders[task_id]
        self._active -= 1

    def get_stats(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "active": self._active,
            "available": self.available,
            "peak": self._peak,
            "acquired_total": self._acquired_total,
        }
