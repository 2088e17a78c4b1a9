"""
Pacekeeper Limiter - Priority Queue

Heap-based holding area for admitted-but-not-running task records.
Ordering:
- Higher priority value is dequeued first
- Equal priorities dequeue in insertion order (FIFO)

A re-enqueued record (a retry) takes a fresh insertion number, so it
queues behind equal-priority work that is already waiting.

The queue is unbounded and does not lock; the owning scheduler serializes
every call.
"""

from __future__ import annotations

import heapq
import itertools
from typing import Any, Dict, List, Optional, Tuple

import structlog

from pacekeeper.limiter.models import TaskRecord

logger = structlog.get_logger(__name__)


class PriorityTaskQueue:
    """Stable max-priority queue of TaskRecords."""

    def __init__(self) -> None:
        # Heap entries: (-priority, sequence, record)
        self._heap: List[Tuple[int, int, TaskRecord]] = []
        self._sequence = itertools.count()

        self._stats = {
            "enqueued": 0,
            "dequeued": 0,
            "high_water_mark": 0,
        }

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    def enqueue(self, record: TaskRecord) -> None:
        """Insert a record behind every queued record of equal or higher priority."""
        heapq.heappush(self._heap, (-record.priority, next(self._sequence), record))

        self._stats["enqueued"] += 1
        if len(self._heap) > self._stats["high_water_mark"]:
            self._stats["high_water_mark"] = len(self._heap)

        logger.debug(
            "task_enqueued",
            task_id=record.id,
            priority=record.priority,
            retries=record.retries,
            queue_size=len(self._heap),
        )

    def dequeue_highest(self) -> Optional[TaskRecord]:
        """Remove and return the highest-priority record, or None when empty."""
        if not self._heap:
            return None

        _, _, record = heapq.heappop(self._heap)
        self._stats["dequeued"] += 1
        return record

    def peek(self) -> Optional[TaskRecord]:
        if not self._heap:
            return None
        return self._heap[0][2]

    def snapshot(self) -> List[TaskRecord]:
        """Records in the order they would be dequeued, without removing them."""
        return [entry[2] for entry in sorted(self._heap, key=lambda e: (e[0], e[1]))]

    def drain(self) -> List[TaskRecord]:
        """Remove every record, returned in dequeue order."""
        records = self.snapshot()
        self._heap.clear()
        return records

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            "size": len(self._heap),
        }
