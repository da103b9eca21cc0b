"""Sorted index of not-yet-claimed tasks."""

from __future__ import annotations

from bisect import bisect_left, insort
from collections.abc import Iterator
from datetime import datetime
from typing import NamedTuple

from taskorch.orchestrator.models import Task


class QueueKey(NamedTuple):
    priority: int
    created_at: datetime
    sequence: int
    task_id: str


class ReadyQueue:
    """Tasks ordered by priority (1 first), then creation time, then insertion order.

    Insert and removal are bisect-based, so the queue is never re-sorted as a whole.
    A released task comes back with its original key and keeps its age.
    """

    def __init__(self) -> None:
        self._entries: list[QueueKey] = []
        self._keys: dict[str, QueueKey] = {}
        self._sequence: dict[str, int] = {}

    def push(self, task: Task) -> None:
        if task.task_id in self._keys:
            return
        sequence = self._sequence.setdefault(task.task_id, len(self._sequence))
        key = QueueKey(
            priority=task.priority,
            created_at=task.created_at,
            sequence=sequence,
            task_id=task.task_id,
        )
        insort(self._entries, key)
        self._keys[task.task_id] = key

    def discard(self, task_id: str) -> bool:
        key = self._keys.pop(task_id, None)
        if key is None:
            return False
        index = bisect_left(self._entries, key)
        del self._entries[index]
        return True

    def __iter__(self) -> Iterator[str]:
        return iter([key.task_id for key in self._entries])

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._keys
