"""Canonical task records keyed by id, plus their audit event trail."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from itertools import count
from typing import Any

from taskorch.orchestrator.errors import DuplicateTaskIdError, TaskNotFoundError
from taskorch.orchestrator.models import Task, TaskEvent, TaskStatus


class TaskRegistry:
    """Single source of truth for task state.

    Not synchronized on its own: the orchestrator owns the lock and is the only
    caller that mutates records.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._events: dict[str, list[TaskEvent]] = {}
        self._event_ids = count(1)

    def add(self, task: Task) -> None:
        if task.task_id in self._tasks:
            raise DuplicateTaskIdError(task.task_id)
        self._tasks[task.task_id] = task
        self._events[task.task_id] = []

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def find(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def values(self) -> Iterator[Task]:
        """Iterate records in insertion order."""

        return iter(self._tasks.values())

    def record_event(  # noqa: PLR0913
        self,
        *,
        task_id: str,
        event_type: str,
        status_from: TaskStatus | None,
        status_to: TaskStatus | None,
        created_at: datetime,
        details: dict[str, Any] | None = None,
    ) -> TaskEvent:
        entry = TaskEvent(
            event_id=next(self._event_ids),
            task_id=task_id,
            event_type=event_type,
            status_from=status_from,
            status_to=status_to,
            created_at=created_at,
            details=dict(details or {}),
        )
        self._events[task_id].append(entry)
        return entry

    def events(self, task_id: str) -> list[TaskEvent]:
        if task_id not in self._events:
            raise TaskNotFoundError(task_id)
        return list(self._events[task_id])

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks
