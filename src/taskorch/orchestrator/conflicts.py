"""Advisory detection of active tasks touching the same resources."""

from __future__ import annotations

from collections.abc import Iterable

from taskorch.orchestrator.models import Task


def overlaps(first: Task, second: Task) -> bool:
    return not first.resource_keys.isdisjoint(second.resource_keys)


def find_conflicts(task: Task, candidates: Iterable[Task]) -> list[Task]:
    """Return claimed/in-progress tasks sharing at least one resource key with ``task``.

    Pending and terminal tasks never conflict; the task never conflicts with itself.
    """

    if not task.resource_keys:
        return []
    return [
        other
        for other in candidates
        if other.task_id != task.task_id and other.is_active and overlaps(task, other)
    ]
