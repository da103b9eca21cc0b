"""Readiness checks: dependency completion and worker capability match."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from taskorch.orchestrator.models import Task, TaskStatus

TaskLookup = Callable[[str], Task | None]


def dependencies_met(task: Task, lookup: TaskLookup) -> bool:
    """True when every dependency resolves to a completed task.

    Unknown dependency ids count as unmet so tasks may be added out of order.
    """

    for dependency_id in task.dependencies:
        dependency = lookup(dependency_id)
        if dependency is None or dependency.status != TaskStatus.COMPLETED:
            return False
    return True


def unmet_dependencies(task: Task, lookup: TaskLookup) -> list[str]:
    blocked: list[str] = []
    for dependency_id in sorted(task.dependencies):
        dependency = lookup(dependency_id)
        if dependency is None or dependency.status != TaskStatus.COMPLETED:
            blocked.append(dependency_id)
    return blocked


def has_required_capabilities(task: Task, worker_capabilities: Iterable[str]) -> bool:
    return task.required_capabilities.issubset(worker_capabilities)


def is_eligible(task: Task, worker_capabilities: Iterable[str], lookup: TaskLookup) -> bool:
    if task.status != TaskStatus.PENDING:
        return False
    if not has_required_capabilities(task, frozenset(worker_capabilities)):
        return False
    return dependencies_met(task, lookup)
