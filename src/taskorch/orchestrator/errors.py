"""Error taxonomy surfaced by the orchestrator to its immediate caller."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from taskorch.orchestrator.models import Task, TaskStatus


class TaskOrchestratorError(RuntimeError):
    """Base orchestrator error with a stable machine-readable code."""

    code = "orchestrator_error"

    def __init__(self, message: str, *, task_id: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class TaskNotFoundError(TaskOrchestratorError):
    """Referenced task id does not exist in the registry."""

    code = "not_found"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}", task_id=task_id)


class DuplicateTaskIdError(TaskOrchestratorError):
    code = "duplicate_id"

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task already exists: {task_id}", task_id=task_id)


class InvalidStateTransitionError(TaskOrchestratorError):
    """Operation attempted from a status that forbids it."""

    code = "invalid_state_transition"

    def __init__(self, *, task_id: str, operation: str, current: TaskStatus) -> None:
        super().__init__(
            f"Task {task_id} cannot be {operation} (status: {current.value})",
            task_id=task_id,
        )
        self.operation = operation
        self.current = current


class ResourceConflictError(TaskOrchestratorError):
    """Claim refused because active tasks share a resource key."""

    code = "resource_conflict"

    def __init__(self, *, task_id: str, conflicting_tasks: list[Task]) -> None:
        conflicting_ids = ", ".join(task.task_id for task in conflicting_tasks)
        super().__init__(
            f"Task {task_id} conflicts with active tasks: {conflicting_ids}",
            task_id=task_id,
        )
        self.conflicting_tasks = conflicting_tasks


class InvalidTaskError(ValueError):
    """Producer payload rejected before it reaches the registry."""

    code = "invalid_task"

    def __init__(self, message: str, *, task_id: str | None = None) -> None:
        super().__init__(message)
        self.task_id = task_id


class DependencyCycleError(InvalidTaskError):
    code = "dependency_cycle"

    def __init__(self, *, task_id: str, cycle: list[str]) -> None:
        super().__init__(
            f"Task {task_id} would close a dependency cycle: {' -> '.join(cycle)}",
            task_id=task_id,
        )
        self.cycle = cycle
