"""Legal status transitions for the task lifecycle."""

from __future__ import annotations

from taskorch.orchestrator.errors import InvalidStateTransitionError
from taskorch.orchestrator.models import Task, TaskStatus

# (operation, source status) -> target status. Anything not listed is illegal.
ALLOWED_TRANSITIONS: dict[tuple[str, TaskStatus], tuple[TaskStatus, ...]] = {
    ("claim", TaskStatus.PENDING): (TaskStatus.CLAIMED,),
    ("start", TaskStatus.CLAIMED): (TaskStatus.IN_PROGRESS,),
    ("complete", TaskStatus.IN_PROGRESS): (TaskStatus.COMPLETED, TaskStatus.FAILED),
    ("release", TaskStatus.CLAIMED): (TaskStatus.PENDING,),
    ("release", TaskStatus.IN_PROGRESS): (TaskStatus.PENDING,),
}

_OPERATION_VERBS = {
    "claim": "claimed",
    "start": "started",
    "complete": "completed",
    "release": "released",
}


def can_transition(operation: str, current: TaskStatus, target: TaskStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get((operation, current), ())


def ensure_transition(task: Task, operation: str, target: TaskStatus) -> None:
    """Raise unless ``operation`` may move ``task`` from its status to ``target``."""

    if not can_transition(operation, task.status, target):
        raise InvalidStateTransitionError(
            task_id=task.task_id,
            operation=_OPERATION_VERBS.get(operation, operation),
            current=task.status,
        )
