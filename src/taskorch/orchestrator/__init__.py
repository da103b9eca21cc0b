"""Task orchestrator for concurrent workers sharing one in-memory registry.

Why not a broker / Celery queue?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
Workers here do not need the orchestrator to run anything. They poll
"what can I claim", then record transitions. What a generic queue does not
provide is the scheduling policy on top of that:

- Dependency gating: a task is only offered once all of its dependencies
  have completed.
- Capability matching between worker and task.
- Advisory resource conflicts: two active tasks never mutate the same file.

All of it is one registry behind one lock, which is the right trade-off
for task sets in the hundreds living in a single process.
"""

from taskorch.orchestrator.errors import (
    DependencyCycleError,
    DuplicateTaskIdError,
    InvalidStateTransitionError,
    InvalidTaskError,
    ResourceConflictError,
    TaskNotFoundError,
    TaskOrchestratorError,
)
from taskorch.orchestrator.models import (
    ClaimFailure,
    ClaimResult,
    Task,
    TaskCreate,
    TaskDetails,
    TaskEvent,
    TaskFilter,
    TaskKind,
    TaskStatistics,
    TaskStatus,
)
from taskorch.orchestrator.service import TaskOrchestrator

__all__ = [
    "ClaimFailure",
    "ClaimResult",
    "DependencyCycleError",
    "DuplicateTaskIdError",
    "InvalidStateTransitionError",
    "InvalidTaskError",
    "ResourceConflictError",
    "Task",
    "TaskCreate",
    "TaskDetails",
    "TaskEvent",
    "TaskFilter",
    "TaskKind",
    "TaskNotFoundError",
    "TaskOrchestrator",
    "TaskOrchestratorError",
    "TaskStatistics",
    "TaskStatus",
]
