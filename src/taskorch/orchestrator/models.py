"""Domain models for the task registry and worker claims."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

MIN_PRIORITY = 1
MAX_PRIORITY = 5
DEFAULT_PRIORITY = 3


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


class TaskKind(str, Enum):
    """Informational task category; never affects scheduling."""

    ISSUE = "issue"
    PR = "pr"
    REFACTOR = "refactor"
    TEST = "test"
    DOC = "doc"


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    CLAIMED = "claimed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = frozenset({TaskStatus.CLAIMED, TaskStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


class ClaimFailure(str, Enum):
    """Reasons a claim attempt is refused."""

    NOT_FOUND = "not_found"
    NOT_PENDING = "not_pending"
    CONFLICT = "conflict"


@dataclass(slots=True)
class TaskCreate:
    """Producer payload for adding a task to the registry."""

    task_id: str
    kind: TaskKind = TaskKind.ISSUE
    priority: int = DEFAULT_PRIORITY
    dependencies: frozenset[str] = frozenset()
    required_capabilities: frozenset[str] = frozenset()
    resource_keys: frozenset[str] = frozenset()
    description: str = ""
    issue_number: int | None = None
    branch_name: str | None = None
    estimated_duration_minutes: int | None = None
    created_at: datetime | None = None


@dataclass(slots=True)
class Task:
    """Canonical task record; callers only ever see copies of it."""

    task_id: str
    kind: TaskKind
    priority: int
    dependencies: frozenset[str]
    required_capabilities: frozenset[str]
    resource_keys: frozenset[str]
    created_at: datetime
    status: TaskStatus = TaskStatus.PENDING
    assigned_worker: str | None = None
    claimed_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    description: str = ""
    issue_number: int | None = None
    branch_name: str | None = None
    estimated_duration_minutes: int | None = None

    def snapshot(self) -> Task:
        """Detached copy safe to hand out across the lock boundary."""

        return replace(self)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(slots=True)
class TaskEvent:
    """Task event entry for audit trail."""

    event_id: int
    task_id: str
    event_type: str
    status_from: TaskStatus | None
    status_to: TaskStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TaskDetails:
    """Task snapshot with its event stream."""

    task: Task
    events: list[TaskEvent]


@dataclass(slots=True)
class ClaimResult:
    """Outcome of one claim attempt."""

    success: bool
    task: Task | None = None
    failure: ClaimFailure | None = None
    error: str | None = None
    conflicting_tasks: list[Task] = field(default_factory=list)


@dataclass(slots=True)
class TaskFilter:
    """Optional equality filters for task listing; unset fields match everything."""

    status: TaskStatus | None = None
    kind: TaskKind | None = None
    priority: int | None = None
    worker_id: str | None = None

    def matches(self, task: Task) -> bool:
        if self.status is not None and task.status != self.status:
            return False
        if self.kind is not None and task.kind != self.kind:
            return False
        if self.priority is not None and task.priority != self.priority:
            return False
        if self.worker_id is not None and task.assigned_worker != self.worker_id:
            return False
        return True


@dataclass(slots=True)
class TaskStatistics:
    """Task counts by status for dashboards."""

    total: int = 0
    pending: int = 0
    claimed: int = 0
    in_progress: int = 0
    completed: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "pending": self.pending,
            "claimed": self.claimed,
            "in_progress": self.in_progress,
            "completed": self.completed,
            "failed": self.failed,
        }
