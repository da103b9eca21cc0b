"""Lifecycle controller and query surface over one locked task registry."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from taskorch.orchestrator.conflicts import find_conflicts
from taskorch.orchestrator.errors import (
    DependencyCycleError,
    DuplicateTaskIdError,
    InvalidStateTransitionError,
    InvalidTaskError,
    ResourceConflictError,
    TaskNotFoundError,
)
from taskorch.orchestrator.lifecycle import ensure_transition
from taskorch.orchestrator.models import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    ClaimFailure,
    ClaimResult,
    Task,
    TaskCreate,
    TaskDetails,
    TaskFilter,
    TaskKind,
    TaskStatistics,
    TaskStatus,
    utc_now,
)
from taskorch.orchestrator.queue import ReadyQueue
from taskorch.orchestrator.readiness import is_eligible, unmet_dependencies
from taskorch.orchestrator.registry import TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_STALE_CLAIM_AFTER = timedelta(minutes=30)


class TaskOrchestrator:
    """Arbitrates claims by concurrent workers and enforces the task lifecycle.

    Every public method runs under one re-entrant lock, so the status check,
    conflict check and mutation of a claim are a single indivisible step.
    Methods return detached snapshots; registry records never leave the lock.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utc_now,
        stale_claim_after: timedelta = DEFAULT_STALE_CLAIM_AFTER,
    ) -> None:
        if stale_claim_after <= timedelta(0):
            raise ValueError("stale_claim_after must be a positive duration")
        self._clock = clock
        self._stale_claim_after = stale_claim_after
        self._lock = threading.RLock()
        self._registry = TaskRegistry()
        self._queue = ReadyQueue()

    def add_task(self, payload: TaskCreate) -> Task:
        """Insert a pending task and index it in the ready queue."""

        task = _build_task(payload, default_created_at=self._clock())
        with self._lock:
            if task.task_id in self._registry:
                raise DuplicateTaskIdError(task.task_id)
            cycle = self._find_cycle(task)
            if cycle is not None:
                raise DependencyCycleError(task_id=task.task_id, cycle=cycle)
            self._registry.add(task)
            self._queue.push(task)
            self._registry.record_event(
                task_id=task.task_id,
                event_type="added",
                status_from=None,
                status_to=TaskStatus.PENDING,
                created_at=task.created_at,
                details={"kind": task.kind.value, "priority": task.priority},
            )
            added = task.snapshot()
        logger.info("Task %s added (priority: %d)", added.task_id, added.priority)
        return added

    def add_tasks(self, payloads: Iterable[TaskCreate]) -> list[Task]:
        return [self.add_task(payload) for payload in payloads]

    def list_ready(self, worker_id: str, capabilities: Iterable[str]) -> list[Task]:
        """Claimable tasks for a worker in queue order, recomputed on every call."""

        capability_set = frozenset(capabilities)
        with self._lock:
            ready = [
                task.snapshot()
                for task in (self._registry.get(task_id) for task_id in self._queue)
                if is_eligible(task, capability_set, self._registry.find)
            ]
            queued = len(self._queue)
        logger.debug(
            "Worker %s: %d of %d queued tasks ready",
            worker_id,
            len(ready),
            queued,
        )
        return ready

    def claim(self, worker_id: str, task_id: str) -> ClaimResult:
        """Reserve a pending task for ``worker_id`` unless an active task shares a resource."""

        if not worker_id:
            raise ValueError("worker_id must be a non-empty string")
        with self._lock:
            task = self._registry.find(task_id)
            if task is None:
                logger.warning("Claim by %s refused: task %s not found", worker_id, task_id)
                return ClaimResult(
                    success=False,
                    failure=ClaimFailure.NOT_FOUND,
                    error=f"Task {task_id} not found",
                )
            if task.status != TaskStatus.PENDING:
                logger.info(
                    "Claim by %s refused: task %s is %s",
                    worker_id,
                    task_id,
                    task.status.value,
                )
                return ClaimResult(
                    success=False,
                    failure=ClaimFailure.NOT_PENDING,
                    error=f"Task {task_id} is not available (status: {task.status.value})",
                )

            conflicts = find_conflicts(task, self._registry.values())
            if conflicts:
                logger.warning(
                    "Claim by %s refused: task %s conflicts with %s",
                    worker_id,
                    task_id,
                    ", ".join(other.task_id for other in conflicts),
                )
                return ClaimResult(
                    success=False,
                    failure=ClaimFailure.CONFLICT,
                    error="Resource conflicts detected",
                    conflicting_tasks=[other.snapshot() for other in conflicts],
                )

            ensure_transition(task, "claim", TaskStatus.CLAIMED)
            now = self._clock()
            task.status = TaskStatus.CLAIMED
            task.assigned_worker = worker_id
            task.claimed_at = now
            self._queue.discard(task_id)
            self._registry.record_event(
                task_id=task_id,
                event_type="claimed",
                status_from=TaskStatus.PENDING,
                status_to=TaskStatus.CLAIMED,
                created_at=now,
                details={"worker_id": worker_id},
            )
            claimed = task.snapshot()

        logger.info("Task %s claimed by worker %s", task_id, worker_id)
        return ClaimResult(success=True, task=claimed)

    def claim_or_raise(self, worker_id: str, task_id: str) -> Task:
        """Same as ``claim`` but surfaces refusals as exceptions."""

        result = self.claim(worker_id, task_id)
        if result.success and result.task is not None:
            return result.task
        if result.failure == ClaimFailure.NOT_FOUND:
            raise TaskNotFoundError(task_id)
        if result.failure == ClaimFailure.CONFLICT:
            raise ResourceConflictError(
                task_id=task_id,
                conflicting_tasks=result.conflicting_tasks,
            )
        current = self.get_task(task_id).status
        raise InvalidStateTransitionError(task_id=task_id, operation="claimed", current=current)

    def start(self, task_id: str) -> Task:
        with self._lock:
            task = self._registry.get(task_id)
            ensure_transition(task, "start", TaskStatus.IN_PROGRESS)
            now = self._clock()
            task.status = TaskStatus.IN_PROGRESS
            task.started_at = now
            self._registry.record_event(
                task_id=task_id,
                event_type="started",
                status_from=TaskStatus.CLAIMED,
                status_to=TaskStatus.IN_PROGRESS,
                created_at=now,
                details={"worker_id": task.assigned_worker},
            )
            started = task.snapshot()
        logger.info("Task %s started", task_id)
        return started

    def complete(self, task_id: str, *, success: bool) -> Task:
        """Move an in-progress task to ``completed`` or ``failed``."""

        target = TaskStatus.COMPLETED if success else TaskStatus.FAILED
        with self._lock:
            task = self._registry.get(task_id)
            ensure_transition(task, "complete", target)
            now = self._clock()
            worker_id = task.assigned_worker
            started_at = task.started_at
            task.status = target
            task.completed_at = now
            # Assignment and claim/start stamps only exist on active tasks.
            task.assigned_worker = None
            task.claimed_at = None
            task.started_at = None
            self._queue.discard(task_id)
            self._registry.record_event(
                task_id=task_id,
                event_type=target.value,
                status_from=TaskStatus.IN_PROGRESS,
                status_to=target,
                created_at=now,
                details={"worker_id": worker_id},
            )
            finished = task.snapshot()

        duration_minutes = _duration_minutes(started_at, now)
        logger.info(
            "Task %s %s (%.1f min)",
            task_id,
            "completed" if success else "failed",
            duration_minutes,
        )
        return finished

    def release(self, task_id: str) -> Task:
        """Return a claimed or in-progress task to the pending pool."""

        with self._lock:
            task = self._registry.get(task_id)
            ensure_transition(task, "release", TaskStatus.PENDING)
            status_from = task.status
            worker_id = task.assigned_worker
            task.status = TaskStatus.PENDING
            task.assigned_worker = None
            task.claimed_at = None
            task.started_at = None
            self._queue.push(task)
            self._registry.record_event(
                task_id=task_id,
                event_type="released",
                status_from=status_from,
                status_to=TaskStatus.PENDING,
                created_at=self._clock(),
                details={"worker_id": worker_id},
            )
            released = task.snapshot()
        logger.info("Task %s released by worker %s", task_id, worker_id)
        return released

    def get_task(self, task_id: str) -> Task:
        with self._lock:
            return self._registry.get(task_id).snapshot()

    def task_details(self, task_id: str) -> TaskDetails:
        with self._lock:
            return TaskDetails(
                task=self._registry.get(task_id).snapshot(),
                events=self._registry.events(task_id),
            )

    def blocked_by(self, task_id: str) -> list[str]:
        """Dependency ids of ``task_id`` that have not completed yet."""

        with self._lock:
            task = self._registry.get(task_id)
            return unmet_dependencies(task, self._registry.find)

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        effective = task_filter or TaskFilter()
        with self._lock:
            return [task.snapshot() for task in self._registry.values() if effective.matches(task)]

    def worker_tasks(self, worker_id: str) -> list[Task]:
        """Tasks currently held by ``worker_id``; completed and failed tasks are excluded."""

        with self._lock:
            return [
                task.snapshot()
                for task in self._registry.values()
                if task.assigned_worker == worker_id and not task.is_terminal
            ]

    def stale_claims(
        self,
        max_age: timedelta | None = None,
        *,
        now: datetime | None = None,
    ) -> list[Task]:
        """Active tasks claimed longer than ``max_age`` ago, oldest claim first.

        ``max_age`` defaults to the orchestrator's ``stale_claim_after``.
        Read-only: deciding to release them is left to the caller.
        """

        threshold = max_age if max_age is not None else self._stale_claim_after
        reference = now or self._clock()
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=UTC)
        with self._lock:
            stale = [
                task.snapshot()
                for task in self._registry.values()
                if task.is_active
                and task.claimed_at is not None
                and reference - task.claimed_at > threshold
            ]
        return sorted(stale, key=lambda task: task.claimed_at or reference)

    def statistics(self) -> TaskStatistics:
        stats = TaskStatistics()
        with self._lock:
            for task in self._registry.values():
                stats.total += 1
                if task.status == TaskStatus.PENDING:
                    stats.pending += 1
                elif task.status == TaskStatus.CLAIMED:
                    stats.claimed += 1
                elif task.status == TaskStatus.IN_PROGRESS:
                    stats.in_progress += 1
                elif task.status == TaskStatus.COMPLETED:
                    stats.completed += 1
                elif task.status == TaskStatus.FAILED:
                    stats.failed += 1
        return stats

    def _find_cycle(self, task: Task) -> list[str] | None:
        # The new id is not registered yet, so reaching it means an existing
        # task already depends on it.
        stack = [
            (dependency_id, [task.task_id, dependency_id])
            for dependency_id in sorted(task.dependencies)
        ]
        visited: set[str] = set()
        while stack:
            current, path = stack.pop()
            if current == task.task_id:
                return path
            if current in visited:
                continue
            visited.add(current)
            dependency = self._registry.find(current)
            if dependency is None:
                continue
            for next_id in sorted(dependency.dependencies):
                stack.append((next_id, [*path, next_id]))
        return None


def _build_task(payload: TaskCreate, *, default_created_at: datetime) -> Task:
    task_id = payload.task_id
    if not isinstance(task_id, str) or not task_id.strip():
        raise InvalidTaskError("task_id must be a non-empty string")
    try:
        kind = TaskKind(payload.kind)
    except ValueError as error:
        raise InvalidTaskError(
            f"Unsupported task kind: {payload.kind!r}",
            task_id=task_id,
        ) from error
    priority = payload.priority
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise InvalidTaskError("priority must be an integer", task_id=task_id)
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise InvalidTaskError(
            f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}, got {priority}",
            task_id=task_id,
        )
    dependencies = frozenset(payload.dependencies)
    if task_id in dependencies:
        raise InvalidTaskError(f"Task {task_id} cannot depend on itself", task_id=task_id)

    created_at = payload.created_at or default_created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=UTC)

    return Task(
        task_id=task_id,
        kind=kind,
        priority=priority,
        dependencies=dependencies,
        required_capabilities=frozenset(payload.required_capabilities),
        resource_keys=frozenset(payload.resource_keys),
        created_at=created_at,
        description=payload.description,
        issue_number=payload.issue_number,
        branch_name=payload.branch_name,
        estimated_duration_minutes=payload.estimated_duration_minutes,
    )


def _duration_minutes(started_at: datetime | None, completed_at: datetime | None) -> float:
    if started_at is None or completed_at is None:
        return 0.0
    return (completed_at - started_at).total_seconds() / 60
