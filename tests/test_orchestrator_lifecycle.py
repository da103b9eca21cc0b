from __future__ import annotations

from datetime import timedelta

import allure
import pytest

from taskorch.orchestrator.errors import (
    DependencyCycleError,
    DuplicateTaskIdError,
    InvalidStateTransitionError,
    InvalidTaskError,
    ResourceConflictError,
    TaskNotFoundError,
)
from taskorch.orchestrator.lifecycle import can_transition
from taskorch.orchestrator.models import (
    ClaimFailure,
    TaskCreate,
    TaskFilter,
    TaskKind,
    TaskStatus,
)
from taskorch.orchestrator.service import TaskOrchestrator

pytestmark = [
    allure.epic("Task Coordination"),
    allure.feature("Lifecycle Controller"),
]


def _add(orchestrator: TaskOrchestrator, task_id: str, **kwargs) -> None:
    orchestrator.add_task(TaskCreate(task_id=task_id, **kwargs))


def _run_to_in_progress(
    orchestrator: TaskOrchestrator,
    task_id: str,
    worker_id: str = "w1",
) -> None:
    assert orchestrator.claim(worker_id, task_id).success
    orchestrator.start(task_id)


def test_add_task_creates_pending_record(orchestrator: TaskOrchestrator) -> None:
    task = orchestrator.add_task(
        TaskCreate(
            task_id="T1",
            kind=TaskKind.REFACTOR,
            priority=2,
            dependencies=frozenset({"T0"}),
            required_capabilities=frozenset({"python"}),
            resource_keys=frozenset({"src/app.py"}),
            description="Split the module",
            issue_number=42,
        ),
    )

    assert task.status == TaskStatus.PENDING
    assert task.assigned_worker is None
    assert task.claimed_at is None
    assert task.started_at is None
    assert task.completed_at is None
    assert task.created_at is not None
    assert task.kind == TaskKind.REFACTOR
    assert task.issue_number == 42


def test_add_task_rejects_duplicate_id(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    with pytest.raises(DuplicateTaskIdError, match="T1") as excinfo:
        _add(orchestrator, "T1", priority=1)

    assert excinfo.value.code == "duplicate_id"
    assert orchestrator.statistics().total == 1


@pytest.mark.parametrize("priority", [0, 6, -1])
def test_add_task_rejects_priority_out_of_range(
    orchestrator: TaskOrchestrator,
    priority: int,
) -> None:
    with pytest.raises(InvalidTaskError, match="priority"):
        _add(orchestrator, "T1", priority=priority)


def test_add_task_rejects_self_dependency(orchestrator: TaskOrchestrator) -> None:
    with pytest.raises(InvalidTaskError, match="cannot depend on itself"):
        _add(orchestrator, "T1", dependencies=frozenset({"T1"}))


def test_add_task_rejects_empty_id(orchestrator: TaskOrchestrator) -> None:
    with pytest.raises(InvalidTaskError, match="non-empty"):
        _add(orchestrator, "  ")


def test_add_task_rejects_dependency_cycle(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "A", dependencies=frozenset({"B"}))
    _add(orchestrator, "B", dependencies=frozenset({"C"}))

    with pytest.raises(DependencyCycleError) as excinfo:
        _add(orchestrator, "C", dependencies=frozenset({"A"}))

    assert excinfo.value.cycle == ["C", "A", "B", "C"]
    assert "C" not in {task.task_id for task in orchestrator.list_tasks()}


def test_add_task_accepts_diamond_dependencies(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "root")
    _add(orchestrator, "left", dependencies=frozenset({"root"}))
    _add(orchestrator, "right", dependencies=frozenset({"root"}))
    _add(orchestrator, "join", dependencies=frozenset({"left", "right"}))

    assert orchestrator.statistics().total == 4


def test_claim_start_complete_sets_timestamps(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    claimed = orchestrator.claim("w1", "T1")
    assert claimed.success
    assert claimed.task is not None
    assert claimed.task.status == TaskStatus.CLAIMED
    assert claimed.task.assigned_worker == "w1"
    assert claimed.task.claimed_at is not None

    started = orchestrator.start("T1")
    assert started.status == TaskStatus.IN_PROGRESS
    assert started.started_at is not None
    assert started.started_at > claimed.task.claimed_at

    finished = orchestrator.complete("T1", success=True)
    assert finished.status == TaskStatus.COMPLETED
    assert finished.completed_at is not None
    assert finished.completed_at > started.started_at
    assert finished.assigned_worker is None
    assert finished.claimed_at is None
    assert finished.started_at is None


def test_complete_with_failure_marks_failed(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    _run_to_in_progress(orchestrator, "T1")

    finished = orchestrator.complete("T1", success=False)

    assert finished.status == TaskStatus.FAILED
    assert orchestrator.list_ready("w1", ()) == []


def test_claim_missing_task_reports_not_found(orchestrator: TaskOrchestrator) -> None:
    result = orchestrator.claim("w1", "missing")

    assert not result.success
    assert result.failure == ClaimFailure.NOT_FOUND
    assert result.task is None


def test_claim_twice_reports_not_pending(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    assert orchestrator.claim("w1", "T1").success

    second = orchestrator.claim("w2", "T1")

    assert not second.success
    assert second.failure == ClaimFailure.NOT_PENDING
    assert "claimed" in (second.error or "")
    assert orchestrator.get_task("T1").assigned_worker == "w1"


def test_claim_rejects_empty_worker_id(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    with pytest.raises(ValueError, match="worker_id"):
        orchestrator.claim("", "T1")


def test_claim_or_raise_maps_failures_to_errors(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1", resource_keys=frozenset({"a.go"}))
    _add(orchestrator, "T2", resource_keys=frozenset({"a.go"}))

    assert orchestrator.claim_or_raise("w1", "T1").task_id == "T1"
    with pytest.raises(ResourceConflictError) as conflict:
        orchestrator.claim_or_raise("w2", "T2")
    assert [task.task_id for task in conflict.value.conflicting_tasks] == ["T1"]
    with pytest.raises(InvalidStateTransitionError):
        orchestrator.claim_or_raise("w2", "T1")
    with pytest.raises(TaskNotFoundError):
        orchestrator.claim_or_raise("w2", "missing")


def test_start_requires_claimed_status(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    with pytest.raises(InvalidStateTransitionError, match="cannot be started") as excinfo:
        orchestrator.start("T1")

    assert excinfo.value.current == TaskStatus.PENDING
    assert orchestrator.get_task("T1").status == TaskStatus.PENDING


def test_start_missing_task_raises_not_found(orchestrator: TaskOrchestrator) -> None:
    with pytest.raises(TaskNotFoundError):
        orchestrator.start("missing")


@pytest.mark.parametrize("operation", ["complete", "release"])
def test_complete_and_release_missing_task_raise_not_found(
    orchestrator: TaskOrchestrator,
    operation: str,
) -> None:
    with pytest.raises(TaskNotFoundError) as excinfo:
        if operation == "complete":
            orchestrator.complete("missing", success=True)
        else:
            orchestrator.release("missing")

    assert excinfo.value.code == "not_found"
    assert excinfo.value.task_id == "missing"


def test_complete_only_reachable_from_in_progress(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    with pytest.raises(InvalidStateTransitionError):
        orchestrator.complete("T1", success=True)
    assert orchestrator.claim("w1", "T1").success
    with pytest.raises(InvalidStateTransitionError):
        orchestrator.complete("T1", success=True)

    orchestrator.start("T1")
    orchestrator.complete("T1", success=True)


def test_double_complete_is_reported(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    _run_to_in_progress(orchestrator, "T1")
    orchestrator.complete("T1", success=False)

    with pytest.raises(InvalidStateTransitionError, match="status: failed"):
        orchestrator.complete("T1", success=True)

    assert orchestrator.get_task("T1").status == TaskStatus.FAILED


def test_release_from_claimed_clears_assignment(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    assert orchestrator.claim("w1", "T1").success

    released = orchestrator.release("T1")

    assert released.status == TaskStatus.PENDING
    assert released.assigned_worker is None
    assert released.claimed_at is None
    assert released.started_at is None
    assert [task.task_id for task in orchestrator.list_ready("w2", ())] == ["T1"]


def test_release_from_in_progress_clears_start_timestamp(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    _run_to_in_progress(orchestrator, "T1")

    released = orchestrator.release("T1")

    assert released.status == TaskStatus.PENDING
    assert released.started_at is None
    assert orchestrator.claim("w2", "T1").success


@pytest.mark.parametrize("success", [True, False])
def test_release_of_terminal_task_is_reported(
    orchestrator: TaskOrchestrator,
    success: bool,
) -> None:
    _add(orchestrator, "T1")
    _run_to_in_progress(orchestrator, "T1")
    orchestrator.complete("T1", success=success)

    with pytest.raises(InvalidStateTransitionError, match="cannot be released"):
        orchestrator.release("T1")


def test_release_of_pending_task_is_reported(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    with pytest.raises(InvalidStateTransitionError):
        orchestrator.release("T1")


def test_terminal_status_revisited_only_after_new_cycle(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    _run_to_in_progress(orchestrator, "T1")
    orchestrator.release("T1")
    _run_to_in_progress(orchestrator, "T1", worker_id="w2")

    finished = orchestrator.complete("T1", success=True)

    assert finished.status == TaskStatus.COMPLETED
    assert orchestrator.task_details("T1").events[-1].details == {"worker_id": "w2"}


def test_snapshots_do_not_leak_mutations(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")

    snapshot = orchestrator.get_task("T1")
    snapshot.status = TaskStatus.COMPLETED
    snapshot.assigned_worker = "intruder"

    stored = orchestrator.get_task("T1")
    assert stored.status == TaskStatus.PENDING
    assert stored.assigned_worker is None


def test_task_details_records_event_trail(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1")
    _run_to_in_progress(orchestrator, "T1")
    orchestrator.release("T1")
    _run_to_in_progress(orchestrator, "T1", worker_id="w2")
    orchestrator.complete("T1", success=True)

    details = orchestrator.task_details("T1")

    assert [event.event_type for event in details.events] == [
        "added",
        "claimed",
        "started",
        "released",
        "claimed",
        "started",
        "completed",
    ]
    assert details.events[3].status_from == TaskStatus.IN_PROGRESS
    assert details.events[3].details == {"worker_id": "w1"}
    assert details.events[4].details == {"worker_id": "w2"}
    assert details.task.status == TaskStatus.COMPLETED


def test_list_tasks_filters(orchestrator: TaskOrchestrator) -> None:
    _add(orchestrator, "T1", kind=TaskKind.PR, priority=1)
    _add(orchestrator, "T2", kind=TaskKind.DOC, priority=2)
    _add(orchestrator, "T3", kind=TaskKind.DOC, priority=1)
    assert orchestrator.claim("w1", "T3").success

    def _ids(task_filter: TaskFilter | None) -> list[str]:
        return [task.task_id for task in orchestrator.list_tasks(task_filter)]

    assert _ids(None) == ["T1", "T2", "T3"]
    assert _ids(TaskFilter(kind=TaskKind.DOC)) == ["T2", "T3"]
    assert _ids(TaskFilter(priority=1)) == ["T1", "T3"]
    assert _ids(TaskFilter(status=TaskStatus.PENDING)) == ["T1", "T2"]
    assert _ids(TaskFilter(worker_id="w1")) == ["T3"]
    assert _ids(TaskFilter(kind=TaskKind.DOC, status=TaskStatus.PENDING)) == ["T2"]


def test_worker_tasks_excludes_terminal(orchestrator: TaskOrchestrator) -> None:
    for task_id in ("T1", "T2", "T3"):
        _add(orchestrator, task_id)
    _run_to_in_progress(orchestrator, "T1")
    orchestrator.complete("T1", success=True)
    _run_to_in_progress(orchestrator, "T2")
    assert orchestrator.claim("w1", "T3").success
    assert orchestrator.claim("w2", "T3").failure == ClaimFailure.NOT_PENDING

    assert [task.task_id for task in orchestrator.worker_tasks("w1")] == ["T2", "T3"]
    assert orchestrator.worker_tasks("w2") == []


def test_statistics_sum_to_total(orchestrator: TaskOrchestrator) -> None:
    for task_id in ("T1", "T2", "T3", "T4", "T5"):
        _add(orchestrator, task_id)
    assert orchestrator.claim("w1", "T1").success
    _run_to_in_progress(orchestrator, "T2")
    _run_to_in_progress(orchestrator, "T3")
    orchestrator.complete("T3", success=True)
    _run_to_in_progress(orchestrator, "T4")
    orchestrator.complete("T4", success=False)

    stats = orchestrator.statistics()

    assert stats.as_dict() == {
        "total": 5,
        "pending": 1,
        "claimed": 1,
        "in_progress": 1,
        "completed": 1,
        "failed": 1,
    }
    assert stats.total == (
        stats.pending + stats.claimed + stats.in_progress + stats.completed + stats.failed
    )


def test_stale_claims_reports_old_active_claims(orchestrator: TaskOrchestrator, clock) -> None:
    _add(orchestrator, "old")
    _add(orchestrator, "fresh")
    _add(orchestrator, "done")
    assert orchestrator.claim("w1", "old").success
    _run_to_in_progress(orchestrator, "done")
    orchestrator.complete("done", success=True)
    clock.advance(timedelta(hours=1))
    assert orchestrator.claim("w2", "fresh").success

    stale = orchestrator.stale_claims(timedelta(minutes=30))

    assert [task.task_id for task in stale] == ["old"]
    assert orchestrator.get_task("old").status == TaskStatus.CLAIMED


@pytest.mark.parametrize(
    ("operation", "legal_moves"),
    [
        ("claim", {(TaskStatus.PENDING, TaskStatus.CLAIMED)}),
        ("start", {(TaskStatus.CLAIMED, TaskStatus.IN_PROGRESS)}),
        (
            "complete",
            {
                (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
                (TaskStatus.IN_PROGRESS, TaskStatus.FAILED),
            },
        ),
        (
            "release",
            {
                (TaskStatus.CLAIMED, TaskStatus.PENDING),
                (TaskStatus.IN_PROGRESS, TaskStatus.PENDING),
            },
        ),
    ],
)
def test_transition_table_moves(
    operation: str,
    legal_moves: set[tuple[TaskStatus, TaskStatus]],
) -> None:
    moves = {
        (current, target)
        for current in TaskStatus
        for target in TaskStatus
        if can_transition(operation, current, target)
    }

    assert moves == legal_moves


def test_stale_claims_default_threshold_comes_from_constructor(clock) -> None:
    orchestrator = TaskOrchestrator(clock=clock, stale_claim_after=timedelta(minutes=5))
    _add(orchestrator, "slow")
    _add(orchestrator, "quick")
    assert orchestrator.claim("w1", "slow").success
    clock.advance(timedelta(minutes=4))
    assert orchestrator.claim("w2", "quick").success
    clock.advance(timedelta(minutes=2))

    stale = orchestrator.stale_claims()

    assert [task.task_id for task in stale] == ["slow"]


def test_stale_claims_rejects_non_positive_threshold() -> None:
    with pytest.raises(ValueError, match="stale_claim_after"):
        TaskOrchestrator(stale_claim_after=timedelta(0))


def test_stale_claims_treats_naive_now_as_utc(orchestrator: TaskOrchestrator, clock) -> None:
    _add(orchestrator, "T1")
    claimed = orchestrator.claim("w1", "T1").task
    assert claimed is not None and claimed.claimed_at is not None

    naive_now = (claimed.claimed_at + timedelta(hours=2)).replace(tzinfo=None)
    stale = orchestrator.stale_claims(timedelta(hours=1), now=naive_now)

    assert [task.task_id for task in stale] == ["T1"]
