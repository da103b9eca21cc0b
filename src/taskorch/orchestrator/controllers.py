"""Controllers for orchestrator CLI commands."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from taskorch.config import Settings
from taskorch.orchestrator.backlog import load_backlog
from taskorch.orchestrator.models import (
    Task,
    TaskFilter,
    TaskKind,
    TaskStatistics,
    TaskStatus,
)
from taskorch.orchestrator.service import TaskOrchestrator
from taskorch.orchestrator.simulation import SimulationSummary, WorkerSimulation


@dataclass(slots=True)
class ReadyCommand:
    """CLI input for ready-task listing."""

    backlog_path: Path | None
    worker_id: str
    capabilities: tuple[str, ...]


@dataclass(slots=True)
class ListTasksCommand:
    """CLI input for filtered task listing."""

    backlog_path: Path | None
    status: str | None = None
    kind: str | None = None
    priority: int | None = None
    worker_id: str | None = None


@dataclass(slots=True)
class StatsCommand:
    backlog_path: Path | None


@dataclass(slots=True)
class InspectTaskCommand:
    """CLI input for task inspection."""

    backlog_path: Path | None
    task_id: str


@dataclass(slots=True)
class SimulateCommand:
    """CLI input for the concurrent worker simulation."""

    backlog_path: Path | None
    workers: int | None = None
    capabilities: tuple[str, ...] = ()
    failure_rate: float | None = None
    seed: int | None = None


class TaskOrchestratorCliController:
    """Loads a backlog into a fresh orchestrator and renders read-only views of it."""

    def ready(self, command: ReadyCommand) -> list[str]:
        orchestrator, _settings = _load(command.backlog_path)
        tasks = orchestrator.list_ready(command.worker_id, command.capabilities)
        lines = [f"Ready tasks for {command.worker_id}: {len(tasks)}"]
        lines.extend(f"  {_fmt_task(task)}" for task in tasks)
        return lines

    def list_tasks(self, command: ListTasksCommand) -> list[str]:
        orchestrator, _settings = _load(command.backlog_path)
        tasks = orchestrator.list_tasks(
            TaskFilter(
                status=_parse_status(command.status),
                kind=_parse_kind(command.kind),
                priority=command.priority,
                worker_id=command.worker_id,
            ),
        )
        lines = [f"Tasks: {len(tasks)}"]
        lines.extend(f"  {_fmt_task(task)}" for task in tasks)
        return lines

    def stats(self, command: StatsCommand) -> list[str]:
        orchestrator, _settings = _load(command.backlog_path)
        return render_stats_lines(orchestrator.statistics())

    def inspect_task(self, command: InspectTaskCommand) -> list[str]:
        orchestrator, _settings = _load(command.backlog_path)
        details = orchestrator.task_details(command.task_id)
        blocked_by = orchestrator.blocked_by(command.task_id)

        task = details.task
        lines = [
            f"Task: {task.task_id}",
            f"Kind: {task.kind.value}",
            f"Status: {task.status.value}",
            f"Priority: {task.priority}",
            f"Description: {task.description or '-'}",
            f"Issue: {task.issue_number if task.issue_number is not None else '-'}",
            f"Branch: {task.branch_name or '-'}",
            f"Dependencies: {_fmt_set(task.dependencies)}",
            f"Blocked by: {', '.join(blocked_by) if blocked_by else '-'}",
            f"Required capabilities: {_fmt_set(task.required_capabilities)}",
            f"Resource keys: {_fmt_set(task.resource_keys)}",
            f"Created: {task.created_at.isoformat()}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def simulate(self, command: SimulateCommand) -> list[str]:
        orchestrator, settings = _load(command.backlog_path)
        simulation_settings = settings.simulation
        simulation = WorkerSimulation(
            orchestrator=orchestrator,
            workers=command.workers or simulation_settings.workers,
            capabilities=command.capabilities or simulation_settings.capabilities,
            failure_rate=(
                command.failure_rate
                if command.failure_rate is not None
                else simulation_settings.failure_rate
            ),
            max_idle_polls=simulation_settings.max_idle_polls,
            seed=command.seed if command.seed is not None else simulation_settings.seed,
        )
        summary = simulation.run()
        return [
            *render_simulation_lines(summary),
            *render_stats_lines(orchestrator.statistics()),
        ]


def render_stats_lines(stats: TaskStatistics) -> list[str]:
    """Render dashboard-facing status counts."""

    counts = stats.as_dict()
    total = counts.pop("total")
    return [
        f"Total tasks: {total}",
        "Status: " + " ".join(f"{key}={value}" for key, value in counts.items()),
    ]


def render_simulation_lines(summary: SimulationSummary) -> list[str]:
    totals = summary.totals
    lines = [
        "Simulation summary: "
        f"workers={summary.workers} processed={totals.processed} "
        f"succeeded={totals.succeeded} failed={totals.failed} "
        f"conflicts={totals.conflicts} lost_races={totals.lost_races} "
        f"idle_polls={totals.idle_polls}",
    ]
    for worker_id, worker_summary in summary.per_worker.items():
        lines.append(
            f"  {worker_id} processed={worker_summary.processed} "
            f"succeeded={worker_summary.succeeded} failed={worker_summary.failed}",
        )
    return lines


def build_orchestrator(settings: Settings) -> TaskOrchestrator:
    """Empty orchestrator configured from ``settings``."""

    return TaskOrchestrator(
        stale_claim_after=timedelta(seconds=settings.queue.stale_claim_seconds),
    )


def _load(backlog_path: Path | None) -> tuple[TaskOrchestrator, Settings]:
    settings = Settings.from_env(backlog_path=backlog_path)
    settings.validate()
    orchestrator = build_orchestrator(settings)
    load_backlog(orchestrator, settings.backlog_path)
    return orchestrator, settings


def _fmt_task(task: Task) -> str:
    worker = f" worker={task.assigned_worker}" if task.assigned_worker else ""
    return (
        f"{task.task_id} kind={task.kind.value} status={task.status.value} "
        f"priority={task.priority} created_at={task.created_at.isoformat()}{worker}"
    )


def _fmt_set(values: frozenset[str]) -> str:
    return ", ".join(sorted(values)) if values else "-"


def _parse_status(value: str | None) -> TaskStatus | None:
    if value is None:
        return None
    return TaskStatus(value.strip().lower())


def _parse_kind(value: str | None) -> TaskKind | None:
    if value is None:
        return None
    return TaskKind(value.strip().lower())
