"""CLI entrypoint for taskorch."""

from collections.abc import Callable
from pathlib import Path

import rich_click as click

from taskorch import __version__
from taskorch.config import Settings
from taskorch.orchestrator.controllers import (
    InspectTaskCommand,
    ListTasksCommand,
    ReadyCommand,
    SimulateCommand,
    StatsCommand,
    TaskOrchestratorCliController,
)
from taskorch.orchestrator.errors import TaskOrchestratorError

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = TaskOrchestratorCliController()

_BACKLOG_OPTION = click.option(
    "--backlog",
    "backlog_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON backlog file. Defaults to TASKORCH_BACKLOG_PATH or ./backlog.json.",
)


@click.group()
@click.version_option(version=__version__, prog_name="taskorch")
def taskorch() -> None:
    """Task coordination CLI: readiness, claims, and lifecycle over a backlog."""

    try:
        settings = Settings.from_env()
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    settings.configure_logging()


@taskorch.command("ready")
@_BACKLOG_OPTION
@click.option("--worker-id", default="cli", show_default=True, help="Worker asking for tasks.")
@click.option(
    "--capability",
    "capabilities",
    multiple=True,
    help="Worker capability tag. Can be repeated.",
)
def ready(backlog_path: Path | None, worker_id: str, capabilities: tuple[str, ...]) -> None:
    """List tasks the worker could claim, in priority order."""

    _emit_lines(
        _run(
            lambda: ORCHESTRATOR_CONTROLLER.ready(
                ReadyCommand(
                    backlog_path=backlog_path,
                    worker_id=worker_id,
                    capabilities=capabilities,
                ),
            ),
        ),
    )


@taskorch.command("tasks")
@_BACKLOG_OPTION
@click.option(
    "--status",
    type=click.Choice(
        ["pending", "claimed", "in_progress", "completed", "failed"],
        case_sensitive=False,
    ),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--kind",
    type=click.Choice(["issue", "pr", "refactor", "test", "doc"], case_sensitive=False),
    default=None,
    help="Optional kind filter.",
)
@click.option(
    "--priority",
    type=click.IntRange(min=1, max=5),
    default=None,
    help="Optional priority filter (1 = highest).",
)
@click.option("--worker-id", default=None, help="Optional assigned worker filter.")
def tasks(
    backlog_path: Path | None,
    status: str | None,
    kind: str | None,
    priority: int | None,
    worker_id: str | None,
) -> None:
    """List backlog tasks with optional filters."""

    _emit_lines(
        _run(
            lambda: ORCHESTRATOR_CONTROLLER.list_tasks(
                ListTasksCommand(
                    backlog_path=backlog_path,
                    status=status,
                    kind=kind,
                    priority=priority,
                    worker_id=worker_id,
                ),
            ),
        ),
    )


@taskorch.command("stats")
@_BACKLOG_OPTION
def stats(backlog_path: Path | None) -> None:
    """Show task counts by status."""

    _emit_lines(
        _run(lambda: ORCHESTRATOR_CONTROLLER.stats(StatsCommand(backlog_path=backlog_path))),
    )


@taskorch.command("inspect")
@_BACKLOG_OPTION
@click.option("--task-id", required=True, help="Task id.")
def inspect_task(backlog_path: Path | None, task_id: str) -> None:
    """Inspect one task with its dependencies and event history."""

    _emit_lines(
        _run(
            lambda: ORCHESTRATOR_CONTROLLER.inspect_task(
                InspectTaskCommand(backlog_path=backlog_path, task_id=task_id),
            ),
        ),
    )


@taskorch.command("simulate")
@_BACKLOG_OPTION
@click.option(
    "--workers",
    type=click.IntRange(min=1, max=64),
    default=None,
    help="Concurrent simulated workers. Defaults to TASKORCH_SIM_WORKERS.",
)
@click.option(
    "--capability",
    "capabilities",
    multiple=True,
    help="Capability tag shared by all simulated workers. Can be repeated.",
)
@click.option(
    "--failure-rate",
    type=click.FloatRange(min=0.0, max=1.0),
    default=None,
    help="Probability that a simulated task ends as failed.",
)
@click.option("--seed", type=int, default=None, help="Seed for reproducible outcomes.")
def simulate(
    backlog_path: Path | None,
    workers: int | None,
    capabilities: tuple[str, ...],
    failure_rate: float | None,
    seed: int | None,
) -> None:
    """Drive the backlog with concurrent workers (transitions only, no real work)."""

    _emit_lines(
        _run(
            lambda: ORCHESTRATOR_CONTROLLER.simulate(
                SimulateCommand(
                    backlog_path=backlog_path,
                    workers=workers,
                    capabilities=capabilities,
                    failure_rate=failure_rate,
                    seed=seed,
                ),
            ),
        ),
    )


def _run(action: Callable[[], list[str]]) -> list[str]:
    try:
        return action()
    except (TaskOrchestratorError, ValueError, TypeError, OSError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskorch()
