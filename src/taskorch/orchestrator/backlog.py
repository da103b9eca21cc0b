"""JSON backlog files: the ingestion boundary that feeds ``add_task``."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from taskorch.orchestrator.models import DEFAULT_PRIORITY, Task, TaskCreate, TaskKind
from taskorch.orchestrator.service import TaskOrchestrator


def load_json(path: Path) -> dict[str, Any]:
    """Load JSON document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def read_backlog(path: Path) -> list[TaskCreate]:
    """Deserialize and validate a backlog file of the form ``{"tasks": [...]}``."""

    raw = load_json(path)
    raw_tasks = raw.get("tasks")
    if not isinstance(raw_tasks, list):
        raise TypeError("backlog.tasks must be an array")
    return [parse_task_entry(item) for item in raw_tasks]


def parse_task_entry(item: object) -> TaskCreate:  # noqa: C901, PLR0912
    """Build one ``TaskCreate`` from a backlog entry.

    Field aliases accepted for issue-tracker exports: ``id``, ``type``,
    ``required_skills`` and ``files``.
    """

    if not isinstance(item, dict):
        raise TypeError("backlog entry must be an object")

    task_id = item.get("task_id", item.get("id"))
    if not isinstance(task_id, str) or not task_id.strip():
        raise ValueError("backlog.task_id must be a non-empty string")

    kind_raw = item.get("kind", item.get("type", TaskKind.ISSUE.value))
    try:
        kind = TaskKind(kind_raw)
    except ValueError as error:
        raise ValueError(f"backlog[{task_id}].kind is not supported: {kind_raw!r}") from error

    priority = item.get("priority", DEFAULT_PRIORITY)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise TypeError(f"backlog[{task_id}].priority must be an integer")

    dependencies = _string_set(item, task_id, "dependencies")
    capabilities = _string_set(item, task_id, "required_capabilities", "required_skills")
    resource_keys = _string_set(item, task_id, "resource_keys", "files")

    description = item.get("description", "")
    if not isinstance(description, str):
        raise TypeError(f"backlog[{task_id}].description must be a string")

    optional_ints: dict[str, int | None] = {}
    for field_name in ("issue_number", "estimated_duration_minutes"):
        value = item.get(field_name)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise TypeError(f"backlog[{task_id}].{field_name} must be an integer when provided")
        optional_ints[field_name] = value

    branch_name = item.get("branch_name")
    if branch_name is not None and not isinstance(branch_name, str):
        raise TypeError(f"backlog[{task_id}].branch_name must be a string when provided")

    created_at_raw = item.get("created_at")
    created_at: datetime | None = None
    if created_at_raw is not None:
        if not isinstance(created_at_raw, str):
            raise TypeError(f"backlog[{task_id}].created_at must be an ISO-8601 string")
        created_at = from_iso(created_at_raw)

    return TaskCreate(
        task_id=task_id,
        kind=kind,
        priority=priority,
        dependencies=dependencies,
        required_capabilities=capabilities,
        resource_keys=resource_keys,
        description=description,
        issue_number=optional_ints["issue_number"],
        branch_name=branch_name,
        estimated_duration_minutes=optional_ints["estimated_duration_minutes"],
        created_at=created_at,
    )


def load_backlog(orchestrator: TaskOrchestrator, path: Path) -> list[Task]:
    """Add every backlog entry to ``orchestrator`` in file order."""

    return orchestrator.add_tasks(read_backlog(path))


def from_iso(value: str) -> datetime:
    """Parse ISO datetime and ensure timezone-aware UTC fallback."""

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def _string_set(item: dict[str, Any], task_id: str, *names: str) -> frozenset[str]:
    for name in names:
        if name not in item:
            continue
        values = item[name]
        if not isinstance(values, list) or not all(isinstance(value, str) for value in values):
            raise TypeError(f"backlog[{task_id}].{name} must be an array of strings")
        return frozenset(values)
    return frozenset()
