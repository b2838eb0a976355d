"""JSON and Markdown snapshots of the board."""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from taskboard.board.errors import ValidationError
from taskboard.board.models import BoardStats, ExecutionTier, Priority, TaskStatus, TaskView
from taskboard.storage.common import from_iso, utc_now

UNGROUPED = "Ungrouped"


def task_to_dict(task: TaskView) -> dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "priority": task.priority.value,
        "status": task.status.value,
        "group_name": task.group_name,
        "category": task.category,
        "description": task.description,
        "fix_required": task.fix_required,
        "files_affected": list(task.files_affected),
        "tests": list(task.tests),
        "blocked_by": list(task.blocked_by),
        "claimed_by": task.claimed_by,
        "claimed_by_session": task.claimed_by_session,
        "claimed_at": _iso(task.claimed_at),
        "completed_at": _iso(task.completed_at),
        "completed_by": task.completed_by,
        "completion_summary": task.completion_summary,
        "model": task.model.value if task.model is not None else None,
        "reviews": task.reviews,
        "parent_task_id": task.parent_task_id,
        "iteration": task.iteration,
        "created_at": task.created_at.isoformat(),
        "updated_at": task.updated_at.isoformat(),
    }


def task_from_dict(payload: dict[str, Any]) -> TaskView:
    """Rebuild a task exported by ``task_to_dict``."""

    try:
        task_id = int(payload["id"])
        title = str(payload["title"]).strip()
        priority = Priority(payload.get("priority") or Priority.MEDIUM.value)
        status = TaskStatus(payload.get("status") or TaskStatus.READY.value)
        model = ExecutionTier(payload["model"]) if payload.get("model") else None
        iteration = int(payload.get("iteration") or 1)
        blocked_by = tuple(int(dep) for dep in _string_tuple(payload.get("blocked_by")))
    except (KeyError, TypeError, ValueError) as error:
        raise ValidationError(f"Invalid task in import payload: {error}") from error
    if task_id < 1 or not title:
        raise ValidationError(f"Invalid task in import payload: id={payload.get('id')!r}")

    now = utc_now()
    return TaskView(
        id=task_id,
        title=title,
        priority=priority,
        status=status,
        group_name=payload.get("group_name"),
        category=payload.get("category"),
        description=payload.get("description"),
        fix_required=payload.get("fix_required"),
        files_affected=_string_tuple(payload.get("files_affected")),
        tests=_string_tuple(payload.get("tests")),
        blocked_by=blocked_by,
        claimed_by=payload.get("claimed_by"),
        claimed_by_session=payload.get("claimed_by_session"),
        claimed_at=_parse_datetime(payload.get("claimed_at")),
        completed_at=_parse_datetime(payload.get("completed_at")),
        completed_by=payload.get("completed_by"),
        completion_summary=payload.get("completion_summary"),
        model=model,
        reviews=payload.get("reviews") or None,
        parent_task_id=payload.get("parent_task_id"),
        iteration=iteration,
        created_at=_parse_datetime(payload.get("created_at")) or now,
        updated_at=_parse_datetime(payload.get("updated_at")) or now,
    )


def render_json(
    tasks: Sequence[TaskView],
    stats: BoardStats,
    *,
    exported_at: datetime | None = None,
) -> str:
    payload = {
        "tasks": [task_to_dict(task) for task in tasks],
        "stats": stats.to_dict(),
        "exported_at": (exported_at or utc_now()).isoformat(),
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def render_markdown(
    tasks: Sequence[TaskView],
    stats: BoardStats,
    *,
    exported_at: datetime | None = None,
) -> str:
    """Checklist grouped by group name, groups in order of first appearance."""

    lines = [
        "# Tasks Export",
        "",
        f"**Exported:** {(exported_at or utc_now()).isoformat()}",
        (
            f"**Total:** {stats.total} | **Completed:** {stats.completed} "
            f"({stats.completion_pct}%)"
        ),
        "",
    ]
    groups: dict[str, list[TaskView]] = {}
    for task in tasks:
        groups.setdefault(task.group_name or UNGROUPED, []).append(task)

    for group, group_tasks in groups.items():
        lines.append(f"## Group {group}")
        lines.append("")
        for task in group_tasks:
            check = "x" if task.status == TaskStatus.COMPLETED else " "
            lines.append(
                f"- [{check}] **#{task.id}** {task.title} "
                f"({task.priority.value}) [{task.status.value}]",
            )
            if task.description:
                lines.append(f"  {task.description}")
        lines.append("")
    return "\n".join(lines) + "\n"


def parse_import_payload(raw: str) -> list[TaskView]:
    """Accept a full JSON export or a bare list of task objects."""

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as error:
        raise ValidationError(f"Import payload is not valid JSON: {error}") from error
    if isinstance(payload, dict):
        payload = payload.get("tasks")
    if not isinstance(payload, list):
        raise ValidationError("Import payload must contain a list of tasks.")
    tasks: list[TaskView] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValidationError("Each imported task must be a JSON object.")
        tasks.append(task_from_dict(item))
    return tasks


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: object) -> datetime | None:
    if not value:
        return None
    try:
        return from_iso(str(value))
    except ValueError as error:
        raise ValidationError(f"Invalid timestamp in import payload: {value!r}") from error


def _string_tuple(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, list | tuple):
        items = [str(item) for item in value]
    else:
        raise ValidationError(f"Expected a list in import payload, got {value!r}")
    return tuple(item.strip() for item in items if item.strip())
