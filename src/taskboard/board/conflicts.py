"""File-overlap conflict detection between tasks."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from taskboard.board.models import TaskView


@dataclass(slots=True)
class FileConflict:
    """Two tasks touching at least one common file."""

    task_a: int
    task_b: int
    files: tuple[str, ...]


def overlapping_files(files: Sequence[str], others: Iterable[str]) -> tuple[str, ...]:
    """Files of ``files`` that also appear in ``others``, in ``files`` order.

    Paths are compared literally (trimmed, case-sensitive).
    """

    other_set = {item.strip() for item in others if item.strip()}
    seen: set[str] = set()
    overlap: list[str] = []
    for item in files:
        path = item.strip()
        if path and path in other_set and path not in seen:
            seen.add(path)
            overlap.append(path)
    return tuple(overlap)


def find_conflicts(tasks: Sequence[TaskView]) -> list[FileConflict]:
    """Pairwise conflicts among ``tasks`` in input order."""

    conflicts: list[FileConflict] = []
    for index, task_a in enumerate(tasks):
        for task_b in tasks[index + 1 :]:
            overlap = overlapping_files(task_a.files_affected, task_b.files_affected)
            if overlap:
                conflicts.append(FileConflict(task_a=task_a.id, task_b=task_b.id, files=overlap))
    return conflicts


def first_session_conflict(
    task: TaskView,
    session_tasks: Iterable[TaskView],
) -> FileConflict | None:
    """First task already held by a session that shares files with ``task``."""

    for other in session_tasks:
        if other.id == task.id:
            continue
        overlap = overlapping_files(task.files_affected, other.files_affected)
        if overlap:
            return FileConflict(task_a=task.id, task_b=other.id, files=overlap)
    return None
