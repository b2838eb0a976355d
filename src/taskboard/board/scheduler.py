"""Greedy least-conflict partitioning of ready work across sessions."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from taskboard.board.errors import ValidationError
from taskboard.board.models import TaskView


@dataclass(slots=True)
class SessionBatch:
    """Tasks suggested for one session, in placement order."""

    session: str
    tasks: list[TaskView] = field(default_factory=list)
    files: set[str] = field(default_factory=set)

    def overlap_with(self, files: Sequence[str]) -> int:
        return sum(1 for path in files if path in self.files)


@dataclass(slots=True)
class AssignmentFailure:
    task_id: int
    session: str
    reason: str


@dataclass(slots=True)
class BatchPlan:
    batches: list[SessionBatch]
    assigned: bool = False
    failures: list[AssignmentFailure] = field(default_factory=list)

    @property
    def task_count(self) -> int:
        return sum(len(batch.tasks) for batch in self.batches)


def session_name(index: int) -> str:
    return f"session-{index + 1}"


def partition_tasks(tasks: Sequence[TaskView], session_count: int) -> list[SessionBatch]:
    """Place each task, in the given order, into the least-overlapping session.

    ``tasks`` are expected in priority order.  Ties go to the lowest session
    index, and every placement adds the task's files to that session so later
    tasks are steered away from it.
    """

    if session_count < 1:
        raise ValidationError(f"Session count must be >= 1, got {session_count}")

    batches = [SessionBatch(session=session_name(index)) for index in range(session_count)]
    for task in tasks:
        best = batches[0]
        least = best.overlap_with(task.files_affected)
        for batch in batches[1:]:
            overlap = batch.overlap_with(task.files_affected)
            if overlap < least:
                best, least = batch, overlap
        best.tasks.append(task)
        best.files.update(task.files_affected)
    return batches
