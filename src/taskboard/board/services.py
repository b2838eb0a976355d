"""Use-case services layered over the board repository."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from taskboard.board.classifier import annotate_for_claim
from taskboard.board.conflicts import FileConflict, find_conflicts, first_session_conflict
from taskboard.board.errors import (
    ConflictDetectedError,
    NotFoundError,
    TaskboardError,
    ValidationError,
)
from taskboard.board.export import parse_import_payload, render_json, render_markdown
from taskboard.board.models import ClaimResult, TaskFilters, TaskStatus
from taskboard.board.repository import BoardRepository
from taskboard.board.scheduler import AssignmentFailure, BatchPlan, partition_tasks
from taskboard.config import ClassifierSettings

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "md")


@dataclass(slots=True)
class SuggestBatch:
    """Command to partition ready work across sessions."""

    session_count: int = 2
    auto_assign: bool = False
    agent: str = "developer"


class BoardService:
    """Coordinates classification, conflict checks and scheduling around claims."""

    def __init__(
        self,
        *,
        repository: BoardRepository,
        classifier: ClassifierSettings | None = None,
    ) -> None:
        self.repository = repository
        self.classifier = classifier or ClassifierSettings()

    def claim_task(
        self,
        task_id: int,
        *,
        agent: str,
        session_id: str | None = None,
    ) -> ClaimResult:
        """Classify the task, then claim it with tier and review plan recorded."""

        task = self.repository.require_task(task_id)
        annotation = annotate_for_claim(
            task,
            security_keywords=self.classifier.security_keywords,
            ux_keywords=self.classifier.ux_keywords,
        )
        claimed = self.repository.claim_task(
            task_id,
            agent=agent,
            session_id=session_id,
            annotation=annotation,
        )
        return ClaimResult(task=claimed, annotation=annotation)

    def assign_task_to_session(
        self,
        task_id: int,
        *,
        session_id: str,
        agent: str,
    ) -> ClaimResult:
        """Claim under a session unless any task tagged with it shares a file."""

        task = self.repository.require_task(task_id)
        held = self.repository.get_tasks_by_session(session_id)
        conflict = first_session_conflict(task, held)
        if conflict is not None:
            raise ConflictDetectedError(
                f"Task {task_id} conflicts with task {conflict.task_b} in session "
                f"{session_id} (files: {', '.join(conflict.files)})",
                task_id=task_id,
                other_task_id=conflict.task_b,
                files=conflict.files,
            )
        return self.claim_task(task_id, agent=agent, session_id=session_id)

    def conflict_check(self, task_ids: Sequence[int]) -> list[FileConflict]:
        """Pairwise file overlaps among the given tasks."""

        unique_ids = list(dict.fromkeys(task_ids))
        if len(unique_ids) < 2:
            raise ValidationError("Conflict check needs at least two task ids.")
        tasks = []
        for task_id in unique_ids:
            task = self.repository.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")
            tasks.append(task)
        return find_conflicts(tasks)

    def suggest_batch(self, command: SuggestBatch) -> BatchPlan:
        """Partition ready tasks and optionally claim each batch for its session."""

        ready = self.repository.list_tasks(TaskFilters(status=TaskStatus.READY))
        plan = BatchPlan(batches=partition_tasks(ready, command.session_count))
        if not command.auto_assign:
            return plan

        plan.assigned = True
        for batch in plan.batches:
            for task in batch.tasks:
                try:
                    self.claim_task(task.id, agent=command.agent, session_id=batch.session)
                except TaskboardError as error:
                    logger.warning(
                        "Could not assign task %s to %s: %s",
                        task.id,
                        batch.session,
                        error,
                    )
                    plan.failures.append(
                        AssignmentFailure(task_id=task.id, session=batch.session, reason=str(error)),
                    )
        return plan

    def export_tasks(self, output_format: str = "json") -> str:
        normalized = output_format.strip().lower()
        if normalized == "markdown":
            normalized = "md"
        if normalized not in EXPORT_FORMATS:
            raise ValidationError(
                f"Unsupported export format: {output_format!r}. "
                f"Expected one of: {', '.join(EXPORT_FORMATS)}",
            )
        tasks = self.repository.list_tasks()
        stats = self.repository.get_stats()
        if normalized == "md":
            return render_markdown(tasks, stats)
        return render_json(tasks, stats)

    def import_tasks(self, raw: str) -> list[int]:
        return self.repository.import_tasks(parse_import_payload(raw))
