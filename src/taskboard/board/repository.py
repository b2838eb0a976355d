"""Persistent task board repository."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from sqlalchemy import Integer, case, cast, func
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from taskboard.board.dependencies import (
    build_dependency_tree,
    outstanding_dependencies,
    resolve_completion,
)
from taskboard.board.errors import (
    ConflictDetectedError,
    NotFoundError,
    ValidationError,
)
from taskboard.board.models import (
    AgentStats,
    ArtifactView,
    BoardStats,
    ClaimAnnotation,
    CompletionResult,
    DependencyNode,
    ExecutionTier,
    HistoryEntryView,
    Priority,
    ReviewFeedbackSummary,
    ReviewFeedbackWrite,
    SessionStatus,
    SessionView,
    TaskCreate,
    TaskFilters,
    TaskStatus,
    TaskUpdate,
    TaskView,
)
from taskboard.board.transitions import ensure_allowed, ensure_transition
from taskboard.storage.alembic_runner import upgrade_head
from taskboard.storage.common import (
    build_sqlite_engine,
    join_csv,
    split_csv,
    split_csv_ids,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from taskboard.storage.sqlmodel_models import (
    ReviewFeedbackRow,
    SessionRow,
    TaskArtifactRow,
    TaskHistoryRow,
    TaskRow,
)

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACT_MAX_BYTES = 51_200


class BoardRepository:
    """Task board persistence facade backed by SQLModel + SQLite.

    Every public mutating method runs in its own session and commits the
    status change together with its history rows; a raised error leaves the
    database untouched.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        sqlite_busy_timeout_ms: int = 5_000,
    ) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(
            db_path=db_path,
            busy_timeout_ms=sqlite_busy_timeout_ms,
        )

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    # -- task CRUD -----------------------------------------------------------

    def add_task(self, payload: TaskCreate) -> TaskView:
        """Create a task; outstanding dependencies start it as ``blocked``."""

        title = (payload.title or "").strip()
        if not title:
            raise ValidationError("Task title is required.")
        if payload.iteration < 1:
            raise ValidationError(f"Iteration must be >= 1, got {payload.iteration}")

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            completed_ids = self._completed_ids(session=session, task_ids=payload.blocked_by)
            outstanding = outstanding_dependencies(payload.blocked_by, completed_ids)
            status = TaskStatus.BLOCKED if outstanding else TaskStatus.READY
            row = TaskRow(
                title=title,
                priority=Priority(payload.priority).value,
                status=status.value,
                group_name=payload.group_name,
                category=payload.category,
                description=payload.description,
                files_affected=join_csv(_clean_items(payload.files_affected)),
                tests=join_csv(_clean_items(payload.tests)),
                blocked_by=join_csv(outstanding),
                model=payload.model.value if payload.model is not None else None,
                reviews=payload.reviews or None,
                parent_task_id=payload.parent_task_id,
                iteration=payload.iteration,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            task_id = _row_id(row)
            self._add_history(
                session=session,
                task_id=task_id,
                action="create",
                new_value=status.value,
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def get_task(self, task_id: int) -> TaskView | None:
        with Session(self.engine) as session:
            row = session.get(TaskRow, task_id)
            return _to_task_view(row) if row is not None else None

    def require_task(self, task_id: int) -> TaskView:
        """Return task or raise ``NotFoundError``."""

        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        return task

    def list_tasks(self, filters: TaskFilters | None = None) -> list[TaskView]:
        """List tasks in scheduling order: priority, then id."""

        filters = filters or TaskFilters()
        statement = select(TaskRow)
        if filters.status is not None:
            statement = statement.where(TaskRow.status == filters.status.value)
        if filters.priority is not None:
            statement = statement.where(TaskRow.priority == filters.priority.value)
        if filters.group_name is not None:
            statement = statement.where(TaskRow.group_name == filters.group_name)
        if filters.category is not None:
            statement = statement.where(TaskRow.category == filters.category)
        if filters.claimed_by is not None:
            statement = statement.where(TaskRow.claimed_by == filters.claimed_by)
        if filters.claimed_by_session is not None:
            statement = statement.where(TaskRow.claimed_by_session == filters.claimed_by_session)
        statement = statement.order_by(_priority_rank(), col(TaskRow.id).asc())
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [_to_task_view(row) for row in rows]

    def update_task(self, task_id: int, update: TaskUpdate, *, agent: str | None = None) -> TaskView:
        """Patch allow-listed fields, logging old and new value per changed field."""

        changes = update.changes()
        if "title" in changes and not changes["title"].strip():
            raise ValidationError("Task title cannot be empty.")
        if "iteration" in changes and changes["iteration"] < 1:
            raise ValidationError(f"Iteration must be >= 1, got {changes['iteration']}")
        if task_id in changes.get("blocked_by", ()):
            raise ValidationError(f"Task {task_id} cannot depend on itself.")

        with Session(self.engine) as session:
            row = self._get_row(session=session, task_id=task_id)
            if not changes:
                return _to_task_view(row)
            for name, value in changes.items():
                stored = _to_column_value(name, value)
                previous = getattr(row, name)
                if previous == stored:
                    continue
                setattr(row, name, stored)
                self._add_history(
                    session=session,
                    task_id=task_id,
                    action=f"update_{name}",
                    agent=agent,
                    old_value=_history_text(previous),
                    new_value=_history_text(stored),
                )
            row.updated_at = to_db_datetime(utc_now())
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    # -- state machine -------------------------------------------------------

    def claim_task(
        self,
        task_id: int,
        *,
        agent: str,
        session_id: str | None = None,
        annotation: ClaimAnnotation | None = None,
    ) -> TaskView:
        """Move a task to ``in_progress`` for one (agent, session) pair."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_row(session=session, task_id=task_id)
            previous = TaskStatus(row.status)
            ensure_allowed(task_id=task_id, status=previous, action="claimed")
            if row.claimed_by and row.claimed_by != agent:
                raise ConflictDetectedError(
                    f"Task {task_id} already claimed by {row.claimed_by}",
                    task_id=task_id,
                )
            if session_id and row.claimed_by_session and row.claimed_by_session != session_id:
                raise ConflictDetectedError(
                    f"Task {task_id} already claimed by session {row.claimed_by_session}",
                    task_id=task_id,
                )

            values: dict[str, Any] = {
                "status": TaskStatus.IN_PROGRESS.value,
                "claimed_by": agent,
                "claimed_by_session": session_id or row.claimed_by_session,
                "claimed_at": now,
                "updated_at": now,
            }
            if annotation is not None:
                if row.model is None:
                    values["model"] = annotation.model.value
                if not row.reviews:
                    values["reviews"] = annotation.reviews
            self._guarded_update(
                session=session,
                task_id=task_id,
                expected=previous,
                action="claimed",
                values=values,
            )
            self._add_history(
                session=session,
                task_id=task_id,
                action="claim",
                agent=agent,
                session_id=session_id,
                old_value=previous.value,
                new_value=TaskStatus.IN_PROGRESS.value,
            )
            if session_id:
                self._touch_session_row(
                    session=session,
                    session_id=session_id,
                    current_task_id=task_id,
                )
            session.commit()
            session.refresh(row)
            logger.info(
                "Task %s claimed by %s%s",
                task_id,
                agent,
                f" (session: {session_id})" if session_id else "",
            )
            return _to_task_view(row)

    def release_task(self, task_id: int) -> TaskView:
        """Return an in-progress task to ``ready`` and clear its claim."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_row(session=session, task_id=task_id)
            previous = TaskStatus(row.status)
            ensure_allowed(task_id=task_id, status=previous, action="released")
            view = _to_task_view(row)
            self._guarded_update(
                session=session,
                task_id=task_id,
                expected=previous,
                action="released",
                values={
                    "status": TaskStatus.READY.value,
                    "claimed_by": None,
                    "claimed_by_session": None,
                    "claimed_at": None,
                    "updated_at": now,
                },
            )
            self._add_history(
                session=session,
                task_id=task_id,
                action="release",
                agent=view.claimed_by,
                session_id=view.claimed_by_session,
                old_value=view.claimant_label,
                new_value=TaskStatus.READY.value,
            )
            if view.claimed_by_session:
                session_row = session.get(SessionRow, view.claimed_by_session)
                if session_row is not None and session_row.current_task_id == task_id:
                    session_row.current_task_id = None
                    session.add(session_row)
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def complete_task(
        self,
        task_id: int,
        *,
        summary: str,
        agent: str | None = None,
    ) -> CompletionResult:
        """Complete a task and unblock dependents in the same transaction."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_row(session=session, task_id=task_id)
            previous = TaskStatus(row.status)
            ensure_allowed(task_id=task_id, status=previous, action="completed")
            completed_by = agent or row.claimed_by
            self._guarded_update(
                session=session,
                task_id=task_id,
                expected=previous,
                action="completed",
                values={
                    "status": TaskStatus.COMPLETED.value,
                    "completed_at": now,
                    "completed_by": completed_by,
                    "completion_summary": summary,
                    "updated_at": now,
                },
            )
            self._add_history(
                session=session,
                task_id=task_id,
                action="complete",
                agent=completed_by,
                session_id=row.claimed_by_session,
                old_value=previous.value,
                new_value=TaskStatus.COMPLETED.value,
            )
            unblocked = self._unblock_dependents(session=session, completed_id=task_id)
            session.commit()
            session.refresh(row)
            logger.info(
                "Task %s completed by %s; unblocked=%s",
                task_id,
                completed_by or "-",
                unblocked,
            )
            return CompletionResult(task=_to_task_view(row), unblocked=unblocked)

    def block_task(self, task_id: int, *, reason: str) -> TaskView:
        """Mark a ready task as blocked with a free-text fix requirement."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_row(session=session, task_id=task_id)
            previous = TaskStatus(row.status)
            ensure_allowed(task_id=task_id, status=previous, action="blocked")
            self._guarded_update(
                session=session,
                task_id=task_id,
                expected=previous,
                action="blocked",
                values={
                    "status": TaskStatus.BLOCKED.value,
                    "fix_required": reason,
                    "updated_at": now,
                },
            )
            self._add_history(
                session=session,
                task_id=task_id,
                action="block",
                old_value=previous.value,
                new_value=TaskStatus.BLOCKED.value,
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    def unblock_task(self, task_id: int) -> TaskView:
        """Return a blocked task to ``ready``; ``blocked_by`` is left as-is."""

        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = self._get_row(session=session, task_id=task_id)
            previous = TaskStatus(row.status)
            ensure_allowed(task_id=task_id, status=previous, action="unblocked")
            self._guarded_update(
                session=session,
                task_id=task_id,
                expected=previous,
                action="unblocked",
                values={
                    "status": TaskStatus.READY.value,
                    "fix_required": None,
                    "updated_at": now,
                },
            )
            self._add_history(
                session=session,
                task_id=task_id,
                action="unblock",
                old_value=previous.value,
                new_value=TaskStatus.READY.value,
            )
            session.commit()
            session.refresh(row)
            return _to_task_view(row)

    # -- queries -------------------------------------------------------------

    def get_history(self, task_id: int) -> list[HistoryEntryView]:
        """History rows for a task, newest first."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskHistoryRow)
                .where(TaskHistoryRow.task_id == task_id)
                .order_by(col(TaskHistoryRow.id).desc()),
            ).all()
        return [
            HistoryEntryView(
                id=row.id or 0,
                task_id=row.task_id,
                action=row.action,
                agent=row.agent,
                session_id=row.session_id,
                old_value=row.old_value,
                new_value=row.new_value,
                timestamp=to_utc_aware_datetime(row.created_at),
            )
            for row in rows
        ]

    def get_stats(self) -> BoardStats:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow.status, func.count()).group_by(TaskRow.status),
            ).all()
        counts = {str(status): int(count) for status, count in rows}
        return BoardStats(
            total=sum(counts.values()),
            ready=counts.get(TaskStatus.READY.value, 0),
            in_progress=counts.get(TaskStatus.IN_PROGRESS.value, 0),
            blocked=counts.get(TaskStatus.BLOCKED.value, 0),
            completed=counts.get(TaskStatus.COMPLETED.value, 0),
        )

    def get_agent_stats(self) -> list[AgentStats]:
        """Per-agent action counts from history, most completions first."""

        completions = func.sum(case((TaskHistoryRow.action == "complete", 1), else_=0))
        claims = func.sum(case((TaskHistoryRow.action == "claim", 1), else_=0))
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskHistoryRow.agent, func.count(), completions, claims)
                .where(col(TaskHistoryRow.agent).is_not(None))
                .group_by(TaskHistoryRow.agent)
                .order_by(completions.desc(), col(TaskHistoryRow.agent).asc()),
            ).all()
        return [
            AgentStats(
                agent=str(agent),
                actions=int(actions),
                completions=int(done or 0),
                claims=int(claimed or 0),
            )
            for agent, actions, done, claimed in rows
        ]

    def get_stale_tasks(self, hours: int = 24) -> list[TaskView]:
        """In-progress tasks claimed more than ``hours`` ago, oldest claim first."""

        cutoff = utc_now() - timedelta(hours=hours)
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskRow)
                .where(
                    TaskRow.status == TaskStatus.IN_PROGRESS.value,
                    col(TaskRow.claimed_at).is_not(None),
                    col(TaskRow.claimed_at) < to_db_datetime(cutoff),
                )
                .order_by(col(TaskRow.claimed_at).asc()),
            ).all()
        return [_to_task_view(row) for row in rows]

    def get_next_task(self) -> TaskView | None:
        """Most urgent ready task without outstanding dependencies."""

        with Session(self.engine) as session:
            row = session.exec(
                select(TaskRow)
                .where(
                    TaskRow.status == TaskStatus.READY.value,
                    (col(TaskRow.blocked_by).is_(None)) | (TaskRow.blocked_by == ""),
                )
                .order_by(_priority_rank(), col(TaskRow.id).asc())
                .limit(1),
            ).one_or_none()
            return _to_task_view(row) if row is not None else None

    def get_dependency_tree(self, task_id: int) -> DependencyNode | None:
        return build_dependency_tree(task_id, self.list_tasks())

    # -- sessions ------------------------------------------------------------

    def start_session(self, session_id: str, *, agent_type: str = "primary") -> SessionView:
        """Create or restart a session as ``active``."""

        if not session_id.strip():
            raise ValidationError("Session id is required.")
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = session.get(SessionRow, session_id)
            if row is None:
                row = SessionRow(
                    session_id=session_id,
                    agent_type=agent_type,
                    status=SessionStatus.ACTIVE.value,
                    started_at=now,
                    last_active=now,
                )
            else:
                row.agent_type = agent_type
                row.status = SessionStatus.ACTIVE.value
                row.current_task_id = None
                row.started_at = now
                row.last_active = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_session_view(row)

    def end_session(self, session_id: str) -> SessionView:
        now = to_db_datetime(utc_now())
        with Session(self.engine) as session:
            row = session.get(SessionRow, session_id)
            if row is None:
                raise NotFoundError(f"Session {session_id} not found")
            row.status = SessionStatus.COMPLETED.value
            row.last_active = now
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_session_view(row)

    def touch_session(self, session_id: str) -> bool:
        """Refresh ``last_active``; returns False for unknown sessions."""

        with Session(self.engine) as session:
            touched = self._touch_session_row(session=session, session_id=session_id)
            session.commit()
            return touched

    def list_active_sessions(self) -> list[SessionView]:
        """Active sessions with their in-progress task counts."""

        with Session(self.engine) as session:
            rows = session.exec(
                select(SessionRow)
                .where(SessionRow.status == SessionStatus.ACTIVE.value)
                .order_by(col(SessionRow.started_at).asc(), col(SessionRow.session_id).asc()),
            ).all()
            counts = dict(
                session.exec(
                    select(TaskRow.claimed_by_session, func.count())
                    .where(TaskRow.status == TaskStatus.IN_PROGRESS.value)
                    .group_by(TaskRow.claimed_by_session),
                ).all(),
            )
            return [
                _to_session_view(row, task_count=int(counts.get(row.session_id, 0)))
                for row in rows
            ]

    def get_session(self, session_id: str) -> SessionView | None:
        with Session(self.engine) as session:
            row = session.get(SessionRow, session_id)
            return _to_session_view(row) if row is not None else None

    def get_tasks_by_session(self, session_id: str) -> list[TaskView]:
        return self.list_tasks(TaskFilters(claimed_by_session=session_id))

    def cleanup_stale_sessions(self, hours: int = 2) -> list[str]:
        """Mark active sessions idle for more than ``hours`` as stale."""

        cutoff = to_db_datetime(utc_now() - timedelta(hours=hours))
        with Session(self.engine) as session:
            rows = session.exec(
                select(SessionRow).where(
                    SessionRow.status == SessionStatus.ACTIVE.value,
                    col(SessionRow.last_active) < cutoff,
                ),
            ).all()
            stale_ids = [row.session_id for row in rows]
            for row in rows:
                row.status = SessionStatus.STALE.value
                session.add(row)
            session.commit()
        if stale_ids:
            logger.info("Marked %d stale session(s): %s", len(stale_ids), ", ".join(stale_ids))
        return stale_ids

    # -- artifacts and review feedback ---------------------------------------

    def save_artifact(  # noqa: PLR0913
        self,
        *,
        task_id: int,
        artifact_type: str,
        content: str,
        agent: str | None = None,
        iteration: int = 1,
        max_bytes: int = DEFAULT_ARTIFACT_MAX_BYTES,
    ) -> ArtifactView:
        """Store an artifact, truncating content beyond ``max_bytes``."""

        if not artifact_type.strip():
            raise ValidationError("Artifact type is required.")
        stored, truncated = truncate_artifact_content(content, max_bytes=max_bytes)
        if truncated:
            logger.warning(
                "Artifact %s for task %s truncated to %d bytes",
                artifact_type,
                task_id,
                max_bytes,
            )
        with Session(self.engine) as session:
            self._get_row(session=session, task_id=task_id)
            row = TaskArtifactRow(
                task_id=task_id,
                artifact_type=artifact_type,
                agent=agent,
                content=stored,
                iteration=iteration,
                created_at=to_db_datetime(utc_now()),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_artifact_view(row, with_content=True)

    def get_artifact(
        self,
        *,
        task_id: int,
        artifact_type: str,
        iteration: int | None = None,
    ) -> ArtifactView | None:
        """Latest artifact of a type, optionally for one iteration."""

        statement = select(TaskArtifactRow).where(
            TaskArtifactRow.task_id == task_id,
            TaskArtifactRow.artifact_type == artifact_type,
        )
        if iteration is not None:
            statement = statement.where(TaskArtifactRow.iteration == iteration)
        statement = statement.order_by(
            col(TaskArtifactRow.created_at).desc(),
            col(TaskArtifactRow.id).desc(),
        ).limit(1)
        with Session(self.engine) as session:
            row = session.exec(statement).one_or_none()
            return _to_artifact_view(row, with_content=True) if row is not None else None

    def list_artifacts(self, task_id: int) -> list[ArtifactView]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(TaskArtifactRow)
                .where(TaskArtifactRow.task_id == task_id)
                .order_by(col(TaskArtifactRow.created_at).asc(), col(TaskArtifactRow.id).asc()),
            ).all()
        return [_to_artifact_view(row, with_content=False) for row in rows]

    def log_review_feedback(self, feedback: ReviewFeedbackWrite) -> None:
        if not feedback.dimension.strip() or not feedback.checklist_item.strip():
            raise ValidationError("Review feedback needs a dimension and a checklist item.")
        with Session(self.engine) as session:
            self._get_row(session=session, task_id=feedback.task_id)
            session.add(
                ReviewFeedbackRow(
                    task_id=feedback.task_id,
                    dimension=feedback.dimension,
                    checklist_item=feedback.checklist_item,
                    result=feedback.result,
                    was_useful=feedback.was_useful,
                    created_at=to_db_datetime(utc_now()),
                ),
            )
            session.commit()

    def review_feedback_summary(self, *, dimension: str | None = None) -> list[ReviewFeedbackSummary]:
        """Usefulness per (dimension, checklist item)."""

        useful = func.sum(cast(col(ReviewFeedbackRow.was_useful), Integer))
        statement = select(
            ReviewFeedbackRow.dimension,
            ReviewFeedbackRow.checklist_item,
            func.count(),
            useful,
        )
        if dimension is not None:
            statement = statement.where(ReviewFeedbackRow.dimension == dimension)
        statement = statement.group_by(
            ReviewFeedbackRow.dimension,
            ReviewFeedbackRow.checklist_item,
        ).order_by(col(ReviewFeedbackRow.dimension).asc(), col(ReviewFeedbackRow.checklist_item).asc())
        with Session(self.engine) as session:
            rows = session.exec(statement).all()
        return [
            ReviewFeedbackSummary(
                dimension=str(row_dimension),
                checklist_item=str(item),
                total=int(total),
                useful=int(useful_count or 0),
            )
            for row_dimension, item, total, useful_count in rows
        ]

    # -- snapshot import -----------------------------------------------------

    def import_tasks(self, tasks: Sequence[TaskView]) -> list[int]:
        """Insert exported tasks verbatim, keeping ids; existing ids are rejected."""

        task_ids = [task.id for task in tasks]
        if len(set(task_ids)) != len(task_ids):
            raise ValidationError("Import contains duplicate task ids.")
        with Session(self.engine) as session:
            existing = session.exec(select(TaskRow.id).where(col(TaskRow.id).in_(task_ids))).all()
            if existing:
                ids = ", ".join(str(task_id) for task_id in sorted(existing))
                raise ValidationError(f"Tasks already exist: {ids}")
            for task in tasks:
                session.add(_to_task_row(task))
            session.flush()
            for task in tasks:
                self._add_history(
                    session=session,
                    task_id=task.id,
                    action="import",
                    new_value=task.status.value,
                )
            session.commit()
        logger.info("Imported %d task(s)", len(task_ids))
        return task_ids

    # -- internals -----------------------------------------------------------

    def _get_row(self, *, session: Session, task_id: int) -> TaskRow:
        row = session.get(TaskRow, task_id)
        if row is None:
            raise NotFoundError(f"Task {task_id} not found")
        return row

    def _completed_ids(self, *, session: Session, task_ids: Sequence[int]) -> set[int]:
        if not task_ids:
            return set()
        rows = session.exec(
            select(TaskRow.id).where(
                col(TaskRow.id).in_(list(task_ids)),
                TaskRow.status == TaskStatus.COMPLETED.value,
            ),
        ).all()
        return {int(task_id) for task_id in rows if task_id is not None}

    def _guarded_update(
        self,
        *,
        session: Session,
        task_id: int,
        expected: TaskStatus,
        action: str,
        values: dict[str, Any],
    ) -> None:
        ensure_transition(
            task_id=task_id,
            source=expected,
            target=TaskStatus(values["status"]),
            action=action,
        )
        result = session.exec(
            sa_update(TaskRow)
            .where(
                col(TaskRow.id) == task_id,
                col(TaskRow.status) == expected.value,
            )
            .values(**values),
        )
        if result.rowcount != 1:
            session.rollback()
            raise ConflictDetectedError(
                "Task state changed concurrently; "
                f"please retry command (task_id={task_id}).",
                task_id=task_id,
            )

    def _unblock_dependents(self, *, session: Session, completed_id: int) -> list[int]:
        blocked_rows = session.exec(
            select(TaskRow)
            .where(TaskRow.status == TaskStatus.BLOCKED.value)
            .order_by(_priority_rank(), col(TaskRow.id).asc()),
        ).all()
        rows_by_id = {_row_id(row): row for row in blocked_rows}
        changes = resolve_completion(
            (_to_task_view(row) for row in blocked_rows),
            completed_id,
        )
        now = to_db_datetime(utc_now())
        unblocked: list[int] = []
        for change in changes:
            row = rows_by_id[change.task_id]
            previous_deps = row.blocked_by
            row.updated_at = now
            if change.unblocks:
                row.status = TaskStatus.READY.value
                row.blocked_by = None
                self._add_history(
                    session=session,
                    task_id=change.task_id,
                    action="auto-unblock",
                    old_value=TaskStatus.BLOCKED.value,
                    new_value=TaskStatus.READY.value,
                )
                unblocked.append(change.task_id)
                logger.info("Task %s auto-unblocked by completion of %s", change.task_id, completed_id)
            else:
                row.blocked_by = join_csv(change.remaining)
                self._add_history(
                    session=session,
                    task_id=change.task_id,
                    action="update_blocked_by",
                    old_value=previous_deps,
                    new_value=row.blocked_by,
                )
            session.add(row)
        return unblocked

    def _touch_session_row(
        self,
        *,
        session: Session,
        session_id: str,
        current_task_id: int | None = None,
    ) -> bool:
        row = session.get(SessionRow, session_id)
        if row is None:
            return False
        row.last_active = to_db_datetime(utc_now())
        if current_task_id is not None:
            row.current_task_id = current_task_id
        session.add(row)
        return True

    def _add_history(  # noqa: PLR0913
        self,
        *,
        session: Session,
        task_id: int,
        action: str,
        agent: str | None = None,
        session_id: str | None = None,
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> None:
        session.add(
            TaskHistoryRow(
                task_id=task_id,
                action=action,
                agent=agent or None,
                session_id=session_id or None,
                old_value=old_value or None,
                new_value=new_value or None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def truncate_artifact_content(content: str, *, max_bytes: int) -> tuple[str, bool]:
    """Cut ``content`` to ``max_bytes`` UTF-8 bytes and append a truncation marker."""

    encoded = content.encode("utf-8")
    if len(encoded) <= max_bytes:
        return content, False
    original_kb = round(len(encoded) / 1024)
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return f"{head}\n\n[TRUNCATED - original was {original_kb} KB]", True


def _priority_rank():  # noqa: ANN202
    return case(
        {priority.value: priority.rank for priority in Priority},
        value=TaskRow.priority,
        else_=len(Priority) + 1,
    )


def _row_id(row: TaskRow) -> int:
    if row.id is None:
        raise RuntimeError("Task row has no id after flush.")
    return row.id


def _clean_items(values: Sequence[object]) -> list[str]:
    return [str(value).strip() for value in values if str(value).strip()]


def _to_column_value(name: str, value: object) -> object:
    if name in {"files_affected", "tests"}:
        return join_csv(_clean_items(value))  # type: ignore[arg-type]
    if name == "blocked_by":
        return join_csv(value)  # type: ignore[arg-type]
    if isinstance(value, Enum):
        return value.value
    if name == "reviews":
        return value or None
    return value


def _history_text(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _to_task_view(row: TaskRow) -> TaskView:
    return TaskView(
        id=_row_id(row),
        title=row.title,
        priority=Priority(row.priority),
        status=TaskStatus(row.status),
        group_name=row.group_name,
        category=row.category,
        description=row.description,
        fix_required=row.fix_required,
        files_affected=split_csv(row.files_affected),
        tests=split_csv(row.tests),
        blocked_by=split_csv_ids(row.blocked_by),
        claimed_by=row.claimed_by,
        claimed_by_session=row.claimed_by_session,
        claimed_at=to_utc_aware_datetime(row.claimed_at) if row.claimed_at is not None else None,
        completed_at=(
            to_utc_aware_datetime(row.completed_at) if row.completed_at is not None else None
        ),
        completed_by=row.completed_by,
        completion_summary=row.completion_summary,
        model=ExecutionTier(row.model) if row.model else None,
        reviews=row.reviews or None,
        parent_task_id=row.parent_task_id,
        iteration=row.iteration,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_task_row(task: TaskView) -> TaskRow:
    return TaskRow(
        id=task.id,
        title=task.title,
        priority=task.priority.value,
        status=task.status.value,
        group_name=task.group_name,
        category=task.category,
        description=task.description,
        fix_required=task.fix_required,
        files_affected=join_csv(task.files_affected),
        tests=join_csv(task.tests),
        blocked_by=join_csv(task.blocked_by),
        claimed_by=task.claimed_by,
        claimed_by_session=task.claimed_by_session,
        claimed_at=to_db_datetime(task.claimed_at) if task.claimed_at is not None else None,
        completed_at=to_db_datetime(task.completed_at) if task.completed_at is not None else None,
        completed_by=task.completed_by,
        completion_summary=task.completion_summary,
        model=task.model.value if task.model is not None else None,
        reviews=task.reviews,
        parent_task_id=task.parent_task_id,
        iteration=task.iteration,
        created_at=to_db_datetime(task.created_at),
        updated_at=to_db_datetime(task.updated_at),
    )


def _to_session_view(row: SessionRow, *, task_count: int = 0) -> SessionView:
    return SessionView(
        session_id=row.session_id,
        agent_type=row.agent_type,
        status=SessionStatus(row.status),
        current_task_id=row.current_task_id,
        started_at=to_utc_aware_datetime(row.started_at),
        last_active=to_utc_aware_datetime(row.last_active),
        task_count=task_count,
    )


def _to_artifact_view(row: TaskArtifactRow, *, with_content: bool) -> ArtifactView:
    return ArtifactView(
        id=row.id or 0,
        task_id=row.task_id,
        artifact_type=row.artifact_type,
        agent=row.agent,
        iteration=row.iteration,
        size_chars=len(row.content or ""),
        created_at=to_utc_aware_datetime(row.created_at),
        content=row.content if with_content else None,
    )
