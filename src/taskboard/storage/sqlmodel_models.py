"""SQLModel ORM tables for task board storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Text
from sqlmodel import Field, SQLModel


class TaskRow(SQLModel, table=True):
    __tablename__ = "tasks"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint(
            "priority IN ('CRITICAL', 'HIGH', 'MEDIUM', 'LOW')",
            name="ck_tasks_priority",
        ),
        CheckConstraint(
            "status IN ('ready', 'in_progress', 'blocked', 'completed')",
            name="ck_tasks_status",
        ),
        Index("idx_tasks_status_priority", "status", "priority"),
        Index("idx_tasks_session", "claimed_by_session"),
    )

    id: int | None = Field(default=None, primary_key=True)
    title: str
    priority: str = "MEDIUM"
    status: str = "ready"
    group_name: str | None = Field(default=None, index=True)
    category: str | None = None
    description: str | None = Field(default=None, sa_column=Column(Text))
    fix_required: str | None = Field(default=None, sa_column=Column(Text))
    files_affected: str | None = Field(default=None, sa_column=Column(Text))
    tests: str | None = Field(default=None, sa_column=Column(Text))
    blocked_by: str | None = None
    claimed_by: str | None = Field(default=None, index=True)
    claimed_by_session: str | None = None
    claimed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_by: str | None = None
    completion_summary: str | None = Field(default=None, sa_column=Column(Text))
    model: str | None = None
    reviews: str | None = None
    parent_task_id: int | None = None
    iteration: int = Field(
        default=1,
        sa_column=Column(Integer, nullable=False, server_default="1"),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskHistoryRow(SQLModel, table=True):
    __tablename__ = "task_history"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_task_history_task_time", "task_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(sa_column=Column(ForeignKey("tasks.id"), nullable=False))
    action: str
    agent: str | None = Field(default=None, index=True)
    session_id: str | None = None
    old_value: str | None = Field(default=None, sa_column=Column(Text))
    new_value: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class SessionRow(SQLModel, table=True):
    __tablename__ = "sessions"  # type: ignore[bad-override]
    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'completed', 'stale')",
            name="ck_sessions_status",
        ),
    )

    session_id: str = Field(primary_key=True)
    agent_type: str = "primary"
    status: str = Field(default="active", index=True)
    current_task_id: int | None = None
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    last_active: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class TaskArtifactRow(SQLModel, table=True):
    __tablename__ = "task_artifacts"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_artifacts_task", "task_id", "artifact_type"),)

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(sa_column=Column(ForeignKey("tasks.id"), nullable=False))
    artifact_type: str
    agent: str | None = None
    content: str | None = Field(default=None, sa_column=Column(Text))
    iteration: int = Field(
        default=1,
        sa_column=Column(Integer, nullable=False, server_default="1"),
    )
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class ReviewFeedbackRow(SQLModel, table=True):
    __tablename__ = "review_feedback"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_review_feedback_dimension_item", "dimension", "checklist_item"),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: int
    dimension: str
    checklist_item: str
    result: str | None = None
    was_useful: bool
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
