"""Scope task claims to agent sessions."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20260308_0002"
down_revision = "20260301_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("tasks", sa.Column("claimed_by_session", sa.String(), nullable=True))
    op.create_index("idx_tasks_session", "tasks", ["claimed_by_session"])
    op.add_column("task_history", sa.Column("session_id", sa.String(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("task_history") as batch_op:
        batch_op.drop_column("session_id")
    op.drop_index("idx_tasks_session", table_name="tasks")
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.drop_column("claimed_by_session")
