"""Task artifacts, iteration tracking and review feedback."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20260322_0004"
down_revision = "20260315_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("iteration", sa.Integer(), nullable=False, server_default="1"),
    )
    op.add_column("tasks", sa.Column("parent_task_id", sa.Integer(), nullable=True))

    op.create_table(
        "task_artifacts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("artifact_type", sa.String(), nullable=False),
        sa.Column("agent", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("iteration", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_artifacts_task", "task_artifacts", ["task_id", "artifact_type"])

    op.create_table(
        "review_feedback",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("dimension", sa.String(), nullable=False),
        sa.Column("checklist_item", sa.String(), nullable=False),
        sa.Column("result", sa.String(), nullable=True),
        sa.Column("was_useful", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_review_feedback_dimension_item",
        "review_feedback",
        ["dimension", "checklist_item"],
    )


def downgrade() -> None:
    op.drop_index("idx_review_feedback_dimension_item", table_name="review_feedback")
    op.drop_table("review_feedback")
    op.drop_index("idx_artifacts_task", table_name="task_artifacts")
    op.drop_table("task_artifacts")
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.drop_column("parent_task_id")
        batch_op.drop_column("iteration")
