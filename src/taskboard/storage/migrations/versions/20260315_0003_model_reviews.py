"""Add execution tier and review dimensions to tasks.

Both columns stay NULL until pinned explicitly or inferred at claim time.
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20260315_0003"
down_revision = "20260308_0002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("tasks", sa.Column("model", sa.String(), nullable=True))
    op.add_column("tasks", sa.Column("reviews", sa.String(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.drop_column("reviews")
        batch_op.drop_column("model")
