"""task_subtasks_time_logs

Subtasks and time logs on tasks, hour totals, comment edit stamps.

Revision ID: 0002b5e6f7a8
Revises: 0001a1b2c3d4
Create Date: 2026-10-17 15:30:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0002b5e6f7a8"
down_revision = "0001a1b2c3d4"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.add_column(sa.Column("estimated_hours", sa.Float(), nullable=True))
        batch_op.add_column(
            sa.Column("total_hours", sa.Float(), nullable=False, server_default="0")
        )

    with op.batch_alter_table("task_comments") as batch_op:
        batch_op.add_column(sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column("edited_by", sa.Integer(), nullable=True))

    op.create_table(
        "task_subtasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("assignee_id", sa.Integer(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_by_type", sa.String(length=10), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_subtasks_task_id", "task_subtasks", ["task_id"])

    op.create_table(
        "task_time_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("hours", sa.Float(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("log_date", sa.Date(), nullable=False),
        sa.Column("logged_by", sa.Integer(), nullable=False),
        sa.Column("logged_by_type", sa.String(length=10), nullable=False),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_time_logs_task_id", "task_time_logs", ["task_id"])


def downgrade():
    op.drop_table("task_time_logs")
    op.drop_table("task_subtasks")

    with op.batch_alter_table("task_comments") as batch_op:
        batch_op.drop_column("edited_by")
        batch_op.drop_column("edited_at")

    with op.batch_alter_table("tasks") as batch_op:
        batch_op.drop_column("total_hours")
        batch_op.drop_column("estimated_hours")
