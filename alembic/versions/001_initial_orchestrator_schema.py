"""Initial orchestrator schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # Create enum with conditional check (Postgres doesn't support IF NOT EXISTS for TYPE)
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE jobstatus AS ENUM ('queued', 'leased', 'done', 'failed');
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
    """)

    job_status_enum = postgresql.ENUM(
        "queued",
        "leased",
        "done",
        "failed",
        name="jobstatus",
        create_type=False,
    )

    op.create_table(
        "job_queue",
        sa.Column("job_id", sa.String(36), nullable=False),
        sa.Column("workflow_run_id", sa.String(100), nullable=False),
        sa.Column("step_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("intent_id", sa.String(100), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", job_status_enum, nullable=False, server_default="queued"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("lease_until", sa.DateTime(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("next_run_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("job_id"),
        sa.UniqueConstraint("workflow_run_id", "step_id", name="uq_job_queue_run_step"),
    )
    op.create_index("ix_job_queue_user_id", "job_queue", ["user_id"])
    op.create_index("ix_job_queue_leasable", "job_queue", ["status", "next_run_at"])

    op.create_table(
        "job_attempts",
        sa.Column("attempt_id", sa.String(36), nullable=False),
        sa.Column("job_id", sa.String(36), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("error_text", sa.Text(), nullable=True),
        sa.Column("logs", sa.JSON(), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["job_queue.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("attempt_id"),
    )
    op.create_index("ix_job_attempts_job_id", "job_attempts", ["job_id"])

    op.create_table(
        "learning_intents",
        sa.Column("intent_id", sa.String(36), nullable=False),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="in_progress"),
        sa.Column("topic", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("intent_id"),
    )
    op.create_index("ix_learning_intents_user_id", "learning_intents", ["user_id"])
    op.create_index("ix_learning_intents_status", "learning_intents", ["status"])

    op.create_table(
        "schedule_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("schedule_id", sa.String(100), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=False),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_schedule_runs_schedule_id", "schedule_runs", ["schedule_id"])
    op.create_index("ix_schedule_runs_scheduled_at", "schedule_runs", ["scheduled_at"])


def downgrade() -> None:
    op.drop_index("ix_schedule_runs_scheduled_at", table_name="schedule_runs")
    op.drop_index("ix_schedule_runs_schedule_id", table_name="schedule_runs")
    op.drop_table("schedule_runs")
    op.drop_index("ix_learning_intents_status", table_name="learning_intents")
    op.drop_index("ix_learning_intents_user_id", table_name="learning_intents")
    op.drop_table("learning_intents")
    op.drop_index("ix_job_attempts_job_id", table_name="job_attempts")
    op.drop_table("job_attempts")
    op.drop_index("ix_job_queue_leasable", table_name="job_queue")
    op.drop_index("ix_job_queue_user_id", table_name="job_queue")
    op.drop_table("job_queue")
    op.execute("DROP TYPE IF EXISTS jobstatus")
