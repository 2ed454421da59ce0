"""Job queue and attempt history models."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Enum, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orchestrator.core.datetime_utils import utc_now
from orchestrator.models.base import Base

DEFAULT_PRIORITY = 100
DEFAULT_MAX_ATTEMPTS = 5


class JobStatus(str, enum.Enum):
    """Lifecycle states of a queued job."""

    QUEUED = "queued"
    LEASED = "leased"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


class Job(Base):
    """One step of a workflow run, waiting to be executed against its endpoint."""

    __tablename__ = "job_queue"
    __table_args__ = (
        UniqueConstraint("workflow_run_id", "step_id", name="uq_job_queue_run_step"),
        Index("ix_job_queue_leasable", "status", "next_run_at"),
    )

    job_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    workflow_run_id: Mapped[str] = mapped_column(String(100))
    step_id: Mapped[str] = mapped_column(String(100))
    user_id: Mapped[str] = mapped_column(String(100), index=True)
    intent_id: Mapped[str | None] = mapped_column(String(100))
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            values_callable=lambda e: [x.value for x in e],
            name="jobstatus",
        ),
        default=JobStatus.QUEUED,
    )
    priority: Mapped[int] = mapped_column(default=DEFAULT_PRIORITY)
    lease_until: Mapped[datetime | None]
    attempts: Mapped[int] = mapped_column(default=0)
    max_attempts: Mapped[int] = mapped_column(default=DEFAULT_MAX_ATTEMPTS)
    next_run_at: Mapped[datetime] = mapped_column(default=utc_now)
    created_at: Mapped[datetime] = mapped_column(default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(default=utc_now, onupdate=utc_now)

    @property
    def idempotency_key(self) -> str:
        """Stable key presented to the downstream endpoint on every attempt of this step."""
        return f"{self.workflow_run_id}-{self.step_id}"

    def __repr__(self) -> str:
        return f"<Job {self.job_id} {self.workflow_run_id}/{self.step_id} {self.status.value}>"


class JobAttempt(Base):
    """Immutable record of one execution try of a job."""

    __tablename__ = "job_attempts"

    attempt_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    job_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("job_queue.job_id", ondelete="CASCADE"), index=True
    )
    started_at: Mapped[datetime]
    finished_at: Mapped[datetime]
    success: Mapped[bool]
    status_code: Mapped[int | None]
    error_text: Mapped[str | None] = mapped_column(Text)
    logs: Mapped[list] = mapped_column(JSON, default=list)

    def __repr__(self) -> str:
        outcome = "ok" if self.success else "failed"
        return f"<JobAttempt {self.job_id} {outcome} {self.status_code}>"
