"""
Durable job queue with atomic leasing.

The store is the only shared mutable state between workers and the trigger
scheduler. Its two write paths are single-transaction operations:

- ``lease`` claims up to N eligible jobs with one
  ``UPDATE ... WHERE job_id IN (SELECT ... FOR UPDATE SKIP LOCKED) RETURNING``
  statement, so concurrent callers never receive the same job.
- ``finish_attempt`` appends the attempt record and moves the job to
  done / queued (with backoff) / failed.

Duplicate enqueues of the same ``(workflow_run_id, step_id)`` are rejected by
a unique constraint and resolve to the existing job.

The session factory must be created with ``expire_on_commit=False``; jobs are
returned detached and read after the transaction closes.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import uuid4

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from orchestrator.config import Settings
from orchestrator.core.datetime_utils import seconds_from, to_naive_utc, utc_now
from orchestrator.core.logging import get_logger
from orchestrator.core.retry import BackoffPolicy
from orchestrator.models.job import Job, JobAttempt, JobStatus
from orchestrator.schemas.jobs import JobCreate

logger = get_logger(__name__)


def leasable(now: datetime) -> ColumnElement[bool]:
    """Rows a worker may claim at ``now``.

    Queued jobs that are due, plus leased jobs whose lease has run out
    without a recorded outcome.
    """
    return and_(
        Job.next_run_at <= now,
        or_(
            and_(
                Job.status == JobStatus.QUEUED,
                or_(Job.lease_until.is_(None), Job.lease_until <= now),
            ),
            and_(Job.status == JobStatus.LEASED, Job.lease_until <= now),
        ),
    )


class JobStore:
    """Queue operations over the ``job_queue`` and ``job_attempts`` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._lease_seconds = settings.lease_seconds
        self._batch_size = settings.batch_size
        self._backoff = backoff or BackoffPolicy.from_settings(settings)

    async def lease(self, now: datetime | None = None, limit: int | None = None) -> list[Job]:
        """
        Atomically claim up to `limit` eligible jobs.

        Args:
            now: Reference time, defaults to the current UTC time
            limit: Maximum number of jobs, defaults to the configured batch size

        Returns:
            Leased jobs ordered by (priority, next_run_at); empty when nothing is due
        """
        now = to_naive_utc(now) if now else utc_now()
        limit = self._batch_size if limit is None else limit
        if limit <= 0:
            return []

        lease_until = seconds_from(now, self._lease_seconds)
        candidates = (
            select(Job.job_id)
            .where(leasable(now))
            .order_by(Job.priority.asc(), Job.next_run_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        stmt = (
            update(Job)
            .where(Job.job_id.in_(candidates), leasable(now))
            .values(status=JobStatus.LEASED, lease_until=lease_until, updated_at=now)
            .returning(Job)
            .execution_options(synchronize_session=False)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            jobs = list(result.scalars().all())
            await session.commit()

        jobs.sort(key=lambda job: (job.priority, job.next_run_at))
        if jobs:
            logger.bind(
                count=len(jobs),
                job_ids=[job.job_id for job in jobs],
                lease_until=lease_until.isoformat(),
            ).info("jobs_leased")
        return jobs

    async def finish_attempt(
        self,
        job_id: str,
        success: bool,
        status_code: int | None,
        error_text: str | None,
        started_at: datetime,
        logs: list | None = None,
        now: datetime | None = None,
    ) -> Job | None:
        """
        Record the outcome of one attempt and move the job on.

        Success finalizes the job as done. Failure increments `attempts`; the
        job is failed once `max_attempts` is reached (or the status code is
        non-retryable), otherwise it is requeued with a backoff delay.

        Returns:
            The updated job, or None when the job is unknown or already
            done/failed (duplicate completions are ignored)
        """
        now = to_naive_utc(now) if now else utc_now()

        async with self._session_factory() as session:
            job = await session.scalar(
                select(Job).where(Job.job_id == job_id).with_for_update()
            )
            if job is None:
                logger.bind(job_id=job_id).warning("finish_attempt_unknown_job")
                return None
            if job.status.is_terminal:
                logger.bind(job_id=job_id, status=job.status.value).info(
                    "finish_attempt_ignored_terminal_job"
                )
                return None

            session.add(
                JobAttempt(
                    attempt_id=str(uuid4()),
                    job_id=job_id,
                    started_at=to_naive_utc(started_at),
                    finished_at=now,
                    success=success,
                    status_code=status_code,
                    error_text=None if success else error_text,
                    logs=list(logs or []),
                )
            )

            job.lease_until = None
            job.updated_at = now
            if success:
                job.status = JobStatus.DONE
            else:
                job.attempts += 1
                payload = job.payload if isinstance(job.payload, dict) else {}
                policy = self._backoff.with_overrides(payload.get("retry"))

                if job.attempts >= job.max_attempts or not policy.is_retryable(status_code):
                    job.status = JobStatus.FAILED
                    logger.bind(
                        job_id=job_id,
                        workflow_run_id=job.workflow_run_id,
                        step_id=job.step_id,
                        attempts=job.attempts,
                        max_attempts=job.max_attempts,
                        status_code=status_code,
                        error=(error_text or "")[:500],
                    ).error("job_failed_terminal")
                else:
                    job.status = JobStatus.QUEUED
                    job.next_run_at = policy.next_run_at(now, job.attempts)
                    logger.bind(
                        job_id=job_id,
                        attempts=job.attempts,
                        next_run_at=job.next_run_at.isoformat(),
                    ).info("job_requeued")

            await session.commit()
            return job

    async def enqueue(self, job: JobCreate) -> str:
        """
        Insert a job, or return the existing one for the same run and step.

        The unique constraint on (workflow_run_id, step_id) makes this safe
        under concurrent enqueues of the same trigger event.
        """
        now = utc_now()
        row = Job(
            job_id=str(uuid4()),
            workflow_run_id=job.workflow_run_id,
            step_id=job.step_id,
            user_id=job.user_id,
            intent_id=job.intent_id,
            payload=job.payload,
            status=JobStatus.QUEUED,
            priority=job.priority,
            attempts=0,
            max_attempts=job.max_attempts,
            next_run_at=to_naive_utc(job.next_run_at) if job.next_run_at else now,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                existing = await session.scalar(
                    select(Job.job_id).where(
                        Job.workflow_run_id == job.workflow_run_id,
                        Job.step_id == job.step_id,
                    )
                )
                if existing is None:
                    raise
                logger.bind(
                    job_id=existing,
                    workflow_run_id=job.workflow_run_id,
                    step_id=job.step_id,
                ).debug("enqueue_duplicate_suppressed")
                return existing

        logger.bind(
            job_id=row.job_id,
            workflow_run_id=row.workflow_run_id,
            step_id=row.step_id,
        ).info("job_enqueued")
        return row.job_id

    async def enqueue_many(self, jobs: Iterable[JobCreate]) -> list[str]:
        return [await self.enqueue(job) for job in jobs]

    async def get_job(self, job_id: str) -> Job | None:
        async with self._session_factory() as session:
            return await session.get(Job, job_id)

    async def list_attempts(self, job_id: str) -> list[JobAttempt]:
        """Attempts of a job, oldest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(JobAttempt)
                .where(JobAttempt.job_id == job_id)
                .order_by(JobAttempt.started_at.asc(), JobAttempt.finished_at.asc())
            )
            return list(result.scalars().all())

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        query = select(Job).order_by(Job.created_at.desc())
        if status is not None:
            query = query.where(Job.status == status)
        query = query.offset(offset).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def counts_by_status(self) -> dict[str, int]:
        """Job counts per status, zero-filled."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job.status, func.count(Job.job_id)).group_by(Job.status)
            )
            counts = {status.value: 0 for status in JobStatus}
            for status, count in result.all():
                counts[JobStatus(status).value] = count
            return counts
