"""
APScheduler integration for FastAPI.

Runs the orchestration entry points in-process when no external scheduler
drives them.

Schedules:
- Worker tick: leases and executes due jobs every WORKER_INTERVAL_SECONDS
- Cron trigger: evaluates time-driven workflows at the top of every hour

Overlapping worker ticks are safe: the job store's lease keeps them apart.
"""

from datetime import datetime
from typing import Any

from apscheduler import AsyncScheduler, ConflictPolicy, JobOutcome, JobReleased
from apscheduler.datastores.memory import MemoryDataStore
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from orchestrator.config import get_settings
from orchestrator.core.database import AsyncSessionLocal
from orchestrator.core.datetime_utils import to_naive_utc, utc_now
from orchestrator.core.logging import get_logger

logger = get_logger(__name__)

WORKER_SCHEDULE_ID = "worker_tick"
CRON_SCHEDULE_ID = "cron_trigger"

# Global scheduler instance
scheduler: AsyncScheduler | None = None


async def worker_tick_job() -> None:
    """Run one worker cycle."""
    from orchestrator.jobs.worker import main as run_worker

    await run_worker()


async def cron_trigger_job() -> None:
    """Evaluate trigger rules for the current hour."""
    from orchestrator.jobs.cron import main as run_cron

    logger.info("scheduled_cron_trigger_started")
    await run_cron()


async def _record_schedule_run(
    schedule_id: str,
    scheduled_at: datetime,
    started_at: datetime,
    outcome: JobOutcome,
    error: str | None = None,
) -> None:
    """Record schedule execution result to database."""
    from orchestrator.models.schedule_run import ScheduleRun

    async with AsyncSessionLocal() as db:
        db.add(
            ScheduleRun(
                schedule_id=schedule_id,
                scheduled_at=to_naive_utc(scheduled_at),
                started_at=to_naive_utc(started_at),
                finished_at=utc_now(),
                outcome=outcome.name,
                error=error,
            )
        )
        await db.commit()


def _release_error(event: JobReleased) -> str | None:
    """`ExceptionType: message` for failed jobs, None otherwise."""
    if event.outcome != JobOutcome.error:
        return None
    parts = [p for p in (event.exception_type, event.exception_message) if p]
    return ": ".join(parts) or "unknown error"


async def _on_job_released(event: Any) -> None:
    """Handle job completion events."""
    if isinstance(event, JobReleased):
        try:
            await _record_schedule_run(
                schedule_id=event.schedule_id or "unknown",
                scheduled_at=event.scheduled_start or event.timestamp,
                started_at=event.started_at or event.timestamp,
                outcome=event.outcome,
                error=_release_error(event),
            )
        except Exception as e:
            logger.bind(error=str(e)).error("failed_to_record_schedule_run")


async def start_scheduler() -> AsyncScheduler | None:
    """Initialize and start the in-process scheduler."""
    global scheduler

    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return None

    # Schedules live in memory; job state lives in the job store
    scheduler = AsyncScheduler(data_store=MemoryDataStore())

    # APScheduler 4.x must be entered before schedules can be added
    await scheduler.__aenter__()

    scheduler.subscribe(_on_job_released)

    await scheduler.add_schedule(
        worker_tick_job,
        IntervalTrigger(seconds=settings.worker_interval_seconds),
        id=WORKER_SCHEDULE_ID,
        conflict_policy=ConflictPolicy.replace,
    )

    await scheduler.add_schedule(
        cron_trigger_job,
        CronTrigger(minute=0),
        id=CRON_SCHEDULE_ID,
        conflict_policy=ConflictPolicy.replace,
    )

    await scheduler.start_in_background()

    logger.bind(
        schedules=[WORKER_SCHEDULE_ID, CRON_SCHEDULE_ID],
        worker_interval_seconds=settings.worker_interval_seconds,
    ).info("scheduler_started")

    return scheduler


async def stop_scheduler() -> None:
    """Gracefully stop the scheduler."""
    global scheduler
    if scheduler:
        await scheduler.__aexit__(None, None, None)
        logger.info("scheduler_stopped")
        scheduler = None


async def get_schedules() -> list[dict[str, Any]]:
    """Get all registered schedules."""
    if not scheduler:
        return []

    schedules = await scheduler.get_schedules()
    return [
        {
            "id": s.id,
            "task_id": s.task_id,
            "trigger": str(s.trigger),
            "next_fire_time": s.next_fire_time.isoformat() if s.next_fire_time else None,
            "last_fire_time": s.last_fire_time.isoformat() if s.last_fire_time else None,
        }
        for s in schedules
    ]
