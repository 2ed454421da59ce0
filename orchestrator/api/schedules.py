"""In-process schedule monitoring endpoints."""

from datetime import datetime

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sqlalchemy import select

from orchestrator.core.scheduler import get_schedules
from orchestrator.dependencies import DBSession
from orchestrator.models.schedule_run import ScheduleRun

router = APIRouter()


class ScheduleResponse(BaseModel):
    """Response model for a registered schedule."""

    id: str
    task_id: str
    trigger: str
    next_fire_time: str | None
    last_fire_time: str | None


class ScheduleRunResponse(BaseModel):
    """Response model for a schedule run."""

    id: str
    schedule_id: str
    scheduled_at: datetime
    started_at: datetime
    finished_at: datetime
    duration_seconds: float
    outcome: str
    error: str | None


@router.get("/schedules", response_model=list[ScheduleResponse])
async def list_schedules() -> list[ScheduleResponse]:
    """
    List registered schedules.

    Empty when the in-process scheduler is disabled.
    """
    schedules = await get_schedules()
    return [ScheduleResponse(**s) for s in schedules]


@router.get("/schedules/runs", response_model=list[ScheduleRunResponse])
async def list_schedule_runs(
    db: DBSession,
    schedule_id: str | None = Query(default=None, description="Filter by schedule ID"),
    limit: int = Query(default=50, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ScheduleRunResponse]:
    """List schedule execution history, newest first."""
    query = select(ScheduleRun).order_by(ScheduleRun.scheduled_at.desc())

    if schedule_id:
        query = query.where(ScheduleRun.schedule_id == schedule_id)

    query = query.offset(offset).limit(limit)
    result = await db.execute(query)
    runs = result.scalars().all()

    return [
        ScheduleRunResponse(
            id=run.id,
            schedule_id=run.schedule_id,
            scheduled_at=run.scheduled_at,
            started_at=run.started_at,
            finished_at=run.finished_at,
            duration_seconds=(run.finished_at - run.started_at).total_seconds(),
            outcome=run.outcome,
            error=run.error,
        )
        for run in runs
    ]
