"""Job queue API endpoints."""

from fastapi import APIRouter, HTTPException, Query, status

from orchestrator.dependencies import JobStoreDep
from orchestrator.models.job import JobStatus
from orchestrator.schemas.jobs import (
    EnqueueResponse,
    JobAttemptResponse,
    JobCreate,
    JobDetailResponse,
    JobResponse,
    JobStatsResponse,
)

router = APIRouter()


@router.post("/jobs", response_model=EnqueueResponse, status_code=status.HTTP_201_CREATED)
async def enqueue_job(job: JobCreate, store: JobStoreDep) -> EnqueueResponse:
    """
    Enqueue a materialized workflow step.

    Enqueueing the same (workflow_run_id, step_id) twice returns the
    existing job id.
    """
    job_id = await store.enqueue(job)
    return EnqueueResponse(job_id=job_id)


@router.get("/jobs", response_model=list[JobResponse])
async def list_jobs(
    store: JobStoreDep,
    job_status: JobStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[JobResponse]:
    """List jobs, newest first, optionally filtered by status."""
    jobs = await store.list_jobs(status=job_status, limit=limit, offset=offset)
    return [JobResponse.model_validate(job) for job in jobs]


@router.get("/jobs/stats", response_model=JobStatsResponse)
async def job_stats(store: JobStoreDep) -> JobStatsResponse:
    """Job counts per status."""
    counts = await store.counts_by_status()
    return JobStatsResponse(counts=counts, total=sum(counts.values()))


@router.get("/jobs/{job_id}", response_model=JobDetailResponse)
async def get_job(job_id: str, store: JobStoreDep) -> JobDetailResponse:
    """Get a job with its attempt history."""
    job = await store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    attempts = await store.list_attempts(job_id)
    detail = JobDetailResponse.model_validate(job)
    detail.job_attempts = [JobAttemptResponse.model_validate(a) for a in attempts]
    return detail
