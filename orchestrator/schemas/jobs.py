"""Pydantic schemas for jobs, worker cycles and trigger runs."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from orchestrator.models.job import DEFAULT_MAX_ATTEMPTS, DEFAULT_PRIORITY, JobStatus


class JobPayload(BaseModel):
    """What a job asks the worker to call. Written by the dispatch collaborator."""

    model_config = ConfigDict(extra="allow")

    call_path: str | None = None
    method: str = "POST"
    body: Any = None
    headers: dict[str, str] | None = None
    timeout_ms: int | None = Field(default=None, gt=0)
    retry: dict[str, Any] | None = None


class JobCreate(BaseModel):
    """Request body for enqueueing a materialized workflow step."""

    workflow_run_id: str = Field(min_length=1, max_length=100)
    step_id: str = Field(min_length=1, max_length=100)
    user_id: str = Field(min_length=1, max_length=100)
    intent_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    next_run_at: datetime | None = None


class EnqueueResponse(BaseModel):
    job_id: str


class JobResponse(BaseModel):
    """Response model for a queued job."""

    model_config = ConfigDict(from_attributes=True)

    job_id: str
    workflow_run_id: str
    step_id: str
    user_id: str
    intent_id: str | None
    payload: dict[str, Any]
    status: JobStatus
    priority: int
    lease_until: datetime | None
    attempts: int
    max_attempts: int
    next_run_at: datetime
    created_at: datetime
    updated_at: datetime


class JobAttemptResponse(BaseModel):
    """Response model for a recorded attempt."""

    model_config = ConfigDict(from_attributes=True)

    attempt_id: str
    job_id: str
    started_at: datetime
    finished_at: datetime
    success: bool
    status_code: int | None
    error_text: str | None
    logs: list[Any]


class JobDetailResponse(JobResponse):
    job_attempts: list[JobAttemptResponse] = Field(default_factory=list)


class JobStatsResponse(BaseModel):
    """Job counts per status. Non-zero `failed` needs an operator."""

    counts: dict[str, int]
    total: int


class WorkerJobResult(BaseModel):
    """Outcome of one job within a worker cycle."""

    job_id: str
    step_id: str
    ok: bool
    status: int
    response: Any = None
    error: str | None = None


class WorkerSummary(BaseModel):
    """Result of one worker activation."""

    leased: int
    results: list[WorkerJobResult] = Field(default_factory=list)
    timestamp: str
    message: str | None = None


class TriggerResult(BaseModel):
    """Outcome of dispatching one workflow for one user."""

    workflow: str
    user_id: str
    success: bool
    result: Any = None
    error: str | None = None


class TriggerSummary(BaseModel):
    """Result of one trigger scheduler invocation."""

    timestamp: str
    workflows_triggered: int
    total_users: int
    results: list[TriggerResult] = Field(default_factory=list)
