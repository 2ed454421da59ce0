from orchestrator.schemas.jobs import (
    EnqueueResponse,
    JobAttemptResponse,
    JobCreate,
    JobDetailResponse,
    JobPayload,
    JobResponse,
    JobStatsResponse,
    TriggerResult,
    TriggerSummary,
    WorkerJobResult,
    WorkerSummary,
)

__all__ = [
    "EnqueueResponse",
    "JobAttemptResponse",
    "JobCreate",
    "JobDetailResponse",
    "JobPayload",
    "JobResponse",
    "JobStatsResponse",
    "TriggerResult",
    "TriggerSummary",
    "WorkerJobResult",
    "WorkerSummary",
]
