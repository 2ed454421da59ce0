from orchestrator.models.base import Base
from orchestrator.models.job import Job, JobAttempt, JobStatus
from orchestrator.models.learning_intent import LearningIntent
from orchestrator.models.schedule_run import ScheduleRun

__all__ = [
    "Base",
    "Job",
    "JobAttempt",
    "JobStatus",
    "LearningIntent",
    "ScheduleRun",
]
