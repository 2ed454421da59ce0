"""Wiring of the orchestration components from settings."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orchestrator.config import AppConfig, Settings, get_config
from orchestrator.services.http_dispatcher import HttpDispatcher
from orchestrator.services.job_store import JobStore
from orchestrator.services.trigger_scheduler import (
    HttpWorkflowDispatcher,
    LearningIntentEligibility,
    TriggerScheduler,
    rules_from_config,
)
from orchestrator.services.worker import Worker


def _default_session_factory() -> async_sessionmaker[AsyncSession]:
    from orchestrator.core.database import AsyncSessionLocal

    return AsyncSessionLocal


def build_job_store(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession] | None = None
) -> JobStore:
    return JobStore(session_factory or _default_session_factory(), settings)


def build_worker(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession] | None = None
) -> Worker:
    return Worker(build_job_store(settings, session_factory), HttpDispatcher(settings), settings)


def build_trigger_scheduler(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    config: AppConfig | None = None,
) -> TriggerScheduler:
    config = config or get_config()
    return TriggerScheduler(
        LearningIntentEligibility(session_factory or _default_session_factory()),
        HttpWorkflowDispatcher(settings),
        rules=rules_from_config(config),
    )
