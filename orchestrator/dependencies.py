import hmac
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from orchestrator.config import Settings, get_settings
from orchestrator.core.database import get_db
from orchestrator.services.factory import build_job_store, build_trigger_scheduler, build_worker
from orchestrator.services.job_store import JobStore
from orchestrator.services.trigger_scheduler import TriggerScheduler
from orchestrator.services.worker import Worker

# Type aliases for dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def require_service_token(
    settings: AppSettings,
    authorization: str | None = Header(default=None),
) -> None:
    """Require `Authorization: Bearer <orchestrator_api_token>` when a token is configured."""
    expected = settings.orchestrator_api_token
    if not expected:
        return

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not hmac.compare_digest(token.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_job_store(settings: AppSettings) -> JobStore:
    return build_job_store(settings)


def get_worker(settings: AppSettings) -> Worker:
    return build_worker(settings)


def get_trigger_scheduler(settings: AppSettings) -> TriggerScheduler:
    return build_trigger_scheduler(settings)


JobStoreDep = Annotated[JobStore, Depends(get_job_store)]
WorkerDep = Annotated[Worker, Depends(get_worker)]
TriggerSchedulerDep = Annotated[TriggerScheduler, Depends(get_trigger_scheduler)]
