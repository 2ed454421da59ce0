from fastapi import APIRouter, Depends

from orchestrator.api.jobs import router as jobs_router
from orchestrator.api.orchestrator import router as orchestrator_router
from orchestrator.api.schedules import router as schedules_router
from orchestrator.dependencies import require_service_token

api_router = APIRouter(dependencies=[Depends(require_service_token)])

# API routes at /api/*
api_router.include_router(orchestrator_router, prefix="/api", tags=["orchestrator"])
api_router.include_router(jobs_router, prefix="/api", tags=["jobs"])
api_router.include_router(schedules_router, prefix="/api", tags=["schedules"])
