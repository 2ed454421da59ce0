"""Entry points for externally scheduled worker and cron invocations."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from orchestrator.core.logging import get_logger
from orchestrator.dependencies import TriggerSchedulerDep, WorkerDep
from orchestrator.schemas.jobs import TriggerSummary, WorkerSummary

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/orchestrator/worker",
    response_model=WorkerSummary,
    response_model_exclude_none=True,
)
async def run_worker(worker: WorkerDep) -> WorkerSummary | JSONResponse:
    """
    Run one worker cycle.

    Leases up to one batch of due jobs, executes them and returns a per-job
    summary. Per-job failures are part of the summary; a 500 means the cycle
    itself failed (e.g. the job store is unreachable).
    """
    try:
        return await worker.run_once()
    except Exception as e:
        logger.bind(error=str(e)).error("worker_endpoint_failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal worker error", "details": str(e)},
        )


@router.post(
    "/orchestrator/cron",
    response_model=TriggerSummary,
    response_model_exclude_none=True,
)
async def run_cron(scheduler: TriggerSchedulerDep) -> TriggerSummary | JSONResponse:
    """
    Evaluate time-driven triggers for the current hour.

    Intended to be called at most once per hour by an external schedule.
    """
    try:
        return await scheduler.run()
    except Exception as e:
        logger.bind(error=str(e)).error("cron_endpoint_failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal cron error", "details": str(e)},
        )
