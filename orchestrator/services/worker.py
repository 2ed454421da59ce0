"""
Worker cycle: lease due jobs, call their endpoints, record the outcomes.

A cycle is driven from outside (schedule, CLI, HTTP entry point) and never
loops on its own. Jobs in a batch run concurrently; one job's failure is
recorded on that job and never aborts the others. Failures of the Job Store
itself propagate to the caller once the batch has settled.
"""

import asyncio
import json
from datetime import datetime

from orchestrator.config import Settings
from orchestrator.core.datetime_utils import isoformat_z, utc_now
from orchestrator.core.logging import get_logger
from orchestrator.models.job import Job
from orchestrator.schemas.jobs import JobPayload, WorkerJobResult, WorkerSummary
from orchestrator.services.http_dispatcher import HttpDispatcher, is_success
from orchestrator.services.job_store import JobStore

logger = get_logger(__name__)

# Status recorded for attempts that never produced an HTTP response
SYNTHETIC_FAILURE_STATUS = 599


class MalformedPayloadError(ValueError):
    """Job payload cannot be dispatched."""


class Worker:
    """Drains leasable jobs through the HTTP dispatcher."""

    def __init__(self, store: JobStore, dispatcher: HttpDispatcher, settings: Settings) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._batch_size = settings.batch_size
        self._timeout_ms = settings.dispatch_timeout_ms

    async def run_once(self, now: datetime | None = None) -> WorkerSummary:
        """Lease one batch and drive every job in it to a recorded attempt."""
        jobs = await self._store.lease(now, self._batch_size)
        if not jobs:
            logger.debug("worker_no_jobs_available")
            return WorkerSummary(
                leased=0, timestamp=isoformat_z(utc_now()), message="No jobs available"
            )

        outcomes = await asyncio.gather(
            *(self._process(job) for job in jobs), return_exceptions=True
        )

        results: list[WorkerJobResult] = []
        store_errors: list[Exception] = []
        for job, outcome in zip(jobs, outcomes, strict=True):
            if isinstance(outcome, WorkerJobResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                logger.bind(job_id=job.job_id, error=str(outcome)).error("worker_record_failed")
                store_errors.append(outcome)
            else:
                raise outcome

        if store_errors:
            raise store_errors[0]

        succeeded = sum(1 for r in results if r.ok)
        logger.bind(
            leased=len(jobs), succeeded=succeeded, failed=len(results) - succeeded
        ).info("worker_cycle_completed")
        return WorkerSummary(leased=len(jobs), results=results, timestamp=isoformat_z(utc_now()))

    async def _process(self, job: Job) -> WorkerJobResult:
        started_at = utc_now()
        logs: list[str] = []

        try:
            result, error_text = await self._dispatch(job, logs)
        except Exception as e:  # noqa: BLE001
            error = str(e) or type(e).__name__
            logs.append(f"error: {error}")
            logger.bind(job_id=job.job_id, step_id=job.step_id, error=error).warning(
                "job_attempt_errored"
            )
            await self._store.finish_attempt(
                job.job_id, False, SYNTHETIC_FAILURE_STATUS, error, started_at, logs
            )
            return WorkerJobResult(
                job_id=job.job_id,
                step_id=job.step_id,
                ok=False,
                status=SYNTHETIC_FAILURE_STATUS,
                error=error,
            )

        await self._store.finish_attempt(
            job.job_id, result.ok, result.status, error_text, started_at, logs
        )
        return result

    async def _dispatch(self, job: Job, logs: list[str]) -> tuple[WorkerJobResult, str | None]:
        payload = JobPayload.model_validate(job.payload or {})
        if not payload.call_path:
            raise MalformedPayloadError("Missing call_path in job payload")

        method = payload.method.upper()
        logs.append(f"{method} {payload.call_path} key={job.idempotency_key}")

        response = await self._dispatcher.call(
            payload.call_path,
            method=method,
            headers=payload.headers,
            body=payload.body,
            timeout_ms=payload.timeout_ms or self._timeout_ms,
            idempotency_key=job.idempotency_key,
        )
        ok = is_success(response)
        logs.append(f"status {response.status}")

        bound = logger.bind(job_id=job.job_id, step_id=job.step_id, status=response.status)
        if ok:
            bound.info("job_attempt_succeeded")
        else:
            bound.warning("job_attempt_failed")

        error_text = None if ok else json.dumps(response.body, default=str)
        result = WorkerJobResult(
            job_id=job.job_id,
            step_id=job.step_id,
            ok=ok,
            status=response.status,
            response=response.body,
        )
        return result, error_text
