"""
Worker job: lease one batch of due jobs and execute it.

Run with: python -m orchestrator.jobs.worker

This job:
1. Leases up to BATCH_SIZE due jobs from the job queue
2. Calls each job's endpoint with its idempotency key
3. Records the attempt and requeues, completes or fails each job
"""

import asyncio

from orchestrator.config import get_settings
from orchestrator.core.logging import get_logger, setup_logging
from orchestrator.schemas.jobs import WorkerSummary
from orchestrator.services.factory import build_worker

logger = get_logger(__name__)


async def main() -> WorkerSummary:
    """Run one worker cycle."""
    worker = build_worker(get_settings())
    try:
        summary = await worker.run_once()
    except Exception as e:
        logger.bind(error=str(e)).error("worker_job_failed")
        raise
    logger.bind(leased=summary.leased).info("worker_job_completed")
    return summary


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
