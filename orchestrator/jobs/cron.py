"""
Cron trigger job: start time-driven workflows for eligible users.

Run with: python -m orchestrator.jobs.cron

Meant to run at the top of every hour. Matching rules (e.g. weekly_seed_v1
on Sunday 18:00 UTC) are dispatched once per in-progress learner.
"""

import asyncio

from orchestrator.config import get_settings
from orchestrator.core.logging import get_logger, setup_logging
from orchestrator.schemas.jobs import TriggerSummary
from orchestrator.services.factory import build_trigger_scheduler

logger = get_logger(__name__)


async def main() -> TriggerSummary:
    """Run the trigger scheduler once."""
    scheduler = build_trigger_scheduler(get_settings())
    try:
        summary = await scheduler.run()
    except Exception as e:
        logger.bind(error=str(e)).error("cron_job_failed")
        raise
    logger.bind(
        workflows_triggered=summary.workflows_triggered,
        total_users=summary.total_users,
    ).info("cron_job_completed")
    return summary


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
