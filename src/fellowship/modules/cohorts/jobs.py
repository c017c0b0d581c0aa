"""
Cohort Background Jobs

Periodic cohort status reconciliation across every institution.

Design Principles:
- The job is idempotent (a run with nothing to advance is a no-op)
- The job opens its own database session
- Failures are logged with full detail and reported in the result dict

The same pass is exposed through the cron endpoint and can be triggered
manually through the scheduler debug endpoints.
"""

import logging
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger

from fellowship.core.config import settings
from fellowship.core.database import Database
from fellowship.core.scheduler import JobScheduler
from fellowship.modules.cohorts import service

logger = logging.getLogger(__name__)

JOB_ID_RECONCILE_STATUSES = "cohorts_reconcile_statuses"


async def reconcile_cohort_statuses(database: Database) -> dict[str, Any]:
    """
    Advance cohort statuses for all institutions.

    Returns:
        Dict with activated, deactivated and institutions, or an error entry
    """
    logger.info("Starting cohort status reconciliation job")

    try:
        async with database.session() as db:
            result = await service.reconcile_all(db)
    except Exception as e:
        logger.error(f"Cohort reconciliation job failed: {e}", exc_info=True)
        return {"activated": 0, "deactivated": 0, "institutions": 0, "error": str(e)}

    logger.info(
        f"Cohort reconciliation job completed. "
        f"Activated: {result['activated']}, Completed: {result['deactivated']}"
    )
    return result


def register_cohort_jobs(scheduler: JobScheduler, database: Database) -> None:
    """
    Register cohort background jobs with the scheduler.

    Call during application startup, before the scheduler is started.
    """
    interval = settings.cohort_reconcile_interval_minutes

    async def _run() -> dict[str, Any]:
        return await reconcile_cohort_statuses(database)

    scheduler.register_job(
        job_id=JOB_ID_RECONCILE_STATUSES,
        func=_run,
        trigger=IntervalTrigger(minutes=interval),
    )
    logger.info(f"Registered job: {JOB_ID_RECONCILE_STATUSES} (interval: {interval} minutes)")
