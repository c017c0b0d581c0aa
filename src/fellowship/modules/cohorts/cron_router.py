"""
Cohorts Cron Router

- POST /cron/cohorts/reconcile - Reconcile every institution's cohorts

Called by an external scheduler with the shared cron secret in
``X-Cron-Secret`` or ``Authorization: Bearer``.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import verify_cron_secret
from fellowship.core.database import get_db
from fellowship.modules.cohorts import service
from fellowship.modules.cohorts.schemas import CronReconcileResponse
from fellowship.modules.shared import internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/cohorts/reconcile",
    response_model=CronReconcileResponse,
    summary="Reconcile All Cohorts",
    responses={401: {"description": "Missing or invalid cron secret"}},
    dependencies=[Depends(verify_cron_secret)],
)
async def reconcile_all_cohorts(db: AsyncSession = Depends(get_db)) -> CronReconcileResponse:
    try:
        result = await service.reconcile_all(db)
    except Exception as e:
        logger.exception(f"Cron cohort reconciliation failed: {e}")
        raise internal_error() from e

    return CronReconcileResponse(**result)
