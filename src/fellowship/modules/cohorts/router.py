"""
Cohorts Router

Endpoints for institution admins to manage their cohorts.

Endpoints:
- POST /cohorts - Create a cohort
- GET /cohorts - List cohorts with fellow counts
- GET /cohorts/{id} - Cohort details with fellow ids
- POST /cohorts/{id}/fix-folder - Create a missing Drive folder
- POST /cohorts/reconcile - Advance cohort statuses for the admin's institution

All endpoints require an admin of an approved institution; every lookup is
scoped to that institution.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, require_admin
from fellowship.core.database import get_db
from fellowship.core.google import GoogleClientFactory, get_google
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.cohorts import service
from fellowship.modules.cohorts.schemas import (
    CohortCreate,
    CohortDetailResponse,
    CohortListItem,
    CohortListResponse,
    CohortResponse,
    FolderRepairResponse,
    ReconcileResponse,
)
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=CohortResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Cohort",
    responses={
        400: {"description": "End date not after start date"},
        409: {"description": "Overlaps an existing cohort or starts before the active one ends"},
    },
)
async def create_cohort(
    data: CohortCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> CohortResponse:
    """
    Create a cohort. Its initial status follows the dates, except that a
    cohort created while another is active always starts upcoming.
    """
    await enforce_api_limit(limiter, admin.id, "cohorts.create")

    try:
        cohort = await service.create_cohort(
            db,
            google,
            institution_id=admin.institution_id,
            name=data.name,
            description=data.description,
            start_date=data.start_date,
            end_date=data.end_date,
        )
        logger.info(f"Admin {admin.id} created cohort {cohort.id}")
        return CohortResponse.model_validate(cohort)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating cohort: {e}")
        raise internal_error() from e


@router.get("", response_model=CohortListResponse, summary="List Cohorts")
async def list_cohorts(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> CohortListResponse:
    rows = await service.list_cohorts(db, admin.institution_id)
    items = [
        CohortListItem.model_validate(cohort).model_copy(update={"fellow_count": count})
        for cohort, count in rows
    ]
    return CohortListResponse(items=items, total=len(items))


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Reconcile Cohort Statuses",
    description="Complete the active cohort if it has ended and activate the next one if due.",
)
async def reconcile_my_cohorts(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ReconcileResponse:
    await enforce_api_limit(limiter, admin.id, "cohorts.reconcile")

    try:
        result = await service.reconcile_institution(db, admin.institution_id)
        return ReconcileResponse(activated=result.activated, deactivated=result.deactivated)
    except Exception as e:
        logger.exception(f"Error reconciling cohorts for {admin.institution_id}: {e}")
        raise internal_error() from e


@router.get(
    "/{cohort_id}",
    response_model=CohortDetailResponse,
    summary="Get Cohort",
    responses={404: {"description": "Cohort not found"}},
)
async def get_cohort(
    cohort_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> CohortDetailResponse:
    try:
        cohort, fellow_ids = await service.get_cohort(db, admin.institution_id, str(cohort_id))
    except ServiceError as e:
        handle_service_error(e)

    return CohortDetailResponse.model_validate(cohort).model_copy(
        update={"fellow_ids": fellow_ids}
    )


@router.post(
    "/{cohort_id}/fix-folder",
    response_model=FolderRepairResponse,
    summary="Repair Cohort Drive Folder",
    responses={
        400: {"description": "Google account not connected"},
        404: {"description": "Cohort not found"},
        502: {"description": "Google Drive rejected the request"},
    },
)
async def fix_cohort_folder(
    cohort_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> FolderRepairResponse:
    await enforce_api_limit(limiter, admin.id, "cohorts.fix_folder")

    try:
        result = await service.repair_cohort_folder(
            db, google, institution_id=admin.institution_id, cohort_id=str(cohort_id)
        )
        return FolderRepairResponse(**result)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error repairing folder for cohort {cohort_id}: {e}")
        raise internal_error() from e
