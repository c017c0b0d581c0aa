"""
Applications Admin Router

API endpoints for institution admins to review applications to their
institution. Applications of other institutions are reported as not found.

Endpoints:
- GET /admin/applications - List applications, optionally by status
- GET /admin/applications/{id} - Application details
- POST /admin/applications/{id}/review - Approve or reject
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, require_admin
from fellowship.core.database import get_db
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.applications import service
from fellowship.modules.applications.models import ApplicationStatus
from fellowship.modules.applications.schemas import (
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationReviewRequest,
    ApplicationReviewResponse,
)
from fellowship.modules.applications.service import (
    ApplicationAlreadyReviewedError,
    ApplicationNotFoundError,
)
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=ApplicationListResponse, summary="List Applications")
async def list_applications(
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationListResponse:
    applications = await service.list_applications(db, admin.institution_id, status_filter)
    items = [ApplicationResponse.model_validate(a) for a in applications]
    return ApplicationListResponse(items=items, total=len(items))


@router.get(
    "/{application_id}",
    response_model=ApplicationResponse,
    summary="Get Application",
    responses={404: {"description": "Application not found"}},
)
async def get_application(
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationResponse:
    try:
        application = await service.get_application(
            db, admin.institution_id, str(application_id)
        )
    except ServiceError as e:
        handle_service_error(e)
    return ApplicationResponse.model_validate(application)


@router.post(
    "/{application_id}/review",
    response_model=ApplicationReviewResponse,
    summary="Review Application",
    description="""
Approve or reject a pending application.

**Effects of approval:**
- The fellow joins the institution
- If `cohort_id` is given, the fellow is added to that cohort
- The fellow is emailed the outcome

An application can be reviewed once; later attempts return `409 ALREADY_REVIEWED`.
""",
    responses={
        404: {"description": "Application or cohort not found"},
        409: {"description": "Application already reviewed"},
    },
)
async def review_application(
    application_id: UUID,
    data: ApplicationReviewRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ApplicationReviewResponse:
    await enforce_api_limit(limiter, admin.id, "applications.review")

    try:
        application = await service.review_application(
            db,
            application_id=str(application_id),
            reviewer_id=admin.id,
            reviewer_institution_id=admin.institution_id,
            action=data.action,
            notes=data.notes,
            cohort_id=data.cohort_id,
        )

        logger.info(f"Admin {admin.id} {application.status.value} application {application_id}")

        return ApplicationReviewResponse(
            id=application.id,
            status=application.status,
            cohort_id=application.cohort_id,
            message=f"Application {application.status.value}.",
        )

    except ApplicationNotFoundError as e:
        logger.warning(f"Application not found: {application_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": e.error_code, "message": e.message},
        ) from e
    except ApplicationAlreadyReviewedError as e:
        logger.warning(f"Application {application_id} already reviewed")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": e.error_code, "message": e.message},
        ) from e
    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error reviewing application: {e}")
        raise internal_error() from e
