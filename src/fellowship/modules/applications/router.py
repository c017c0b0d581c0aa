"""
Applications Router (fellows)

Endpoints:
- POST /applications - Apply to an institution's fellowship
- GET /applications/me - The caller's applications
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, require_fellow
from fellowship.core.database import get_db
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.applications import service
from fellowship.modules.applications.schemas import (
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationSubmitResponse,
)
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ApplicationSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Application",
    responses={
        404: {"description": "Institution not found"},
        409: {"description": "Already applied to this institution"},
    },
)
async def submit_application(
    data: ApplicationCreate,
    db: AsyncSession = Depends(get_db),
    fellow: CurrentUser = Depends(require_fellow),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ApplicationSubmitResponse:
    await enforce_api_limit(limiter, fellow.id, "applications.submit")

    try:
        application = await service.submit_application(
            db,
            fellow_id=fellow.id,
            institution_id=data.institution_id,
            application_data=data.application_data.model_dump(mode="json"),
        )
        return ApplicationSubmitResponse(
            id=application.id,
            status=application.status,
            message="Application submitted successfully.",
        )

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error submitting application: {e}")
        raise internal_error() from e


@router.get("/me", response_model=ApplicationListResponse, summary="My Applications")
async def list_my_applications(
    db: AsyncSession = Depends(get_db),
    fellow: CurrentUser = Depends(require_fellow),
) -> ApplicationListResponse:
    applications = await service.list_my_applications(db, fellow.id)
    items = [ApplicationResponse.model_validate(a) for a in applications]
    return ApplicationListResponse(items=items, total=len(items))
