"""
Institutions Root Admin Router

Platform-level review of institution signups.

Endpoints:
- GET /root-admin/institutions - List institutions, optionally by status
- POST /root-admin/institutions - Create an approved institution directly
- POST /root-admin/institutions/{id}/approve - Approve a pending signup
- POST /root-admin/institutions/{id}/reject - Reject a pending signup

All endpoints require the root admin role.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, require_root_admin
from fellowship.core.database import get_db
from fellowship.core.google import GoogleClientFactory, get_google
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.institutions import service
from fellowship.modules.institutions.models import InstitutionStatus
from fellowship.modules.institutions.schemas import (
    InstitutionCreateDirect,
    InstitutionResponse,
    InstitutionReviewResponse,
)
from fellowship.modules.institutions.service import ReviewAction
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[InstitutionResponse], summary="List Institutions For Review")
async def list_institutions(
    status_filter: InstitutionStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    root_admin: CurrentUser = Depends(require_root_admin),
) -> list[InstitutionResponse]:
    institutions = await service.list_institutions_for_review(db, status_filter)
    return [InstitutionResponse.from_model(i) for i in institutions]


@router.post(
    "",
    response_model=InstitutionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Institution",
    description="""
Create an approved institution and assign its admin.

If no user exists with `admin_email`, a placeholder account is created and
completed when that person first signs in.
""",
    responses={409: {"description": "Name taken or email already administers an institution"}},
)
async def create_institution(
    data: InstitutionCreateDirect,
    db: AsyncSession = Depends(get_db),
    root_admin: CurrentUser = Depends(require_root_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> InstitutionResponse:
    await enforce_api_limit(limiter, root_admin.id, "institutions.create")

    try:
        institution = await service.create_institution_direct(
            db,
            name=data.name,
            admin_email=data.admin_email,
            admin_name=data.admin_name,
            logo_url=data.logo_url,
        )
        return InstitutionResponse.from_model(institution)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating institution: {e}")
        raise internal_error() from e


async def _review(
    institution_id: UUID,
    action: ReviewAction,
    db: AsyncSession,
    google: GoogleClientFactory,
    root_admin: CurrentUser,
) -> InstitutionReviewResponse:
    try:
        institution = await service.review_institution(
            db, google, institution_id=str(institution_id), action=action
        )
        logger.info(f"Root admin {root_admin.id} {institution.status.value} {institution_id}")
        return InstitutionReviewResponse(
            id=institution.id,
            status=institution.status,
            message=f"Institution {institution.status.value}.",
        )

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error reviewing institution {institution_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{institution_id}/approve",
    response_model=InstitutionReviewResponse,
    summary="Approve Institution",
    responses={
        404: {"description": "Institution not found"},
        409: {"description": "Institution already processed"},
    },
)
async def approve_institution(
    institution_id: UUID,
    db: AsyncSession = Depends(get_db),
    root_admin: CurrentUser = Depends(require_root_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> InstitutionReviewResponse:
    await enforce_api_limit(limiter, root_admin.id, "institutions.review")
    return await _review(institution_id, ReviewAction.APPROVE, db, google, root_admin)


@router.post(
    "/{institution_id}/reject",
    response_model=InstitutionReviewResponse,
    summary="Reject Institution",
    responses={
        404: {"description": "Institution not found"},
        409: {"description": "Institution already processed"},
    },
)
async def reject_institution(
    institution_id: UUID,
    db: AsyncSession = Depends(get_db),
    root_admin: CurrentUser = Depends(require_root_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> InstitutionReviewResponse:
    await enforce_api_limit(limiter, root_admin.id, "institutions.review")
    return await _review(institution_id, ReviewAction.REJECT, db, google, root_admin)
