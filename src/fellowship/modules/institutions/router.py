"""
Institutions Router

Endpoints:
- GET /institutions - Approved institutions (any signed-in user)
- GET /institutions/me - The caller's institution (admin)
- POST /institutions/google/connect - Store the institution's Google credential
- POST /institutions/google/test - Check Calendar and Drive access
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, get_current_user, require_admin
from fellowship.core.database import get_db
from fellowship.core.google import GoogleClientFactory, get_google
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.institutions import service
from fellowship.modules.institutions.schemas import (
    GoogleConnectionTestResponse,
    GoogleConnectRequest,
    InstitutionResponse,
    PublicInstitution,
)
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[PublicInstitution], summary="List Institutions")
async def list_institutions(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> list[PublicInstitution]:
    institutions = await service.list_approved_institutions(db)
    return [PublicInstitution.model_validate(i) for i in institutions]


@router.get("/me", response_model=InstitutionResponse, summary="My Institution")
async def get_my_institution(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> InstitutionResponse:
    try:
        institution = await service.get_institution(db, admin.institution_id)
    except ServiceError as e:
        handle_service_error(e)
    return InstitutionResponse.from_model(institution)


@router.post(
    "/google/connect",
    response_model=InstitutionResponse,
    summary="Connect Google Account",
    description="Store a Google refresh token for the institution and create its Drive root folder.",
)
async def connect_google(
    data: GoogleConnectRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> InstitutionResponse:
    await enforce_api_limit(limiter, admin.id, "institutions.google_connect")

    try:
        institution = await service.connect_google(
            db, google, institution_id=admin.institution_id, refresh_token=data.refresh_token
        )
        logger.info(f"Admin {admin.id} connected Google for institution {institution.id}")
        return InstitutionResponse.from_model(institution)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error connecting Google account: {e}")
        raise internal_error() from e


@router.post(
    "/google/test",
    response_model=GoogleConnectionTestResponse,
    summary="Test Google Connection",
    responses={400: {"description": "Google account not connected"}},
)
async def test_google_connection(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
) -> GoogleConnectionTestResponse:
    try:
        result = await service.check_google_connection(
            db, google, institution_id=admin.institution_id
        )
        return GoogleConnectionTestResponse(**result)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error testing Google connection: {e}")
        raise internal_error() from e
