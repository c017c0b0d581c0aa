"""
Users Router

Endpoints:
- GET /users/me - The caller's profile with cohort ids
- POST /users/me/role - Pick a role during onboarding
- POST /users/me/google-credential - Store the Google refresh token from sign-in
- GET /users/fellows - Fellows related to the caller
- POST /users/invitations - Invite people by email
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, get_current_user
from fellowship.core.database import get_db
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.shared import MessageResponse, ServiceError, handle_service_error, internal_error
from fellowship.modules.users import service
from fellowship.modules.users.schemas import (
    FellowSummary,
    GoogleCredentialRequest,
    InvitationRequest,
    InvitationResponse,
    InvitationResult,
    RoleSelectRequest,
    RoleSelectResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=UserResponse, summary="Current User")
async def get_me(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> UserResponse:
    try:
        stored, cohort_ids = await service.get_me(db, user.id)
    except ServiceError as e:
        handle_service_error(e)

    return UserResponse.model_validate(stored).model_copy(
        update={
            "google_connected": bool(stored.google_refresh_token),
            "cohort_ids": cohort_ids,
        }
    )


@router.post(
    "/me/role",
    response_model=RoleSelectResponse,
    summary="Select Role",
    description="""
Pick a role during onboarding.

- `fellow`: the role is set immediately
- `admin`: an institution signup is created for root admin review; the
  role is granted on approval

Switching to a different role afterwards returns `409 INVALID_ROLE_CHANGE`.
""",
    responses={409: {"description": "Role already set to a different value"}},
)
async def select_role(
    data: RoleSelectRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> RoleSelectResponse:
    await enforce_api_limit(limiter, user.id, "users.select_role")

    try:
        selection = await service.select_role(
            db,
            user_id=user.id,
            role=data.role,
            institution_name=data.institution_name,
            logo_url=data.logo_url,
        )
        message = (
            "Your institution is pending review."
            if selection.pending
            else f"Role set to {selection.role.value}."
        )
        return RoleSelectResponse(
            role=selection.role,
            institution_id=selection.institution_id,
            pending=selection.pending,
            message=message,
        )

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error selecting role: {e}")
        raise internal_error() from e


@router.post("/me/google-credential", response_model=MessageResponse, summary="Store Google Credential")
async def store_google_credential(
    data: GoogleCredentialRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> MessageResponse:
    try:
        await service.store_google_credential(db, user_id=user.id, refresh_token=data.refresh_token)
        return MessageResponse(message="Google credential stored.")
    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error storing Google credential: {e}")
        raise internal_error() from e


@router.get("/fellows", response_model=list[FellowSummary], summary="List Fellows")
async def list_fellows(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> list[FellowSummary]:
    fellows = await service.list_fellows(db, user_id=user.id, institution_id=user.institution_id)
    return [FellowSummary.model_validate(f) for f in fellows]


@router.post("/invitations", response_model=InvitationResponse, summary="Send Invitations")
async def send_invitations(
    data: InvitationRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> InvitationResponse:
    await enforce_api_limit(limiter, user.id, "users.invite")

    results = await service.send_invitations(
        db,
        inviter_name=user.name,
        institution_id=user.institution_id,
        emails=[str(e) for e in data.emails],
        message=data.message,
    )
    items = [InvitationResult(**r) for r in results]
    sent = sum(1 for r in items if r.success)
    return InvitationResponse(results=items, sent=sent, failed=len(items) - sent)
