"""
Sessions Router

Endpoints:
- POST /sessions - Schedule a session (admin)
- GET /sessions - Sessions visible to the caller
- PUT /sessions/{id} - Edit an upcoming session (admin)
- POST /sessions/{id}/cancel - Cancel an upcoming session (admin)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, get_current_user, require_admin
from fellowship.core.database import get_db
from fellowship.core.google import GoogleClientFactory, get_google
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.sessions import service
from fellowship.modules.sessions.schemas import (
    SessionCancelRequest,
    SessionCreate,
    SessionListResponse,
    SessionResponse,
    SessionUpdate,
    SessionUpdateResponse,
)
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule Session",
    responses={
        400: {"description": "Google account not connected"},
        404: {"description": "Cohort not found"},
        502: {"description": "Google Calendar rejected the event"},
    },
)
async def create_session(
    data: SessionCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> SessionResponse:
    await enforce_api_limit(limiter, admin.id, "sessions.create")

    try:
        session = await service.create_session(
            db,
            google,
            institution_id=admin.institution_id,
            cohort_id=data.cohort_id,
            title=data.title,
            description=data.description,
            start_time=data.start_time,
            end_time=data.end_time,
            created_by=admin.id,
        )
        return SessionResponse.model_validate(session)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating session: {e}")
        raise internal_error() from e


@router.get("", response_model=SessionListResponse, summary="List Sessions")
async def list_sessions(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> SessionListResponse:
    sessions = await service.list_sessions(
        db, user_id=user.id, role=user.role, institution_id=user.institution_id
    )
    items = [SessionResponse.model_validate(s) for s in sessions]
    return SessionListResponse(items=items, total=len(items))


@router.put(
    "/{session_id}",
    response_model=SessionUpdateResponse,
    summary="Update Session",
    responses={
        404: {"description": "Session not found"},
        409: {"description": "Session already occurred or cancelled"},
        502: {"description": "Google Calendar rejected the update"},
    },
)
async def update_session(
    session_id: UUID,
    data: SessionUpdate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> SessionUpdateResponse:
    await enforce_api_limit(limiter, admin.id, "sessions.update")

    try:
        session, changes = await service.update_session(
            db,
            google,
            institution_id=admin.institution_id,
            session_id=str(session_id),
            title=data.title,
            description=data.description,
            start_time=data.start_time,
            end_time=data.end_time,
        )
        return SessionUpdateResponse(session=SessionResponse.model_validate(session), changes=changes)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating session {session_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{session_id}/cancel",
    response_model=SessionResponse,
    summary="Cancel Session",
    responses={
        400: {"description": "Cancellation reason missing"},
        404: {"description": "Session not found"},
        409: {"description": "Session already occurred or cancelled"},
    },
)
async def cancel_session(
    session_id: UUID,
    data: SessionCancelRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> SessionResponse:
    await enforce_api_limit(limiter, admin.id, "sessions.cancel")

    try:
        session = await service.cancel_session(
            db,
            google,
            institution_id=admin.institution_id,
            session_id=str(session_id),
            reason=data.reason,
            cancelled_by=admin.id,
        )
        return SessionResponse.model_validate(session)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error cancelling session {session_id}: {e}")
        raise internal_error() from e
