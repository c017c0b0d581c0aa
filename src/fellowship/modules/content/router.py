"""
Content Router

Endpoints:
- POST /content - Upload a file to a cohort (admin)
- GET /content - Content visible to the caller
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, get_current_user, require_admin
from fellowship.core.database import get_db
from fellowship.core.google import GoogleClientFactory, get_google
from fellowship.core.rate_limit import RateLimiter, enforce_upload_limit, get_rate_limiter
from fellowship.modules.content import service
from fellowship.modules.content.schemas import ContentListResponse, ContentResponse, ContentUpload
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=ContentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload Content",
    responses={
        400: {"description": "File too large, type not allowed, or cohort folder missing"},
        404: {"description": "Cohort not found"},
        429: {"description": "Too many uploads"},
        502: {"description": "Google Drive rejected the upload"},
    },
)
async def upload_content(
    data: ContentUpload,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
    google: GoogleClientFactory = Depends(get_google),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ContentResponse:
    await enforce_upload_limit(limiter, admin.id)

    try:
        content = await service.upload_content(
            db,
            google,
            institution_id=admin.institution_id,
            cohort_id=data.cohort_id,
            title=data.title,
            description=data.description,
            content_type=data.type,
            file_name=data.file_name,
            mime_type=data.mime_type,
            file_data=data.file_data,
            uploaded_by=admin.id,
        )
        return ContentResponse.model_validate(content)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error uploading content: {e}")
        raise internal_error() from e


@router.get("", response_model=ContentListResponse, summary="List Content")
async def list_content(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ContentListResponse:
    items = [
        ContentResponse.model_validate(c)
        for c in await service.list_content(
            db, user_id=user.id, role=user.role, institution_id=user.institution_id
        )
    ]
    return ContentListResponse(items=items, total=len(items))
