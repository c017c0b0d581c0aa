"""
Content Service Layer

Uploads go straight to the cohort's Drive folder; the row is written only
after Drive accepts the file. A cohort without a folder must be repaired
first (POST /cohorts/{id}/fix-folder).
"""

import base64
import binascii
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.config import settings
from fellowship.core.google import GoogleClientFactory, GoogleError, GoogleNotConfiguredError
from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.cohorts.service import CohortNotFoundError
from fellowship.modules.content import repository
from fellowship.modules.content.models import Content, ContentType
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.shared import (
    GoogleNotConnectedError,
    ServiceError,
    StorageUnavailableError,
)
from fellowship.modules.users.models import UserRole

logger = logging.getLogger(__name__)

ALLOWED_MIME_PREFIXES = ("image/", "video/", "text/", "application/")


class ContentServiceError(ServiceError):
    """Base exception for content service errors."""


class FileTooLargeError(ContentServiceError):
    def __init__(self, max_mb: int):
        super().__init__(
            message=f"File exceeds the {max_mb} MB upload limit",
            error_code="FILE_TOO_LARGE",
            status_code=400,
        )


class FileTypeNotAllowedError(ContentServiceError):
    def __init__(self, mime_type: str):
        super().__init__(
            message=f"File type {mime_type} is not allowed",
            error_code="FILE_TYPE_NOT_ALLOWED",
            status_code=400,
        )


class InvalidFileDataError(ContentServiceError):
    def __init__(self):
        super().__init__(
            message="File data is not valid base64",
            error_code="INVALID_FILE_DATA",
            status_code=400,
        )


class CohortFolderMissingError(ContentServiceError):
    def __init__(self):
        super().__init__(
            message="This cohort has no Google Drive folder. Repair the cohort folder first.",
            error_code="COHORT_FOLDER_MISSING",
            status_code=400,
        )


def decode_file_data(file_data: str) -> bytes:
    """
    Decode base64 file data, accepting a ``data:<mime>;base64,`` prefix.

    Raises:
        InvalidFileDataError: If the payload is not base64
    """
    payload = file_data.strip()
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidFileDataError() from e


def is_allowed_mime_type(mime_type: str) -> bool:
    return mime_type.lower().startswith(ALLOWED_MIME_PREFIXES)


async def upload_content(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    cohort_id: str,
    title: str,
    description: str | None,
    content_type: ContentType,
    file_name: str,
    mime_type: str,
    file_data: str,
    uploaded_by: str,
) -> Content:
    """
    Upload a file to a cohort's Drive folder and record it.

    Raises:
        FileTypeNotAllowedError: If the MIME type is outside the allowed families
        InvalidFileDataError: If ``file_data`` cannot be decoded
        FileTooLargeError: If the decoded file exceeds the upload limit
        CohortNotFoundError: If the cohort is not in the institution
        CohortFolderMissingError: If the cohort has no Drive folder
        GoogleNotConnectedError: If the institution has no Google credential
        StorageUnavailableError: If Drive rejects the upload
    """
    if not is_allowed_mime_type(mime_type):
        raise FileTypeNotAllowedError(mime_type)

    data = decode_file_data(file_data)
    if len(data) > settings.max_upload_bytes:
        raise FileTooLargeError(settings.max_upload_mb)

    cohort = await cohort_repository.get_for_institution(db, cohort_id, institution_id)
    if cohort is None:
        raise CohortNotFoundError(cohort_id)
    if not cohort.drive_folder_id:
        raise CohortFolderMissingError()

    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is None or not institution.google_refresh_token:
        raise GoogleNotConnectedError()

    try:
        uploaded = await google.drive(institution.google_refresh_token).upload_file(
            folder_id=cohort.drive_folder_id,
            file_name=file_name,
            mime_type=mime_type,
            data=data,
        )
    except GoogleNotConfiguredError as e:
        raise GoogleNotConnectedError() from e
    except GoogleError as e:
        logger.error(f"Drive upload failed for cohort {cohort.id}: {e}")
        raise StorageUnavailableError("upload the file") from e

    content = await repository.create(
        db,
        cohort_id=cohort.id,
        institution_id=institution_id,
        title=title,
        description=description,
        type=content_type,
        file_name=file_name,
        mime_type=mime_type,
        file_size=len(data),
        drive_file_id=uploaded.item_id,
        share_link=uploaded.link,
        uploaded_by=uploaded_by,
    )
    await db.commit()

    logger.info(f"Uploaded content {content.id} ({len(data)} bytes) to cohort {cohort.id}")
    return content


async def list_content(
    db: AsyncSession,
    *,
    user_id: str,
    role: UserRole | None,
    institution_id: str | None,
) -> list[Content]:
    """Admins see all institution content; fellows see their cohorts' content."""
    if role == UserRole.ADMIN and institution_id:
        return await repository.list_for_institution(db, institution_id)
    if role == UserRole.FELLOW:
        cohort_ids = await cohort_repository.get_cohort_ids_for_user(db, user_id)
        return await repository.list_for_cohorts(db, cohort_ids)
    return []
