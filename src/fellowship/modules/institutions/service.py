"""
Institution Service Layer

Business logic for institution onboarding and approval.

This module implements:
1. Admin role requests:
   - A signed-in user asks to run an institution; it is created pending
   - Repeat requests return the existing pending or approved institution
2. Root admin review:
   - Pending -> approved (admin promoted, Drive root folder provisioned)
   - Pending -> rejected (user keeps no role and may restart onboarding)
3. Direct creation by the root admin, skipping review
4. Google account wiring for Calendar and Drive

Notification emails and Drive provisioning are best-effort: failures are
logged and never undo the committed decision.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.config import settings
from fellowship.core.email import (
    send_admin_request_pending,
    send_admin_request_received,
    send_institution_approved,
    send_institution_assigned,
    send_institution_rejected,
)
from fellowship.core.google import GoogleClientFactory, GoogleError
from fellowship.modules.institutions.models import Institution, InstitutionStatus
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.shared import GoogleNotConnectedError, ServiceError
from fellowship.modules.users.models import User, UserRole
from fellowship.modules.users.repository import UserRepository, normalize_email

logger = logging.getLogger(__name__)

ROOT_FOLDER_SUFFIX = "Fellowship Program"


class InstitutionServiceError(ServiceError):
    """Base exception for institution service errors."""


class InstitutionNotFoundError(InstitutionServiceError):
    def __init__(self, institution_id: str | None = None):
        message = (
            f"Institution {institution_id} not found" if institution_id else "Institution not found"
        )
        super().__init__(message=message, error_code="INSTITUTION_NOT_FOUND", status_code=404)


class InstitutionAlreadyProcessedError(InstitutionServiceError):
    def __init__(self):
        super().__init__(
            message="Institution has already been processed",
            error_code="ALREADY_PROCESSED",
            status_code=409,
        )


class DuplicateInstitutionNameError(InstitutionServiceError):
    def __init__(self, name: str):
        super().__init__(
            message=f"An institution named '{name}' already exists",
            error_code="DUPLICATE_INSTITUTION_NAME",
            status_code=409,
        )


class EmailAlreadyAdminError(InstitutionServiceError):
    def __init__(self):
        super().__init__(
            message="This email is already assigned as admin to another institution",
            error_code="EMAIL_ALREADY_ADMIN",
            status_code=409,
        )


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass
class AdminRoleRequestResult:
    institution_id: str
    pending: bool
    created: bool


# ============================================
# Drive root folder
# ============================================


def root_folder_name(institution_name: str) -> str:
    return f"{institution_name} - {ROOT_FOLDER_SUFFIX}"


async def ensure_drive_root_folder(
    db: AsyncSession,
    google: GoogleClientFactory,
    institution: Institution,
) -> str:
    """
    Return the institution's Drive root folder, creating it if missing.

    Raises:
        GoogleError: If no credential is stored or Drive rejects the call
    """
    if institution.drive_root_folder_id:
        return institution.drive_root_folder_id

    drive = google.drive(institution.google_refresh_token)
    folder = await drive.create_folder(root_folder_name(institution.name))
    await InstitutionRepository.update(db, institution, drive_root_folder_id=folder.item_id)

    logger.info(f"Provisioned Drive root folder for institution {institution.id}")
    return folder.item_id


async def _provision_root_folder_best_effort(
    db: AsyncSession,
    google: GoogleClientFactory,
    institution: Institution,
) -> None:
    if not institution.google_refresh_token:
        logger.info(f"Institution {institution.id} has no Google credential; skipping root folder")
        return
    try:
        await ensure_drive_root_folder(db, google, institution)
        await db.commit()
    except GoogleError as e:
        logger.error(f"Root folder provisioning failed for institution {institution.id}: {e}")


# ============================================
# Admin role requests
# ============================================


async def request_admin_role(
    db: AsyncSession,
    *,
    user: User,
    institution_name: str,
    logo_url: str | None = None,
) -> AdminRoleRequestResult:
    """
    Create a pending institution for ``user``, or return the one they already have.

    Any Google refresh token already stored on the user is copied onto the
    institution so Calendar and Drive work as soon as it is approved.
    """
    existing = await InstitutionRepository.get_latest_for_admin(db, user.id)
    if existing is not None and existing.status == InstitutionStatus.PENDING:
        logger.info(f"User {user.id} already has pending institution {existing.id}")
        return AdminRoleRequestResult(existing.id, pending=True, created=False)
    if existing is not None and existing.status == InstitutionStatus.APPROVED:
        return AdminRoleRequestResult(existing.id, pending=False, created=False)

    institution = await InstitutionRepository.create(
        db,
        name=institution_name,
        logo_url=logo_url,
        admin_email=user.email,
        admin_user_id=user.id,
        google_refresh_token=user.google_refresh_token,
    )
    await UserRepository.update(db, user, institution_id=institution.id)
    await db.commit()

    logger.info(f"User {user.id} requested admin role for new institution {institution.id}")

    try:
        await send_admin_request_pending(
            to_email=user.email,
            admin_name=user.name,
            institution_name=institution.name,
        )
        for recipient in await _root_admin_recipients(db):
            await send_admin_request_received(
                to_email=recipient,
                requester_name=user.name,
                requester_email=user.email,
                institution_name=institution.name,
            )
    except Exception as e:
        logger.error(f"Exception sending admin request emails for {institution.id}: {e}")

    return AdminRoleRequestResult(institution.id, pending=True, created=True)


async def _root_admin_recipients(db: AsyncSession) -> list[str]:
    recipients = [u.email for u in await UserRepository.list_by_role(db, UserRole.ROOT_ADMIN)]
    if settings.root_admin_email:
        recipients.append(normalize_email(settings.root_admin_email))
    return list(dict.fromkeys(recipients))


# ============================================
# Root admin review
# ============================================


async def review_institution(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    action: ReviewAction,
) -> Institution:
    """
    Approve or reject a pending institution. Succeeds once per institution.

    Raises:
        InstitutionNotFoundError: If the institution does not exist
        InstitutionAlreadyProcessedError: If it is no longer pending
    """
    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is None:
        raise InstitutionNotFoundError(institution_id)
    if institution.status != InstitutionStatus.PENDING:
        raise InstitutionAlreadyProcessedError()

    new_status = (
        InstitutionStatus.APPROVED if action == ReviewAction.APPROVE else InstitutionStatus.REJECTED
    )
    if not await InstitutionRepository.transition_status(
        db, institution_id, InstitutionStatus.PENDING, new_status
    ):
        await db.rollback()
        raise InstitutionAlreadyProcessedError()

    admin = await _find_institution_admin(db, institution)
    if admin is not None:
        if new_status == InstitutionStatus.APPROVED:
            await UserRepository.update(
                db, admin, role=UserRole.ADMIN, institution_id=institution.id
            )
        elif admin.institution_id == institution.id:
            await UserRepository.update(db, admin, institution_id=None)

    await db.commit()
    await db.refresh(institution)

    logger.info(f"Institution {institution.id} {new_status.value}")

    admin_name = admin.name if admin is not None else institution.admin_email
    if new_status == InstitutionStatus.APPROVED:
        await _provision_root_folder_best_effort(db, google, institution)
        try:
            await send_institution_approved(
                to_email=institution.admin_email,
                admin_name=admin_name,
                institution_name=institution.name,
            )
        except Exception as e:
            logger.error(f"Exception sending approval email for {institution.id}: {e}")
    else:
        try:
            await send_institution_rejected(
                to_email=institution.admin_email,
                admin_name=admin_name,
                institution_name=institution.name,
            )
        except Exception as e:
            logger.error(f"Exception sending rejection email for {institution.id}: {e}")

    return institution


async def _find_institution_admin(db: AsyncSession, institution: Institution) -> User | None:
    if institution.admin_user_id:
        admin = await UserRepository.get_by_id(db, institution.admin_user_id)
        if admin is not None:
            return admin
    return await UserRepository.get_by_email(db, institution.admin_email)


async def create_institution_direct(
    db: AsyncSession,
    *,
    name: str,
    admin_email: str,
    admin_name: str,
    logo_url: str | None = None,
) -> Institution:
    """
    Create an approved institution and its admin in one step.

    An existing user with ``admin_email`` is promoted; otherwise a placeholder
    user is created and completed on first sign-in.

    Raises:
        DuplicateInstitutionNameError: If the name is taken
        EmailAlreadyAdminError: If the email already administers an institution
    """
    if await InstitutionRepository.get_by_name(db, name) is not None:
        raise DuplicateInstitutionNameError(name)

    admin = await UserRepository.get_by_email(db, admin_email)
    if admin is not None and admin.role == UserRole.ADMIN and admin.institution_id:
        raise EmailAlreadyAdminError()

    institution = await InstitutionRepository.create(
        db,
        name=name,
        logo_url=logo_url,
        admin_email=normalize_email(admin_email),
        admin_user_id=admin.id if admin is not None else None,
        status=InstitutionStatus.APPROVED,
        google_refresh_token=admin.google_refresh_token if admin is not None else None,
    )

    if admin is not None:
        await UserRepository.update(db, admin, role=UserRole.ADMIN, institution_id=institution.id)
    else:
        admin = await UserRepository.create(
            db,
            email=admin_email,
            name=admin_name,
            role=UserRole.ADMIN,
            institution_id=institution.id,
            is_placeholder=True,
        )
        await InstitutionRepository.update(db, institution, admin_user_id=admin.id)

    await db.commit()
    logger.info(f"Root admin created institution {institution.id} with admin {admin.id}")

    try:
        await send_institution_assigned(
            to_email=admin.email,
            admin_name=admin.name,
            institution_name=institution.name,
        )
    except Exception as e:
        logger.error(f"Exception sending assignment email for {institution.id}: {e}")

    return institution


# ============================================
# Queries
# ============================================


async def get_institution(db: AsyncSession, institution_id: str) -> Institution:
    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is None:
        raise InstitutionNotFoundError(institution_id)
    return institution


async def list_approved_institutions(db: AsyncSession) -> list[Institution]:
    return await InstitutionRepository.list_all(db, InstitutionStatus.APPROVED)


async def list_institutions_for_review(
    db: AsyncSession,
    status: InstitutionStatus | None = None,
) -> list[Institution]:
    return await InstitutionRepository.list_all(db, status)


# ============================================
# Google account
# ============================================


async def connect_google(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    refresh_token: str,
) -> Institution:
    """Store the institution's Google credential and provision its root folder."""
    institution = await get_institution(db, institution_id)
    await InstitutionRepository.update(db, institution, google_refresh_token=refresh_token)
    await db.commit()

    try:
        email = await google.drive(refresh_token).about_user_email()
        if email:
            await InstitutionRepository.update(db, institution, google_account_email=email)
            await db.commit()
    except GoogleError as e:
        logger.warning(f"Could not read Google account email for {institution.id}: {e}")

    await _provision_root_folder_best_effort(db, google, institution)
    return institution


async def check_google_connection(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
) -> dict:
    """
    Check the stored credential against Calendar and Drive.

    Returns:
        Dict with success, calendar_count, drive_email and a message

    Raises:
        GoogleNotConnectedError: If no credential is stored
    """
    institution = await get_institution(db, institution_id)
    if not institution.google_refresh_token:
        raise GoogleNotConnectedError()

    try:
        calendar_count = await google.calendar(institution.google_refresh_token).count_calendars()
        drive_email = await google.drive(institution.google_refresh_token).about_user_email()
    except GoogleError as e:
        logger.warning(f"Google connection test failed for {institution.id}: {e}")
        return {
            "success": False,
            "calendar_count": None,
            "drive_email": None,
            "message": f"Google connection failed: {e}",
        }

    return {
        "success": True,
        "calendar_count": calendar_count,
        "drive_email": drive_email,
        "message": "Google Calendar and Drive are reachable.",
    }
