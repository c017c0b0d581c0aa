"""
User Service Layer

1. Onboarding: picking the fellow role, or requesting the admin role (which
   opens an institution signup for root admin review)
2. Google credential capture after sign-in
3. Fellow directory and invitations
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.email import send_fellowship_invitation
from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.institutions.service import request_admin_role
from fellowship.modules.shared import ServiceError
from fellowship.modules.users.models import User, UserRole
from fellowship.modules.users.repository import UserRepository, normalize_email
from fellowship.modules.users.schemas import SelectableRole

logger = logging.getLogger(__name__)

DEFAULT_INSTITUTION_NAME = "the Fellowship Platform"


class UserServiceError(ServiceError):
    """Base exception for user service errors."""


class UserNotFoundError(UserServiceError):
    def __init__(self):
        super().__init__(message="User not found", error_code="USER_NOT_FOUND", status_code=404)


class InvalidRoleChangeError(UserServiceError):
    def __init__(self, current: UserRole):
        super().__init__(
            message=f"Your role is already set to {current.value} and cannot be changed",
            error_code="INVALID_ROLE_CHANGE",
            status_code=409,
        )


@dataclass
class RoleSelection:
    role: UserRole | None
    institution_id: str | None
    pending: bool


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await UserRepository.get_by_id(db, user_id)
    if user is None:
        raise UserNotFoundError()
    return user


async def get_me(db: AsyncSession, user_id: str) -> tuple[User, list[str]]:
    """The user with the ids of the cohorts they belong to."""
    user = await _get_user(db, user_id)
    return user, await cohort_repository.get_cohort_ids_for_user(db, user.id)


# ============================================
# Onboarding
# ============================================


async def select_role(
    db: AsyncSession,
    *,
    user_id: str,
    role: SelectableRole,
    institution_name: str | None = None,
    logo_url: str | None = None,
) -> RoleSelection:
    """
    Record the role picked during onboarding.

    Picking ``fellow`` sets the role at once. Picking ``admin`` opens a pending
    institution; the role itself is granted when a root admin approves it.

    Raises:
        InvalidRoleChangeError: If the user already holds a different role
    """
    user = await _get_user(db, user_id)

    if user.role is not None and user.role.value != role.value:
        logger.warning(f"User {user.id} tried to switch role from {user.role.value} to {role.value}")
        raise InvalidRoleChangeError(user.role)

    if role == SelectableRole.FELLOW:
        if user.role is None:
            await UserRepository.update(db, user, role=UserRole.FELLOW)
            await db.commit()
            logger.info(f"User {user.id} selected the fellow role")
        return RoleSelection(UserRole.FELLOW, user.institution_id, pending=False)

    if user.role == UserRole.ADMIN:
        return RoleSelection(UserRole.ADMIN, user.institution_id, pending=False)

    result = await request_admin_role(
        db, user=user, institution_name=institution_name, logo_url=logo_url
    )
    role_now = UserRole.ADMIN if not result.pending else None
    return RoleSelection(role_now, result.institution_id, pending=result.pending)


async def store_google_credential(db: AsyncSession, *, user_id: str, refresh_token: str) -> User:
    """
    Keep the Google refresh token granted at sign-in.

    When the user is the admin of an institution (pending or approved) the
    token is stored on the institution too, so Calendar and Drive calls made
    on the institution's behalf use it.
    """
    user = await _get_user(db, user_id)
    await UserRepository.update(db, user, google_refresh_token=refresh_token)

    if user.institution_id:
        institution = await InstitutionRepository.get_by_id(db, user.institution_id)
        if institution is not None and (
            institution.admin_user_id == user.id or institution.admin_email == user.email
        ):
            await InstitutionRepository.update(db, institution, google_refresh_token=refresh_token)
            logger.info(f"Stored Google credential on institution {institution.id}")

    await db.commit()
    logger.info(f"Stored Google credential for user {user.id}")
    return user


# ============================================
# Directory and invitations
# ============================================


async def list_fellows(
    db: AsyncSession,
    *,
    user_id: str,
    institution_id: str | None,
) -> list[User]:
    """Fellows sharing a cohort with the caller or belonging to the caller's institution."""
    cohort_ids = await cohort_repository.get_cohort_ids_for_user(db, user_id)
    return await UserRepository.list_fellows_related_to(
        db, user_id=user_id, institution_id=institution_id, cohort_ids=cohort_ids
    )


async def send_invitations(
    db: AsyncSession,
    *,
    inviter_name: str,
    institution_id: str | None,
    emails: list[str],
    message: str | None = None,
) -> list[dict]:
    """
    Email an invitation to each address.

    A failed address is reported in its result and never stops the batch.

    Returns:
        One ``{"email", "success"}`` dict per distinct address, in input order
    """
    institution_name = DEFAULT_INSTITUTION_NAME
    if institution_id:
        institution = await InstitutionRepository.get_by_id(db, institution_id)
        if institution is not None:
            institution_name = institution.name

    results = []
    for email in dict.fromkeys(normalize_email(e) for e in emails):
        try:
            success = await send_fellowship_invitation(
                to_email=email,
                inviter_name=inviter_name,
                institution_name=institution_name,
                message=message,
            )
        except Exception as e:
            logger.error(f"Exception sending invitation to {email}: {e}")
            success = False
        results.append({"email": email, "success": success})

    sent = sum(1 for r in results if r["success"])
    logger.info(f"{inviter_name} sent {sent}/{len(results)} invitations")
    return results
