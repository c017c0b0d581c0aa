"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.

Identity is delegated to an external provider that issues bearer JWTs. This
module only verifies the token and resolves the caller against the ``users``
table, so role and institution always come from stored state and never from
client-supplied claims.

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production to disable test tokens
"""

import hmac
import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.config import settings
from fellowship.core.database import get_db
from fellowship.core.security import decode_token
from fellowship.modules.institutions.models import InstitutionStatus
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.users.models import UserRole
from fellowship.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token issued by the identity provider",
)


@dataclass
class CurrentUser:
    """
    The authenticated principal, as stored.

    Attributes:
        id: User's unique identifier
        email: User's email address
        name: Display name
        role: Stored role, None until onboarding picks one
        institution_id: Owning institution, if any
    """

    id: str
    email: str
    name: str
    role: UserRole | None = None
    institution_id: str | None = None

    def __str__(self) -> str:
        role = self.role.value if self.role else None
        return f"CurrentUser(id={self.id}, email={self.email}, role={role})"


@dataclass
class TokenIdentity:
    """Claims extracted from a verified token."""

    sub: str | None
    email: str | None
    name: str | None


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    settings.is_development must be True, settings.is_production False, and
    the raw PYTHON_ENV variable must be neither "production" nor "staging".
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var != "production"
        and env_var != "staging"
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


# Development mode flag - accepts raw user ids as tokens for LOCAL testing ONLY
_DEVELOPMENT_MODE = _is_dev_mode_safe()


def _is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except ValueError:
        return False
    return True


def _invalid_token(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _validate_jwt_token(token: str) -> TokenIdentity:
    """
    Validate a bearer token and extract identity claims.

    Raises:
        HTTPException 401: If token is invalid, expired or of the wrong type
    """
    if _DEVELOPMENT_MODE:
        try:
            return TokenIdentity(sub=str(UUID(token)), email=None, name=None)
        except ValueError:
            pass

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _invalid_token("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _invalid_token("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    sub = payload.get("sub")
    email = payload.get("email")
    if not sub and not email:
        logger.warning("Token carries neither 'sub' nor 'email'")
        raise _invalid_token("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")

    return TokenIdentity(sub=sub, email=email, name=payload.get("name"))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """
    FastAPI dependency resolving the caller to a stored user.

    Lookup is by token subject, then by email. On first sign-in a user with no
    role is created; a placeholder row created for a directly-assigned admin is
    completed instead.

    Raises:
        HTTPException 401: If the token is invalid or names no known user
    """
    identity = _validate_jwt_token(credentials.credentials)

    user = None
    if identity.sub and _is_uuid(identity.sub):
        user = await UserRepository.get_by_id(db, identity.sub)
    if user is None and identity.email:
        user = await UserRepository.get_by_email(db, identity.email)

    if user is None:
        if not identity.email:
            raise _invalid_token("INVALID_TOKEN_CLAIMS", "Token does not identify a known user.")
        user = await UserRepository.create(
            db,
            email=identity.email,
            name=identity.name or identity.email.split("@")[0],
        )
        await db.commit()
        logger.info(f"Registered user on first sign-in: {user.id}")
    elif user.is_placeholder and identity.name:
        await UserRepository.complete_placeholder(db, user, name=identity.name)
        await db.commit()

    return CurrentUser(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        institution_id=user.institution_id,
    )


def _forbidden(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": error, "message": message},
    )


async def require_admin(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """
    Require an institution admin whose institution is approved.

    Both checks run against stored state on every call.
    """
    if user.role != UserRole.ADMIN or not user.institution_id:
        logger.warning(f"Access denied: {user} is not an institution admin")
        raise _forbidden("ADMIN_ACCESS_REQUIRED", "Institution admin access is required.")

    institution = await InstitutionRepository.get_by_id(db, user.institution_id)
    if institution is None or institution.status != InstitutionStatus.APPROVED:
        logger.warning(f"Access denied: institution of {user} is not approved")
        raise _forbidden(
            "INSTITUTION_NOT_APPROVED",
            "Your institution has not been approved yet.",
        )

    return user


async def require_root_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != UserRole.ROOT_ADMIN:
        logger.warning(f"Access denied: {user} is not the root admin")
        raise _forbidden("ROOT_ADMIN_ACCESS_REQUIRED", "Root admin access is required.")
    return user


async def require_fellow(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != UserRole.FELLOW:
        raise _forbidden("FELLOW_ACCESS_REQUIRED", "Fellow access is required.")
    return user


async def verify_cron_secret(
    x_cron_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    """
    Check the shared secret of the scheduler-triggered endpoints.

    Accepted in ``X-Cron-Secret`` or as ``Authorization: Bearer <secret>``.
    """
    provided = x_cron_secret
    if provided is None and authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:]

    if not provided or not hmac.compare_digest(provided, settings.cron_secret):
        logger.warning("Rejected cron request with missing or invalid secret")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "INVALID_CRON_SECRET", "message": "Invalid cron secret."},
        )


__all__ = [
    "CurrentUser",
    "get_current_user",
    "require_admin",
    "require_fellow",
    "require_root_admin",
    "verify_cron_secret",
]
