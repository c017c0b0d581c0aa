"""
Unit tests for the authentication dependencies.

Dependencies are called directly, so every argument is passed explicitly
(FastAPI would otherwise supply the defaults).
"""

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from fellowship.core.auth import get_current_user, verify_cron_secret
from fellowship.core.config import settings
from fellowship.core.security import create_access_token
from fellowship.modules.users.models import UserRole


class TestVerifyCronSecret:
    """Tests for verify_cron_secret."""

    @pytest.mark.asyncio
    async def test_accepts_header_secret(self):
        await verify_cron_secret(x_cron_secret=settings.cron_secret, authorization=None)

    @pytest.mark.asyncio
    async def test_accepts_bearer_secret(self):
        await verify_cron_secret(
            x_cron_secret=None, authorization=f"Bearer {settings.cron_secret}"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("x_cron_secret", "authorization"),
        [
            (None, None),
            ("wrong", None),
            (None, "Bearer wrong"),
            (None, settings.cron_secret),
        ],
    )
    async def test_rejects_missing_or_wrong_secret(self, x_cron_secret, authorization):
        with pytest.raises(HTTPException) as exc_info:
            await verify_cron_secret(x_cron_secret=x_cron_secret, authorization=authorization)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "INVALID_CRON_SECRET"


class TestGetCurrentUser:
    """Tests for get_current_user with signed tokens."""

    @staticmethod
    def bearer(token: str) -> HTTPAuthorizationCredentials:
        return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)

    @pytest.mark.asyncio
    async def test_first_sign_in_registers_user_without_role(self, db):
        token = create_access_token(
            "provider-subject", {"email": "new@example.com", "name": "New Fellow"}
        )

        user = await get_current_user(credentials=self.bearer(token), db=db)

        assert user.email == "new@example.com"
        assert user.name == "New Fellow"
        assert user.role is None
        assert user.institution_id is None

    @pytest.mark.asyncio
    async def test_stored_role_wins_over_token_claims(self, db, factory):
        institution = await factory.institution(db)
        stored = await factory.user(db, "admin@acme.org", UserRole.ADMIN, institution.id)
        token = create_access_token(
            "provider-subject", {"email": "admin@acme.org", "role": "root_admin"}
        )

        user = await get_current_user(credentials=self.bearer(token), db=db)

        assert user.id == stored.id
        assert user.role == UserRole.ADMIN
        assert user.institution_id == institution.id

    @pytest.mark.asyncio
    async def test_non_access_token_is_rejected(self, db):
        token = create_access_token("subject", {"email": "a@example.com", "type": "refresh"})

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=self.bearer(token), db=db)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail["error"] == "INVALID_TOKEN_TYPE"

    @pytest.mark.asyncio
    async def test_tampered_token_is_rejected(self, db):
        token = create_access_token("subject", {"email": "a@example.com"}) + "x"

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(credentials=self.bearer(token), db=db)

        assert exc_info.value.detail["error"] == "INVALID_TOKEN"
