"""
Tests for the user service layer.

These tests cover:
- Onboarding role selection
- Google credential storage
- Fellow directory
- Invitations with partial failures
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.institutions.models import InstitutionStatus
from fellowship.modules.institutions.service import AdminRoleRequestResult
from fellowship.modules.users.models import UserRole
from fellowship.modules.users.schemas import SelectableRole
from fellowship.modules.users.service import (
    DEFAULT_INSTITUTION_NAME,
    InvalidRoleChangeError,
    get_me,
    list_fellows,
    select_role,
    send_invitations,
    store_google_credential,
)

SERVICE = "fellowship.modules.users.service"


class TestSelectRole:
    """Tests for select_role."""

    @pytest.mark.asyncio
    async def test_fellow_role_is_set_immediately(self, db, factory):
        user = await factory.user(db, "new@example.com", role=None)

        selection = await select_role(db, user_id=user.id, role=SelectableRole.FELLOW)

        assert selection.role == UserRole.FELLOW
        assert selection.pending is False
        assert user.role == UserRole.FELLOW

    @pytest.mark.asyncio
    async def test_switching_roles_is_rejected(self, db, factory):
        user = await factory.user(db, "fellow@example.com", UserRole.FELLOW)

        with pytest.raises(InvalidRoleChangeError):
            await select_role(
                db, user_id=user.id, role=SelectableRole.ADMIN, institution_name="Acme"
            )

    @pytest.mark.asyncio
    async def test_admin_request_is_pending_until_approved(self, db, factory):
        user = await factory.user(db, "owner@example.com", role=None)

        with patch(
            f"{SERVICE}.request_admin_role",
            new=AsyncMock(
                return_value=AdminRoleRequestResult("inst-1", pending=True, created=True)
            ),
        ) as mock_request:
            selection = await select_role(
                db, user_id=user.id, role=SelectableRole.ADMIN, institution_name="Acme"
            )

        assert selection.role is None
        assert selection.pending is True
        assert selection.institution_id == "inst-1"
        assert mock_request.call_args.kwargs["institution_name"] == "Acme"


class TestStoreGoogleCredential:
    """Tests for store_google_credential."""

    @pytest.mark.asyncio
    async def test_admin_token_is_copied_to_institution(self, db, factory):
        institution = await factory.institution(db, status=InstitutionStatus.APPROVED)
        admin = await factory.user(db, institution.admin_email, UserRole.ADMIN, institution.id)

        await store_google_credential(db, user_id=admin.id, refresh_token="token-1")

        assert admin.google_refresh_token == "token-1"
        assert institution.google_refresh_token == "token-1"

    @pytest.mark.asyncio
    async def test_fellow_token_stays_on_the_user(self, db, factory):
        institution = await factory.institution(db)
        fellow = await factory.user(db, "fellow@example.com", UserRole.FELLOW, institution.id)

        await store_google_credential(db, user_id=fellow.id, refresh_token="token-2")

        assert fellow.google_refresh_token == "token-2"
        assert institution.google_refresh_token is None


class TestDirectory:
    """Tests for get_me and list_fellows."""

    @pytest.mark.asyncio
    async def test_cohort_mates_and_institution_fellows_are_listed(self, db, factory):
        institution = await factory.institution(db)
        cohort = await factory.cohort(
            db, institution.id, datetime(2025, 1, 1, tzinfo=UTC), datetime(2025, 3, 31, tzinfo=UTC)
        )
        me = await factory.user(db, "me@example.com", UserRole.FELLOW, institution.id, name="Me")
        mate = await factory.user(db, "mate@example.com", UserRole.FELLOW, institution.id, name="Mate")
        await factory.user(db, "stranger@example.com", UserRole.FELLOW, name="Stranger")
        await cohort_repository.add_membership(db, cohort.id, me.id)
        await cohort_repository.add_membership(db, cohort.id, mate.id)
        await db.commit()

        fellows = await list_fellows(db, user_id=me.id, institution_id=institution.id)
        user, cohort_ids = await get_me(db, me.id)

        assert [f.email for f in fellows] == ["mate@example.com"]
        assert user.id == me.id
        assert cohort_ids == [cohort.id]


class TestSendInvitations:
    """Tests for send_invitations."""

    @pytest.mark.asyncio
    async def test_failures_are_reported_per_address(self, mock_db):
        with patch(
            f"{SERVICE}.send_fellowship_invitation",
            new=AsyncMock(side_effect=[True, Exception("bounced"), False]),
        ) as mock_email:
            results = await send_invitations(
                mock_db,
                inviter_name="Ada",
                institution_id=None,
                emails=["One@Example.com", "two@example.com", "one@example.com", "three@example.com"],
            )

        assert results == [
            {"email": "one@example.com", "success": True},
            {"email": "two@example.com", "success": False},
            {"email": "three@example.com", "success": False},
        ]
        assert mock_email.call_count == 3
        assert mock_email.call_args.kwargs["institution_name"] == DEFAULT_INSTITUTION_NAME
