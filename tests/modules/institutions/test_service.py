"""
Tests for the institution service layer (SQLite-backed).

These tests cover:
- Admin role requests
- Root admin review (exactly once, promotion, rejection)
- Approval surviving email and Drive failures
- Direct creation (duplicate names, existing admins, placeholders)
- Google connection checks
"""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from fellowship.core.google import (
    GoogleAPIError,
    GoogleClientFactory,
    GooglePermissionDeniedError,
)
from fellowship.modules.institutions.models import InstitutionStatus
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.institutions.service import (
    DuplicateInstitutionNameError,
    EmailAlreadyAdminError,
    InstitutionAlreadyProcessedError,
    InstitutionNotFoundError,
    ReviewAction,
    check_google_connection,
    create_institution_direct,
    request_admin_role,
    review_institution,
)
from fellowship.modules.shared import GoogleNotConnectedError
from fellowship.modules.users.models import UserRole
from fellowship.modules.users.repository import UserRepository

SERVICE = "fellowship.modules.institutions.service"


@pytest.fixture(autouse=True)
def no_emails():
    names = [
        "send_admin_request_pending",
        "send_admin_request_received",
        "send_institution_approved",
        "send_institution_rejected",
        "send_institution_assigned",
    ]
    patches = [patch(f"{SERVICE}.{name}", new=AsyncMock(return_value=True)) for name in names]
    mocks = {name: p.start() for name, p in zip(names, patches)}
    yield mocks
    for p in patches:
        p.stop()


@pytest.fixture
def google():
    return MagicMock(spec=GoogleClientFactory)


class TestRequestAdminRole:
    """Tests for request_admin_role."""

    @pytest.mark.asyncio
    async def test_creates_pending_institution_once(self, db, factory):
        user = await factory.user(db, "owner@acme.org", role=None)

        first = await request_admin_role(db, user=user, institution_name="Acme")
        second = await request_admin_role(db, user=user, institution_name="Acme Again")

        assert first.pending and first.created
        assert second.institution_id == first.institution_id
        assert second.pending and not second.created
        assert user.institution_id == first.institution_id
        assert user.role is None


class TestReviewInstitution:
    """Tests for review_institution."""

    @pytest.mark.asyncio
    async def test_approval_promotes_the_requester(self, db, factory, google, no_emails):
        user = await factory.user(db, "owner@acme.org", role=None)
        request = await request_admin_role(db, user=user, institution_name="Acme")

        institution = await review_institution(
            db, google, institution_id=request.institution_id, action=ReviewAction.APPROVE
        )

        assert institution.status == InstitutionStatus.APPROVED
        assert institution.reviewed_at is not None
        admin = await UserRepository.get_by_id(db, user.id)
        assert admin.role == UserRole.ADMIN
        assert admin.institution_id == institution.id
        no_emails["send_institution_approved"].assert_called_once()

    @pytest.mark.asyncio
    async def test_failed_approval_email_keeps_the_decision(self, db, factory, google, no_emails):
        user = await factory.user(db, "owner@acme.org", role=None)
        request = await request_admin_role(db, user=user, institution_name="Acme")
        no_emails["send_institution_approved"].side_effect = RuntimeError("resend down")

        await review_institution(
            db, google, institution_id=request.institution_id, action=ReviewAction.APPROVE
        )

        institution = await InstitutionRepository.get_by_id(db, request.institution_id)
        admin = await UserRepository.get_by_id(db, user.id)
        assert institution.status == InstitutionStatus.APPROVED
        assert admin.role == UserRole.ADMIN
        assert admin.institution_id == request.institution_id

    @pytest.mark.asyncio
    async def test_unsent_approval_email_keeps_the_decision(self, db, factory, google, no_emails):
        user = await factory.user(db, "owner@acme.org", role=None)
        request = await request_admin_role(db, user=user, institution_name="Acme")
        no_emails["send_institution_approved"].return_value = False

        institution = await review_institution(
            db, google, institution_id=request.institution_id, action=ReviewAction.APPROVE
        )

        admin = await UserRepository.get_by_id(db, user.id)
        assert institution.status == InstitutionStatus.APPROVED
        assert admin.role == UserRole.ADMIN

    @pytest.mark.asyncio
    async def test_drive_failure_during_approval_keeps_the_decision(
        self, db, factory, google, no_emails
    ):
        """The root folder is best effort: a Drive error leaves the approval committed."""
        user = await factory.user(db, "owner@acme.org", role=None)
        user.google_refresh_token = "refresh-token"
        await db.commit()
        request = await request_admin_role(db, user=user, institution_name="Acme")
        google.drive.return_value.create_folder = AsyncMock(
            side_effect=GoogleAPIError("Drive down", 503)
        )

        await review_institution(
            db, google, institution_id=request.institution_id, action=ReviewAction.APPROVE
        )

        institution = await InstitutionRepository.get_by_id(db, request.institution_id)
        admin = await UserRepository.get_by_id(db, user.id)
        assert institution.status == InstitutionStatus.APPROVED
        assert institution.drive_root_folder_id is None
        assert admin.role == UserRole.ADMIN
        assert admin.institution_id == request.institution_id
        google.drive.return_value.create_folder.assert_called_once()
        no_emails["send_institution_approved"].assert_called_once()

    @pytest.mark.asyncio
    async def test_review_succeeds_only_once(self, db, factory, google):
        user = await factory.user(db, "owner@acme.org", role=None)
        request = await request_admin_role(db, user=user, institution_name="Acme")

        await review_institution(
            db, google, institution_id=request.institution_id, action=ReviewAction.REJECT
        )
        with pytest.raises(InstitutionAlreadyProcessedError):
            await review_institution(
                db, google, institution_id=request.institution_id, action=ReviewAction.APPROVE
            )

    @pytest.mark.asyncio
    async def test_rejection_releases_the_requester(self, db, factory, google):
        user = await factory.user(db, "owner@acme.org", role=None)
        request = await request_admin_role(db, user=user, institution_name="Acme")

        institution = await review_institution(
            db, google, institution_id=request.institution_id, action=ReviewAction.REJECT
        )

        assert institution.status == InstitutionStatus.REJECTED
        refreshed = await UserRepository.get_by_id(db, user.id)
        assert refreshed.institution_id is None
        assert refreshed.role is None

    @pytest.mark.asyncio
    async def test_unknown_institution_is_not_found(self, db, google):
        with pytest.raises(InstitutionNotFoundError):
            await review_institution(
                db, google, institution_id=str(uuid4()), action=ReviewAction.APPROVE
            )


class TestCreateInstitutionDirect:
    """Tests for create_institution_direct."""

    @pytest.mark.asyncio
    async def test_duplicate_name_is_rejected_case_insensitively(self, db, factory):
        await factory.institution(db, name="Acme Institute")

        with pytest.raises(DuplicateInstitutionNameError):
            await create_institution_direct(
                db, name="acme institute", admin_email="new@acme.org", admin_name="New"
            )

    @pytest.mark.asyncio
    async def test_email_already_admin_is_rejected(self, db, factory):
        existing = await factory.institution(db, name="Existing")
        await factory.user(db, "boss@acme.org", UserRole.ADMIN, existing.id)

        with pytest.raises(EmailAlreadyAdminError):
            await create_institution_direct(
                db, name="Second", admin_email="Boss@Acme.org", admin_name="Boss"
            )

    @pytest.mark.asyncio
    async def test_unknown_email_gets_a_placeholder_admin(self, db, no_emails):
        institution = await create_institution_direct(
            db, name="Fresh", admin_email="Someone@Fresh.org", admin_name="Someone"
        )

        admin = await UserRepository.get_by_email(db, "someone@fresh.org")
        assert institution.status == InstitutionStatus.APPROVED
        assert institution.admin_user_id == admin.id
        assert admin.is_placeholder is True
        assert admin.role == UserRole.ADMIN
        assert admin.institution_id == institution.id
        no_emails["send_institution_assigned"].assert_called_once()

    @pytest.mark.asyncio
    async def test_existing_user_is_promoted(self, db, factory):
        fellow = await factory.user(db, "fellow@acme.org", UserRole.FELLOW)

        institution = await create_institution_direct(
            db, name="Promoted", admin_email="fellow@acme.org", admin_name="Ignored"
        )

        assert institution.admin_user_id == fellow.id
        assert fellow.role == UserRole.ADMIN
        assert fellow.institution_id == institution.id
        assert fellow.is_placeholder is False


class TestCheckGoogleConnection:
    """Tests for check_google_connection."""

    @pytest.mark.asyncio
    async def test_requires_a_stored_credential(self, db, factory, google):
        institution = await factory.institution(db)

        with pytest.raises(GoogleNotConnectedError):
            await check_google_connection(db, google, institution_id=institution.id)

    @pytest.mark.asyncio
    async def test_reports_failure_without_raising(self, db, factory, google):
        institution = await factory.institution(db, google_refresh_token="token")
        google.calendar.return_value = MagicMock(
            count_calendars=AsyncMock(side_effect=GooglePermissionDeniedError("revoked"))
        )

        result = await check_google_connection(db, google, institution_id=institution.id)

        assert result["success"] is False
        assert "revoked" in result["message"]

    @pytest.mark.asyncio
    async def test_reports_calendar_and_drive_details(self, db, factory, google):
        institution = await factory.institution(db, google_refresh_token="token")
        google.calendar.return_value = MagicMock(count_calendars=AsyncMock(return_value=3))
        google.drive.return_value = MagicMock(
            about_user_email=AsyncMock(return_value="owner@acme.org")
        )

        result = await check_google_connection(db, google, institution_id=institution.id)

        assert result == {
            "success": True,
            "calendar_count": 3,
            "drive_email": "owner@acme.org",
            "message": "Google Calendar and Drive are reachable.",
        }
