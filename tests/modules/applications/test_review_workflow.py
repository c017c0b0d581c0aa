"""
Application review against a real (SQLite) database.

These tests cover:
- Approval with a cohort writes both sides of the membership
- Re-approval fails and changes nothing
- A crash between the decision and the enrolment rolls both back
- A failed decision email leaves the decision and enrolment in place
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from fellowship.modules.applications.models import Application, ApplicationStatus
from fellowship.modules.applications.schemas import ReviewDecision
from fellowship.modules.applications.service import (
    ApplicationAlreadyReviewedError,
    DuplicateApplicationError,
    review_application,
    submit_application,
)
from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.cohorts.models import CohortMembership, CohortStatus
from fellowship.modules.users.models import User, UserRole

SERVICE = "fellowship.modules.applications.service"

APPLICATION_DATA = {
    "full_name": "Fay Fellow",
    "email": "fay@example.com",
    "education": "MSc",
    "experience": "None",
    "motivation": "Community",
}


@pytest.fixture(autouse=True)
def no_emails():
    with (
        patch(f"{SERVICE}.send_application_submitted", new=AsyncMock(return_value=True)),
        patch(f"{SERVICE}.send_application_approved", new=AsyncMock(return_value=True)),
        patch(f"{SERVICE}.send_application_rejected", new=AsyncMock(return_value=True)),
    ):
        yield


@pytest_asyncio.fixture
async def setup(db, factory):
    """An approved institution with an admin, a cohort, and a fellow's pending application."""
    institution = await factory.institution(db)
    admin = await factory.user(db, "admin@acme.org", UserRole.ADMIN, institution.id)
    fellow = await factory.user(db, "fay@example.com", UserRole.FELLOW)
    cohort = await factory.cohort(
        db,
        institution.id,
        datetime(2025, 1, 1, tzinfo=UTC),
        datetime(2025, 3, 31, tzinfo=UTC),
        CohortStatus.ACTIVE,
    )
    application = await submit_application(
        db,
        fellow_id=fellow.id,
        institution_id=institution.id,
        application_data=APPLICATION_DATA,
    )
    # Plain ids: a rollback in the test expires every loaded row
    return {
        "institution": institution.id,
        "admin": admin.id,
        "fellow": fellow.id,
        "cohort": cohort.id,
        "application": application.id,
    }


async def approve(db, setup):
    return await review_application(
        db,
        application_id=setup["application"],
        reviewer_id=setup["admin"],
        reviewer_institution_id=setup["institution"],
        action=ReviewDecision.APPROVE,
        cohort_id=setup["cohort"],
    )


class TestReviewWorkflow:
    """End-to-end review with real rows."""

    @pytest.mark.asyncio
    async def test_duplicate_submission_is_rejected(self, db, setup):
        with pytest.raises(DuplicateApplicationError):
            await submit_application(
                db,
                fellow_id=setup["fellow"],
                institution_id=setup["institution"],
                application_data=APPLICATION_DATA,
            )

    @pytest.mark.asyncio
    async def test_approval_writes_both_sides_of_membership(self, db, database, setup):
        application = await approve(db, setup)

        assert application.status == ApplicationStatus.APPROVED
        assert application.cohort_id == setup["cohort"]

        async with database.session() as session:
            fellow = await session.get(User, setup["fellow"])
            fellow_cohorts = await cohort_repository.get_cohort_ids_for_user(session, fellow.id)
            cohort_fellows = await cohort_repository.get_fellow_ids(session, setup["cohort"])

        assert fellow.institution_id == setup["institution"]
        assert fellow_cohorts == [setup["cohort"]]
        assert cohort_fellows == [setup["fellow"]]

    @pytest.mark.asyncio
    async def test_reapproval_fails_and_leaves_state_unchanged(self, db, database, setup):
        await approve(db, setup)

        with pytest.raises(ApplicationAlreadyReviewedError):
            await approve(db, setup)

        async with database.session() as session:
            memberships = await session.execute(select(CohortMembership))
            assert len(memberships.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_crash_during_enrolment_rolls_back_the_decision(self, db, database, setup):
        """If the membership write fails, the decision and institution move are undone."""
        with (
            patch(
                "fellowship.modules.cohorts.membership.repository.add_membership",
                new=AsyncMock(side_effect=RuntimeError("connection lost")),
            ),
            pytest.raises(RuntimeError),
        ):
            await approve(db, setup)

        async with database.session() as session:
            application = await session.get(Application, setup["application"])
            fellow = await session.get(User, setup["fellow"])
            memberships = await session.execute(select(CohortMembership))

            assert application.status == ApplicationStatus.PENDING
            assert application.reviewed_by is None
            assert fellow.institution_id is None
            assert memberships.scalars().all() == []

    @pytest.mark.asyncio
    async def test_application_can_be_approved_after_a_failed_attempt(self, db, database, setup):
        with (
            patch(
                "fellowship.modules.cohorts.membership.repository.add_membership",
                new=AsyncMock(side_effect=RuntimeError("connection lost")),
            ),
            pytest.raises(RuntimeError),
        ):
            await approve(db, setup)

        async with database.session() as session:
            application = await approve(session, setup)

        assert application.status == ApplicationStatus.APPROVED


async def assert_enrolled(database, setup):
    async with database.session() as session:
        application = await session.get(Application, setup["application"])
        fellow = await session.get(User, setup["fellow"])
        fellow_cohorts = await cohort_repository.get_cohort_ids_for_user(session, setup["fellow"])
        cohort_fellows = await cohort_repository.get_fellow_ids(session, setup["cohort"])

        assert application.status == ApplicationStatus.APPROVED
        assert fellow.institution_id == setup["institution"]
        assert fellow_cohorts == [setup["cohort"]]
        assert cohort_fellows == [setup["fellow"]]


class TestDecisionEmailFailures:
    """A decision is committed before the fellow is emailed; email trouble never undoes it."""

    @pytest.mark.asyncio
    async def test_approval_email_exception_keeps_enrolment(self, db, database, setup):
        send = AsyncMock(side_effect=RuntimeError("resend down"))
        with patch(f"{SERVICE}.send_application_approved", new=send):
            application = await approve(db, setup)

        assert application.status == ApplicationStatus.APPROVED
        send.assert_called_once()
        await assert_enrolled(database, setup)

    @pytest.mark.asyncio
    async def test_unsent_approval_email_keeps_enrolment(self, db, database, setup):
        send = AsyncMock(return_value=False)
        with patch(f"{SERVICE}.send_application_approved", new=send):
            await approve(db, setup)

        send.assert_called_once()
        await assert_enrolled(database, setup)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "send",
        [AsyncMock(side_effect=RuntimeError("resend down")), AsyncMock(return_value=False)],
        ids=["raises", "returns-false"],
    )
    async def test_rejection_email_failure_keeps_rejection(self, db, database, setup, send):
        with patch(f"{SERVICE}.send_application_rejected", new=send):
            application = await review_application(
                db,
                application_id=setup["application"],
                reviewer_id=setup["admin"],
                reviewer_institution_id=setup["institution"],
                action=ReviewDecision.REJECT,
                notes="Not this round",
            )

        assert application.status == ApplicationStatus.REJECTED
        async with database.session() as session:
            stored = await session.get(Application, setup["application"])
            fellow = await session.get(User, setup["fellow"])
            memberships = await session.execute(select(CohortMembership))

            assert stored.status == ApplicationStatus.REJECTED
            assert stored.review_notes == "Not this round"
            assert fellow.institution_id is None
            assert memberships.scalars().all() == []
