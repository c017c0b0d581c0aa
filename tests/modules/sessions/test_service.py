"""
Tests for the session service layer (SQLite-backed, Google mocked).

These tests cover:
- Creation: the calendar event is a prerequisite
- Update: past sessions are immutable, calendar failures store nothing
- Cancel: reason required, calendar delete is best-effort, record retained
- Change descriptions
"""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from fellowship.core.google import (
    CalendarEvent,
    GoogleAPIError,
    GoogleClientFactory,
    GooglePermissionDeniedError,
)
from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.cohorts.models import CohortStatus
from fellowship.modules.sessions import repository
from fellowship.modules.sessions.models import CohortSession, SessionStatus
from fellowship.modules.sessions.service import (
    CalendarUnavailableError,
    ReasonRequiredError,
    SessionAlreadyOccurredError,
    SessionCancelledError,
    SessionNotFoundError,
    cancel_session,
    compute_changes,
    create_session,
    update_session,
)
from fellowship.modules.shared import GOOGLE_REMEDIATION, GoogleNotConnectedError
from fellowship.modules.users.models import UserRole

SERVICE = "fellowship.modules.sessions.service"

NOW = datetime(2025, 2, 1, 12, tzinfo=UTC)
FUTURE_START = datetime(2025, 2, 10, 15, tzinfo=UTC)
FUTURE_END = datetime(2025, 2, 10, 16, tzinfo=UTC)


@pytest.fixture(autouse=True)
def emails():
    with (
        patch(f"{SERVICE}.send_session_updated", new=AsyncMock(return_value=True)) as updated,
        patch(f"{SERVICE}.send_session_cancelled", new=AsyncMock(return_value=True)) as cancelled,
    ):
        yield SimpleNamespace(updated=updated, cancelled=cancelled)


@pytest.fixture
def calendar():
    calendar = MagicMock()
    calendar.create_event = AsyncMock(
        return_value=CalendarEvent(event_id="evt-1", join_link="https://meet.google.com/abc")
    )
    calendar.update_event = AsyncMock()
    calendar.delete_event = AsyncMock()
    return calendar


@pytest.fixture
def google(calendar):
    google = MagicMock(spec=GoogleClientFactory)
    google.calendar.return_value = calendar
    return google


@pytest_asyncio.fixture
async def cohort_setup(db, factory):
    """Connected institution, one cohort, two enrolled fellows. Returns plain ids."""
    institution = await factory.institution(db, google_refresh_token="refresh-token")
    cohort = await factory.cohort(
        db,
        institution.id,
        datetime(2025, 1, 1, tzinfo=UTC),
        datetime(2025, 3, 31, tzinfo=UTC),
        CohortStatus.ACTIVE,
    )
    fellows = [
        await factory.user(db, f"fellow{i}@example.com", UserRole.FELLOW, institution.id)
        for i in range(2)
    ]
    for fellow in fellows:
        await cohort_repository.add_membership(db, cohort.id, fellow.id)
    await db.commit()
    return SimpleNamespace(
        institution_id=institution.id,
        cohort_id=cohort.id,
        fellow_ids=[f.id for f in fellows],
    )


async def scheduled_session(db, setup, start=FUTURE_START, end=FUTURE_END):
    session = await repository.create(
        db,
        institution_id=setup.institution_id,
        cohort_id=setup.cohort_id,
        title="Kickoff",
        description="Welcome",
        start_time=start,
        end_time=end,
        meeting_link="https://meet.google.com/abc",
        calendar_event_id="evt-1",
        attendees=[],
        status=SessionStatus.SCHEDULED,
    )
    await db.commit()
    return session


async def count_sessions(db) -> int:
    result = await db.execute(select(func.count(CohortSession.id)))
    return result.scalar_one()


class TestCreateSession:
    """Tests for create_session."""

    @pytest.mark.asyncio
    async def test_creates_event_and_invites_cohort_fellows(
        self, db, google, calendar, cohort_setup
    ):
        session = await create_session(
            db,
            google,
            institution_id=cohort_setup.institution_id,
            cohort_id=cohort_setup.cohort_id,
            title="Kickoff",
            description=None,
            start_time=FUTURE_START,
            end_time=FUTURE_END,
            created_by=str(uuid4()),
        )

        assert session.calendar_event_id == "evt-1"
        assert session.meeting_link == "https://meet.google.com/abc"
        assert session.status == SessionStatus.SCHEDULED
        assert sorted(a["fellow_id"] for a in session.attendees) == sorted(cohort_setup.fellow_ids)
        assert all(a["status"] == "invited" for a in session.attendees)
        assert sorted(calendar.create_event.call_args.kwargs["attendee_emails"]) == [
            "fellow0@example.com",
            "fellow1@example.com",
        ]

    @pytest.mark.asyncio
    async def test_calendar_permission_denied_persists_nothing(
        self, db, google, calendar, cohort_setup
    ):
        calendar.create_event.side_effect = GooglePermissionDeniedError("revoked")

        with pytest.raises(CalendarUnavailableError) as exc_info:
            await create_session(
                db,
                google,
                institution_id=cohort_setup.institution_id,
                cohort_id=cohort_setup.cohort_id,
                title="Kickoff",
                description=None,
                start_time=FUTURE_START,
                end_time=FUTURE_END,
                created_by=str(uuid4()),
            )

        assert GOOGLE_REMEDIATION in exc_info.value.message
        assert await count_sessions(db) == 0

    @pytest.mark.asyncio
    async def test_institution_without_google_is_not_connected(self, db, factory, google):
        institution = await factory.institution(db, name="Offline")
        cohort = await factory.cohort(
            db, institution.id, datetime(2025, 1, 1, tzinfo=UTC), datetime(2025, 3, 31, tzinfo=UTC)
        )

        with pytest.raises(GoogleNotConnectedError):
            await create_session(
                db,
                google,
                institution_id=institution.id,
                cohort_id=cohort.id,
                title="Kickoff",
                description=None,
                start_time=FUTURE_START,
                end_time=FUTURE_END,
                created_by=str(uuid4()),
            )

        assert await count_sessions(db) == 0


class TestUpdateSession:
    """Tests for update_session."""

    @pytest.mark.asyncio
    async def test_past_session_cannot_be_updated(self, db, google, calendar, cohort_setup):
        session = await scheduled_session(db, cohort_setup)

        with pytest.raises(SessionAlreadyOccurredError):
            await update_session(
                db,
                google,
                institution_id=cohort_setup.institution_id,
                session_id=session.id,
                title="Too late",
                now=datetime(2025, 2, 10, 15, 30, tzinfo=UTC),
            )

        calendar.update_event.assert_not_called()

    @pytest.mark.asyncio
    async def test_session_of_another_institution_is_not_found(self, db, google, cohort_setup):
        session = await scheduled_session(db, cohort_setup)

        with pytest.raises(SessionNotFoundError):
            await update_session(
                db,
                google,
                institution_id=str(uuid4()),
                session_id=session.id,
                title="Hijack",
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_calendar_failure_leaves_record_unchanged(
        self, db, database, google, calendar, cohort_setup
    ):
        session = await scheduled_session(db, cohort_setup)
        calendar.update_event.side_effect = GoogleAPIError("backend error", 500)

        with pytest.raises(CalendarUnavailableError):
            await update_session(
                db,
                google,
                institution_id=cohort_setup.institution_id,
                session_id=session.id,
                title="Renamed",
                now=NOW,
            )

        async with database.session() as fresh:
            stored = await fresh.get(CohortSession, session.id)
            assert stored.title == "Kickoff"

    @pytest.mark.asyncio
    async def test_update_patches_event_and_emails_fellows(
        self, db, google, calendar, cohort_setup, emails
    ):
        session = await scheduled_session(db, cohort_setup)

        updated, changes = await update_session(
            db,
            google,
            institution_id=cohort_setup.institution_id,
            session_id=session.id,
            title="Renamed",
            description="Welcome",
            now=NOW,
        )

        assert updated.title == "Renamed"
        assert changes == ['Title changed to "Renamed"']
        calendar.update_event.assert_called_once_with(
            "evt-1", title="Renamed", description=None, start=None, end=None
        )
        assert emails.updated.call_count == 2

    @pytest.mark.asyncio
    async def test_no_changes_is_a_no_op(self, db, google, calendar, cohort_setup, emails):
        session = await scheduled_session(db, cohort_setup)

        _, changes = await update_session(
            db,
            google,
            institution_id=cohort_setup.institution_id,
            session_id=session.id,
            title="Kickoff",
            now=NOW,
        )

        assert changes == []
        calendar.update_event.assert_not_called()
        emails.updated.assert_not_called()


class TestCancelSession:
    """Tests for cancel_session."""

    @pytest.mark.asyncio
    async def test_past_session_cannot_be_cancelled_and_stays_scheduled(
        self, db, database, google, cohort_setup
    ):
        past = await scheduled_session(
            db,
            cohort_setup,
            start=datetime(2025, 1, 20, 15, tzinfo=UTC),
            end=datetime(2025, 1, 20, 16, tzinfo=UTC),
        )

        with pytest.raises(SessionAlreadyOccurredError) as exc_info:
            await cancel_session(
                db,
                google,
                institution_id=cohort_setup.institution_id,
                session_id=past.id,
                reason="x",
                cancelled_by=str(uuid4()),
                now=NOW,
            )

        assert "cancel" in exc_info.value.message
        async with database.session() as fresh:
            stored = await fresh.get(CohortSession, past.id)
            assert stored.status == SessionStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_blank_reason_is_required(self, db, google, cohort_setup):
        session = await scheduled_session(db, cohort_setup)

        with pytest.raises(ReasonRequiredError):
            await cancel_session(
                db,
                google,
                institution_id=cohort_setup.institution_id,
                session_id=session.id,
                reason="   ",
                cancelled_by=str(uuid4()),
                now=NOW,
            )

    @pytest.mark.asyncio
    async def test_calendar_delete_failure_still_cancels(
        self, db, google, calendar, cohort_setup, emails
    ):
        session = await scheduled_session(db, cohort_setup)
        calendar.delete_event.side_effect = GoogleAPIError("gone wrong", 500)
        cancelled_by = str(uuid4())

        cancelled = await cancel_session(
            db,
            google,
            institution_id=cohort_setup.institution_id,
            session_id=session.id,
            reason="Speaker unavailable",
            cancelled_by=cancelled_by,
            now=NOW,
        )

        assert cancelled.status == SessionStatus.CANCELLED
        assert cancelled.cancellation_reason == "Speaker unavailable"
        assert cancelled.cancelled_by == cancelled_by
        assert cancelled.cancelled_at == NOW
        assert await count_sessions(db) == 1
        assert emails.cancelled.call_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_session_cannot_be_cancelled_again(self, db, google, cohort_setup):
        session = await scheduled_session(db, cohort_setup)
        kwargs = dict(
            institution_id=cohort_setup.institution_id,
            session_id=session.id,
            reason="Weather",
            cancelled_by=str(uuid4()),
            now=NOW,
        )

        await cancel_session(db, google, **kwargs)
        with pytest.raises(SessionCancelledError):
            await cancel_session(db, google, **kwargs)


class TestComputeChanges:
    """Tests for compute_changes."""

    def test_describes_each_changed_field(self):
        session = SimpleNamespace(
            title="Kickoff",
            description=None,
            start_time=FUTURE_START,
            end_time=FUTURE_END,
        )
        new_start = datetime(2025, 2, 11, 9, 30, tzinfo=UTC)

        fields, changes = compute_changes(
            session,
            title="Kickoff v2",
            description="Agenda",
            start_time=new_start,
            end_time=FUTURE_END,
        )

        assert fields == {"title": "Kickoff v2", "description": "Agenda", "start_time": new_start}
        assert changes == [
            'Title changed to "Kickoff v2"',
            "Description updated",
            "Start time changed to 2025-02-11 09:30 UTC",
        ]

    def test_empty_description_matches_missing_description(self):
        session = SimpleNamespace(
            title="Kickoff", description=None, start_time=FUTURE_START, end_time=FUTURE_END
        )
        assert compute_changes(session, description="") == ({}, [])
