"""
Session Service Layer

Scheduling coordinator for cohort sessions.

1. Create: calendar event first, then the record. No event, no session.
2. Update: the calendar event is patched before the record is changed; if
   Google rejects the patch nothing is stored.
3. Cancel: the calendar event is deleted best-effort and the record is kept
   with its cancellation details.
4. Sessions whose start time has passed cannot be updated or cancelled.

Fellows of the cohort are emailed on update and cancel. Email failures are
logged and never affect the stored session.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.email import send_session_cancelled, send_session_updated
from fellowship.core.google import (
    CalendarClient,
    GoogleClientFactory,
    GoogleError,
    GoogleNotConfiguredError,
)
from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.cohorts.service import CohortNotFoundError
from fellowship.modules.institutions.repository import InstitutionRepository
from fellowship.modules.sessions import repository
from fellowship.modules.sessions.models import AttendeeStatus, CohortSession, SessionStatus
from fellowship.modules.shared import (
    GOOGLE_REMEDIATION,
    GoogleNotConnectedError,
    ServiceError,
    utc_now,
)
from fellowship.modules.users.models import UserRole
from fellowship.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class SessionServiceError(ServiceError):
    """Base exception for session service errors."""


class SessionNotFoundError(SessionServiceError):
    def __init__(self, session_id: str | None = None):
        message = f"Session {session_id} not found" if session_id else "Session not found"
        super().__init__(message=message, error_code="SESSION_NOT_FOUND", status_code=404)


class SessionAlreadyOccurredError(SessionServiceError):
    def __init__(self, action: str = "update"):
        super().__init__(
            message=f"Cannot {action} a session that has already occurred",
            error_code="SESSION_ALREADY_OCCURRED",
            status_code=409,
        )


class SessionCancelledError(SessionServiceError):
    def __init__(self):
        super().__init__(
            message="Session has been cancelled",
            error_code="SESSION_CANCELLED",
            status_code=409,
        )


class ReasonRequiredError(SessionServiceError):
    def __init__(self):
        super().__init__(
            message="Cancellation reason is required",
            error_code="REASON_REQUIRED",
            status_code=400,
        )


class InvalidTimeRangeError(SessionServiceError):
    def __init__(self):
        super().__init__(
            message="End time must be after start time",
            error_code="INVALID_DATE_RANGE",
            status_code=400,
        )


class CalendarUnavailableError(SessionServiceError):
    def __init__(self, action: str):
        super().__init__(
            message=f"Could not {action} the Google Calendar event. {GOOGLE_REMEDIATION}",
            error_code="CALENDAR_UNAVAILABLE",
            status_code=502,
        )


def _format_change_time(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


async def _calendar_for(
    db: AsyncSession,
    google: GoogleClientFactory,
    institution_id: str,
) -> CalendarClient:
    institution = await InstitutionRepository.get_by_id(db, institution_id)
    if institution is None or not institution.google_refresh_token:
        raise GoogleNotConnectedError()
    try:
        return google.calendar(institution.google_refresh_token)
    except GoogleNotConfiguredError as e:
        raise GoogleNotConnectedError() from e


async def _get_session(db: AsyncSession, institution_id: str, session_id: str) -> CohortSession:
    session = await repository.get_for_institution(db, session_id, institution_id)
    if session is None:
        raise SessionNotFoundError(session_id)
    return session


# ============================================
# Create
# ============================================


async def create_session(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    cohort_id: str,
    title: str,
    description: str | None,
    start_time: datetime,
    end_time: datetime,
    created_by: str,
) -> CohortSession:
    """
    Schedule a session for a cohort and invite its fellows.

    The Google Calendar event is a prerequisite: if it cannot be created no
    session is stored.

    Raises:
        CohortNotFoundError: If the cohort is not in the institution
        InvalidTimeRangeError: If end_time is not after start_time
        GoogleNotConnectedError: If the institution has no Google credential
        CalendarUnavailableError: If Google rejects the event
    """
    if end_time <= start_time:
        raise InvalidTimeRangeError()

    cohort = await cohort_repository.get_for_institution(db, cohort_id, institution_id)
    if cohort is None:
        raise CohortNotFoundError(cohort_id)

    fellow_ids = await cohort_repository.get_fellow_ids(db, cohort.id)
    fellows = await UserRepository.get_many(db, fellow_ids)

    calendar = await _calendar_for(db, google, institution_id)
    try:
        event = await calendar.create_event(
            title=title,
            description=description,
            start=start_time,
            end=end_time,
            attendee_emails=[f.email for f in fellows],
        )
    except GoogleNotConfiguredError as e:
        raise GoogleNotConnectedError() from e
    except GoogleError as e:
        logger.error(f"Calendar event creation failed for cohort {cohort.id}: {e}")
        raise CalendarUnavailableError("create") from e

    session = await repository.create(
        db,
        institution_id=institution_id,
        cohort_id=cohort.id,
        title=title,
        description=description,
        start_time=start_time,
        end_time=end_time,
        meeting_link=event.join_link,
        calendar_event_id=event.event_id,
        attendees=[
            {"fellow_id": fellow_id, "status": AttendeeStatus.INVITED.value}
            for fellow_id in fellow_ids
        ],
        status=SessionStatus.SCHEDULED,
        created_by=created_by,
    )
    await db.commit()

    logger.info(f"Created session {session.id} for cohort {cohort.id} with {len(fellow_ids)} attendees")
    return session


# ============================================
# Update
# ============================================


def compute_changes(
    session: CohortSession,
    *,
    title: str | None = None,
    description: str | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> tuple[dict, list[str]]:
    """
    Diff a patch against the stored session.

    Returns:
        The fields that actually change, and one human-readable line per change
    """
    fields: dict = {}
    changes: list[str] = []
    if title is not None and title != session.title:
        fields["title"] = title
        changes.append(f'Title changed to "{title}"')
    if description is not None and description != (session.description or ""):
        fields["description"] = description
        changes.append("Description updated")
    if start_time is not None and start_time != session.start_time:
        fields["start_time"] = start_time
        changes.append(f"Start time changed to {_format_change_time(start_time)}")
    if end_time is not None and end_time != session.end_time:
        fields["end_time"] = end_time
        changes.append(f"End time changed to {_format_change_time(end_time)}")
    return fields, changes


async def update_session(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    session_id: str,
    title: str | None = None,
    description: str | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    now: datetime | None = None,
) -> tuple[CohortSession, list[str]]:
    """
    Edit an upcoming session.

    Returns:
        The session and the list of changes (empty when nothing changed)

    Raises:
        SessionNotFoundError: If the session is not in the institution
        SessionAlreadyOccurredError: If its start time has passed
        SessionCancelledError: If it was cancelled
        InvalidTimeRangeError: If the resulting end is not after the start
        CalendarUnavailableError: If Google rejects the event update
    """
    now = now or utc_now()
    session = await _get_session(db, institution_id, session_id)

    if now > session.start_time:
        raise SessionAlreadyOccurredError("update")
    if session.status == SessionStatus.CANCELLED:
        raise SessionCancelledError()

    fields, changes = compute_changes(
        session, title=title, description=description, start_time=start_time, end_time=end_time
    )
    if not changes:
        return session, []

    if fields.get("end_time", session.end_time) <= fields.get("start_time", session.start_time):
        raise InvalidTimeRangeError()

    if session.calendar_event_id:
        calendar = await _calendar_for(db, google, institution_id)
        try:
            await calendar.update_event(
                session.calendar_event_id,
                title=fields.get("title"),
                description=fields.get("description"),
                start=fields.get("start_time"),
                end=fields.get("end_time"),
            )
        except GoogleNotConfiguredError as e:
            raise GoogleNotConnectedError() from e
        except GoogleError as e:
            logger.error(f"Calendar event update failed for session {session.id}: {e}")
            raise CalendarUnavailableError("update") from e

    await repository.update_fields(db, session, **fields)
    await db.commit()
    logger.info(f"Updated session {session.id}: {len(changes)} changes")

    for fellow in await _cohort_fellows(db, session.cohort_id):
        try:
            email_sent = await send_session_updated(
                to_email=fellow.email,
                fellow_name=fellow.name,
                session_title=session.title,
                changes=changes,
                meeting_link=session.meeting_link,
            )
            if not email_sent:
                logger.error(f"Failed to send session update to {fellow.id}")
        except Exception as e:
            logger.error(f"Exception sending session update to {fellow.id}: {e}")

    return session, changes


# ============================================
# Cancel
# ============================================


async def cancel_session(
    db: AsyncSession,
    google: GoogleClientFactory,
    *,
    institution_id: str,
    session_id: str,
    reason: str,
    cancelled_by: str,
    now: datetime | None = None,
) -> CohortSession:
    """
    Cancel an upcoming session. The record is kept.

    Raises:
        SessionNotFoundError: If the session is not in the institution
        SessionAlreadyOccurredError: If its start time has passed
        ReasonRequiredError: If ``reason`` is blank
        SessionCancelledError: If it was already cancelled
    """
    now = now or utc_now()
    session = await _get_session(db, institution_id, session_id)

    if now > session.start_time:
        raise SessionAlreadyOccurredError("cancel")
    reason = (reason or "").strip()
    if not reason:
        raise ReasonRequiredError()
    if session.status == SessionStatus.CANCELLED:
        raise SessionCancelledError()

    if session.calendar_event_id:
        try:
            calendar = await _calendar_for(db, google, institution_id)
            await calendar.delete_event(session.calendar_event_id)
        except (GoogleError, GoogleNotConnectedError) as e:
            logger.warning(f"Could not delete calendar event for session {session.id}: {e}")

    if not await repository.mark_cancelled(
        db, session.id, reason=reason, cancelled_by=cancelled_by, cancelled_at=now
    ):
        await db.rollback()
        raise SessionCancelledError()
    await db.commit()
    await db.refresh(session)

    logger.info(f"Cancelled session {session.id}")

    for fellow in await _cohort_fellows(db, session.cohort_id):
        try:
            email_sent = await send_session_cancelled(
                to_email=fellow.email,
                fellow_name=fellow.name,
                session_title=session.title,
                start_time=session.start_time,
                reason=reason,
            )
            if not email_sent:
                logger.error(f"Failed to send cancellation to {fellow.id}")
        except Exception as e:
            logger.error(f"Exception sending cancellation to {fellow.id}: {e}")

    return session


async def _cohort_fellows(db: AsyncSession, cohort_id: str):
    return await UserRepository.get_many(db, await cohort_repository.get_fellow_ids(db, cohort_id))


# ============================================
# Queries
# ============================================


async def list_sessions(
    db: AsyncSession,
    *,
    user_id: str,
    role: UserRole | None,
    institution_id: str | None,
) -> list[CohortSession]:
    """Admins see their institution's sessions; fellows see their cohorts' sessions."""
    if role == UserRole.ADMIN and institution_id:
        return await repository.list_for_institution(db, institution_id)
    if role == UserRole.FELLOW:
        cohort_ids = await cohort_repository.get_cohort_ids_for_user(db, user_id)
        return await repository.list_for_cohorts(db, cohort_ids)
    return []
