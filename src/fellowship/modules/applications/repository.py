"""
Application Repository

Database operations for fellowship applications.

The review decision is a conditional update on ``status = pending``; of two
concurrent reviews only one changes a row.
"""

from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.applications.models import Application, ApplicationStatus
from fellowship.modules.shared import utc_now


async def create(
    db: AsyncSession,
    *,
    fellow_id: str,
    institution_id: str,
    application_data: dict[str, Any],
) -> Application:
    application = Application(
        fellow_id=fellow_id,
        institution_id=institution_id,
        application_data=application_data,
        status=ApplicationStatus.PENDING,
    )
    db.add(application)
    await db.flush()
    await db.refresh(application)
    return application


async def get_by_id(db: AsyncSession, application_id: str) -> Application | None:
    return await db.get(Application, application_id)


async def get_for_institution(
    db: AsyncSession,
    application_id: str,
    institution_id: str,
) -> Application | None:
    """Get an application only if it was made to ``institution_id``."""
    result = await db.execute(
        select(Application).where(
            Application.id == application_id,
            Application.institution_id == institution_id,
        )
    )
    return result.scalar_one_or_none()


async def get_by_fellow_and_institution(
    db: AsyncSession,
    fellow_id: str,
    institution_id: str,
) -> Application | None:
    result = await db.execute(
        select(Application).where(
            Application.fellow_id == fellow_id,
            Application.institution_id == institution_id,
        )
    )
    return result.scalar_one_or_none()


async def list_for_fellow(db: AsyncSession, fellow_id: str) -> list[Application]:
    result = await db.execute(
        select(Application)
        .where(Application.fellow_id == fellow_id)
        .order_by(Application.submitted_at.desc())
    )
    return list(result.scalars().all())


async def list_for_institution(
    db: AsyncSession,
    institution_id: str,
    status: ApplicationStatus | None = None,
) -> list[Application]:
    """Applications to an institution, newest first, optionally by status."""
    query = (
        select(Application)
        .where(Application.institution_id == institution_id)
        .order_by(Application.submitted_at.desc())
    )
    if status is not None:
        query = query.where(Application.status == status)
    result = await db.execute(query)
    return list(result.scalars().all())


# Pending is the only reviewable state
VALID_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {ApplicationStatus.APPROVED, ApplicationStatus.REJECTED},
    ApplicationStatus.APPROVED: set(),
    ApplicationStatus.REJECTED: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: ApplicationStatus, new_status: ApplicationStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {[s.value for s in valid_transitions]}"
        )


async def record_decision(
    db: AsyncSession,
    application_id: str,
    status: ApplicationStatus,
    *,
    reviewed_by: str,
    review_notes: str | None = None,
    cohort_id: str | None = None,
) -> bool:
    """
    Record the review outcome of a pending application.

    Returns:
        False if the application was no longer pending

    Raises:
        InvalidStatusTransitionError: If ``status`` is not a decision
    """
    if status not in VALID_STATUS_TRANSITIONS[ApplicationStatus.PENDING]:
        raise InvalidStatusTransitionError(ApplicationStatus.PENDING, status)

    now = utc_now()
    result = await db.execute(
        update(Application)
        .where(Application.id == application_id, Application.status == ApplicationStatus.PENDING)
        .values(
            status=status,
            reviewed_at=now,
            reviewed_by=reviewed_by,
            review_notes=review_notes,
            cohort_id=cohort_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
