"""
Session Repository

Database operations for cohort sessions.
"""

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.sessions.models import CohortSession, SessionStatus
from fellowship.modules.shared import utc_now


async def create(db: AsyncSession, **fields) -> CohortSession:
    session = CohortSession(**fields)
    db.add(session)
    await db.flush()
    await db.refresh(session)
    return session


async def get_for_institution(
    db: AsyncSession,
    session_id: str,
    institution_id: str,
) -> CohortSession | None:
    """Get a session only if it belongs to ``institution_id``."""
    result = await db.execute(
        select(CohortSession).where(
            CohortSession.id == session_id,
            CohortSession.institution_id == institution_id,
        )
    )
    return result.scalar_one_or_none()


async def list_for_institution(db: AsyncSession, institution_id: str) -> list[CohortSession]:
    result = await db.execute(
        select(CohortSession)
        .where(CohortSession.institution_id == institution_id)
        .order_by(CohortSession.start_time.desc())
    )
    return list(result.scalars().all())


async def list_for_cohorts(db: AsyncSession, cohort_ids: list[str]) -> list[CohortSession]:
    if not cohort_ids:
        return []
    result = await db.execute(
        select(CohortSession)
        .where(CohortSession.cohort_id.in_(cohort_ids))
        .order_by(CohortSession.start_time.desc())
    )
    return list(result.scalars().all())


async def update_fields(db: AsyncSession, session: CohortSession, **fields) -> CohortSession:
    for key, value in fields.items():
        setattr(session, key, value)
    await db.flush()
    return session


async def mark_cancelled(
    db: AsyncSession,
    session_id: str,
    *,
    reason: str,
    cancelled_by: str,
    cancelled_at: datetime,
) -> bool:
    """
    Move a scheduled session to cancelled.

    Returns:
        False if the session was no longer scheduled
    """
    result = await db.execute(
        update(CohortSession)
        .where(CohortSession.id == session_id, CohortSession.status == SessionStatus.SCHEDULED)
        .values(
            status=SessionStatus.CANCELLED,
            cancellation_reason=reason,
            cancelled_by=cancelled_by,
            cancelled_at=cancelled_at,
            updated_at=utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
