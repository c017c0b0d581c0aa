"""
Cohort Repository

Database operations for cohorts and cohort memberships.

Status changes are conditional updates that report whether they applied:
- activation only succeeds while the cohort is upcoming AND no other cohort
  of the institution is active
- completion only succeeds while the cohort is active
A partial unique index backs the single-active rule for every other writer.
Cohort creation holds the institution row lock (``lock_institution``) from the
overlap check to the commit.
"""

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from fellowship.modules.cohorts.models import Cohort, CohortMembership, CohortStatus
from fellowship.modules.institutions.models import Institution
from fellowship.modules.shared import utc_now


async def lock_institution(db: AsyncSession, institution_id: str) -> bool:
    """
    Serialize cohort writes of an institution until the transaction ends.

    Touches the institution row: a row lock on PostgreSQL, the database write
    lock on SQLite (which has no SELECT ... FOR UPDATE).

    Returns:
        False if the institution does not exist
    """
    result = await db.execute(
        update(Institution)
        .where(Institution.id == institution_id)
        .values(updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def create(db: AsyncSession, **fields) -> Cohort:
    """Create a cohort."""
    cohort = Cohort(**fields)
    db.add(cohort)
    await db.flush()
    await db.refresh(cohort)
    return cohort


async def get_by_id(db: AsyncSession, cohort_id: str) -> Cohort | None:
    return await db.get(Cohort, cohort_id)


async def get_for_institution(
    db: AsyncSession,
    cohort_id: str,
    institution_id: str,
) -> Cohort | None:
    """Get a cohort only if it belongs to ``institution_id``."""
    result = await db.execute(
        select(Cohort).where(Cohort.id == cohort_id, Cohort.institution_id == institution_id)
    )
    return result.scalar_one_or_none()


async def list_for_institution(db: AsyncSession, institution_id: str) -> list[Cohort]:
    """All cohorts of an institution, newest first."""
    result = await db.execute(
        select(Cohort)
        .where(Cohort.institution_id == institution_id)
        .order_by(Cohort.created_at.desc())
    )
    return list(result.scalars().all())


async def list_open(db: AsyncSession, institution_id: str | None = None) -> list[Cohort]:
    """
    Active and upcoming cohorts, oldest start first.

    Scoped to one institution when ``institution_id`` is given.
    """
    query = (
        select(Cohort)
        .where(Cohort.status.in_([CohortStatus.ACTIVE, CohortStatus.UPCOMING]))
        .order_by(Cohort.start_date)
    )
    if institution_id is not None:
        query = query.where(Cohort.institution_id == institution_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_by_ids(db: AsyncSession, cohort_ids: list[str]) -> list[Cohort]:
    if not cohort_ids:
        return []
    result = await db.execute(select(Cohort).where(Cohort.id.in_(cohort_ids)))
    return list(result.scalars().all())


async def activate(db: AsyncSession, cohort_id: str, institution_id: str) -> bool:
    """
    Atomically move an upcoming cohort to active.

    Returns:
        False if the cohort is no longer upcoming or the institution already
        has an active cohort
    """
    other = aliased(Cohort)
    result = await db.execute(
        update(Cohort)
        .where(
            Cohort.id == cohort_id,
            Cohort.institution_id == institution_id,
            Cohort.status == CohortStatus.UPCOMING,
            ~exists().where(
                other.institution_id == institution_id,
                other.status == CohortStatus.ACTIVE,
            ),
        )
        .values(status=CohortStatus.ACTIVE, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def complete(db: AsyncSession, cohort_id: str) -> bool:
    """Atomically move an active cohort to completed. False if it was not active."""
    result = await db.execute(
        update(Cohort)
        .where(Cohort.id == cohort_id, Cohort.status == CohortStatus.ACTIVE)
        .values(status=CohortStatus.COMPLETED, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def set_drive_folder(
    db: AsyncSession,
    cohort: Cohort,
    folder_id: str,
    folder_link: str | None,
) -> Cohort:
    cohort.drive_folder_id = folder_id
    cohort.drive_folder_link = folder_link
    await db.flush()
    return cohort


# ============================================
# Memberships
# ============================================


async def membership_exists(db: AsyncSession, cohort_id: str, user_id: str) -> bool:
    result = await db.execute(
        select(CohortMembership.id).where(
            CohortMembership.cohort_id == cohort_id,
            CohortMembership.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def add_membership(db: AsyncSession, cohort_id: str, user_id: str) -> CohortMembership:
    membership = CohortMembership(cohort_id=cohort_id, user_id=user_id)
    db.add(membership)
    await db.flush()
    return membership


async def get_fellow_ids(db: AsyncSession, cohort_id: str) -> list[str]:
    result = await db.execute(
        select(CohortMembership.user_id)
        .where(CohortMembership.cohort_id == cohort_id)
        .order_by(CohortMembership.created_at)
    )
    return list(result.scalars().all())


async def get_cohort_ids_for_user(db: AsyncSession, user_id: str) -> list[str]:
    result = await db.execute(
        select(CohortMembership.cohort_id).where(CohortMembership.user_id == user_id)
    )
    return list(result.scalars().all())


async def count_fellows(db: AsyncSession, cohort_ids: list[str]) -> dict[str, int]:
    """Number of fellows per cohort; cohorts without members are omitted."""
    if not cohort_ids:
        return {}
    result = await db.execute(
        select(CohortMembership.cohort_id, func.count(CohortMembership.id))
        .where(CohortMembership.cohort_id.in_(cohort_ids))
        .group_by(CohortMembership.cohort_id)
    )
    return {cohort_id: count for cohort_id, count in result.all()}
