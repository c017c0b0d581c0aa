"""
Institution Repository

Database operations for institutions. Status changes out of ``pending`` are
conditional updates, so two concurrent reviews cannot both succeed.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.institutions.models import Institution, InstitutionStatus
from fellowship.modules.shared import utc_now

logger = logging.getLogger(__name__)


# Pending is the only state with outgoing transitions
VALID_STATUS_TRANSITIONS: dict[InstitutionStatus, set[InstitutionStatus]] = {
    InstitutionStatus.PENDING: {InstitutionStatus.APPROVED, InstitutionStatus.REJECTED},
    InstitutionStatus.APPROVED: set(),
    InstitutionStatus.REJECTED: set(),
}


class InstitutionRepository:
    """Repository for institution database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        name: str,
        admin_email: str,
        admin_user_id: str | None,
        status: InstitutionStatus = InstitutionStatus.PENDING,
        logo_url: str | None = None,
        google_refresh_token: str | None = None,
    ) -> Institution:
        institution = Institution(
            name=name,
            admin_email=admin_email,
            admin_user_id=admin_user_id,
            status=status,
            logo_url=logo_url,
            google_refresh_token=google_refresh_token,
            reviewed_at=utc_now() if status != InstitutionStatus.PENDING else None,
        )

        db.add(institution)
        await db.flush()
        await db.refresh(institution)

        logger.info(f"Created institution: {institution.id} - {institution.name} ({status.value})")
        return institution

    @staticmethod
    async def get_by_id(db: AsyncSession, institution_id: str) -> Institution | None:
        return await db.get(Institution, institution_id)

    @staticmethod
    async def get_by_name(db: AsyncSession, name: str) -> Institution | None:
        """Case-insensitive lookup by name."""
        result = await db.execute(
            select(Institution)
            .where(func.lower(Institution.name) == name.strip().lower())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_latest_for_admin(db: AsyncSession, user_id: str) -> Institution | None:
        """The most recent institution requested by (or assigned to) ``user_id``."""
        result = await db.execute(
            select(Institution)
            .where(Institution.admin_user_id == user_id)
            .order_by(Institution.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def list_all(
        db: AsyncSession,
        status: InstitutionStatus | None = None,
    ) -> list[Institution]:
        query = select(Institution).order_by(Institution.created_at.desc())
        if status is not None:
            query = query.where(Institution.status == status)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def transition_status(
        db: AsyncSession,
        institution_id: str,
        current: InstitutionStatus,
        new: InstitutionStatus,
    ) -> bool:
        """
        Move an institution from ``current`` to ``new`` if it is still ``current``.

        Returns:
            False if another request changed the status first

        Raises:
            ValueError: If ``current -> new`` is not an allowed transition
        """
        if new not in VALID_STATUS_TRANSITIONS[current]:
            raise ValueError(f"Invalid status transition: {current.value} -> {new.value}")

        result = await db.execute(
            update(Institution)
            .where(Institution.id == institution_id, Institution.status == current)
            .values(status=new, reviewed_at=utc_now(), updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def update(db: AsyncSession, institution: Institution, **fields) -> Institution:
        for key, value in fields.items():
            setattr(institution, key, value)
        await db.flush()
        return institution
