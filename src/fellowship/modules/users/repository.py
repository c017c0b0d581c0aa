"""
User Repository

Database operations for users. Emails are stored lower-cased.
"""

import logging

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.cohorts.models import CohortMembership
from fellowship.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str,
        role: UserRole | None = None,
        institution_id: str | None = None,
        is_placeholder: bool = False,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            email: User's email address (unique, stored lower-cased)
            name: Display name
            role: Role, or None until onboarding picks one
            institution_id: Owning institution (optional)
            is_placeholder: True when created ahead of the user's first sign-in

        Returns:
            Created User instance
        """
        user = User(
            email=normalize_email(email),
            name=name,
            role=role,
            institution_id=institution_id,
            is_placeholder=is_placeholder,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} ({user.role.value if user.role else 'no role'})")
        return user

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> User | None:
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_many(db: AsyncSession, user_ids: list[str]) -> list[User]:
        if not user_ids:
            return []
        result = await db.execute(select(User).where(User.id.in_(user_ids)))
        return list(result.scalars().all())

    @staticmethod
    async def update(db: AsyncSession, user: User, **fields) -> User:
        """Set the given columns on ``user`` and flush."""
        for key, value in fields.items():
            setattr(user, key, value)
        await db.flush()
        return user

    @staticmethod
    async def complete_placeholder(db: AsyncSession, user: User, *, name: str) -> User:
        """Fill in a placeholder created before the user's first sign-in."""
        user.name = name
        user.is_placeholder = False
        await db.flush()
        logger.info(f"Completed placeholder user {user.id}")
        return user

    @staticmethod
    async def assign_institution(db: AsyncSession, user_id: str, institution_id: str) -> None:
        await db.execute(
            update(User).where(User.id == user_id).values(institution_id=institution_id)
        )

    @staticmethod
    async def list_admins(db: AsyncSession, institution_id: str) -> list[User]:
        result = await db.execute(
            select(User).where(
                User.institution_id == institution_id,
                User.role == UserRole.ADMIN,
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_by_role(db: AsyncSession, role: UserRole) -> list[User]:
        result = await db.execute(select(User).where(User.role == role))
        return list(result.scalars().all())

    @staticmethod
    async def list_fellows_related_to(
        db: AsyncSession,
        *,
        user_id: str,
        institution_id: str | None,
        cohort_ids: list[str],
    ) -> list[User]:
        """
        Fellows who share a cohort with ``user_id`` or belong to ``institution_id``,
        excluding the user themselves, ordered by name.
        """
        conditions = []
        if institution_id:
            conditions.append(User.institution_id == institution_id)
        if cohort_ids:
            conditions.append(
                User.id.in_(
                    select(CohortMembership.user_id).where(
                        CohortMembership.cohort_id.in_(cohort_ids)
                    )
                )
            )
        if not conditions:
            return []

        result = await db.execute(
            select(User)
            .where(User.role == UserRole.FELLOW, User.id != user_id, or_(*conditions))
            .order_by(User.name)
        )
        return list(result.scalars().all())
