"""
User Models

People on the platform. Identity lives with the external provider; this table
holds the platform-side profile: role, owning institution and the Google
refresh credential captured at sign-in.
"""

from enum import Enum

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, enum_column_type


class UserRole(str, Enum):
    """User roles in the system. ``None`` (no role) means onboarding is not done."""

    ADMIN = "admin"
    FELLOW = "fellow"
    ROOT_ADMIN = "root_admin"


class User(BaseModel):
    """
    Platform user.

    Cohort membership is stored in ``cohort_memberships``; see
    ``fellowship.modules.cohorts.membership``.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    role: Mapped[UserRole | None] = mapped_column(
        enum_column_type(UserRole, "user_role"),
        nullable=True,
    )

    # ON DELETE SET NULL: users outlive the institution they belonged to
    institution_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("institutions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    google_refresh_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Created by a root admin for someone who has not signed in yet
    is_placeholder: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    def __repr__(self) -> str:
        role = self.role.value if self.role else None
        return f"<User(id={self.id}, email={self.email}, role={role})>"
