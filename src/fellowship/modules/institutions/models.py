"""
Institution Models

Each institution is a tenant running one fellowship programme. It must be
approved by the root admin before its admin can act.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, UTCDateTime, enum_column_type


class InstitutionStatus(str, Enum):
    """Approval status of an institution. Approved and rejected are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Institution(BaseModel):
    """Tenant institution."""

    __tablename__ = "institutions"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        index=True,
    )
    logo_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    status: Mapped[InstitutionStatus] = mapped_column(
        enum_column_type(InstitutionStatus, "institution_status"),
        nullable=False,
        default=InstitutionStatus.PENDING,
        index=True,
    )

    # Admin who requested (or was assigned) this institution. Not a foreign key:
    # users.institution_id already points the other way.
    admin_user_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        nullable=True,
        index=True,
    )
    admin_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Google Workspace account used for Calendar and Drive
    google_account_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    google_refresh_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    drive_root_folder_id: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
    )

    reviewed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Institution(id={self.id}, name={self.name}, status={self.status.value})>"
