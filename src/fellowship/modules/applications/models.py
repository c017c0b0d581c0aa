"""
Application Models

A fellow's request to join an institution's programme. One application per
(fellow, institution) pair, reviewed exactly once.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, UTCDateTime, enum_column_type, utc_now


class ApplicationStatus(str, Enum):
    """Status of an application. Approved and rejected are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Application(BaseModel):
    """Fellowship application."""

    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("fellow_id", "institution_id", name="uq_applications_fellow_institution"),
        Index("ix_applications_institution_status", "institution_id", "status"),
    )

    fellow_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    institution_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
    )

    status: Mapped[ApplicationStatus] = mapped_column(
        enum_column_type(ApplicationStatus, "application_status"),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )

    # {full_name, email, phone, education, experience, motivation, linkedin}
    application_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    submitted_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )

    # Review
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cohort_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cohorts.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, fellow={self.fellow_id}, status={self.status.value})>"
