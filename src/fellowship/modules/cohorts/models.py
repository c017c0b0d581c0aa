"""
Cohort Models

Time-boxed batches of fellows within an institution, and the membership edge
between fellows and cohorts.

Invariants held by the store:
- at most one ``active`` cohort per institution (partial unique index)
- one membership row per (cohort, user) pair
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, UTCDateTime, enum_column_type


class CohortStatus(str, Enum):
    """Lifecycle of a cohort: upcoming -> active -> completed."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class Cohort(BaseModel):
    """A cohort of fellows with a fixed date window."""

    __tablename__ = "cohorts"
    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_cohorts_date_range"),
        Index(
            "uq_cohorts_one_active_per_institution",
            "institution_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_cohorts_institution_status", "institution_id", "status"),
    )

    # ON DELETE CASCADE: cohorts belong to their institution
    institution_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    status: Mapped[CohortStatus] = mapped_column(
        enum_column_type(CohortStatus, "cohort_status"),
        nullable=False,
        default=CohortStatus.UPCOMING,
    )

    drive_folder_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    drive_folder_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Cohort(id={self.id}, name={self.name}, status={self.status.value})>"


class CohortMembership(BaseModel):
    """
    Fellow <-> cohort edge.

    Read in both directions (a cohort's fellows, a fellow's cohorts). Written
    only through ``fellowship.modules.cohorts.membership``.
    """

    __tablename__ = "cohort_memberships"
    __table_args__ = (UniqueConstraint("cohort_id", "user_id", name="uq_cohort_memberships_pair"),)

    cohort_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cohorts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
