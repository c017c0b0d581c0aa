"""
Session Models

Scheduled meetings of a cohort, backed by a Google Calendar event with a Meet
link. Sessions are never deleted; cancelling keeps the record for history.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, CheckConstraint, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, UTCDateTime, enum_column_type


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class AttendeeStatus(str, Enum):
    INVITED = "invited"
    ATTENDED = "attended"
    MISSED = "missed"


class CohortSession(BaseModel):
    """
    A scheduled session.

    ``attendees`` is a snapshot of the cohort's fellows at creation time:
    ``[{"fellow_id": ..., "status": "invited"}, ...]``. It is not re-synced
    when cohort membership changes.
    """

    __tablename__ = "sessions"
    __table_args__ = (CheckConstraint("end_time > start_time", name="ck_sessions_time_range"),)

    institution_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cohort_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cohorts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    calendar_event_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    attendees: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    status: Mapped[SessionStatus] = mapped_column(
        enum_column_type(SessionStatus, "session_status"),
        nullable=False,
        default=SessionStatus.SCHEDULED,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<CohortSession(id={self.id}, title={self.title}, status={self.status.value})>"
