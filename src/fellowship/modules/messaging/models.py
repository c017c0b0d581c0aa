"""
Messaging Models

Group (cohort-wide) and direct conversations with polled messages.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, UTCDateTime, enum_column_type, utc_now


class ConversationType(str, Enum):
    GROUP = "group"
    DIRECT = "direct"


class Conversation(BaseModel):
    """
    A conversation between a fixed set of participants.

    ``dedupe_key`` encodes (type, cohort, sorted participant ids) and is unique,
    so creating the same conversation twice returns the existing one.
    """

    __tablename__ = "conversations"

    type: Mapped[ConversationType] = mapped_column(
        enum_column_type(ConversationType, "conversation_type"),
        nullable=False,
    )
    cohort_id: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cohorts.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    dedupe_key: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        nullable=False,
    )


class ConversationParticipant(BaseModel):
    """A user taking part in a conversation, with how far they have read."""

    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint("conversation_id", "user_id", name="uq_conversation_participants_pair"),
    )

    conversation_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Created time of the newest message from others the user has read
    last_read_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)


class Message(BaseModel):
    """A message. ``read_by`` holds the ids of users who have read it."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_conversation_created", "conversation_id", "created_at"),)

    conversation_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(String(5000), nullable=False)
    read_by: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
