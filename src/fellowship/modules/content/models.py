"""
Content Models

Files shared with a cohort, stored in the cohort's Drive folder. Immutable
once uploaded.
"""

from enum import Enum

from sqlalchemy import BigInteger, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fellowship.modules.shared import BaseModel, enum_column_type


class ContentType(str, Enum):
    DOCUMENT = "document"
    VIDEO = "video"
    PRESENTATION = "presentation"
    OTHER = "other"


class Content(BaseModel):
    """An uploaded file. ``created_at`` is the upload time."""

    __tablename__ = "content"

    cohort_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("cohorts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    institution_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("institutions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[ContentType] = mapped_column(
        enum_column_type(ContentType, "content_type"),
        nullable=False,
    )

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(150), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    drive_file_id: Mapped[str] = mapped_column(String(200), nullable=False)
    share_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    uploaded_by: Mapped[str | None] = mapped_column(
        Uuid(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Content(id={self.id}, title={self.title}, type={self.type.value})>"
