"""
Shared Model Base

Columns every table carries (id, created_at, updated_at) plus the column
types used across modules. Types are the generic SQLAlchemy ones so the same
models run on PostgreSQL and on SQLite in tests.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from fellowship.core.database import Base
from fellowship.modules.shared.clock import as_utc, utc_now


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC on every backend."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        return as_utc(value) if value is not None else None

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        return as_utc(value) if value is not None else None


def enum_column_type(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Enum type persisting member values (``"active"``), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


def new_id() -> str:
    return str(uuid.uuid4())


class BaseModel(Base):
    """Abstract base with a UUID primary key and audit timestamps."""

    __abstract__ = True

    id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False),
        primary_key=True,
        default=new_id,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
        nullable=False,
    )
