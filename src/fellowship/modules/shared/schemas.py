"""Base classes and field types for request and response schemas."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict

from fellowship.modules.shared.clock import as_utc

# Datetimes without an offset are taken as UTC
UTCDatetime = Annotated[datetime, AfterValidator(as_utc)]


def _canonical_id(value: str) -> str:
    return str(UUID(value))


# Entity ids are UUID strings in canonical form
EntityId = Annotated[str, AfterValidator(_canonical_id)]


class RequestModel(BaseModel):
    """Request bodies reject unknown fields."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class MessageResponse(BaseModel):
    message: str
