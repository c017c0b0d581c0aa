"""
Session Schemas
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fellowship.modules.sessions.models import SessionStatus
from fellowship.modules.shared import EntityId, RequestModel, UTCDatetime


class SessionCreate(RequestModel):
    """Request body for POST /sessions."""

    cohort_id: EntityId
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    start_time: UTCDatetime
    end_time: UTCDatetime

    @model_validator(mode="after")
    def end_after_start(self) -> "SessionCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SessionUpdate(RequestModel):
    """Request body for PUT /sessions/{id}. Omitted fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    start_time: UTCDatetime | None = None
    end_time: UTCDatetime | None = None

    @model_validator(mode="after")
    def end_after_start(self) -> "SessionUpdate":
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class SessionCancelRequest(RequestModel):
    reason: str = Field("", max_length=1000)


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    institution_id: str
    cohort_id: str
    title: str
    description: str | None = None
    start_time: datetime
    end_time: datetime
    meeting_link: str | None = None
    attendees: list[dict[str, Any]] = []
    status: SessionStatus
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    created_at: datetime


class SessionListResponse(BaseModel):
    items: list[SessionResponse]
    total: int


class SessionUpdateResponse(BaseModel):
    session: SessionResponse
    changes: list[str]
