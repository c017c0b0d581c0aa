"""
Application Schemas

Pydantic schemas for application submission, listing and review.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from fellowship.modules.applications.models import ApplicationStatus
from fellowship.modules.shared import EntityId, RequestModel


class ApplicationData(RequestModel):
    """The applicant's answers."""

    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: str | None = Field(None, max_length=30)
    education: str = Field(..., min_length=1, max_length=2000)
    experience: str = Field(..., min_length=1, max_length=2000)
    motivation: str = Field(..., min_length=1, max_length=2000)
    linkedin: str | None = Field(None, max_length=500)


class ApplicationCreate(RequestModel):
    """Request body for POST /applications."""

    institution_id: EntityId
    application_data: ApplicationData


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ApplicationReviewRequest(RequestModel):
    """Request body for POST /admin/applications/{id}/review."""

    action: ReviewDecision
    notes: str | None = Field(None, max_length=1000)
    cohort_id: EntityId | None = Field(
        None, description="Cohort to place the fellow in (approve only)"
    )


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    fellow_id: str
    institution_id: str
    status: ApplicationStatus
    application_data: dict[str, Any]
    submitted_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    review_notes: str | None = None
    cohort_id: str | None = None


class ApplicationListResponse(BaseModel):
    items: list[ApplicationResponse]
    total: int


class ApplicationSubmitResponse(BaseModel):
    id: str
    status: ApplicationStatus
    message: str


class ApplicationReviewResponse(BaseModel):
    id: str
    status: ApplicationStatus
    cohort_id: str | None = None
    message: str
