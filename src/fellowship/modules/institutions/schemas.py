"""
Institution Schemas

Pydantic schemas for institution onboarding, review and Google wiring.
Stored OAuth tokens are never serialized.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from fellowship.modules.institutions.models import Institution, InstitutionStatus
from fellowship.modules.shared import RequestModel


class InstitutionResponse(BaseModel):
    """Institution as seen by its admin or the root admin."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    logo_url: str | None = None
    status: InstitutionStatus
    admin_email: str
    google_account_email: str | None = None
    google_connected: bool = False
    drive_root_folder_id: str | None = None
    created_at: datetime
    reviewed_at: datetime | None = None

    @classmethod
    def from_model(cls, institution: Institution) -> "InstitutionResponse":
        response = cls.model_validate(institution)
        response.google_connected = bool(institution.google_refresh_token)
        return response


class PublicInstitution(BaseModel):
    """Approved institution as listed to fellows."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    logo_url: str | None = None


class InstitutionCreateDirect(RequestModel):
    """Request body for POST /root-admin/institutions."""

    name: str = Field(..., min_length=1, max_length=200)
    logo_url: str | None = Field(None, max_length=500)
    admin_email: EmailStr
    admin_name: str = Field(..., min_length=1, max_length=200)


class InstitutionReviewResponse(BaseModel):
    id: str
    status: InstitutionStatus
    message: str


class GoogleConnectRequest(RequestModel):
    """Request body for POST /institutions/google/connect."""

    refresh_token: str = Field(..., min_length=1)


class GoogleConnectionTestResponse(BaseModel):
    success: bool
    calendar_count: int | None = None
    drive_email: str | None = None
    message: str
