"""
User Schemas

Request and response bodies for the onboarding and directory endpoints.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from fellowship.modules.shared import RequestModel
from fellowship.modules.users.models import UserRole


class SelectableRole(str, Enum):
    """Roles a user may pick during onboarding. Root admins are seeded."""

    ADMIN = "admin"
    FELLOW = "fellow"


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: UserRole | None = None
    institution_id: str | None = None
    google_connected: bool = False
    cohort_ids: list[str] = []


class RoleSelectRequest(RequestModel):
    """
    Request body for POST /users/me/role.

    ``institution_name`` is required when asking for the admin role; it names
    the institution that goes to the root admin for review.
    """

    role: SelectableRole
    institution_name: str | None = Field(None, min_length=1, max_length=200)
    logo_url: str | None = Field(None, max_length=500)

    @model_validator(mode="after")
    def institution_name_required_for_admin(self) -> "RoleSelectRequest":
        if self.role == SelectableRole.ADMIN and not self.institution_name:
            raise ValueError("institution_name is required when requesting the admin role")
        return self


class RoleSelectResponse(BaseModel):
    role: UserRole | None
    institution_id: str | None = None
    pending: bool = False
    message: str


class GoogleCredentialRequest(RequestModel):
    refresh_token: str = Field(..., min_length=1)


class FellowSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    institution_id: str | None = None


class InvitationRequest(RequestModel):
    emails: list[EmailStr] = Field(..., min_length=1, max_length=50)
    message: str | None = Field(None, max_length=1000)


class InvitationResult(BaseModel):
    email: str
    success: bool


class InvitationResponse(BaseModel):
    results: list[InvitationResult]
    sent: int
    failed: int
