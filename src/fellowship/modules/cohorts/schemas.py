"""
Cohort Schemas

Pydantic schemas for cohort requests and responses.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fellowship.modules.cohorts.models import CohortStatus
from fellowship.modules.shared import RequestModel, UTCDatetime


class CohortCreate(RequestModel):
    """Request body for POST /cohorts. Date ordering is checked by the service."""

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    start_date: UTCDatetime
    end_date: UTCDatetime


class CohortResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    institution_id: str
    name: str
    description: str | None = None
    start_date: UTCDatetime
    end_date: UTCDatetime
    status: CohortStatus
    drive_folder_id: str | None = None
    drive_folder_link: str | None = None
    created_at: datetime


class CohortListItem(CohortResponse):
    fellow_count: int = 0


class CohortListResponse(BaseModel):
    items: list[CohortListItem]
    total: int


class CohortDetailResponse(CohortResponse):
    fellow_ids: list[str] = Field(default_factory=list)


class FolderRepairResponse(BaseModel):
    root_folder_id: str
    folder_id: str
    folder_link: str | None = None


class ReconcileResponse(BaseModel):
    activated: int
    deactivated: int


class CronReconcileResponse(ReconcileResponse):
    institutions: int
