"""
Content Schemas
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fellowship.modules.content.models import ContentType
from fellowship.modules.shared import EntityId, RequestModel


class ContentUpload(RequestModel):
    """
    Request body for POST /content.

    ``file_data`` is base64, optionally as a data URL
    (``data:<mime>;base64,<payload>``).
    """

    cohort_id: EntityId
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    type: ContentType = ContentType.OTHER
    file_name: str = Field(..., min_length=1, max_length=255)
    mime_type: str = Field(..., min_length=1, max_length=150)
    file_data: str = Field(..., min_length=1)


class ContentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    cohort_id: str
    title: str
    description: str | None = None
    type: ContentType
    file_name: str
    mime_type: str
    file_size: int
    share_link: str | None = None
    uploaded_by: str | None = None
    created_at: datetime


class ContentListResponse(BaseModel):
    items: list[ContentResponse]
    total: int
