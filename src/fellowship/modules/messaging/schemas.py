"""
Messaging Schemas
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from fellowship.modules.messaging.models import ConversationType
from fellowship.modules.shared import EntityId, RequestModel


class ConversationCreate(RequestModel):
    """
    Request body for POST /conversations.

    The caller is always added to ``participant_ids``.
    """

    type: ConversationType
    cohort_id: EntityId | None = None
    participant_ids: list[EntityId] = Field(..., min_length=1, max_length=200)


class SendMessageRequest(RequestModel):
    content: str = Field(..., min_length=1, max_length=5000)


class ParticipantSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str


class MessageItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    sender_id: str
    content: str
    read_by: list[str] = []
    created_at: datetime


class ConversationResponse(BaseModel):
    id: str
    type: ConversationType
    cohort_id: str | None = None
    last_message_at: datetime
    participants: list[ParticipantSummary] = []
    last_message: MessageItem | None = None
    unread_count: int = 0
    created: bool = False


class ConversationListResponse(BaseModel):
    items: list[ConversationResponse]
    total: int


class MessageListResponse(BaseModel):
    items: list[MessageItem]
    total: int
