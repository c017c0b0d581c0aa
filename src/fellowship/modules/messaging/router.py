"""
Messaging Router

Endpoints:
- POST /conversations - Start (or reopen) a conversation
- GET /conversations - The caller's conversations
- GET /conversations/{id}/messages - Messages, marking them read
- POST /conversations/{id}/messages - Send a message
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.auth import CurrentUser, get_current_user
from fellowship.core.database import get_db
from fellowship.core.rate_limit import RateLimiter, enforce_api_limit, get_rate_limiter
from fellowship.modules.messaging import service
from fellowship.modules.messaging.schemas import (
    ConversationCreate,
    ConversationListResponse,
    ConversationResponse,
    MessageItem,
    MessageListResponse,
    ParticipantSummary,
    SendMessageRequest,
)
from fellowship.modules.messaging.service import ConversationView
from fellowship.modules.shared import ServiceError, handle_service_error, internal_error

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(view: ConversationView) -> ConversationResponse:
    conversation = view.conversation
    return ConversationResponse(
        id=conversation.id,
        type=conversation.type,
        cohort_id=conversation.cohort_id,
        last_message_at=conversation.last_message_at,
        participants=[ParticipantSummary.model_validate(u) for u in view.participants],
        last_message=MessageItem.model_validate(view.last_message) if view.last_message else None,
        unread_count=view.unread_count,
        created=view.created,
    )


@router.post("", response_model=ConversationResponse, summary="Create Conversation")
async def create_conversation(
    data: ConversationCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> ConversationResponse:
    await enforce_api_limit(limiter, user.id, "conversations.create")

    try:
        view = await service.create_conversation(
            db,
            user_id=user.id,
            type=data.type,
            cohort_id=data.cohort_id,
            participant_ids=data.participant_ids,
        )
        return _to_response(view)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating conversation: {e}")
        raise internal_error() from e


@router.get("", response_model=ConversationListResponse, summary="List Conversations")
async def list_conversations(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> ConversationListResponse:
    items = [_to_response(v) for v in await service.list_conversations(db, user.id)]
    return ConversationListResponse(items=items, total=len(items))


@router.get(
    "/{conversation_id}/messages",
    response_model=MessageListResponse,
    summary="List Messages",
    responses={404: {"description": "Conversation not found"}},
)
async def list_messages(
    conversation_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> MessageListResponse:
    try:
        messages = await service.list_messages(
            db, user_id=user.id, conversation_id=str(conversation_id)
        )
    except ServiceError as e:
        handle_service_error(e)

    items = [MessageItem.model_validate(m) for m in messages]
    return MessageListResponse(items=items, total=len(items))


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageItem,
    status_code=status.HTTP_201_CREATED,
    summary="Send Message",
    responses={404: {"description": "Conversation not found"}},
)
async def send_message(
    conversation_id: UUID,
    data: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> MessageItem:
    await enforce_api_limit(limiter, user.id, "conversations.send")

    try:
        message = await service.send_message(
            db, user_id=user.id, conversation_id=str(conversation_id), content=data.content
        )
        return MessageItem.model_validate(message)

    except ServiceError as e:
        handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error sending message: {e}")
        raise internal_error() from e
