"""
Messaging Service Layer

Conversations are identified by their type, cohort and exact participant
set. Creating one that already exists returns the existing conversation; a
unique key on that tuple settles concurrent creations.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.modules.cohorts import repository as cohort_repository
from fellowship.modules.cohorts.service import CohortNotFoundError
from fellowship.modules.messaging import repository
from fellowship.modules.messaging.models import Conversation, ConversationType, Message
from fellowship.modules.shared import ServiceError, utc_now
from fellowship.modules.users.models import User
from fellowship.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class MessagingServiceError(ServiceError):
    """Base exception for messaging service errors."""


class ConversationNotFoundError(MessagingServiceError):
    def __init__(self):
        super().__init__(
            message="Conversation not found",
            error_code="CONVERSATION_NOT_FOUND",
            status_code=404,
        )


class InvalidParticipantsError(MessagingServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="INVALID_PARTICIPANTS", status_code=400)


@dataclass
class ConversationView:
    conversation: Conversation
    participants: list[User] = field(default_factory=list)
    last_message: Message | None = None
    unread_count: int = 0
    created: bool = False


def conversation_dedupe_key(
    type: ConversationType,
    cohort_id: str | None,
    participant_ids: list[str],
) -> str:
    """Key identifying a conversation by type, cohort and participant set."""
    return f"{type.value}:{cohort_id or '-'}:{','.join(sorted(set(participant_ids)))}"


async def create_conversation(
    db: AsyncSession,
    *,
    user_id: str,
    type: ConversationType,
    cohort_id: str | None,
    participant_ids: list[str],
) -> ConversationView:
    """
    Create a conversation, or return the existing one with the same
    type, cohort and participants.

    Raises:
        InvalidParticipantsError: If no other participant is given or an id is unknown
        CohortNotFoundError: If ``cohort_id`` does not exist
    """
    ids = sorted(set(participant_ids) | {user_id})
    if len(ids) < 2:
        raise InvalidParticipantsError("At least one other participant is required")

    participants = await UserRepository.get_many(db, ids)
    if len(participants) != len(ids):
        raise InvalidParticipantsError("Unknown participant")

    if cohort_id is not None and await cohort_repository.get_by_id(db, cohort_id) is None:
        raise CohortNotFoundError(cohort_id)

    dedupe_key = conversation_dedupe_key(type, cohort_id, ids)
    existing = await repository.get_by_dedupe_key(db, dedupe_key)
    if existing is not None:
        return ConversationView(existing, participants)

    try:
        conversation = await repository.create_conversation(
            db,
            type=type,
            cohort_id=cohort_id,
            dedupe_key=dedupe_key,
            participant_ids=ids,
            created_at=utc_now(),
        )
        await db.commit()
    except IntegrityError:
        # Created concurrently with the same participants
        await db.rollback()
        existing = await repository.get_by_dedupe_key(db, dedupe_key)
        if existing is None:
            raise
        return ConversationView(existing, await UserRepository.get_many(db, ids))

    logger.info(f"Created {type.value} conversation {conversation.id} with {len(ids)} participants")
    return ConversationView(conversation, participants, created=True)


async def list_conversations(db: AsyncSession, user_id: str) -> list[ConversationView]:
    """The user's conversations with participants, last message and unread count."""
    conversations = await repository.list_for_user(db, user_id)
    conversation_ids = [c.id for c in conversations]

    participant_ids = await repository.get_participant_ids(db, conversation_ids)
    users = {
        u.id: u
        for u in await UserRepository.get_many(
            db, list({uid for ids in participant_ids.values() for uid in ids})
        )
    }
    last_messages = await repository.get_last_messages(db, conversation_ids)
    unread = await repository.count_unread(db, conversation_ids, user_id)

    return [
        ConversationView(
            conversation=c,
            participants=[users[uid] for uid in participant_ids.get(c.id, []) if uid in users],
            last_message=last_messages.get(c.id),
            unread_count=unread.get(c.id, 0),
        )
        for c in conversations
    ]


async def _get_conversation(db: AsyncSession, user_id: str, conversation_id: str) -> Conversation:
    conversation = await repository.get_for_participant(db, conversation_id, user_id)
    if conversation is None:
        raise ConversationNotFoundError()
    return conversation


async def list_messages(db: AsyncSession, *, user_id: str, conversation_id: str) -> list[Message]:
    """
    Messages of a conversation, oldest first, and mark the caller's unread ones read.

    Raises:
        ConversationNotFoundError: If the caller does not take part in it
    """
    participant = await repository.get_participant(db, conversation_id, user_id)
    if participant is None:
        raise ConversationNotFoundError()
    messages = await repository.list_messages(db, conversation_id)

    unread = await repository.list_unread(db, participant)
    if await repository.mark_read(db, participant, unread):
        await db.commit()
    return messages


async def send_message(
    db: AsyncSession,
    *,
    user_id: str,
    conversation_id: str,
    content: str,
) -> Message:
    """
    Raises:
        ConversationNotFoundError: If the caller does not take part in the conversation
    """
    conversation = await _get_conversation(db, user_id, conversation_id)
    message = await repository.create_message(
        db, conversation, sender_id=user_id, content=content, sent_at=utc_now()
    )
    await db.commit()
    return message
