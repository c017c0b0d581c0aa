"""
Messaging Repository

Database operations for conversations, participants and messages.
"""

from datetime import datetime

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from fellowship.modules.messaging.models import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    Message,
)

MESSAGE_PAGE_SIZE = 100


async def get_by_dedupe_key(db: AsyncSession, dedupe_key: str) -> Conversation | None:
    result = await db.execute(select(Conversation).where(Conversation.dedupe_key == dedupe_key))
    return result.scalar_one_or_none()


async def create_conversation(
    db: AsyncSession,
    *,
    type: ConversationType,
    cohort_id: str | None,
    dedupe_key: str,
    participant_ids: list[str],
    created_at: datetime,
) -> Conversation:
    conversation = Conversation(
        type=type,
        cohort_id=cohort_id,
        dedupe_key=dedupe_key,
        last_message_at=created_at,
    )
    db.add(conversation)
    await db.flush()

    db.add_all(
        ConversationParticipant(conversation_id=conversation.id, user_id=user_id)
        for user_id in participant_ids
    )
    await db.flush()
    await db.refresh(conversation)
    return conversation


async def get_for_participant(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
) -> Conversation | None:
    """Get a conversation only if ``user_id`` takes part in it."""
    result = await db.execute(
        select(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .where(Conversation.id == conversation_id, ConversationParticipant.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def list_for_user(db: AsyncSession, user_id: str) -> list[Conversation]:
    """The user's conversations, most recent activity first."""
    result = await db.execute(
        select(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .where(ConversationParticipant.user_id == user_id)
        .order_by(Conversation.last_message_at.desc())
    )
    return list(result.scalars().all())


async def get_participant_ids(
    db: AsyncSession,
    conversation_ids: list[str],
) -> dict[str, list[str]]:
    if not conversation_ids:
        return {}
    result = await db.execute(
        select(ConversationParticipant.conversation_id, ConversationParticipant.user_id).where(
            ConversationParticipant.conversation_id.in_(conversation_ids)
        )
    )
    participants: dict[str, list[str]] = {}
    for conversation_id, user_id in result.all():
        participants.setdefault(conversation_id, []).append(user_id)
    return participants


async def get_last_messages(db: AsyncSession, conversation_ids: list[str]) -> dict[str, Message]:
    """The newest message of each conversation that has one."""
    if not conversation_ids:
        return {}
    ranked = (
        select(
            Message,
            func.row_number()
            .over(partition_by=Message.conversation_id, order_by=Message.created_at.desc())
            .label("rank"),
        )
        .where(Message.conversation_id.in_(conversation_ids))
        .subquery()
    )
    latest = aliased(Message, ranked)
    result = await db.execute(select(latest).where(ranked.c.rank == 1))
    return {m.conversation_id: m for m in result.scalars().all()}


async def get_participant(
    db: AsyncSession,
    conversation_id: str,
    user_id: str,
) -> ConversationParticipant | None:
    result = await db.execute(
        select(ConversationParticipant).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def count_unread(
    db: AsyncSession,
    conversation_ids: list[str],
    user_id: str,
) -> dict[str, int]:
    """
    Unread messages per conversation: sent by others after the user's last read.

    Conversations without unread messages are omitted.
    """
    if not conversation_ids:
        return {}
    result = await db.execute(
        select(Message.conversation_id, func.count(Message.id))
        .join(
            ConversationParticipant,
            and_(
                ConversationParticipant.conversation_id == Message.conversation_id,
                ConversationParticipant.user_id == user_id,
            ),
        )
        .where(
            Message.conversation_id.in_(conversation_ids),
            Message.sender_id != user_id,
            or_(
                ConversationParticipant.last_read_at.is_(None),
                Message.created_at > ConversationParticipant.last_read_at,
            ),
        )
        .group_by(Message.conversation_id)
    )
    return {conversation_id: count for conversation_id, count in result.all()}


async def list_unread(db: AsyncSession, participant: ConversationParticipant) -> list[Message]:
    """Messages from others newer than the participant's last read, oldest first."""
    query = select(Message).where(
        Message.conversation_id == participant.conversation_id,
        Message.sender_id != participant.user_id,
    )
    if participant.last_read_at is not None:
        query = query.where(Message.created_at > participant.last_read_at)
    result = await db.execute(query.order_by(Message.created_at))
    return list(result.scalars().all())


async def list_messages(
    db: AsyncSession,
    conversation_id: str,
    limit: int = MESSAGE_PAGE_SIZE,
) -> list[Message]:
    """Messages oldest first, at most ``limit``."""
    result = await db.execute(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_read(
    db: AsyncSession,
    participant: ConversationParticipant,
    messages: list[Message],
) -> int:
    """
    Add the participant to ``read_by`` of ``messages`` and move their last read
    to the newest of them. Returns the number marked.
    """
    if not messages:
        return 0
    for message in messages:
        if participant.user_id not in message.read_by:
            # Reassign so the JSON column is flagged dirty
            message.read_by = [*message.read_by, participant.user_id]
    participant.last_read_at = max(m.created_at for m in messages)
    await db.flush()
    return len(messages)


async def create_message(
    db: AsyncSession,
    conversation: Conversation,
    *,
    sender_id: str,
    content: str,
    sent_at: datetime,
) -> Message:
    """Store a message and move the conversation's ``last_message_at``."""
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content,
        read_by=[sender_id],
        created_at=sent_at,
    )
    db.add(message)
    conversation.last_message_at = sent_at
    await db.flush()
    await db.refresh(message)
    return message
