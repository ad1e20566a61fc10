"""
friendzone.services.messaging_service — One-to-one Conversations
==================================================================

A conversation has exactly two participants.  :func:`get_or_create_conversation`
reuses the existing conversation for a pair instead of opening a second
one.  Only participants may read or post; everyone else gets
:class:`~friendzone.errors.NotFoundError` so conversation ids leak nothing.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select, update
from sqlalchemy.orm import Session, aliased

from friendzone.database.engine import get_session
from friendzone.database.models import (
    Conversation,
    ConversationParticipant,
    DirectMessage,
    Profile,
    utcnow,
)
from friendzone.engine.events import Actor
from friendzone.errors import NotFoundError, ValidationError
from friendzone.services.progression_service import load_active_profile

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
DEFAULT_PAGE = 50


def _require_participant(session: Session, conversation_id: int, user_id: str) -> None:
    found = session.scalar(
        select(ConversationParticipant.id).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
    )
    if found is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")


def get_or_create_conversation(engine: Engine, actor: Actor, other_id: str) -> int:
    """Return the id of the conversation between *actor* and *other_id*."""
    if actor.id == other_id:
        raise ValidationError("You cannot message yourself")

    with get_session(engine) as session:
        load_active_profile(session, actor.id)
        if session.get(Profile, other_id) is None:
            raise NotFoundError(f"Profile {other_id} not found")

        mine = aliased(ConversationParticipant)
        theirs = aliased(ConversationParticipant)
        existing = session.scalar(
            select(mine.conversation_id)
            .join(theirs, theirs.conversation_id == mine.conversation_id)
            .where(mine.user_id == actor.id, theirs.user_id == other_id)
            .limit(1)
        )
        if existing is not None:
            return existing

        conversation = Conversation(participants=[
            ConversationParticipant(user_id=actor.id),
            ConversationParticipant(user_id=other_id),
        ])
        session.add(conversation)
        session.flush()
        logger.info(
            "Conversation %d opened between %s and %s",
            conversation.id, actor.id, other_id,
        )
        return conversation.id


def send_message(
    engine: Engine, actor: Actor, conversation_id: int, content: str
) -> DirectMessage:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message exceeds {MAX_MESSAGE_LENGTH} characters")

    with get_session(engine, expire_on_commit=False) as session:
        load_active_profile(session, actor.id)
        _require_participant(session, conversation_id, actor.id)

        message = DirectMessage(
            conversation_id=conversation_id, sender_id=actor.id, content=text,
        )
        session.add(message)
        session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=utcnow())
        )
        session.flush()
        session.expunge(message)
    return message


def list_messages(
    engine: Engine,
    actor: Actor,
    conversation_id: int,
    *,
    limit: int = DEFAULT_PAGE,
    before_id: int | None = None,
) -> list[DirectMessage]:
    """Up to *limit* messages, oldest first, optionally older than *before_id*."""
    with get_session(engine, expire_on_commit=False) as session:
        _require_participant(session, conversation_id, actor.id)
        query = (
            select(DirectMessage)
            .where(DirectMessage.conversation_id == conversation_id)
            .order_by(DirectMessage.id.desc())
            .limit(limit)
        )
        if before_id is not None:
            query = query.where(DirectMessage.id < before_id)
        rows = list(session.scalars(query).all())
        session.expunge_all()
    rows.reverse()
    return rows


def mark_conversation_read(engine: Engine, actor: Actor, conversation_id: int) -> int:
    """Mark the other participant's messages as read.  Returns rows changed."""
    with get_session(engine) as session:
        _require_participant(session, conversation_id, actor.id)
        result = session.execute(
            update(DirectMessage)
            .where(
                DirectMessage.conversation_id == conversation_id,
                DirectMessage.sender_id != actor.id,
                DirectMessage.is_read.is_(False),
            )
            .values(is_read=True)
        )
        return result.rowcount or 0


def unread_message_count(engine: Engine, user_id: str) -> int:
    """Unread messages sent to *user_id* across all conversations."""
    with get_session(engine) as session:
        conversation_ids = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user_id
        )
        return session.scalar(
            select(func.count()).select_from(DirectMessage).where(
                DirectMessage.conversation_id.in_(conversation_ids),
                DirectMessage.sender_id != user_id,
                DirectMessage.is_read.is_(False),
            )
        ) or 0


def list_conversations(engine: Engine, actor: Actor) -> list[tuple[int, str]]:
    """``(conversation_id, other_user_id)`` pairs, most recently active first."""
    with get_session(engine) as session:
        mine = aliased(ConversationParticipant)
        theirs = aliased(ConversationParticipant)
        rows = session.execute(
            select(Conversation.id, theirs.user_id)
            .join(mine, mine.conversation_id == Conversation.id)
            .join(theirs, theirs.conversation_id == Conversation.id)
            .where(mine.user_id == actor.id, theirs.user_id != actor.id)
            .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        ).all()
    return [(conversation_id, other_id) for conversation_id, other_id in rows]
