"""
friendzone.api.routes.social — Follows & direct messages
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from friendzone.api.deps import get_current_actor, get_engine
from friendzone.database.models import DirectMessage
from friendzone.engine.events import Actor
from friendzone.services import messaging_service, social_service

router = APIRouter(tags=["social"])


class ConversationOpen(BaseModel):
    user_id: str


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


def _message_dict(m: DirectMessage) -> dict:
    return {
        "id": m.id,
        "conversation_id": m.conversation_id,
        "sender_id": m.sender_id,
        "content": m.content,
        "is_read": m.is_read,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------
@router.post("/profiles/{user_id}/follow")
def toggle_follow(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    result = social_service.toggle_follow(engine, actor, user_id)
    return {
        "following": result.following,
        "followers": result.followers_count,
        "following_count": result.following_count,
    }


@router.get("/profiles/{user_id}/follow")
def follow_status(
    user_id: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"following": social_service.is_following(engine, actor.id, user_id)}


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------
@router.get("/conversations")
def list_conversations(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {
        "conversations": [
            {"id": conversation_id, "with": other_id}
            for conversation_id, other_id in messaging_service.list_conversations(
                engine, actor
            )
        ],
        "unread": messaging_service.unread_message_count(engine, actor.id),
    }


@router.post("/conversations")
def open_conversation(
    body: ConversationOpen,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    conversation_id = messaging_service.get_or_create_conversation(
        engine, actor, body.user_id
    )
    return {"id": conversation_id}


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: int,
    before: int | None = Query(None),
    limit: int = Query(messaging_service.DEFAULT_PAGE, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    rows = messaging_service.list_messages(
        engine, actor, conversation_id, limit=limit, before_id=before,
    )
    return {"messages": [_message_dict(m) for m in rows]}


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def send_message(
    conversation_id: int,
    body: MessageCreate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    message = messaging_service.send_message(
        engine, actor, conversation_id, body.content
    )
    return _message_dict(message)


@router.post("/conversations/{conversation_id}/read")
def mark_read(
    conversation_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {
        "marked": messaging_service.mark_conversation_read(
            engine, actor, conversation_id
        ),
    }
