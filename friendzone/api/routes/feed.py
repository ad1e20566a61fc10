"""
friendzone.api.routes.feed — Posts, likes, votes & comments
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from friendzone.api.deps import (
    get_config,
    get_current_actor,
    get_engine,
    get_optional_actor,
)
from friendzone.config import FriendZoneConfig
from friendzone.constants import DEFAULT_TOPIC
from friendzone.database.models import Comment
from friendzone.engine.events import Actor
from friendzone.engine.visibility import PostView
from friendzone.services import moderation_service, social_service
from friendzone.services.moderation_service import FeedItem

router = APIRouter(tags=["feed"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class PostCreate(BaseModel):
    content: str = ""
    title: str | None = None
    image_url: str | None = None
    min_level_to_view: int = Field(0, ge=0)
    community_id: int | None = None
    topic: str = DEFAULT_TOPIC


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _view_dict(view: PostView) -> dict:
    return {
        "id": view.post_id,
        "status": view.status,
        "title": view.title,
        "content": view.content,
        "image_url": view.image_url,
        "locked": view.locked,
        "required_level": view.required_level,
        "pending_banner": view.show_pending_banner,
        "can_vote": view.can_vote,
        "can_moderate": view.can_moderate,
        "can_delete": view.can_delete,
    }


def _item_dict(item: FeedItem) -> dict:
    return {
        **_view_dict(item.view),
        "author": {
            "id": item.author_id,
            "name": item.author_name,
            "avatar_url": item.author_avatar,
            "level": item.author_level,
        },
        "likes": item.likes_count,
        "comments": item.comments_count,
        "liked_by_user": item.liked_by_user,
        "approval_votes": item.approval_votes,
        "has_voted": item.has_voted,
        "topic": item.topic,
        "community": item.community_slug,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


def _comment_dict(c: Comment) -> dict:
    return {
        "id": c.id,
        "post_id": c.post_id,
        "user_id": c.user_id,
        "author_name": c.author.full_name if c.author else None,
        "content": c.content,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }


# ---------------------------------------------------------------------------
# Feed & posts
# ---------------------------------------------------------------------------
@router.get("/feed")
def get_feed(
    community: str | None = Query(None),
    topic: str | None = Query(None),
    author: str | None = Query(None),
    page: int = Query(0, ge=0),
    page_size: int | None = Query(None, ge=1, le=50),
    viewer: Actor | None = Depends(get_optional_actor),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    """Newest-first feed page, filtered by what *viewer* may see."""
    result = moderation_service.list_feed(
        engine, cfg, viewer,
        community_slug=community,
        topic=topic,
        author_id=author,
        page=page,
        page_size=page_size,
    )
    return {
        "page": result.page,
        "has_more": result.has_more,
        "posts": [_item_dict(item) for item in result.items],
    }


@router.post("/posts", status_code=201)
def create_post(
    body: PostCreate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    post = moderation_service.create_post(
        engine, cfg, actor,
        content=body.content,
        title=body.title,
        image_url=body.image_url,
        min_level_to_view=body.min_level_to_view,
        community_id=body.community_id,
        topic=body.topic,
    )
    return {"id": post.id, "status": post.status}


@router.get("/posts/{post_id}")
def get_post(
    post_id: int,
    viewer: Actor | None = Depends(get_optional_actor),
    engine=Depends(get_engine),
):
    return _view_dict(moderation_service.get_post(engine, viewer, post_id))


@router.delete("/posts/{post_id}", status_code=204)
def delete_post(
    post_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    moderation_service.delete_post(engine, actor, post_id)


# ---------------------------------------------------------------------------
# Likes & approval votes
# ---------------------------------------------------------------------------
@router.post("/posts/{post_id}/like")
def toggle_like(
    post_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    result = social_service.toggle_like(engine, actor, post_id)
    return {"liked": result.liked, "likes": result.likes_count}


@router.post("/posts/{post_id}/approvals")
def vote_approve(
    post_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    result = moderation_service.cast_approval_vote(engine, actor, post_id)
    return {"success": result.success, "message": result.message, "votes": result.votes}


@router.get("/posts/{post_id}/approvals")
def get_approvals(
    post_id: int,
    viewer: Actor | None = Depends(get_optional_actor),
    engine=Depends(get_engine),
):
    stats = moderation_service.approval_stats(
        engine, post_id, viewer.id if viewer else None
    )
    return {"votes": stats.votes, "has_voted": stats.has_voted}


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
@router.get("/posts/{post_id}/comments")
def list_comments(
    post_id: int,
    viewer: Actor | None = Depends(get_optional_actor),
    engine=Depends(get_engine),
):
    comments = social_service.list_comments(engine, viewer, post_id)
    return {"comments": [_comment_dict(c) for c in comments]}


@router.post("/posts/{post_id}/comments", status_code=201)
def add_comment(
    post_id: int,
    body: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    comment = social_service.add_comment(engine, actor, post_id, body.content)
    return {"id": comment.id, "post_id": comment.post_id, "content": comment.content}


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: int,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    social_service.delete_comment(engine, actor, comment_id)
