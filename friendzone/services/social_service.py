"""
friendzone.services.social_service — Likes, Follows & Comments
================================================================

Likes and follows are set-membership toggles.  The unique constraint on the
pair is the authority; ``likes_count`` / ``comments_count`` are cosmetic
read-modify-write counters that may drift under concurrent toggles and are
repaired by :mod:`friendzone.services.reconciliation_service`.

Notification fan-out (like, comment) is best-effort and never rolls back
the triggering write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session, selectinload

from friendzone.database.engine import get_session, insert_unique
from friendzone.database.models import (
    Comment,
    Follow,
    Like,
    NotificationType,
    Post,
    Profile,
)
from friendzone.engine.events import Actor
from friendzone.engine.visibility import can_view, is_locked
from friendzone.errors import (
    AlreadyLiked,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    SelfFollowError,
    ValidationError,
)
from friendzone.services.notification_service import notify
from friendzone.services.progression_service import load_active_profile

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


@dataclass(frozen=True, slots=True)
class LikeResult:
    liked: bool
    likes_count: int


@dataclass(frozen=True, slots=True)
class FollowCounts:
    followers: int
    following: int


@dataclass(frozen=True, slots=True)
class FollowResult:
    following: bool
    followers_count: int
    following_count: int


def _load_visible_post(session: Session, actor: Actor, post_id: int) -> Post:
    post = session.get(Post, post_id)
    if post is None or not can_view(actor, post):
        raise NotFoundError(f"Post {post_id} not found")
    return post


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def toggle_like(engine: Engine, actor: Actor, post_id: int) -> LikeResult:
    """Unlike if *actor* already likes *post_id*, otherwise like it.

    Losing an insert race to a concurrent toggle by the same user is
    reported as ``liked=True`` without touching the counter.
    """
    with get_session(engine) as session:
        load_active_profile(session, actor.id)
        post = _load_visible_post(session, actor, post_id)

        existing = session.scalar(
            select(Like).where(Like.user_id == actor.id, Like.post_id == post_id)
        )
        if existing is not None:
            session.delete(existing)
            post.likes_count = max(post.likes_count - 1, 0)
            return LikeResult(liked=False, likes_count=post.likes_count)

        try:
            insert_unique(session, Like(user_id=actor.id, post_id=post_id), AlreadyLiked)
        except AlreadyLiked:
            logger.debug("Like race on post %d by %s", post_id, actor.id)
            return LikeResult(liked=True, likes_count=post.likes_count)

        post.likes_count += 1
        notify(
            session,
            recipient_id=post.user_id,
            actor_id=actor.id,
            type=NotificationType.LIKE,
            key="like",
            post_id=post_id,
        )
        return LikeResult(liked=True, likes_count=post.likes_count)


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------
def _follow_counts(session: Session, user_id: str) -> FollowCounts:
    followers = session.scalar(
        select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
    ) or 0
    following = session.scalar(
        select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
    ) or 0
    return FollowCounts(followers=followers, following=following)


def toggle_follow(engine: Engine, actor: Actor, target_id: str) -> FollowResult:
    """Follow or unfollow *target_id*.

    Counts are returned for the target profile.

    Raises
    ------
    SelfFollowError
        If *actor* tries to follow themselves.
    """
    if actor.id == target_id:
        raise SelfFollowError("You cannot follow yourself")

    with get_session(engine) as session:
        load_active_profile(session, actor.id)
        if session.get(Profile, target_id) is None:
            raise NotFoundError(f"Profile {target_id} not found")

        existing = session.scalar(
            select(Follow).where(
                Follow.follower_id == actor.id, Follow.following_id == target_id
            )
        )
        if existing is not None:
            session.delete(existing)
            following = False
        else:
            try:
                insert_unique(
                    session,
                    Follow(follower_id=actor.id, following_id=target_id),
                    ConflictError,
                )
            except ConflictError:
                logger.debug("Follow race %s → %s", actor.id, target_id)
            following = True

        session.flush()
        counts = _follow_counts(session, target_id)

    return FollowResult(
        following=following,
        followers_count=counts.followers,
        following_count=counts.following,
    )


def follow_counts(engine: Engine, user_id: str) -> FollowCounts:
    with get_session(engine) as session:
        return _follow_counts(session, user_id)


def is_following(engine: Engine, follower_id: str, following_id: str) -> bool:
    with get_session(engine) as session:
        return session.scalar(
            select(Follow.id).where(
                Follow.follower_id == follower_id,
                Follow.following_id == following_id,
            )
        ) is not None


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def add_comment(engine: Engine, actor: Actor, post_id: int, content: str) -> Comment:
    """Comment on a visible post and notify its author."""
    text = (content or "").strip()
    if not text:
        raise ValidationError("Comment cannot be empty")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment exceeds {MAX_COMMENT_LENGTH} characters")

    with get_session(engine, expire_on_commit=False) as session:
        load_active_profile(session, actor.id)
        post = _load_visible_post(session, actor, post_id)

        comment = Comment(post_id=post_id, user_id=actor.id, content=text)
        session.add(comment)
        post.comments_count += 1
        session.flush()

        notify(
            session,
            recipient_id=post.user_id,
            actor_id=actor.id,
            type=NotificationType.COMMENT,
            key="comment",
            post_id=post_id,
        )
        session.expunge(comment)
    return comment


def delete_comment(engine: Engine, actor: Actor, comment_id: int) -> None:
    """Delete a comment.  Allowed for its author, the post author and admins."""
    with get_session(engine) as session:
        comment = session.get(Comment, comment_id)
        if comment is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        post = comment.post
        if actor.id not in (comment.user_id, post.user_id) and not actor.is_admin:
            raise AuthorizationError("You cannot delete this comment")

        session.delete(comment)
        post.comments_count = max(post.comments_count - 1, 0)


def list_comments(
    engine: Engine, viewer: Actor | None, post_id: int
) -> list[Comment]:
    """Oldest-first comments with their authors loaded (detached).

    Comments on a level-locked post are hidden along with its body.
    """
    with get_session(engine, expire_on_commit=False) as session:
        post = session.get(Post, post_id)
        if post is None or not can_view(viewer, post):
            raise NotFoundError(f"Post {post_id} not found")
        community_gate = post.community.min_level_to_view if post.community else 0
        if is_locked(viewer, post, community_gate):
            return []
        rows = list(session.scalars(
            select(Comment)
            .options(selectinload(Comment.author))
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at, Comment.id)
        ).all())
        session.expunge_all()
    return rows
