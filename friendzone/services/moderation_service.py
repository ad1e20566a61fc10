"""
friendzone.services.moderation_service — Post Lifecycle & Feed
================================================================

Post state machine::

    create ──► pending ──(admin approve)──► approved
       │          └─────(admin reject)───► rejected
       └──────────────────────────────────► approved   (no approval policy)

* A post starts ``pending`` only when its community has
  ``require_approval``; global posts start ``approved``.
* Only admins move a post out of ``pending``.  Both outcomes are terminal.
* Members may cast one approval vote per pending post.  Votes are tallied
  and shown but never change the status on their own.
* The author earns ``cfg.post_xp`` when the post becomes approved, at
  creation or on admin approval.

The feed read path applies :mod:`friendzone.engine.visibility` to every row
on every call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from friendzone.config import FriendZoneConfig
from friendzone.constants import DEFAULT_TOPIC, TOPICS
from friendzone.database.engine import get_session, insert_unique
from friendzone.database.models import (
    AdminActionType,
    Community,
    ImagePost,
    Like,
    Notification,
    NotificationType,
    Post,
    PostApproval,
    PostStatus,
    XpReason,
)
from friendzone.engine.events import Actor
from friendzone.engine.visibility import PostView, can_view, render_post
from friendzone.errors import (
    AlreadyVoted,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from friendzone.services.admin_service import (
    log_admin_action,
    require_admin,
    row_to_dict,
)
from friendzone.services.notification_service import notify
from friendzone.services.progression_service import (
    award_xp,
    check_image_quota,
    load_active_profile,
)

logger = logging.getLogger(__name__)

ALREADY_VOTED = "already voted"
ACTIONS = ("approve", "reject")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class VoteResult:
    success: bool
    message: str
    votes: int


@dataclass(frozen=True, slots=True)
class ApprovalStats:
    votes: int
    has_voted: bool


@dataclass(frozen=True, slots=True)
class FeedItem:
    view: PostView
    author_id: str
    author_name: str | None
    author_avatar: str | None
    author_level: int
    likes_count: int
    comments_count: int
    liked_by_user: bool
    approval_votes: int
    has_voted: bool
    topic: str
    community_slug: str | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class FeedPage:
    items: list[FeedItem]
    page: int
    has_more: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_post(session: Session, post_id: int) -> Post:
    post = session.get(Post, post_id)
    if post is None:
        raise NotFoundError(f"Post {post_id} not found")
    return post


def _vote_count(session: Session, post_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(PostApproval)
        .where(PostApproval.post_id == post_id)
    ) or 0


def _is_blank(value: str | None) -> bool:
    return not (value or "").strip()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
def create_post(
    engine: Engine,
    cfg: FriendZoneConfig,
    actor: Actor,
    *,
    content: str = "",
    title: str | None = None,
    image_url: str | None = None,
    min_level_to_view: int = 0,
    community_id: int | None = None,
    topic: str = DEFAULT_TOPIC,
    now: datetime | None = None,
) -> Post:
    """Create a post for *actor*.

    The image quota is checked before the row is inserted, so a client
    that asks first never uploads an image it cannot use.

    Raises
    ------
    ValidationError
        Empty post, unknown topic, or ``min_level_to_view`` outside
        ``0..actor.level`` (admins may gate at any level).
    AuthorizationError
        Blocked author, or below the community's ``min_level_to_post``.
    QuotaExceeded
        The rank's image allowance for the current period is used up.
    """
    if _is_blank(content) and _is_blank(title) and _is_blank(image_url):
        raise ValidationError("A post needs content, a title or an image")
    if topic not in TOPICS:
        raise ValidationError(f"Unknown topic {topic!r}")

    with get_session(engine, expire_on_commit=False) as session:
        author = load_active_profile(session, actor.id)
        is_admin = author.is_admin

        if min_level_to_view < 0 or (
            not is_admin and min_level_to_view > author.level
        ):
            raise ValidationError(
                f"min_level_to_view must be between 0 and {author.level}"
            )

        status = PostStatus.APPROVED
        if community_id is not None:
            community = session.get(Community, community_id)
            if community is None:
                raise NotFoundError(f"Community {community_id} not found")
            if not is_admin and author.level < community.min_level_to_post:
                raise AuthorizationError(
                    f"Posting in {community.name} requires level "
                    f"{community.min_level_to_post}"
                )
            if community.require_approval:
                status = PostStatus.PENDING

        if not _is_blank(image_url):
            check_image_quota(session, cfg, author, now)

        post = Post(
            user_id=author.id,
            content=content or "",
            title=None if _is_blank(title) else title.strip(),
            image_url=None if _is_blank(image_url) else image_url,
            status=status,
            min_level_to_view=min_level_to_view,
            community_id=community_id,
            topic=topic,
        )
        session.add(post)
        session.flush()
        if post.image_url:
            session.add(ImagePost(
                user_id=author.id, post_id=post.id, created_at=post.created_at,
            ))

        if status == PostStatus.APPROVED:
            award_xp(
                session, cfg, author, cfg.post_xp, XpReason.POST,
                metadata={"post_id": post.id},
            )
        session.expunge(post)

    logger.info("Post %d created by %s (%s)", post.id, actor.id, status)
    return post


# ---------------------------------------------------------------------------
# Admin transitions
# ---------------------------------------------------------------------------
def moderate_post(
    engine: Engine,
    cfg: FriendZoneConfig,
    admin: Actor,
    post_id: int,
    action: str,
    *,
    reason: str | None = None,
) -> Post:
    """Approve or reject a pending post.

    ``approved`` and ``rejected`` are both terminal; moderating any other
    state raises :class:`ValidationError`.
    """
    require_admin(admin)
    if action not in ACTIONS:
        raise ValidationError(f"Unknown moderation action {action!r}")

    with get_session(engine, expire_on_commit=False) as session:
        post = _load_post(session, post_id)
        if post.status != PostStatus.PENDING:
            raise ValidationError(f"Post {post_id} is already {post.status}")

        before = row_to_dict(post)
        approving = action == "approve"
        # Only a row still pending moves; a concurrent moderator matches 0 rows.
        moved = session.execute(
            update(Post)
            .where(Post.id == post_id, Post.status == PostStatus.PENDING)
            .values(status=PostStatus.APPROVED if approving else PostStatus.REJECTED)
            .execution_options(synchronize_session=False)
        ).rowcount
        if moved == 0:
            raise ValidationError(f"Post {post_id} was already moderated")
        session.refresh(post)

        log_admin_action(
            session,
            actor_id=admin.id,
            action_type=(
                AdminActionType.APPROVE_POST if approving
                else AdminActionType.REJECT_POST
            ),
            target_table="posts",
            target_id=str(post_id),
            before=before,
            after=row_to_dict(post),
            reason=reason,
        )
        notify(
            session,
            recipient_id=post.user_id,
            actor_id=admin.id,
            type=NotificationType.SYSTEM,
            key="post_approved" if approving else "post_rejected",
            post_id=post.id,
        )
        if approving:
            award_xp(
                session, cfg, post.author, cfg.post_xp, XpReason.POST,
                metadata={"post_id": post.id},
            )
        session.expunge(post)

    logger.info("Admin %s %sd post %d", admin.id, action, post_id)
    return post


# ---------------------------------------------------------------------------
# Community votes
# ---------------------------------------------------------------------------
def cast_approval_vote(engine: Engine, actor: Actor, post_id: int) -> VoteResult:
    """Record *actor*'s approval vote on a pending post.

    A second vote by the same member is reported as ``already voted`` with
    the current tally.  Votes never change the post status.
    """
    if actor.is_admin:
        raise ValidationError("Admins moderate posts directly instead of voting")

    with get_session(engine) as session:
        load_active_profile(session, actor.id)
        post = _load_post(session, post_id)
        if post.status != PostStatus.PENDING:
            raise ValidationError(f"Post {post_id} is not pending")

        try:
            insert_unique(
                session,
                PostApproval(post_id=post_id, user_id=actor.id),
                AlreadyVoted,
            )
        except AlreadyVoted:
            return VoteResult(
                success=False,
                message=ALREADY_VOTED,
                votes=_vote_count(session, post_id),
            )
        votes = _vote_count(session, post_id)

    logger.debug("Profile %s voted for post %d (%d votes)", actor.id, post_id, votes)
    return VoteResult(success=True, message="vote recorded", votes=votes)


def approval_stats(
    engine: Engine, post_id: int, viewer_id: str | None = None
) -> ApprovalStats:
    with get_session(engine) as session:
        _load_post(session, post_id)
        has_voted = False
        if viewer_id is not None:
            has_voted = session.scalar(
                select(PostApproval.id).where(
                    PostApproval.post_id == post_id,
                    PostApproval.user_id == viewer_id,
                )
            ) is not None
        return ApprovalStats(votes=_vote_count(session, post_id), has_voted=has_voted)


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------
def delete_post(engine: Engine, actor: Actor, post_id: int) -> None:
    """Hard-delete a post.  Only the author or an admin may do this.

    Votes, likes and comments go with it; notifications keep their text but
    lose the post reference.
    """
    with get_session(engine) as session:
        post = _load_post(session, post_id)
        if post.user_id != actor.id and not actor.is_admin:
            raise AuthorizationError("Only the author or an admin can delete a post")

        before = row_to_dict(post)
        session.execute(
            update(Notification)
            .where(Notification.post_id == post_id)
            .values(post_id=None)
        )
        session.execute(
            update(ImagePost)
            .where(ImagePost.post_id == post_id)
            .values(post_id=None)
        )
        session.delete(post)

        if post.user_id != actor.id:
            log_admin_action(
                session,
                actor_id=actor.id,
                action_type=AdminActionType.DELETE_POST,
                target_table="posts",
                target_id=str(post_id),
                before=before,
                after=None,
            )

    logger.info("Post %d deleted by %s", post_id, actor.id)


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------
def list_feed(
    engine: Engine,
    cfg: FriendZoneConfig,
    viewer: Actor | None,
    *,
    community_slug: str | None = None,
    topic: str | None = None,
    author_id: str | None = None,
    page: int = 0,
    page_size: int | None = None,
) -> FeedPage:
    """Newest-first page of posts as *viewer* is allowed to see them.

    Without a community every post is listed, global and community alike.
    ``topic="all"`` is the same as no topic filter.
    """
    size = page_size or cfg.feed_page_size
    if page < 0 or size <= 0:
        raise ValidationError("page must be >= 0 and page_size > 0")

    with get_session(engine) as session:
        query = (
            select(Post)
            .options(selectinload(Post.author), selectinload(Post.community))
            .order_by(Post.created_at.desc(), Post.id.desc())
            .offset(page * size)
            .limit(size)
        )
        if community_slug:
            community_id = session.scalar(
                select(Community.id).where(Community.slug == community_slug)
            )
            if community_id is None:
                raise NotFoundError(f"Community {community_slug!r} not found")
            query = query.where(Post.community_id == community_id)
        if topic and topic != "all":
            query = query.where(Post.topic == topic)
        if author_id:
            query = query.where(Post.user_id == author_id)
        if viewer is None:
            query = query.where(Post.status != PostStatus.REJECTED)
        elif not viewer.is_admin:
            query = query.where(or_(
                Post.status != PostStatus.REJECTED, Post.user_id == viewer.id,
            ))

        posts = list(session.scalars(query).all())
        ids = [p.id for p in posts]

        liked: set[int] = set()
        voted: set[int] = set()
        votes: dict[int, int] = {}
        if ids:
            votes = dict(session.execute(
                select(PostApproval.post_id, func.count())
                .where(PostApproval.post_id.in_(ids))
                .group_by(PostApproval.post_id)
            ).all())
            if viewer is not None:
                liked = set(session.scalars(
                    select(Like.post_id).where(
                        Like.user_id == viewer.id, Like.post_id.in_(ids)
                    )
                ).all())
                voted = set(session.scalars(
                    select(PostApproval.post_id).where(
                        PostApproval.user_id == viewer.id,
                        PostApproval.post_id.in_(ids),
                    )
                ).all())

        items: list[FeedItem] = []
        for post in posts:
            if not can_view(viewer, post):
                continue
            community_gate = post.community.min_level_to_view if post.community else 0
            view = render_post(viewer, post, community_gate)
            items.append(FeedItem(
                view=view,
                author_id=post.user_id,
                author_name=post.author.full_name,
                author_avatar=post.author.avatar_url,
                author_level=post.author.level,
                likes_count=post.likes_count,
                comments_count=post.comments_count,
                liked_by_user=post.id in liked,
                approval_votes=votes.get(post.id, 0),
                has_voted=post.id in voted,
                topic=post.topic,
                community_slug=post.community.slug if post.community else None,
                created_at=post.created_at,
            ))

    return FeedPage(items=items, page=page, has_more=len(posts) == size)


def get_post(engine: Engine, viewer: Actor | None, post_id: int) -> PostView:
    """Single-post view; hidden posts look exactly like missing ones."""
    with get_session(engine) as session:
        post = _load_post(session, post_id)
        community_gate = post.community.min_level_to_view if post.community else 0
        view = render_post(viewer, post, community_gate)
    if view is None:
        raise NotFoundError(f"Post {post_id} not found")
    return view
