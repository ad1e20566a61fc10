"""
friendzone.engine.visibility — Read-side moderation & level-gate rules
========================================================================

Pure functions deciding what a viewer may see of a post.  They are
re-evaluated on every read and never cached: the viewer's level, the
post's status and its ``min_level_to_view`` can all change between reads.

Rules:
  * ``pending``  — visible to everyone, with a pending banner and the
    vote affordance for members.
  * ``approved`` — visible to everyone.
  * ``rejected`` — visible only to the author and admins.
  * Level gate — the body is shown only if
    ``viewer.level >= min_level_to_view`` or the viewer is the author or an
    admin; otherwise only the title and the required level are exposed.

Guests (``viewer=None``) are treated as level-0 non-admin viewers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from friendzone.database.models import PostStatus
from friendzone.engine.events import Actor


class PostLike(Protocol):
    id: int
    user_id: str
    status: str
    title: str | None
    content: str
    image_url: str | None
    min_level_to_view: int


@dataclass(frozen=True, slots=True)
class PostView:
    """What one viewer gets to see of one post."""

    post_id: int
    status: str
    title: str | None
    content: str | None
    image_url: str | None
    locked: bool
    required_level: int
    show_pending_banner: bool
    can_vote: bool
    can_moderate: bool
    can_delete: bool


def _is_author(viewer: Actor | None, post: PostLike) -> bool:
    return viewer is not None and viewer.id == post.user_id


def _is_admin(viewer: Actor | None) -> bool:
    return viewer is not None and viewer.is_admin


def required_level(post: PostLike, community_min_level: int = 0) -> int:
    return max(post.min_level_to_view or 0, community_min_level or 0)


def can_view(viewer: Actor | None, post: PostLike) -> bool:
    """Whether the post appears in *viewer*'s listing at all."""
    if post.status == PostStatus.REJECTED:
        return _is_author(viewer, post) or _is_admin(viewer)
    return post.status in (PostStatus.PENDING, PostStatus.APPROVED)


def is_locked(
    viewer: Actor | None, post: PostLike, community_min_level: int = 0
) -> bool:
    if _is_author(viewer, post) or _is_admin(viewer):
        return False
    viewer_level = viewer.level if viewer is not None else 0
    return viewer_level < required_level(post, community_min_level)


def render_post(
    viewer: Actor | None, post: PostLike, community_min_level: int = 0
) -> PostView | None:
    """Project *post* for *viewer*; ``None`` if it must not be shown."""
    if not can_view(viewer, post):
        return None

    locked = is_locked(viewer, post, community_min_level)
    pending = post.status == PostStatus.PENDING
    is_author = _is_author(viewer, post)
    is_admin = _is_admin(viewer)

    return PostView(
        post_id=post.id,
        status=post.status,
        title=post.title,
        content=None if locked else post.content,
        image_url=None if locked else post.image_url,
        locked=locked,
        required_level=required_level(post, community_min_level),
        show_pending_banner=pending,
        can_vote=(
            pending
            and viewer is not None
            and not is_admin
            and not viewer.is_blocked
        ),
        can_moderate=pending and is_admin,
        can_delete=is_author or is_admin,
    )
