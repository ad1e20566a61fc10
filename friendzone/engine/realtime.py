"""
friendzone.engine.realtime — Client-side feed state reducer
=============================================================

Realtime push events (row inserts/updates from the hosted store) are
folded into local derived state by a pure reducer.  Events are hints to
refresh counters, never the authority for a write decision, and they may
arrive before or after a local optimistic update settles.

Optimistic likes follow a begin → commit | rollback protocol.  While a
toggle is in flight the last known-good snapshot is kept aside; realtime
counter updates refresh that snapshot too, so a rollback restores the
newest authoritative values rather than a stale or default one.

All functions return new state objects and never mutate their inputs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from friendzone.errors import NotFoundError

logger = logging.getLogger(__name__)

__all__ = [
    "FeedState",
    "PostSnapshot",
    "RowChange",
    "apply_row_change",
    "begin_optimistic_like",
    "commit_optimistic_like",
    "rollback_optimistic_like",
]


@dataclass(frozen=True, slots=True)
class PostSnapshot:
    post_id: int
    likes: int = 0
    comments: int = 0
    liked_by_user: bool = False
    seen_comment_ids: frozenset[int] = frozenset()


@dataclass(frozen=True, slots=True)
class RowChange:
    """One realtime push event."""

    table: str
    event: str  # INSERT | UPDATE | DELETE
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class FeedState:
    viewer_id: str | None = None
    posts: dict[int, PostSnapshot] = field(default_factory=dict)
    unread_notifications: int = 0
    # post_id → last known-good snapshot while an optimistic toggle is in flight
    pending: dict[int, PostSnapshot] = field(default_factory=dict)

    @classmethod
    def from_snapshots(
        cls,
        snapshots: list[PostSnapshot],
        *,
        viewer_id: str | None = None,
        unread_notifications: int = 0,
    ) -> FeedState:
        return cls(
            viewer_id=viewer_id,
            posts={s.post_id: s for s in snapshots},
            unread_notifications=unread_notifications,
        )


def _with_post(state: FeedState, snapshot: PostSnapshot) -> FeedState:
    posts = dict(state.posts)
    posts[snapshot.post_id] = snapshot
    return replace(state, posts=posts)


# ---------------------------------------------------------------------------
# Realtime folding
# ---------------------------------------------------------------------------
def _on_post_update(state: FeedState, change: RowChange) -> FeedState:
    post_id = change.new.get("id")
    current = state.posts.get(post_id)
    if current is None:
        return state
    likes = max(int(change.new.get("likes_count", current.likes)), 0)
    comments = max(int(change.new.get("comments_count", current.comments)), 0)
    state = _with_post(state, replace(current, likes=likes, comments=comments))

    previous = state.pending.get(post_id)
    if previous is not None:
        pending = dict(state.pending)
        pending[post_id] = replace(previous, likes=likes, comments=comments)
        state = replace(state, pending=pending)
    return state


def _on_post_delete(state: FeedState, change: RowChange) -> FeedState:
    post_id = change.old.get("id", change.new.get("id"))
    if post_id not in state.posts:
        return state
    posts = {k: v for k, v in state.posts.items() if k != post_id}
    pending = {k: v for k, v in state.pending.items() if k != post_id}
    return replace(state, posts=posts, pending=pending)


def _on_comment_insert(state: FeedState, change: RowChange) -> FeedState:
    current = state.posts.get(change.new.get("post_id"))
    comment_id = change.new.get("id")
    if current is None or comment_id in current.seen_comment_ids:
        return state
    state = _with_post(state, replace(
        current,
        comments=current.comments + 1,
        seen_comment_ids=current.seen_comment_ids | {comment_id},
    ))

    previous = state.pending.get(current.post_id)
    if previous is not None:
        pending = dict(state.pending)
        pending[current.post_id] = replace(
            previous,
            comments=current.comments + 1,
            seen_comment_ids=current.seen_comment_ids | {comment_id},
        )
        state = replace(state, pending=pending)
    return state


def _on_notification(state: FeedState, change: RowChange) -> FeedState:
    if state.viewer_id is None or change.new.get("user_id") != state.viewer_id:
        return state
    if change.event == "INSERT" and not change.new.get("is_read", False):
        return replace(state, unread_notifications=state.unread_notifications + 1)
    if (
        change.event == "UPDATE"
        and change.new.get("is_read")
        and change.old.get("is_read") is False
    ):
        return replace(
            state, unread_notifications=max(state.unread_notifications - 1, 0)
        )
    return state


_HANDLERS = {
    ("posts", "UPDATE"): _on_post_update,
    ("posts", "DELETE"): _on_post_delete,
    ("comments", "INSERT"): _on_comment_insert,
    ("notifications", "INSERT"): _on_notification,
    ("notifications", "UPDATE"): _on_notification,
}


def apply_row_change(state: FeedState, change: RowChange) -> FeedState:
    """Fold one realtime event into *state*.  Unknown events are ignored."""
    handler = _HANDLERS.get((change.table, change.event.upper()))
    if handler is None:
        logger.debug("Ignoring realtime event %s/%s", change.table, change.event)
        return state
    return handler(state, change)


# ---------------------------------------------------------------------------
# Optimistic like protocol
# ---------------------------------------------------------------------------
def begin_optimistic_like(state: FeedState, post_id: int) -> FeedState:
    """Flip ``liked_by_user`` locally and adjust the displayed count."""
    current = state.posts.get(post_id)
    if current is None:
        raise NotFoundError(f"Post {post_id} is not in the local feed")

    pending = dict(state.pending)
    # A second click while the first is in flight keeps the original baseline.
    pending.setdefault(post_id, current)

    liked = not current.liked_by_user
    likes = current.likes + 1 if liked else max(current.likes - 1, 0)
    state = _with_post(state, replace(current, liked_by_user=liked, likes=likes))
    return replace(state, pending=pending)


def commit_optimistic_like(
    state: FeedState, post_id: int, *, liked: bool, likes_count: int
) -> FeedState:
    """Settle an in-flight toggle with the server's answer."""
    current = state.posts.get(post_id)
    pending = {k: v for k, v in state.pending.items() if k != post_id}
    if current is None:
        return replace(state, pending=pending)
    state = _with_post(
        state, replace(current, liked_by_user=liked, likes=max(likes_count, 0))
    )
    return replace(state, pending=pending)


def rollback_optimistic_like(state: FeedState, post_id: int) -> FeedState:
    """Restore the last known-good snapshot after a failed request."""
    previous = state.pending.get(post_id)
    if previous is None:
        return state
    pending = {k: v for k, v in state.pending.items() if k != post_id}
    if post_id not in state.posts:
        return replace(state, pending=pending)
    state = _with_post(state, previous)
    return replace(state, pending=pending)
