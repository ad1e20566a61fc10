"""
friendzone.services.reconciliation_service — Counter Reconciliation
=====================================================================

Maintenance job that repairs denormalized counters.

How it works:
    1. ``COUNT(*)`` likes and comments per post from the child tables.
    2. Compare against ``posts.likes_count`` / ``posts.comments_count``.
    3. If there is a mismatch, overwrite the counter with the true count.
    4. Log all corrections for audit.

:func:`reconcile_levels` does the same for ``profiles.level`` against the
rank table, which matters after ``config.yaml`` changes its thresholds.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select

from friendzone.config import FriendZoneConfig
from friendzone.database.engine import get_session
from friendzone.database.models import AdminActionType, Comment, Like, Post, Profile
from friendzone.engine.events import Actor
from friendzone.services.admin_service import log_admin_action, require_admin

logger = logging.getLogger(__name__)


def reconcile_post_counters(engine: Engine) -> dict:
    """Recompute like/comment counters for every post and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...]}``.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        # Ground truth: child rows per post
        likes = dict(session.execute(
            select(Like.post_id, func.count()).group_by(Like.post_id)
        ).all())
        comments = dict(session.execute(
            select(Comment.post_id, func.count()).group_by(Comment.post_id)
        ).all())

        checked = 0
        for post in session.scalars(select(Post)):
            checked += 1
            actual_likes = likes.get(post.id, 0)
            actual_comments = comments.get(post.id, 0)

            if post.likes_count != actual_likes:
                corrections.append({
                    "post_id": post.id,
                    "counter": "likes_count",
                    "stored": post.likes_count,
                    "actual": actual_likes,
                    "diff": actual_likes - post.likes_count,
                })
                post.likes_count = actual_likes

            if post.comments_count != actual_comments:
                corrections.append({
                    "post_id": post.id,
                    "counter": "comments_count",
                    "stored": post.comments_count,
                    "actual": actual_comments,
                    "diff": actual_comments - post.comments_count,
                })
                post.comments_count = actual_comments

    if corrections:
        logger.warning(
            "Counter reconciliation: corrected %d counters across %d posts: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Counter reconciliation: all %d posts match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def reconcile_levels(engine: Engine, cfg: FriendZoneConfig) -> dict:
    """Re-derive every profile's level from its XP.

    No notifications are sent; this only repairs stored state.
    """
    corrections: list[dict] = []

    with get_session(engine) as session:
        checked = 0
        for profile in session.scalars(select(Profile)):
            checked += 1
            expected = cfg.ranks.level_for_xp(profile.xp).level
            if profile.level != expected:
                corrections.append({
                    "user_id": profile.id,
                    "xp": profile.xp,
                    "stored": profile.level,
                    "actual": expected,
                })
                profile.level = expected

    if corrections:
        logger.warning(
            "Level reconciliation: corrected %d/%d profiles: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Level reconciliation: all %d profiles match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def reconcile_all(engine: Engine, cfg: FriendZoneConfig, admin: Actor) -> dict:
    """Admin-triggered run of both jobs, recorded in the audit log."""
    require_admin(admin)
    report = {
        "posts": reconcile_post_counters(engine),
        "levels": reconcile_levels(engine, cfg),
    }
    with get_session(engine) as session:
        log_admin_action(
            session,
            actor_id=admin.id,
            action_type=AdminActionType.RECONCILE,
            target_table="posts,profiles",
            target_id=None,
            before=None,
            after={
                "posts_corrected": report["posts"]["corrected"],
                "levels_corrected": report["levels"]["corrected"],
            },
        )
    return report
