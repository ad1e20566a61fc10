"""
friendzone.services.notification_service — Notification Fan-out
=================================================================

Derives notification rows from likes, comments, badge unlocks, level-ups
and admin actions.

Fan-out is best-effort: :func:`notify` writes inside a SAVEPOINT and a
failure is logged and swallowed, so the triggering operation (the like,
the comment, the check-in) still commits.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from friendzone.constants import render_message
from friendzone.database.engine import get_session
from friendzone.database.models import Notification, NotificationType, Profile

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 20


def notify(
    session: Session,
    *,
    recipient_id: str,
    type: NotificationType,
    key: str,
    actor_id: str | None = None,
    post_id: int | None = None,
    **params: object,
) -> Notification | None:
    """Queue a notification for *recipient_id* in the current transaction.

    The message is rendered in the recipient's language.  Notifications
    about your own actions are skipped.  Returns the row, or ``None`` when
    skipped or when the insert failed.
    """
    if actor_id is not None and actor_id == recipient_id:
        return None

    try:
        with session.begin_nested():
            recipient = session.get(Profile, recipient_id)
            language = recipient.language if recipient is not None else "en"
            if actor_id is not None and "actor" not in params:
                actor = session.get(Profile, actor_id)
                params["actor"] = (actor.full_name if actor else None) or "Someone"
            row = Notification(
                user_id=recipient_id,
                actor_id=actor_id,
                type=type,
                message=render_message(key, language, **params),
                post_id=post_id,
            )
            session.add(row)
            session.flush()
            return row
    except SQLAlchemyError:
        logger.exception(
            "Failed to create %s notification for %s", type, recipient_id
        )
        return None


def unread_count(engine: Engine, user_id: str) -> int:
    with get_session(engine) as session:
        return session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0


def list_notifications(
    engine: Engine, user_id: str, limit: int = DEFAULT_PAGE
) -> list[Notification]:
    """Newest-first notifications for *user_id* (detached from the session)."""
    with get_session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).all()
        session.expunge_all()
        return list(rows)


def mark_all_read(engine: Engine, user_id: str) -> int:
    """Flip every unread notification of *user_id* to read.

    Triggered when the recipient opens the notification list.  Returns the
    number of rows changed.
    """
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        changed = result.rowcount or 0

    if changed:
        logger.info("Marked %d notifications read for %s", changed, user_id)
    return changed
