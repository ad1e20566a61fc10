"""
friendzone.services.admin_service — Admin Mutations & Audit Trail
===================================================================

Every admin write follows the same pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit

Other services (moderation, progression, communities) reuse
:func:`log_admin_action` and :func:`row_to_dict` so the audit trail has a
single shape.  Authority is always ``actor.role == "admin"``; it is checked
by :func:`require_admin` before any of these writes.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from friendzone.database.engine import get_session
from friendzone.database.models import (
    AdminActionType,
    AdminLog,
    Profile,
    ProfileStatus,
)
from friendzone.engine.events import Actor
from friendzone.errors import AuthorizationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key if col.key != "metadata" else "metadata_", None)
        if isinstance(val, (datetime, date)):
            val = val.isoformat()
        elif isinstance(val, Enum):
            val = val.value
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def require_admin(actor: Actor | None) -> Actor:
    if actor is None or not actor.is_admin:
        raise AuthorizationError("Admin role required")
    return actor


# ---------------------------------------------------------------------------
# Profile status transitions
# ---------------------------------------------------------------------------

def _set_status(
    engine: Engine,
    admin: Actor,
    user_id: str,
    status: ProfileStatus,
    action: AdminActionType,
    reason: str | None,
) -> Profile:
    require_admin(admin)
    if user_id == admin.id:
        raise ValidationError("Admins cannot change their own status")

    with get_session(engine, expire_on_commit=False) as session:
        profile = session.get(Profile, user_id)
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found")

        before = row_to_dict(profile)
        profile.status = status
        session.flush()
        log_admin_action(
            session,
            actor_id=admin.id,
            action_type=action,
            target_table="profiles",
            target_id=user_id,
            before=before,
            after=row_to_dict(profile),
            reason=reason,
        )
        session.expunge(profile)

    logger.info("Admin %s set profile %s to %s", admin.id, user_id, status)
    return profile


def block_user(
    engine: Engine, admin: Actor, user_id: str, *, reason: str | None = None
) -> Profile:
    """Block a profile.  Profiles are never hard-deleted."""
    return _set_status(
        engine, admin, user_id, ProfileStatus.BLOCKED,
        AdminActionType.BLOCK_USER, reason,
    )


def unblock_user(
    engine: Engine, admin: Actor, user_id: str, *, reason: str | None = None
) -> Profile:
    return _set_status(
        engine, admin, user_id, ProfileStatus.ACTIVE,
        AdminActionType.UNBLOCK_USER, reason,
    )


# ---------------------------------------------------------------------------
# Audit log read-side
# ---------------------------------------------------------------------------

def list_audit_log(
    engine: Engine,
    admin: Actor,
    *,
    limit: int = 50,
    target_table: str | None = None,
) -> list[AdminLog]:
    """Newest-first admin_log entries, optionally filtered by table."""
    require_admin(admin)
    with get_session(engine, expire_on_commit=False) as session:
        query = select(AdminLog).order_by(AdminLog.id.desc()).limit(limit)
        if target_table is not None:
            query = query.where(AdminLog.target_table == target_table)
        rows = list(session.scalars(query).all())
        session.expunge_all()
    return rows
