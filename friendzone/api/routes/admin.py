"""
friendzone.api.routes.admin — Admin moderation & maintenance (JWT‑protected)
==============================================================================

Every route depends on :func:`get_current_admin`, which reads the role from
the profile row.  The services check the role again.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from friendzone.api.deps import get_config, get_current_admin, get_engine
from friendzone.api.routes.communities import community_dict
from friendzone.config import FriendZoneConfig
from friendzone.engine.events import Actor
from friendzone.services import (
    admin_service,
    community_service,
    moderation_service,
    progression_service,
    reconciliation_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ModerationAction(BaseModel):
    action: Literal["approve", "reject"]
    reason: str | None = None


class LevelChange(BaseModel):
    level: int = Field(..., ge=1)
    reason: str | None = None


class StatusChange(BaseModel):
    reason: str | None = None


class CommunityCreate(BaseModel):
    name: str
    slug: str
    description: str | None = None
    icon: str | None = None
    cover_image: str | None = None
    min_level_to_post: int = Field(0, ge=0)
    min_level_to_view: int = Field(0, ge=0)
    require_approval: bool = False


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------
@router.post("/posts/{post_id}/moderate")
def moderate_post(
    post_id: int,
    body: ModerationAction,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    post = moderation_service.moderate_post(
        engine, cfg, admin, post_id, body.action, reason=body.reason,
    )
    return {"id": post.id, "status": post.status}


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
@router.post("/profiles/{user_id}/level")
def set_level(
    user_id: str,
    body: LevelChange,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    profile = progression_service.set_level(
        engine, cfg, admin, user_id, body.level, reason=body.reason,
    )
    return {"user_id": profile.id, "xp": profile.xp, "level": profile.level}


@router.post("/profiles/{user_id}/block")
def block_user(
    user_id: str,
    body: StatusChange,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    profile = admin_service.block_user(engine, admin, user_id, reason=body.reason)
    return {"user_id": profile.id, "status": profile.status}


@router.post("/profiles/{user_id}/unblock")
def unblock_user(
    user_id: str,
    body: StatusChange,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    profile = admin_service.unblock_user(engine, admin, user_id, reason=body.reason)
    return {"user_id": profile.id, "status": profile.status}


# ---------------------------------------------------------------------------
# Communities
# ---------------------------------------------------------------------------
@router.post("/communities", status_code=201)
def create_community(
    body: CommunityCreate,
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    community = community_service.create_community(
        engine, admin, **body.model_dump(),
    )
    return community_dict(community)


# ---------------------------------------------------------------------------
# Audit Log & maintenance
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    limit: int = Query(50, ge=1, le=200),
    table: str | None = Query(None),
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = admin_service.list_audit_log(engine, admin, limit=limit, target_table=table)
    return {
        "entries": [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before_snapshot": r.before_snapshot,
                "after_snapshot": r.after_snapshot,
                "reason": r.reason,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ],
    }


@router.post("/reconcile")
def reconcile(
    admin: Actor = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    return reconciliation_service.reconcile_all(engine, cfg, admin)
