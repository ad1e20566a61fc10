"""
friendzone.api.routes.me — Progression, profile & notifications
=================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from friendzone.api.deps import get_config, get_current_actor, get_engine
from friendzone.config import FriendZoneConfig
from friendzone.constants import NOTIFICATION_ICONS
from friendzone.database.models import Profile
from friendzone.engine.events import Actor
from friendzone.services import (
    notification_service,
    progression_service,
    social_service,
)
from friendzone.services.progression_service import ImageQuota, ProgressSummary

router = APIRouter(tags=["me"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ProfileUpdate(BaseModel):
    full_name: str | None = None
    bio: str | None = None
    language: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _profile_dict(p: Profile) -> dict:
    return {
        "id": p.id,
        "full_name": p.full_name,
        "avatar_url": p.avatar_url,
        "bio": p.bio,
        "xp": p.xp,
        "level": p.level,
        "role": p.role,
        "status": p.status,
        "language": p.language,
    }


def _quota_dict(q: ImageQuota) -> dict:
    return {
        "limit": q.limit,
        "used": q.used,
        "remaining": q.remaining,
        "period": q.period,
        "unlimited": q.unlimited,
    }


def _progress_dict(s: ProgressSummary, language: str) -> dict:
    return {
        "user_id": s.user_id,
        "xp": s.xp,
        "level": s.level,
        "rank": {
            "name": s.rank.name_vi if language == "vi" else s.rank.name,
            "color": s.rank.color,
            "min_xp": s.rank.min_xp,
            "image_quota": s.rank.image_perk.describe(),
        },
        "xp_into_level": s.xp_into_level,
        "xp_to_next_level": s.xp_to_next_level,
        "is_max_level": s.is_max,
        "checked_in_today": s.checked_in_today,
        "image_quota": _quota_dict(s.image_quota),
        "badges": [
            {
                "id": b.id,
                "name": b.name,
                "icon": b.icon,
                "description": b.description,
                "unlocked": b.unlocked,
            }
            for b in s.badges
        ],
    }


# ---------------------------------------------------------------------------
# Own progression
# ---------------------------------------------------------------------------
@router.get("/me")
def get_me(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    profile = progression_service.get_profile(engine, actor.id)
    progress = progression_service.get_progress(engine, cfg, actor.id)
    return {
        "profile": _profile_dict(profile),
        "progress": _progress_dict(progress, profile.language),
    }


@router.patch("/me")
def update_me(
    body: ProfileUpdate,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    profile = progression_service.update_profile(
        engine, cfg, actor,
        full_name=body.full_name,
        bio=body.bio,
        language=body.language,
    )
    return _profile_dict(profile)


@router.post("/me/checkin")
def checkin(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    result = progression_service.perform_daily_checkin(engine, cfg, actor)
    return {
        "success": result.success,
        "message": result.message,
        "xp": result.xp,
        "level": result.level,
        "leveled_up": bool(result.award and result.award.leveled_up),
        "badges_unlocked": result.award.badges_unlocked if result.award else [],
    }


@router.get("/me/image-quota")
def image_quota(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    """Ask before uploading an image: ``remaining == 0`` means the post
    would be refused."""
    return _quota_dict(progression_service.get_image_quota(engine, cfg, actor.id))


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@router.get("/me/notifications")
def list_notifications(
    limit: int = Query(notification_service.DEFAULT_PAGE, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    rows = notification_service.list_notifications(engine, actor.id, limit)
    return {
        "unread": notification_service.unread_count(engine, actor.id),
        "notifications": [
            {
                "id": n.id,
                "type": n.type,
                "icon": NOTIFICATION_ICONS.get(n.type, ""),
                "message": n.message,
                "actor_id": n.actor_id,
                "post_id": n.post_id,
                "is_read": n.is_read,
                "created_at": n.created_at.isoformat() if n.created_at else None,
            }
            for n in rows
        ],
    }


@router.get("/me/notifications/unread-count")
def unread_notifications(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"unread": notification_service.unread_count(engine, actor.id)}


@router.post("/me/notifications/read")
def mark_notifications_read(
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return {"marked": notification_service.mark_all_read(engine, actor.id)}


# ---------------------------------------------------------------------------
# Public profiles & leaderboard
# ---------------------------------------------------------------------------
@router.get("/leaderboard")
def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    engine=Depends(get_engine),
):
    return {
        "profiles": [
            _profile_dict(p) for p in progression_service.leaderboard(engine, limit)
        ],
    }


@router.get("/profiles/{user_id}")
def get_profile(
    user_id: str,
    engine=Depends(get_engine),
    cfg: FriendZoneConfig = Depends(get_config),
):
    profile = progression_service.get_profile(engine, user_id)
    progress = progression_service.get_progress(engine, cfg, user_id)
    counts = social_service.follow_counts(engine, user_id)
    return {
        "profile": _profile_dict(profile),
        "progress": _progress_dict(progress, profile.language),
        "followers": counts.followers,
        "following": counts.following,
    }
