"""
friendzone.api.routes.communities — Community directory & membership
======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from friendzone.api.deps import get_current_actor, get_engine
from friendzone.database.models import Community
from friendzone.engine.events import Actor
from friendzone.services import community_service
from friendzone.services.community_service import MembershipResult

router = APIRouter(prefix="/communities", tags=["communities"])


def community_dict(c: Community, members: int | None = None) -> dict:
    data = {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "icon": c.icon,
        "cover_image": c.cover_image,
        "min_level_to_post": c.min_level_to_post,
        "min_level_to_view": c.min_level_to_view,
        "require_approval": c.require_approval,
    }
    if members is not None:
        data["members"] = members
    return data


def _membership_dict(result: MembershipResult) -> dict:
    return {
        "member": result.member,
        "changed": result.changed,
        "members": result.member_count,
    }


@router.get("")
def list_communities(engine=Depends(get_engine)):
    return {
        "communities": [
            community_dict(c, members)
            for c, members in community_service.list_communities(engine)
        ],
    }


@router.get("/{slug}")
def get_community(slug: str, engine=Depends(get_engine)):
    community = community_service.get_community_by_slug(engine, slug)
    return community_dict(community, community_service.member_count(engine, slug))


@router.post("/{slug}/join")
def join(
    slug: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return _membership_dict(community_service.join_community(engine, actor, slug))


@router.post("/{slug}/leave")
def leave(
    slug: str,
    actor: Actor = Depends(get_current_actor),
    engine=Depends(get_engine),
):
    return _membership_dict(community_service.leave_community(engine, actor, slug))
