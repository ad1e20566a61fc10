"""
friendzone.services.community_service — Communities & Membership
==================================================================

Communities scope posts and carry the posting policy the moderation
workflow reads: ``require_approval``, ``min_level_to_post`` and
``min_level_to_view``.  Only admins create communities; anyone active may
join or leave.  Membership is a unique ``(community_id, user_id)`` pair, so
joining twice is a no-op.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from friendzone.database.engine import get_session, insert_unique
from friendzone.database.models import (
    AdminActionType,
    Community,
    CommunityMember,
)
from friendzone.engine.events import Actor
from friendzone.errors import (
    AlreadyMember,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from friendzone.services.admin_service import (
    log_admin_action,
    require_admin,
    row_to_dict,
)
from friendzone.services.progression_service import load_active_profile

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


@dataclass(frozen=True, slots=True)
class MembershipResult:
    member: bool
    changed: bool
    member_count: int


def _member_count(session: Session, community_id: int) -> int:
    return session.scalar(
        select(func.count()).select_from(CommunityMember)
        .where(CommunityMember.community_id == community_id)
    ) or 0


def _load_by_slug(session: Session, slug: str) -> Community:
    community = session.scalar(select(Community).where(Community.slug == slug))
    if community is None:
        raise NotFoundError(f"Community {slug!r} not found")
    return community


def create_community(
    engine: Engine,
    admin: Actor,
    *,
    name: str,
    slug: str,
    description: str | None = None,
    icon: str | None = None,
    cover_image: str | None = None,
    min_level_to_post: int = 0,
    min_level_to_view: int = 0,
    require_approval: bool = False,
) -> Community:
    """Create a community owned by *admin*, who becomes its first member."""
    require_admin(admin)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Community name is required")
    if not SLUG_RE.match(slug or ""):
        raise ValidationError(
            f"Invalid slug {slug!r}: use lowercase letters, digits and dashes"
        )
    if min_level_to_post < 0 or min_level_to_view < 0:
        raise ValidationError("Level requirements cannot be negative")

    with get_session(engine, expire_on_commit=False) as session:
        community = Community(
            name=name,
            slug=slug,
            description=description,
            icon=icon,
            cover_image=cover_image,
            min_level_to_post=min_level_to_post,
            min_level_to_view=min_level_to_view,
            require_approval=require_approval,
            owner_id=admin.id,
        )
        try:
            insert_unique(session, community, ConflictError)
        except ConflictError as exc:
            raise ValidationError(f"Slug {slug!r} is already taken") from exc

        session.add(CommunityMember(
            community_id=community.id, user_id=admin.id, role="owner",
        ))
        log_admin_action(
            session,
            actor_id=admin.id,
            action_type=AdminActionType.CREATE_COMMUNITY,
            target_table="communities",
            target_id=str(community.id),
            before=None,
            after=row_to_dict(community),
        )
        session.flush()
        session.expunge(community)

    logger.info("Community %r created by %s", slug, admin.id)
    return community


def join_community(engine: Engine, actor: Actor, slug: str) -> MembershipResult:
    with get_session(engine) as session:
        load_active_profile(session, actor.id)
        community = _load_by_slug(session, slug)
        try:
            insert_unique(
                session,
                CommunityMember(community_id=community.id, user_id=actor.id),
                AlreadyMember,
            )
            changed = True
        except AlreadyMember:
            changed = False
        return MembershipResult(
            member=True,
            changed=changed,
            member_count=_member_count(session, community.id),
        )


def leave_community(engine: Engine, actor: Actor, slug: str) -> MembershipResult:
    with get_session(engine) as session:
        community = _load_by_slug(session, slug)
        membership = session.scalar(
            select(CommunityMember).where(
                CommunityMember.community_id == community.id,
                CommunityMember.user_id == actor.id,
            )
        )
        if membership is not None:
            if membership.role == "owner":
                raise ValidationError("The owner cannot leave their community")
            session.delete(membership)
            session.flush()
        return MembershipResult(
            member=False,
            changed=membership is not None,
            member_count=_member_count(session, community.id),
        )


def is_member(engine: Engine, user_id: str, slug: str) -> bool:
    with get_session(engine) as session:
        community = _load_by_slug(session, slug)
        return session.scalar(
            select(CommunityMember.id).where(
                CommunityMember.community_id == community.id,
                CommunityMember.user_id == user_id,
            )
        ) is not None


def get_community_by_slug(engine: Engine, slug: str) -> Community:
    with get_session(engine, expire_on_commit=False) as session:
        community = _load_by_slug(session, slug)
        session.expunge(community)
    return community


def list_communities(engine: Engine) -> list[tuple[Community, int]]:
    """Every community with its member count, alphabetically."""
    with get_session(engine, expire_on_commit=False) as session:
        counts = (
            select(CommunityMember.community_id, func.count().label("members"))
            .group_by(CommunityMember.community_id)
            .subquery()
        )
        rows = session.execute(
            select(Community, func.coalesce(counts.c.members, 0))
            .outerjoin(counts, counts.c.community_id == Community.id)
            .order_by(Community.name)
        ).all()
        session.expunge_all()
    return [(community, members) for community, members in rows]


def member_count(engine: Engine, slug: str) -> int:
    with get_session(engine) as session:
        return _member_count(session, _load_by_slug(session, slug).id)
