"""
friendzone.services.progression_service — XP, Levels, Check-ins & Quotas
==========================================================================

Orchestrates XP-earning events and the rules gated by rank:

* :func:`award_xp` — the only write path for ``profile.xp``.  Recomputes the
  level from the rank table, journals an ``xp_events`` row and unlocks
  badges.  Runs inside the caller's session so the award commits or rolls
  back with the action that earned it.
* :func:`perform_daily_checkin` — once per calendar day in the community
  timezone.  The ``(user_id, checkin_date)`` unique constraint is the only
  guard; a violation inside the SAVEPOINT means "already checked in".
* :func:`image_post_quota` / :func:`check_image_quota` — rank perk minus
  the image posts created in the current day/week.
* :func:`set_level` — audited admin override (``xp = rank.min_xp``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from friendzone.config import FriendZoneConfig
from friendzone.database.engine import get_session, insert_unique
from friendzone.database.models import (
    AdminActionType,
    Badge,
    DailyCheckin,
    ImagePost,
    NotificationType,
    Post,
    PostStatus,
    Profile,
    ProfileStatus,
    UserBadge,
    XpEvent,
    XpReason,
)
from friendzone.engine.badges import BadgeContext, check_badges
from friendzone.engine.events import Actor, BadgeUnlocked, LevelUp
from friendzone.engine.ledger import Rank
from friendzone.errors import (
    AlreadyCheckedIn,
    AuthorizationError,
    ConflictError,
    InvalidAmount,
    NotFoundError,
    QuotaExceeded,
    ValidationError,
)
from friendzone.services.admin_service import (
    log_admin_action,
    require_admin,
    row_to_dict,
)
from friendzone.services.notification_service import notify

logger = logging.getLogger(__name__)

ALREADY_CHECKED_IN = "already checked in"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class AwardResult:
    xp: int
    level: int
    old_level: int
    events: list[LevelUp | BadgeUnlocked] = field(default_factory=list)
    badges_unlocked: list[int] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.level > self.old_level


@dataclass(slots=True)
class CheckinResult:
    success: bool
    message: str
    xp: int
    level: int
    award: AwardResult | None = None


@dataclass(frozen=True, slots=True)
class ImageQuota:
    limit: int | None
    used: int
    period: str

    @property
    def unlimited(self) -> bool:
        return self.limit is None

    @property
    def remaining(self) -> int | None:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)


@dataclass(frozen=True, slots=True)
class BadgeStatus:
    id: int
    name: str
    icon: str
    description: str
    unlocked: bool


@dataclass(frozen=True, slots=True)
class ProgressSummary:
    user_id: str
    xp: int
    level: int
    rank: Rank
    xp_into_level: int
    xp_to_next_level: int
    is_max: bool
    badges: list[BadgeStatus]
    image_quota: ImageQuota
    checked_in_today: bool


# ---------------------------------------------------------------------------
# Profile helpers
# ---------------------------------------------------------------------------
def get_or_create_profile(
    session: Session,
    user_id: str,
    *,
    email: str | None = None,
    full_name: str | None = None,
    avatar_url: str | None = None,
    language: str | None = None,
) -> Profile:
    """Fetch or insert the Profile row for an identity-provider subject.

    Identity fields are refreshed on every sign-in; progression state is
    never touched here.  Two first requests for the same subject race on
    the primary key; the loser re-reads the winner's row.
    """
    profile = session.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, email=email, full_name=full_name,
                          avatar_url=avatar_url)
        if language:
            profile.language = language
        try:
            insert_unique(session, profile, ConflictError)
        except ConflictError:
            logger.debug("Profile %s created concurrently; re-reading", user_id)
            profile = session.get(Profile, user_id)
            if profile is None:
                raise
        else:
            logger.info("Created profile %s", user_id)
            return profile

    if email:
        profile.email = email
    if full_name and not profile.full_name:
        profile.full_name = full_name
    if avatar_url and not profile.avatar_url:
        profile.avatar_url = avatar_url
    return profile


def update_profile(
    engine: Engine,
    cfg: FriendZoneConfig,
    actor: Actor,
    *,
    full_name: str | None = None,
    bio: str | None = None,
    language: str | None = None,
) -> Profile:
    """Edit the caller's own display fields.  ``None`` leaves a field as is."""
    if language is not None and language not in cfg.supported_languages:
        raise ValidationError(
            f"Unsupported language {language!r} (choose from {cfg.supported_languages})"
        )
    with get_session(engine, expire_on_commit=False) as session:
        profile = load_profile(session, actor.id)
        if full_name is not None:
            if not full_name.strip():
                raise ValidationError("Display name cannot be blank")
            profile.full_name = full_name.strip()
        if bio is not None:
            profile.bio = bio.strip() or None
        if language is not None:
            profile.language = language
        session.flush()
        session.expunge(profile)
    return profile


def get_profile(engine: Engine, user_id: str) -> Profile:
    with get_session(engine, expire_on_commit=False) as session:
        profile = load_profile(session, user_id)
        session.expunge(profile)
    return profile


def load_profile(session: Session, user_id: str) -> Profile:
    profile = session.get(Profile, user_id)
    if profile is None:
        raise NotFoundError(f"Profile {user_id} not found")
    return profile


def load_active_profile(session: Session, user_id: str) -> Profile:
    profile = load_profile(session, user_id)
    if profile.status == ProfileStatus.BLOCKED:
        raise AuthorizationError("Blocked profiles cannot do that")
    return profile


def _badge_context(session: Session, profile: Profile, old_level: int) -> BadgeContext:
    checkins = session.scalar(
        select(func.count()).select_from(DailyCheckin)
        .where(DailyCheckin.user_id == profile.id)
    ) or 0
    posts = session.scalar(
        select(func.count()).select_from(Post)
        .where(Post.user_id == profile.id, Post.status == PostStatus.APPROVED)
    ) or 0
    return BadgeContext(
        user_xp=profile.xp,
        user_level=profile.level,
        old_level=old_level if old_level != profile.level else None,
        checkin_count=checkins,
        post_count=posts,
    )


def _unlock_badges(
    session: Session, profile: Profile, old_level: int
) -> list[BadgeUnlocked]:
    earned = set(session.scalars(
        select(UserBadge.badge_id).where(UserBadge.user_id == profile.id)
    ).all())
    badges = {
        b.id: b for b in session.scalars(select(Badge).where(Badge.active.is_(True)))
    }
    ctx = _badge_context(session, profile, old_level)

    unlocked: list[BadgeUnlocked] = []
    for badge_id in check_badges(badges.values(), ctx, earned):
        badge = badges[badge_id]
        session.add(UserBadge(user_id=profile.id, badge_id=badge_id))
        unlocked.append(BadgeUnlocked(
            user_id=profile.id,
            badge_id=badge_id,
            badge_name=badge.name,
            icon=badge.icon,
        ))
    if unlocked:
        session.flush()
        for event in unlocked:
            notify(
                session,
                recipient_id=profile.id,
                type=NotificationType.BADGE,
                key="badge",
                badge=event.badge_name,
                icon=event.icon,
            )
    return unlocked


# ---------------------------------------------------------------------------
# XP award
# ---------------------------------------------------------------------------
def award_xp(
    session: Session,
    cfg: FriendZoneConfig,
    user: Profile,
    amount: int,
    reason: str,
    *,
    metadata: dict | None = None,
) -> AwardResult:
    """Add *amount* XP to *user* and apply any level-up.

    Raises
    ------
    InvalidAmount
        If *amount* is not strictly positive.
    """
    if amount <= 0:
        raise InvalidAmount(f"XP amount must be positive, got {amount}")

    old_level = user.level
    user.xp = max(user.xp + amount, 0)
    info = cfg.ranks.level_for_xp(user.xp)
    user.level = info.level

    session.add(XpEvent(
        user_id=user.id, amount=amount, reason=reason, metadata_=metadata,
    ))
    session.flush()

    result = AwardResult(xp=user.xp, level=user.level, old_level=old_level)

    if result.leveled_up:
        rank_name = info.rank.name_vi if user.language == "vi" else info.rank.name
        result.events.append(LevelUp(
            user_id=user.id,
            old_level=old_level,
            new_level=info.level,
            rank_name=info.rank.name,
        ))
        notify(
            session,
            recipient_id=user.id,
            type=NotificationType.SYSTEM,
            key="level_up",
            level=info.level,
            rank=rank_name,
        )
        logger.info(
            "Profile %s levelled up %d → %d (%s)",
            user.id, old_level, info.level, info.rank.name,
        )

    unlocked = _unlock_badges(session, user, old_level)
    result.events.extend(unlocked)
    result.badges_unlocked = [event.badge_id for event in unlocked]
    return result


# ---------------------------------------------------------------------------
# Daily check-in
# ---------------------------------------------------------------------------
def perform_daily_checkin(
    engine: Engine,
    cfg: FriendZoneConfig,
    actor: Actor,
    now: datetime | None = None,
) -> CheckinResult:
    """Record today's check-in for *actor* and award ``cfg.checkin_xp``.

    The second call on the same calendar day (``cfg.timezone``) is a no-op
    reporting ``already checked in``.  The check-in row and the XP award
    share one transaction.
    """
    day = cfg.today(now)

    with get_session(engine) as session:
        profile = load_active_profile(session, actor.id)
        try:
            insert_unique(
                session,
                DailyCheckin(user_id=profile.id, checkin_date=day),
                AlreadyCheckedIn,
            )
        except AlreadyCheckedIn:
            logger.debug("Profile %s already checked in on %s", profile.id, day)
            return CheckinResult(
                success=False,
                message=ALREADY_CHECKED_IN,
                xp=profile.xp,
                level=profile.level,
            )

        award = award_xp(
            session, cfg, profile, cfg.checkin_xp, XpReason.CHECKIN,
            metadata={"date": day.isoformat()},
        )

    logger.info("Profile %s checked in on %s (+%d XP)", actor.id, day, cfg.checkin_xp)
    return CheckinResult(
        success=True,
        message=f"+{cfg.checkin_xp} XP",
        xp=award.xp,
        level=award.level,
        award=award,
    )


def has_checked_in_today(
    engine: Engine,
    cfg: FriendZoneConfig,
    user_id: str,
    now: datetime | None = None,
) -> bool:
    with get_session(engine) as session:
        return _checked_in_on(session, user_id, cfg.today(now))


def _checked_in_on(session: Session, user_id: str, day: date) -> bool:
    return session.scalar(
        select(DailyCheckin.id).where(
            DailyCheckin.user_id == user_id,
            DailyCheckin.checkin_date == day,
        )
    ) is not None


# ---------------------------------------------------------------------------
# Image-post quota
# ---------------------------------------------------------------------------
def period_start(
    cfg: FriendZoneConfig, period: str, now: datetime | None = None
) -> datetime:
    """UTC instant at which the current quota *period* began.

    Days start at local midnight; weeks start on Monday, both in
    ``cfg.timezone``.
    """
    local = cfg.local_now(now)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "week":
        start -= timedelta(days=start.weekday())
    return start.astimezone(UTC)


def image_post_quota(
    session: Session,
    cfg: FriendZoneConfig,
    user: Profile,
    now: datetime | None = None,
) -> ImageQuota:
    """Quota from the rank perk and the ``image_posts`` journal.

    Deleted image posts still count against the period they were made in.
    """
    perk = cfg.ranks.rank_for_level(user.level).image_perk
    since = period_start(cfg, perk.period, now)
    used = session.scalar(
        select(func.count()).select_from(ImagePost).where(
            ImagePost.user_id == user.id,
            ImagePost.created_at >= since,
        )
    ) or 0
    return ImageQuota(limit=perk.limit, used=used, period=perk.period)


def check_image_quota(
    session: Session,
    cfg: FriendZoneConfig,
    user: Profile,
    now: datetime | None = None,
) -> ImageQuota:
    """Return the quota, raising :class:`QuotaExceeded` if it is used up."""
    quota = image_post_quota(session, cfg, user, now)
    if not quota.unlimited and quota.remaining == 0:
        raise QuotaExceeded(
            f"Image post limit reached ({quota.limit}/{quota.period})"
        )
    return quota


def get_image_quota(
    engine: Engine,
    cfg: FriendZoneConfig,
    user_id: str,
    now: datetime | None = None,
) -> ImageQuota:
    """Read-only quota lookup used before a client uploads an image."""
    with get_session(engine) as session:
        return image_post_quota(session, cfg, load_profile(session, user_id), now)


# ---------------------------------------------------------------------------
# Admin override
# ---------------------------------------------------------------------------
def set_level(
    engine: Engine,
    cfg: FriendZoneConfig,
    admin: Actor,
    user_id: str,
    level: int,
    *,
    reason: str | None = None,
) -> Profile:
    """Set *user_id* to exactly ``rank(level).min_xp`` XP and *level*.

    This is the one path allowed to lower XP.  No XP journal row is written;
    the admin_log entry records the before/after state instead.
    """
    require_admin(admin)
    try:
        rank = cfg.ranks.rank_for_level(level)
    except NotFoundError as exc:
        raise ValidationError(exc.message) from exc

    with get_session(engine, expire_on_commit=False) as session:
        profile = load_profile(session, user_id)
        before = row_to_dict(profile)
        profile.xp = rank.min_xp
        profile.level = rank.level
        session.flush()

        log_admin_action(
            session,
            actor_id=admin.id,
            action_type=AdminActionType.SET_LEVEL,
            target_table="profiles",
            target_id=user_id,
            before=before,
            after=row_to_dict(profile),
            reason=reason,
        )
        notify(
            session,
            recipient_id=user_id,
            actor_id=admin.id,
            type=NotificationType.SYSTEM,
            key="level_set",
            level=level,
        )
        session.expunge(profile)

    logger.info("Admin %s set profile %s to level %d", admin.id, user_id, level)
    return profile


# ---------------------------------------------------------------------------
# Read-side summaries
# ---------------------------------------------------------------------------
def get_progress(
    engine: Engine,
    cfg: FriendZoneConfig,
    user_id: str,
    now: datetime | None = None,
) -> ProgressSummary:
    """XP, rank, badges and quota for the profile sidebar."""
    with get_session(engine) as session:
        profile = load_profile(session, user_id)
        info = cfg.ranks.level_for_xp(profile.xp)
        earned = set(session.scalars(
            select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
        ).all())
        badges = [
            BadgeStatus(
                id=b.id,
                name=b.name,
                icon=b.icon,
                description=b.description,
                unlocked=b.id in earned,
            )
            for b in session.scalars(
                select(Badge).where(Badge.active.is_(True)).order_by(Badge.id)
            )
        ]
        return ProgressSummary(
            user_id=profile.id,
            xp=profile.xp,
            level=profile.level,
            rank=cfg.ranks.rank_for_level(profile.level),
            xp_into_level=info.xp_into_level,
            xp_to_next_level=info.xp_to_next_level,
            is_max=info.is_max,
            badges=badges,
            image_quota=image_post_quota(session, cfg, profile, now),
            checked_in_today=_checked_in_on(session, user_id, cfg.today(now)),
        )


def leaderboard(engine: Engine, limit: int = 10) -> list[Profile]:
    """Top active profiles by XP."""
    with get_session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(
            select(Profile)
            .where(Profile.status == ProfileStatus.ACTIVE)
            .order_by(Profile.xp.desc(), Profile.created_at)
            .limit(limit)
        ).all())
        session.expunge_all()
    return rows
