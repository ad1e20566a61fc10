"""
tests/test_progression_service.py — XP, Check-ins & Quotas
=============================================================

Covers the check-in → XP → level → badge pipeline against an in-memory
SQLite store, plus image-post quotas and the admin level override.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from conftest import make_profile
from friendzone.database.engine import get_session
from friendzone.database.models import (
    AdminLog,
    AdminActionType,
    Badge,
    DailyCheckin,
    ImagePost,
    Notification,
    Post,
    Profile,
    ProfileStatus,
    UserBadge,
    XpEvent,
    XpReason,
)
from friendzone.engine.events import BadgeUnlocked, LevelUp
from friendzone.errors import (
    AuthorizationError,
    InvalidAmount,
    NotFoundError,
    QuotaExceeded,
    ValidationError,
)
from friendzone.services import progression_service as svc


@pytest.fixture
def engine(db_engine):
    return db_engine


def _xp_events(engine, user_id):
    with Session(engine) as session:
        return list(session.scalars(
            select(XpEvent).where(XpEvent.user_id == user_id).order_by(XpEvent.id)
        ).all())


def _badge_names(engine, user_id):
    with Session(engine) as session:
        return set(session.scalars(
            select(Badge.name).join(UserBadge, UserBadge.badge_id == Badge.id)
            .where(UserBadge.user_id == user_id)
        ).all())


def _add_image_post(engine, user_id, created_at):
    with Session(engine) as session:
        post = Post(
            user_id=user_id, content="pic", image_url="https://img/x.png",
            created_at=created_at,
        )
        session.add(post)
        session.flush()
        session.add(ImagePost(user_id=user_id, post_id=post.id, created_at=created_at))
        session.commit()


# ---------------------------------------------------------------------------
# Daily check-in
# ---------------------------------------------------------------------------
class TestDailyCheckin:
    def test_first_checkin_awards_xp(self, engine, cfg, alice, now):
        result = svc.perform_daily_checkin(engine, cfg, alice, now)
        assert result.success
        assert result.message == "+3 XP"
        assert result.xp == 3
        assert result.level == 1

    def test_second_checkin_same_day_is_noop(self, engine, cfg, alice, now):
        svc.perform_daily_checkin(engine, cfg, alice, now)
        again = svc.perform_daily_checkin(engine, cfg, alice, now + timedelta(hours=3))
        assert not again.success
        assert again.message == "already checked in"
        assert again.xp == 3
        assert len(_xp_events(engine, "alice")) == 1

    def test_three_days_reach_level_two(self, engine, cfg, alice, now):
        results = [
            svc.perform_daily_checkin(engine, cfg, alice, now + timedelta(days=d))
            for d in range(3)
        ]
        assert [r.xp for r in results] == [3, 6, 9]
        assert [r.level for r in results] == [1, 1, 2]
        assert results[2].award.leveled_up
        assert any(isinstance(e, LevelUp) for e in results[2].award.events)

        events = _xp_events(engine, "alice")
        assert [e.amount for e in events] == [3, 3, 3]
        assert all(e.reason == XpReason.CHECKIN for e in events)

    def test_day_boundary_follows_community_timezone(self, engine, cfg, alice):
        # 16:30 and 17:30 UTC fall on different days in UTC+7
        first = svc.perform_daily_checkin(
            engine, cfg, alice, datetime(2026, 10, 21, 16, 30, tzinfo=UTC))
        second = svc.perform_daily_checkin(
            engine, cfg, alice, datetime(2026, 10, 21, 17, 30, tzinfo=UTC))
        assert first.success and second.success

    def test_first_checkin_unlocks_first_steps(self, engine, cfg, alice, now):
        result = svc.perform_daily_checkin(engine, cfg, alice, now)
        unlocked = [e for e in result.award.events if isinstance(e, BadgeUnlocked)]
        assert [e.badge_name for e in unlocked] == ["First Steps"]
        assert _badge_names(engine, "alice") == {"First Steps"}

        svc.perform_daily_checkin(engine, cfg, alice, now + timedelta(days=1))
        assert _badge_names(engine, "alice") == {"First Steps"}

    def test_has_checked_in_today(self, engine, cfg, alice, now):
        assert not svc.has_checked_in_today(engine, cfg, "alice", now)
        svc.perform_daily_checkin(engine, cfg, alice, now)
        assert svc.has_checked_in_today(engine, cfg, "alice", now)

    def test_blocked_profile_cannot_check_in(self, engine, cfg, now):
        actor = make_profile(engine, "mallory")
        with Session(engine) as session:
            session.get(Profile, "mallory").status = ProfileStatus.BLOCKED
            session.commit()
        with pytest.raises(AuthorizationError):
            svc.perform_daily_checkin(engine, cfg, actor, now)
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(DailyCheckin)) == 0


# ---------------------------------------------------------------------------
# award_xp
# ---------------------------------------------------------------------------
class TestAwardXp:
    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, db_session, cfg, alice, amount):
        profile = db_session.get(Profile, "alice")
        with pytest.raises(InvalidAmount):
            svc.award_xp(db_session, cfg, profile, amount, XpReason.POST)
        assert profile.xp == 0

    def test_level_up_notification_in_recipient_language(self, db_session, cfg, db_engine):
        make_profile(db_engine, "lan", language="vi")
        profile = db_session.get(Profile, "lan")
        result = svc.award_xp(db_session, cfg, profile, 30, XpReason.POST)
        assert result.level == 3
        assert result.old_level == 1

        messages = db_session.scalars(
            select(Notification.message).where(Notification.user_id == "lan")
        ).all()
        assert any("Cộng tác viên" in m for m in messages)

    def test_multi_level_jump_unlocks_level_badges(self, db_session, cfg, alice):
        profile = db_session.get(Profile, "alice")
        result = svc.award_xp(db_session, cfg, profile, 120, XpReason.POST)
        assert result.level == 4
        names = {e.badge_name for e in result.events if isinstance(e, BadgeUnlocked)}
        assert names == {"Rising Star", "Mentor", "Centurion"}


# ---------------------------------------------------------------------------
# Image quota
# ---------------------------------------------------------------------------
class TestImageQuota:
    def test_newcomer_weekly_quota(self, engine, cfg, alice, now):
        quota = svc.get_image_quota(engine, cfg, "alice", now)
        assert (quota.limit, quota.used, quota.period) == (1, 0, "week")
        assert quota.remaining == 1

        _add_image_post(engine, "alice", now - timedelta(days=1))  # Tuesday
        quota = svc.get_image_quota(engine, cfg, "alice", now)
        assert quota.used == 1
        assert quota.remaining == 0

    def test_previous_week_does_not_count(self, engine, cfg, alice, now):
        _add_image_post(engine, "alice", now - timedelta(days=7))
        assert svc.get_image_quota(engine, cfg, "alice", now).used == 0

    def test_deleted_image_post_still_counts(self, engine, cfg, alice, now):
        _add_image_post(engine, "alice", now)
        with Session(engine) as session:
            session.delete(session.scalar(select(Post)))
            session.commit()
            assert session.scalar(select(ImagePost.post_id)) is None
        assert svc.get_image_quota(engine, cfg, "alice", now).remaining == 0

    def test_daily_period_resets_at_local_midnight(self, engine, cfg, now):
        make_profile(engine, "carol", level=3, xp=30)
        # 16:00 UTC on the 20th is 23:00 local: yesterday
        _add_image_post(engine, "carol", datetime(2026, 10, 20, 16, 0, tzinfo=UTC))
        quota = svc.get_image_quota(engine, cfg, "carol", now)
        assert quota.period == "day"
        assert quota.used == 0

    def test_unlimited_rank(self, engine, cfg, now):
        make_profile(engine, "dana", level=6, xp=500)
        quota = svc.get_image_quota(engine, cfg, "dana", now)
        assert quota.unlimited
        assert quota.remaining is None

    def test_check_image_quota_raises_when_used_up(self, db_session, cfg, alice, now, db_engine):
        _add_image_post(db_engine, "alice", now)
        profile = db_session.get(Profile, "alice")
        with pytest.raises(QuotaExceeded):
            svc.check_image_quota(db_session, cfg, profile, now)

    def test_text_posts_do_not_count(self, engine, cfg, alice, now):
        with Session(engine) as session:
            session.add(Post(user_id="alice", content="hi", created_at=now))
            session.commit()
        assert svc.get_image_quota(engine, cfg, "alice", now).used == 0


# ---------------------------------------------------------------------------
# Admin override
# ---------------------------------------------------------------------------
class TestSetLevel:
    def test_sets_xp_to_rank_minimum(self, engine, cfg, admin, alice):
        profile = svc.set_level(engine, cfg, admin, "alice", 4, reason="event winner")
        assert (profile.level, profile.xp) == (4, 80)

        with Session(engine) as session:
            entry = session.scalar(select(AdminLog))
            assert entry.action_type == AdminActionType.SET_LEVEL
            assert entry.target_id == "alice"
            assert entry.before_snapshot["level"] == 1
            assert entry.after_snapshot["xp"] == 80
            assert entry.reason == "event winner"
            assert session.scalar(
                select(func.count()).select_from(Notification)
                .where(Notification.user_id == "alice")
            ) == 1

    def test_can_lower_xp(self, engine, cfg, admin):
        make_profile(engine, "erin", level=5, xp=250)
        profile = svc.set_level(engine, cfg, admin, "erin", 2)
        assert (profile.level, profile.xp) == (2, 8)

    def test_requires_admin(self, engine, cfg, alice, bob):
        with pytest.raises(AuthorizationError):
            svc.set_level(engine, cfg, bob, "alice", 3)

    @pytest.mark.parametrize("level", [0, 8])
    def test_invalid_level(self, engine, cfg, admin, alice, level):
        with pytest.raises(ValidationError):
            svc.set_level(engine, cfg, admin, "alice", level)

    def test_unknown_profile(self, engine, cfg, admin):
        with pytest.raises(NotFoundError):
            svc.set_level(engine, cfg, admin, "ghost", 2)


# ---------------------------------------------------------------------------
# Profiles & summaries
# ---------------------------------------------------------------------------
class TestProfiles:
    def test_get_or_create_is_idempotent(self, db_session):
        first = svc.get_or_create_profile(db_session, "new-user", full_name="New")
        second = svc.get_or_create_profile(db_session, "new-user", full_name="Other")
        assert first is second
        assert second.full_name == "New"
        assert second.level == 1

    def test_concurrent_first_request_reuses_winner_row(self, engine):
        make_profile(engine, "newbie", name="Newbie")
        real_get = Session.get
        calls = []

        def stale_get(self, entity, ident, **kw):
            calls.append(ident)
            if len(calls) == 1:
                return None
            return real_get(self, entity, ident, **kw)

        with patch.object(Session, "get", stale_get):
            with get_session(engine) as session:
                profile = svc.get_or_create_profile(session, "newbie", full_name="Other")
                assert profile.full_name == "Newbie"

        assert calls == ["newbie", "newbie"]
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(Profile)) == 1

    def test_update_profile(self, engine, cfg, alice):
        profile = svc.update_profile(
            engine, cfg, alice, full_name="  Alice B ", bio="", language="vi",
        )
        assert profile.full_name == "Alice B"
        assert profile.bio is None
        assert profile.language == "vi"

    def test_update_profile_rejects_unknown_language(self, engine, cfg, alice):
        with pytest.raises(ValidationError):
            svc.update_profile(engine, cfg, alice, language="fr")

    def test_update_profile_rejects_blank_name(self, engine, cfg, alice):
        with pytest.raises(ValidationError):
            svc.update_profile(engine, cfg, alice, full_name="   ")

    def test_progress_summary(self, engine, cfg, alice, now):
        svc.perform_daily_checkin(engine, cfg, alice, now)
        summary = svc.get_progress(engine, cfg, "alice", now)
        assert summary.xp == 3
        assert summary.rank.name == "Newcomer"
        assert summary.xp_to_next_level == 5
        assert summary.checked_in_today
        unlocked = [b.name for b in summary.badges if b.unlocked]
        assert unlocked == ["First Steps"]
        assert summary.image_quota.limit == 1

    def test_leaderboard_orders_by_xp_and_skips_blocked(self, engine):
        make_profile(engine, "low", xp=5)
        make_profile(engine, "high", level=3, xp=40)
        make_profile(engine, "gone", level=7, xp=5000)
        with Session(engine) as session:
            session.get(Profile, "gone").status = ProfileStatus.BLOCKED
            session.commit()
        assert [p.id for p in svc.leaderboard(engine)] == ["high", "low"]
