"""
tests/test_reconciliation_service.py — Counter & Level Reconciliation
=======================================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import make_profile
from friendzone.database.models import AdminActionType, AdminLog, Post, Profile
from friendzone.errors import AuthorizationError
from friendzone.services import moderation_service, social_service
from friendzone.services import reconciliation_service as svc


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def post(engine, cfg, alice, bob):
    post = moderation_service.create_post(engine, cfg, alice, content="hi")
    social_service.toggle_like(engine, bob, post.id)
    social_service.add_comment(engine, bob, post.id, "first")
    return post


def _corrupt(engine, post_id, likes, comments):
    with Session(engine) as session:
        row = session.get(Post, post_id)
        row.likes_count = likes
        row.comments_count = comments
        session.commit()


class TestPostCounters:
    def test_consistent_counters_untouched(self, engine, post):
        report = svc.reconcile_post_counters(engine)
        assert report["checked"] == 1
        assert report["corrected"] == 0

    def test_drift_is_repaired(self, engine, post):
        _corrupt(engine, post.id, likes=7, comments=0)
        report = svc.reconcile_post_counters(engine)
        assert report["corrected"] == 2
        assert {c["counter"]: c["diff"] for c in report["corrections"]} == {
            "likes_count": -6,
            "comments_count": 1,
        }
        with Session(engine) as session:
            row = session.get(Post, post.id)
            assert (row.likes_count, row.comments_count) == (1, 1)


class TestLevels:
    def test_level_rederived_from_xp(self, engine, cfg):
        make_profile(engine, "drift", level=1, xp=85)
        report = svc.reconcile_levels(engine, cfg)
        assert report["corrected"] == 1
        assert report["corrections"][0]["actual"] == 4
        with Session(engine) as session:
            assert session.get(Profile, "drift").level == 4


class TestReconcileAll:
    def test_audited(self, engine, cfg, admin, post):
        _corrupt(engine, post.id, likes=0, comments=1)
        report = svc.reconcile_all(engine, cfg, admin)
        assert report["posts"]["corrected"] == 1
        with Session(engine) as session:
            entry = session.scalar(
                select(AdminLog).where(AdminLog.action_type == AdminActionType.RECONCILE)
            )
            assert entry.after_snapshot == {"posts_corrected": 1, "levels_corrected": 0}

    def test_requires_admin(self, engine, cfg, alice):
        with pytest.raises(AuthorizationError):
            svc.reconcile_all(engine, cfg, alice)
