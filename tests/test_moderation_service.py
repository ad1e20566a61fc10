"""
tests/test_moderation_service.py — Post Lifecycle, Votes & Feed
=================================================================

Covers post creation policy, the pending → approved | rejected state
machine, advisory approval votes, deletion and the feed read path.
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from conftest import make_profile
from friendzone.database.models import (
    AdminActionType,
    AdminLog,
    Comment,
    Like,
    Notification,
    NotificationType,
    Post,
    PostApproval,
    PostStatus,
    Profile,
    Role,
)
from friendzone.errors import (
    AuthorizationError,
    NotFoundError,
    QuotaExceeded,
    ValidationError,
)
from friendzone.services import community_service
from friendzone.services import moderation_service as svc
from friendzone.services import social_service


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def moderated(engine, admin):
    """A community whose posts need admin approval."""
    return community_service.create_community(
        engine, admin, name="Guild", slug="guild", require_approval=True,
    )


def _xp(engine, user_id):
    with Session(engine) as session:
        return session.get(Profile, user_id).xp


def _count(engine, model, *where):
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(model).where(*where))


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
class TestCreatePost:
    def test_global_post_is_approved_and_earns_xp(self, engine, cfg, alice):
        post = svc.create_post(engine, cfg, alice, content="hello")
        assert post.status == PostStatus.APPROVED
        assert post.topic == "share"
        assert _xp(engine, "alice") == cfg.post_xp

    def test_community_with_approval_starts_pending(self, engine, cfg, alice, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        assert post.status == PostStatus.PENDING
        assert _xp(engine, "alice") == 0

    def test_empty_post_rejected(self, engine, cfg, alice):
        with pytest.raises(ValidationError):
            svc.create_post(engine, cfg, alice, content="  ", title=" ")

    def test_unknown_topic(self, engine, cfg, alice):
        with pytest.raises(ValidationError):
            svc.create_post(engine, cfg, alice, content="x", topic="cooking")

    def test_cannot_gate_above_own_level(self, engine, cfg, alice):
        with pytest.raises(ValidationError):
            svc.create_post(engine, cfg, alice, content="x", min_level_to_view=2)

    def test_admin_can_gate_at_any_level(self, engine, cfg, admin):
        post = svc.create_post(engine, cfg, admin, content="x", min_level_to_view=7)
        assert post.min_level_to_view == 7

    def test_community_min_level_to_post(self, engine, cfg, admin, alice):
        vip = community_service.create_community(
            engine, admin, name="VIP", slug="vip", min_level_to_post=3,
        )
        with pytest.raises(AuthorizationError):
            svc.create_post(engine, cfg, alice, content="x", community_id=vip.id)

    def test_unknown_community(self, engine, cfg, alice):
        with pytest.raises(NotFoundError):
            svc.create_post(engine, cfg, alice, content="x", community_id=999)

    def test_image_quota_enforced_before_insert(self, engine, cfg, alice):
        svc.create_post(engine, cfg, alice, content="a", image_url="https://img/1.png")
        with pytest.raises(QuotaExceeded):
            svc.create_post(engine, cfg, alice, content="b", image_url="https://img/2.png")
        # Text-only posts are unaffected
        svc.create_post(engine, cfg, alice, content="c")

    def test_deleting_an_image_post_does_not_refund_quota(self, engine, cfg, alice):
        post = svc.create_post(engine, cfg, alice, content="a", image_url="https://img/1.png")
        svc.delete_post(engine, alice, post.id)
        with pytest.raises(QuotaExceeded):
            svc.create_post(engine, cfg, alice, content="b", image_url="https://img/2.png")


# ---------------------------------------------------------------------------
# Admin moderation
# ---------------------------------------------------------------------------
class TestModeratePost:
    def test_approve(self, engine, cfg, admin, alice, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        result = svc.moderate_post(engine, cfg, admin, post.id, "approve")
        assert result.status == PostStatus.APPROVED
        assert _xp(engine, "alice") == cfg.post_xp

        with Session(engine) as session:
            entry = session.scalar(
                select(AdminLog).where(AdminLog.action_type == AdminActionType.APPROVE_POST)
            )
            assert entry.before_snapshot["status"] == "pending"
            assert entry.after_snapshot["status"] == "approved"
            messages = session.scalars(
                select(Notification.message).where(Notification.user_id == "alice")
            ).all()
            assert "Your post was approved" in messages

    def test_reject_is_terminal(self, engine, cfg, admin, alice, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        svc.moderate_post(engine, cfg, admin, post.id, "reject", reason="spam")
        with pytest.raises(ValidationError):
            svc.moderate_post(engine, cfg, admin, post.id, "approve")
        assert _xp(engine, "alice") == 0

    def test_approved_cannot_be_moderated_again(self, engine, cfg, admin, alice):
        post = svc.create_post(engine, cfg, alice, content="hi")
        with pytest.raises(ValidationError):
            svc.moderate_post(engine, cfg, admin, post.id, "reject")

    def test_losing_a_moderation_race_changes_nothing(
        self, engine, cfg, admin, alice, moderated, monkeypatch,
    ):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        real_load = svc._load_post

        def load_then_other_admin_rejects(session, post_id):
            loaded = real_load(session, post_id)
            session.execute(
                update(Post).where(Post.id == post_id)
                .values(status=PostStatus.REJECTED)
                .execution_options(synchronize_session=False)
            )
            return loaded

        monkeypatch.setattr(svc, "_load_post", load_then_other_admin_rejects)
        with pytest.raises(ValidationError, match="already moderated"):
            svc.moderate_post(engine, cfg, admin, post.id, "approve")

        assert _xp(engine, "alice") == 0
        assert _count(
            engine, AdminLog, AdminLog.action_type == AdminActionType.APPROVE_POST
        ) == 0
        assert _count(
            engine, Notification,
            Notification.user_id == "alice",
            Notification.type == NotificationType.SYSTEM,
        ) == 0

    def test_members_cannot_moderate(self, engine, cfg, alice, bob, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        with pytest.raises(AuthorizationError):
            svc.moderate_post(engine, cfg, bob, post.id, "approve")

    def test_unknown_action(self, engine, cfg, admin, alice, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        with pytest.raises(ValidationError):
            svc.moderate_post(engine, cfg, admin, post.id, "archive")


# ---------------------------------------------------------------------------
# Approval votes
# ---------------------------------------------------------------------------
class TestApprovalVotes:
    def test_vote_once(self, engine, cfg, alice, bob, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        first = svc.cast_approval_vote(engine, bob, post.id)
        second = svc.cast_approval_vote(engine, bob, post.id)
        assert (first.success, first.votes) == (True, 1)
        assert (second.success, second.message, second.votes) == (False, "already voted", 1)
        assert _count(engine, PostApproval) == 1

    def test_votes_never_change_status(self, engine, cfg, alice, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        for i in range(5):
            svc.cast_approval_vote(engine, make_profile(engine, f"voter{i}"), post.id)
        assert svc.get_post(engine, alice, post.id).status == PostStatus.PENDING
        stats = svc.approval_stats(engine, post.id, viewer_id="voter0")
        assert stats.votes == 5
        assert stats.has_voted

    def test_admin_cannot_vote(self, engine, cfg, admin, alice, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        with pytest.raises(ValidationError):
            svc.cast_approval_vote(engine, admin, post.id)

    def test_only_pending_posts(self, engine, cfg, alice, bob):
        post = svc.create_post(engine, cfg, alice, content="hi")
        with pytest.raises(ValidationError):
            svc.cast_approval_vote(engine, bob, post.id)


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------
class TestDeletePost:
    def test_author_delete_cascades(self, engine, cfg, alice, bob):
        post = svc.create_post(engine, cfg, alice, content="hi")
        social_service.toggle_like(engine, bob, post.id)
        social_service.add_comment(engine, bob, post.id, "nice")

        svc.delete_post(engine, alice, post.id)

        assert _count(engine, Like) == 0
        assert _count(engine, Comment) == 0
        # Notifications survive without the post reference
        assert _count(
            engine, Notification,
            Notification.user_id == "alice",
            Notification.type.in_([NotificationType.LIKE, NotificationType.COMMENT]),
        ) == 2
        assert _count(engine, Notification, Notification.post_id.is_not(None)) == 0
        assert _count(engine, AdminLog) == 0

    def test_admin_delete_is_audited(self, engine, cfg, admin, alice):
        post = svc.create_post(engine, cfg, alice, content="hi")
        svc.delete_post(engine, admin, post.id)
        assert _count(
            engine, AdminLog, AdminLog.action_type == AdminActionType.DELETE_POST
        ) == 1

    def test_others_cannot_delete(self, engine, cfg, alice, bob):
        post = svc.create_post(engine, cfg, alice, content="hi")
        with pytest.raises(AuthorizationError):
            svc.delete_post(engine, bob, post.id)

    def test_missing_post(self, engine, alice):
        with pytest.raises(NotFoundError):
            svc.delete_post(engine, alice, 12345)


# ---------------------------------------------------------------------------
# Feed
# ---------------------------------------------------------------------------
class TestFeed:
    def test_newest_first_with_paging(self, engine, cfg, alice):
        for i in range(7):
            svc.create_post(engine, cfg, alice, content=f"post {i}")
        page0 = svc.list_feed(engine, cfg, alice)
        page1 = svc.list_feed(engine, cfg, alice, page=1)
        assert [i.view.content for i in page0.items] == [
            "post 6", "post 5", "post 4", "post 3", "post 2",
        ]
        assert page0.has_more
        assert [i.view.content for i in page1.items] == ["post 1", "post 0"]
        assert not page1.has_more

    def test_rejected_hidden_from_others(self, engine, cfg, admin, alice, bob, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        svc.moderate_post(engine, cfg, admin, post.id, "reject")

        assert svc.list_feed(engine, cfg, bob).items == []
        assert svc.list_feed(engine, cfg, None).items == []
        assert len(svc.list_feed(engine, cfg, alice).items) == 1
        assert len(svc.list_feed(engine, cfg, admin).items) == 1
        with pytest.raises(NotFoundError):
            svc.get_post(engine, bob, post.id)

    def test_level_locked_post_shows_title_only(self, engine, cfg, bob):
        author = make_profile(engine, "vet", level=4, xp=80)
        svc.create_post(engine, cfg, author, title="Guide", content="secret", min_level_to_view=3)
        item = svc.list_feed(engine, cfg, bob).items[0]
        assert item.view.locked
        assert item.view.title == "Guide"
        assert item.view.content is None
        assert item.view.required_level == 3

    def test_community_view_gate(self, engine, cfg, admin, bob):
        hall = community_service.create_community(
            engine, admin, name="Hall", slug="hall", min_level_to_view=5,
        )
        svc.create_post(engine, cfg, admin, content="members only", community_id=hall.id)
        item = svc.list_feed(engine, cfg, bob, community_slug="hall").items[0]
        assert item.view.locked
        assert item.community_slug == "hall"

    def test_filters(self, engine, cfg, alice, bob):
        svc.create_post(engine, cfg, alice, content="a", topic="youtube")
        svc.create_post(engine, cfg, bob, content="b", topic="mmo")
        assert [i.author_id for i in svc.list_feed(engine, cfg, alice, topic="mmo").items] == ["bob"]
        assert len(svc.list_feed(engine, cfg, alice, topic="all").items) == 2
        assert [i.topic for i in svc.list_feed(engine, cfg, None, author_id="alice").items] == ["youtube"]

    def test_unknown_community_slug(self, engine, cfg, alice):
        with pytest.raises(NotFoundError):
            svc.list_feed(engine, cfg, alice, community_slug="nowhere")

    def test_viewer_flags(self, engine, cfg, alice, bob, moderated):
        post = svc.create_post(engine, cfg, alice, content="hi", community_id=moderated.id)
        svc.cast_approval_vote(engine, bob, post.id)
        item = svc.list_feed(engine, cfg, bob).items[0]
        assert item.has_voted
        assert item.approval_votes == 1
        assert item.view.show_pending_banner
        assert not item.liked_by_user

    def test_invalid_page(self, engine, cfg, alice):
        with pytest.raises(ValidationError):
            svc.list_feed(engine, cfg, alice, page=-1)

    def test_admin_role_sees_everything(self, engine, cfg, alice):
        other_admin = make_profile(engine, "root", role=Role.ADMIN, level=7, xp=1000)
        svc.create_post(engine, cfg, alice, content="x")
        assert len(svc.list_feed(engine, cfg, other_admin).items) == 1
