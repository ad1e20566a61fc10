"""
tests/test_community_service.py — Communities & Membership
============================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from friendzone.database.models import AdminActionType, AdminLog
from friendzone.errors import AuthorizationError, NotFoundError, ValidationError
from friendzone.services import community_service as svc


@pytest.fixture
def engine(db_engine):
    return db_engine


@pytest.fixture
def guild(engine, admin):
    return svc.create_community(
        engine, admin, name="Guild", slug="guild", description="Raids",
    )


class TestCreateCommunity:
    def test_owner_is_first_member(self, engine, admin, guild):
        assert guild.owner_id == "admin"
        assert svc.is_member(engine, "admin", "guild")
        assert svc.member_count(engine, "guild") == 1

        with Session(engine) as session:
            entry = session.scalar(select(AdminLog))
            assert entry.action_type == AdminActionType.CREATE_COMMUNITY
            assert entry.after_snapshot["slug"] == "guild"

    def test_members_cannot_create(self, engine, alice):
        with pytest.raises(AuthorizationError):
            svc.create_community(engine, alice, name="Mine", slug="mine")

    @pytest.mark.parametrize("slug", ["Bad Slug", "trailing-", "", "UPPER"])
    def test_invalid_slug(self, engine, admin, slug):
        with pytest.raises(ValidationError):
            svc.create_community(engine, admin, name="X", slug=slug)

    def test_duplicate_slug(self, engine, admin, guild):
        with pytest.raises(ValidationError, match="taken"):
            svc.create_community(engine, admin, name="Other", slug="guild")

    def test_blank_name(self, engine, admin):
        with pytest.raises(ValidationError):
            svc.create_community(engine, admin, name="  ", slug="blank")

    def test_negative_levels(self, engine, admin):
        with pytest.raises(ValidationError):
            svc.create_community(engine, admin, name="X", slug="x", min_level_to_post=-1)


class TestMembership:
    def test_join_is_idempotent(self, engine, alice, guild):
        first = svc.join_community(engine, alice, "guild")
        second = svc.join_community(engine, alice, "guild")
        assert (first.member, first.changed, first.member_count) == (True, True, 2)
        assert (second.member, second.changed, second.member_count) == (True, False, 2)

    def test_leave(self, engine, alice, guild):
        svc.join_community(engine, alice, "guild")
        result = svc.leave_community(engine, alice, "guild")
        assert (result.member, result.changed, result.member_count) == (False, True, 1)
        again = svc.leave_community(engine, alice, "guild")
        assert not again.changed

    def test_owner_cannot_leave(self, engine, admin, guild):
        with pytest.raises(ValidationError):
            svc.leave_community(engine, admin, "guild")

    def test_unknown_slug(self, engine, alice):
        with pytest.raises(NotFoundError):
            svc.join_community(engine, alice, "nowhere")


class TestDirectory:
    def test_list_with_counts(self, engine, admin, alice, bob, guild):
        svc.create_community(engine, admin, name="Arcade", slug="arcade")
        svc.join_community(engine, alice, "guild")
        svc.join_community(engine, bob, "guild")
        listing = [(c.slug, n) for c, n in svc.list_communities(engine)]
        assert listing == [("arcade", 1), ("guild", 3)]

    def test_get_by_slug(self, engine, guild):
        community = svc.get_community_by_slug(engine, "guild")
        assert community.description == "Raids"
        with pytest.raises(NotFoundError):
            svc.get_community_by_slug(engine, "missing")
