"""Initial Friends Zone schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=True,
        server_default=sa.func.now(),
    )


def _profile_fk(name: str, *, nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(
        name,
        sa.String(64),
        sa.ForeignKey("profiles.id", ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    """Create every table of the progression & moderation engine."""
    op.create_table(
        "profiles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(100), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("role", sa.String(16), nullable=False, server_default="member"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("language", sa.String(8), nullable=False, server_default="vi"),
        _created_at(),
        _created_at("updated_at"),
        sa.CheckConstraint("level >= 1", name="ck_profiles_level_positive"),
        sa.CheckConstraint("xp >= 0", name="ck_profiles_xp_non_negative"),
    )
    op.create_index("ix_profiles_xp_desc", "profiles", ["xp"])

    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(255), nullable=True),
        sa.Column("cover_image", sa.Text(), nullable=True),
        sa.Column("min_level_to_post", sa.Integer(), server_default="0"),
        sa.Column("min_level_to_view", sa.Integer(), server_default="0"),
        sa.Column("require_approval", sa.Boolean(), server_default=sa.false()),
        _profile_fk("owner_id", nullable=True, ondelete="SET NULL"),
        _created_at(),
    )

    op.create_table(
        "community_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        _profile_fk("user_id"),
        sa.Column("role", sa.String(16), server_default="member"),
        _created_at("joined_at"),
        sa.UniqueConstraint("community_id", "user_id", name="uq_community_members_pair"),
    )

    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("title", sa.String(300), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="approved"),
        sa.Column("min_level_to_view", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("likes_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comments_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "community_id",
            sa.Integer(),
            sa.ForeignKey("communities.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("topic", sa.String(32), nullable=False, server_default="share"),
        _created_at(),
        sa.CheckConstraint("min_level_to_view >= 0", name="ck_posts_min_level"),
        sa.CheckConstraint("likes_count >= 0", name="ck_posts_likes_non_negative"),
        sa.CheckConstraint("comments_count >= 0", name="ck_posts_comments_non_negative"),
    )
    op.create_index("ix_posts_created_at", "posts", ["created_at"])
    op.create_index("ix_posts_user_created", "posts", ["user_id", "created_at"])
    op.create_index("ix_posts_community_created", "posts", ["community_id", "created_at"])

    op.create_table(
        "comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "post_id", sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
        ),
        _profile_fk("user_id"),
        sa.Column("content", sa.Text(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_comments_post_created", "comments", ["post_id", "created_at"])

    for table, unique_name, columns in (
        ("likes", "uq_likes_user_post", ["user_id", "post_id"]),
        ("post_approvals", "uq_post_approvals_pair", ["post_id", "user_id"]),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            _profile_fk("user_id"),
            sa.Column(
                "post_id", sa.Integer(),
                sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False,
            ),
            _created_at(),
            sa.UniqueConstraint(*columns, name=unique_name),
        )

    op.create_table(
        "follows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk("follower_id"),
        _profile_fk("following_id"),
        _created_at(),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        sa.CheckConstraint("follower_id <> following_id", name="ck_follows_no_self"),
    )
    op.create_index("ix_follows_following", "follows", ["following_id"])

    op.create_table(
        "daily_checkins",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk("user_id"),
        sa.Column("checkin_date", sa.Date(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("user_id", "checkin_date", name="uq_daily_checkins_user_date"),
    )

    op.create_table(
        "xp_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk("user_id"),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_xp_events_user_time", "xp_events", ["user_id", "created_at"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _profile_fk("user_id"),
        _profile_fk("actor_id", nullable=True, ondelete="SET NULL"),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "post_id", sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "is_read"])
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", "created_at"]
    )

    op.create_table(
        "badges",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("icon", sa.String(32), nullable=False, server_default=""),
        sa.Column("trigger_type", sa.String(30), nullable=False, server_default="manual"),
        sa.Column("trigger_config", postgresql.JSONB(), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        _created_at(),
    )

    op.create_table(
        "user_badges",
        _profile_fk("user_id"),
        sa.Column(
            "badge_id", sa.Integer(),
            sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False,
        ),
        _created_at("awarded_at"),
        sa.PrimaryKeyConstraint("user_id", "badge_id"),
    )

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _created_at(),
        _created_at("updated_at"),
    )

    op.create_table(
        "conversation_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id", sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False,
        ),
        _profile_fk("user_id"),
        _created_at("joined_at"),
        sa.UniqueConstraint(
            "conversation_id", "user_id", name="uq_conversation_participants_pair"
        ),
    )
    op.create_index(
        "ix_conversation_participants_user", "conversation_participants", ["user_id"]
    )

    op.create_table(
        "direct_messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id", sa.Integer(),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False,
        ),
        _profile_fk("sender_id"),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index(
        "ix_direct_messages_conversation_created",
        "direct_messages",
        ["conversation_id", "created_at"],
    )

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _created_at("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    """Drop every table, children first."""
    for table in (
        "admin_log",
        "direct_messages",
        "conversation_participants",
        "conversations",
        "user_badges",
        "badges",
        "notifications",
        "xp_events",
        "daily_checkins",
        "follows",
        "post_approvals",
        "likes",
        "comments",
        "posts",
        "community_members",
        "communities",
        "profiles",
    ):
        op.drop_table(table)
