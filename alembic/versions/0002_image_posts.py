"""Journal image-post creations for the rank quota

Revision ID: 0002_image_posts
Revises: 0001_initial_schema
Create Date: 2026-10-26 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0002_image_posts"
down_revision: str | Sequence[str] | None = "0001_initial_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "image_posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(64),
            sa.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "post_id", sa.Integer(),
            sa.ForeignKey("posts.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=True, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_image_posts_user_time", "image_posts", ["user_id", "created_at"])

    # Existing image posts already count against their period.
    op.execute(
        "INSERT INTO image_posts (user_id, post_id, created_at) "
        "SELECT user_id, id, created_at FROM posts "
        "WHERE image_url IS NOT NULL AND image_url <> ''"
    )


def downgrade() -> None:
    op.drop_index("ix_image_posts_user_time", table_name="image_posts")
    op.drop_table("image_posts")
