"""Initial gamification schema

Revision ID: 5c2e8a1f9b30
Revises:
Create Date: 2026-10-18 09:12:04.118203

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e8a1f9b30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Users, content, achievements, points journal, leaderboards, audit, settings."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(254), nullable=False, unique=True),
        sa.Column("department", sa.String(50), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("login_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        _created_at(),
        _created_at("updated_at"),
        sa.CheckConstraint("points >= 0", name="ck_users_points_nonneg"),
        sa.CheckConstraint("level >= 1", name="ck_users_level_min"),
    )
    op.create_index("ix_users_points_desc", "users", ["points"])
    op.create_index("ix_users_active", "users", ["is_active"])

    # --- achievements ---
    op.create_table(
        "achievements",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("rarity", sa.String(20), nullable=False, server_default="common"),
        sa.Column("icon", sa.String(100), nullable=True),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("metric_type", sa.String(30), nullable=False),
        sa.Column("threshold", sa.Integer, nullable=False, server_default="1"),
        sa.Column("timeframe", sa.String(20), nullable=False, server_default="all_time"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("is_hidden", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Integer, nullable=True),
        _created_at(),
        sa.CheckConstraint("threshold >= 1", name="ck_achievements_threshold_min"),
    )
    op.create_index("ix_achievements_category", "achievements", ["category"])
    op.create_index("ix_achievements_active", "achievements", ["is_active"])

    op.create_table(
        "user_achievements",
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "achievement_id", sa.Integer,
            sa.ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at("earned_at"),
        sa.Column("granted_by", sa.Integer, nullable=True),
    )

    # --- points journal ---
    op.create_table(
        "points_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("action", sa.String(50), nullable=True),
        sa.Column("delta", sa.Integer, nullable=False, server_default="0"),
        sa.Column("balance_after", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_points_tx_user_time", "points_transactions", ["user_id", "created_at"],
    )

    # --- content (owned by the wider platform) ---
    op.create_table(
        "articles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "author_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        _created_at(),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_articles_author_time", "articles", ["author_id", "created_at"])
    op.create_index("ix_articles_status", "articles", ["status"])

    op.create_table(
        "article_likes",
        sa.Column(
            "article_id", sa.Integer,
            sa.ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        _created_at(),
    )

    op.create_table(
        "forum_posts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "author_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _created_at(),
    )
    op.create_index("ix_forum_posts_author_time", "forum_posts", ["author_id", "created_at"])

    op.create_table(
        "forum_replies",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "post_id", sa.Integer,
            sa.ForeignKey("forum_posts.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "author_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("is_solution", sa.Boolean, nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index(
        "ix_forum_replies_author_time", "forum_replies", ["author_id", "created_at"],
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "organizer_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="published"),
        _created_at(),
    )
    op.create_index("ix_events_organizer_time", "events", ["organizer_id", "created_at"])

    op.create_table(
        "event_attendees",
        sa.Column(
            "event_id", sa.Integer,
            sa.ForeignKey("events.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="attending"),
        _created_at("registered_at"),
    )
    op.create_index(
        "ix_event_attendees_user_time", "event_attendees", ["user_id", "registered_at"],
    )

    # --- leaderboards ---
    op.create_table(
        "leaderboards",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("period", sa.String(20), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_participants", sa.Integer, nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        _created_at("generated_at"),
        sa.Column("generated_by", sa.Integer, nullable=True),
        sa.UniqueConstraint(
            "scope", "period", "period_start", name="uq_leaderboards_key",
        ),
    )
    op.create_index(
        "ix_leaderboards_current", "leaderboards", ["scope", "period", "is_active"],
    )

    op.create_table(
        "leaderboard_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "leaderboard_id", sa.Integer,
            sa.ForeignKey("leaderboards.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("stats", postgresql.JSONB, nullable=True),
        sa.Column("badges", postgresql.JSONB, nullable=True),
        sa.Column("achievements", postgresql.JSONB, nullable=True),
        sa.UniqueConstraint("leaderboard_id", "user_id", name="uq_lb_entries_board_user"),
    )
    op.create_index(
        "ix_lb_entries_board_rank", "leaderboard_entries", ["leaderboard_id", "rank"],
    )
    op.create_index("ix_lb_entries_user", "leaderboard_entries", ["user_id"])

    # --- audit & settings ---
    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger, nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        _created_at("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"],
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text, nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text, nullable=True),
        _created_at("updated_at"),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    """Drop every table in reverse dependency order."""
    for table in (
        "settings",
        "admin_log",
        "leaderboard_entries",
        "leaderboards",
        "event_attendees",
        "events",
        "forum_replies",
        "forum_posts",
        "article_likes",
        "articles",
        "points_transactions",
        "user_achievements",
        "achievements",
        "users",
    ):
        op.drop_table(table)
