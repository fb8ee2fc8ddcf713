"""
agora.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users                — Community members with embedded gamification state
- user_achievements    — Earned achievements (canonical; badges derive from it)
- points_transactions  — Append-only points journal
- achievements         — Admin-defined achievements with typed criteria
- articles / article_likes          — Knowledge-base content (read-only here)
- forum_posts / forum_replies       — Discussion content (read-only here)
- events / event_attendees          — Events with RSVP (read-only here)
- leaderboards / leaderboard_entries — Ranked snapshots per (scope, period)
- admin_log            — Append-only audit trail
- settings             — Gameplay tuning key-value store
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Agora ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionKind(enum.StrEnum):
    """Built-in content actions that earn points.

    Any other action name with a configured ``points.<name>`` setting is
    accepted as a custom action.
    """
    ARTICLE_CREATE = "article_create"
    ARTICLE_LIKE = "article_like"
    FORUM_POST = "forum_post"
    FORUM_REPLY = "forum_reply"
    EVENT_ATTEND = "event_attend"
    EVENT_CREATE = "event_create"


class Period(enum.StrEnum):
    """Recurring window for leaderboards and achievement timeframes."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ALL_TIME = "all_time"


class MetricType(enum.StrEnum):
    """What an achievement's criteria measures."""
    ARTICLE_COUNT = "article_count"
    FORUM_POSTS = "forum_posts"
    FORUM_REPLIES = "forum_replies"
    EVENT_ATTENDANCE = "event_attendance"
    EVENT_CREATION = "event_creation"
    LIKES_RECEIVED = "likes_received"
    POINTS_EARNED = "points_earned"
    LEVEL_REACHED = "level_reached"
    DAYS_ACTIVE = "days_active"
    CUSTOM = "custom"


class LeaderboardScope(enum.StrEnum):
    """Which activity a leaderboard ranks."""
    OVERALL = "overall"
    ARTICLES = "articles"
    FORUMS = "forums"
    EVENTS = "events"
    ENGAGEMENT = "engagement"
    CUSTOM = "custom"


class AchievementCategory(enum.StrEnum):
    PARTICIPATION = "participation"
    KNOWLEDGE = "knowledge"
    LEADERSHIP = "leadership"
    COLLABORATION = "collaboration"
    INNOVATION = "innovation"
    MENTORSHIP = "mentorship"
    EXPERTISE = "expertise"
    COMMUNITY = "community"
    MILESTONE = "milestone"
    SPECIAL = "special"


class AchievementRarity(enum.StrEnum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class TransactionKind(enum.StrEnum):
    """Why a points_transactions row exists."""
    ACTION = "ACTION"
    BONUS = "BONUS"
    ACHIEVEMENT = "ACHIEVEMENT"
    RESET = "RESET"


class ArticleStatus(enum.StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class AttendeeStatus(enum.StrEnum):
    ATTENDING = "attending"
    MAYBE = "maybe"
    NOT_ATTENDING = "not_attending"


class AdminActionType(enum.StrEnum):
    """Categories of admin mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    BONUS_AWARD = "BONUS_AWARD"
    GAMIFICATION_RESET = "GAMIFICATION_RESET"
    ACHIEVEMENT_GRANT = "ACHIEVEMENT_GRANT"
    LEADERBOARD_GENERATE = "LEADERBOARD_GENERATE"


# ---------------------------------------------------------------------------
# Users — one row per community member
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    department: Mapped[str | None] = mapped_column(String(50), default=None)
    role: Mapped[str] = mapped_column(String(20), default="user")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    login_count: Mapped[int] = mapped_column(Integer, default=0)
    points: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    achievements: Mapped[list[UserAchievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan",
        order_by="UserAchievement.earned_at",
    )
    transactions: Mapped[list[PointsTransaction]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_points_desc", "points"),
        Index("ix_users_active", "is_active"),
        CheckConstraint("points >= 0", name="ck_users_points_nonneg"),
        CheckConstraint("level >= 1", name="ck_users_level_min"),
    )

    @property
    def badges(self) -> frozenset[int]:
        """Achievement ids for display — always derived from ``achievements``."""
        return frozenset(ua.achievement_id for ua in self.achievements)

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Achievements — admin-defined recognition with typed criteria
# ---------------------------------------------------------------------------
class Achievement(Base):
    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(30), nullable=False)
    rarity: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AchievementRarity.COMMON.value
    )
    icon: Mapped[str | None] = mapped_column(String(100), default=None)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Criteria triple
    metric_type: Mapped[str] = mapped_column(String(30), nullable=False)
    threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    timeframe: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Period.ALL_TIME.value
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    earned_by: Mapped[list[UserAchievement]] = relationship(back_populates="achievement")

    __table_args__ = (
        Index("ix_achievements_category", "category"),
        Index("ix_achievements_active", "is_active"),
        CheckConstraint("threshold >= 1", name="ck_achievements_threshold_min"),
    )

    def __repr__(self) -> str:
        return f"<Achievement id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# UserAchievement — earned achievements (one per user per achievement)
# ---------------------------------------------------------------------------
class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), primary_key=True
    )
    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    granted_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped[User] = relationship(back_populates="achievements")
    achievement: Mapped[Achievement] = relationship(back_populates="earned_by")

    def __repr__(self) -> str:
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id}>"


# ---------------------------------------------------------------------------
# PointsTransaction — append-only points journal
# ---------------------------------------------------------------------------
class PointsTransaction(Base):
    __tablename__ = "points_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str | None] = mapped_column(String(50), nullable=True)
    delta: Mapped[int] = mapped_column(Integer, default=0)
    balance_after: Mapped[int] = mapped_column(Integer, default=0)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_points_tx_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PointsTransaction id={self.id} user={self.user_id} "
            f"kind={self.kind} delta={self.delta}>"
        )


# ---------------------------------------------------------------------------
# Content tables — owned by the wider platform, only counted here
# ---------------------------------------------------------------------------
class Article(Base):
    __tablename__ = "articles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ArticleStatus.DRAFT.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    published_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    likes: Mapped[list[ArticleLike]] = relationship(
        back_populates="article", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_articles_author_time", "author_id", "created_at"),
        Index("ix_articles_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Article id={self.id} author={self.author_id} status={self.status}>"


class ArticleLike(Base):
    __tablename__ = "article_likes"

    article_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    article: Mapped[Article] = relationship(back_populates="likes")

    def __repr__(self) -> str:
        return f"<ArticleLike article={self.article_id} user={self.user_id}>"


class ForumPost(Base):
    __tablename__ = "forum_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    replies: Mapped[list[ForumReply]] = relationship(
        back_populates="post", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_forum_posts_author_time", "author_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ForumPost id={self.id} author={self.author_id}>"


class ForumReply(Base):
    __tablename__ = "forum_replies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("forum_posts.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    is_solution: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    post: Mapped[ForumPost] = relationship(back_populates="replies")

    __table_args__ = (
        Index("ix_forum_replies_author_time", "author_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ForumReply id={self.id} post={self.post_id} author={self.author_id}>"


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organizer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="published")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    attendees: Mapped[list[EventAttendee]] = relationship(
        back_populates="event", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_events_organizer_time", "organizer_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} organizer={self.organizer_id}>"


class EventAttendee(Base):
    __tablename__ = "event_attendees"

    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AttendeeStatus.ATTENDING.value
    )
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    event: Mapped[Event] = relationship(back_populates="attendees")

    __table_args__ = (
        Index("ix_event_attendees_user_time", "user_id", "registered_at"),
    )

    def __repr__(self) -> str:
        return f"<EventAttendee event={self.event_id} user={self.user_id} {self.status}>"


# ---------------------------------------------------------------------------
# Leaderboard — one ranked snapshot per (scope, period, window)
# ---------------------------------------------------------------------------
class Leaderboard(Base):
    __tablename__ = "leaderboards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    period: Mapped[str] = mapped_column(String(20), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    total_participants: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    generated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    generated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    entries: Mapped[list[LeaderboardEntry]] = relationship(
        back_populates="leaderboard", cascade="all, delete-orphan",
        order_by="LeaderboardEntry.rank",
    )

    __table_args__ = (
        UniqueConstraint(
            "scope", "period", "period_start",
            name="uq_leaderboards_key",
        ),
        Index("ix_leaderboards_current", "scope", "period", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<Leaderboard id={self.id} scope={self.scope!r} "
            f"period={self.period!r} active={self.is_active}>"
        )


class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    leaderboard_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("leaderboards.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    stats: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    badges: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    achievements: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    leaderboard: Mapped[Leaderboard] = relationship(back_populates="entries")

    __table_args__ = (
        UniqueConstraint("leaderboard_id", "user_id", name="uq_lb_entries_board_user"),
        Index("ix_lb_entries_board_rank", "leaderboard_id", "rank"),
        Index("ix_lb_entries_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<LeaderboardEntry board={self.leaderboard_id} rank={self.rank} user={self.user_id}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value configuration store.

    Points per action, leaderboard scope weights and similar tuning knobs
    live here so admins can adjust values without redeploying.  Values are
    stored as JSON strings; typed accessors live in
    :class:`~agora.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
