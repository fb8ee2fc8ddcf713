"""
agora.services.activity_service — Activity Counting
====================================================

Read-side counts of a user's content activity inside a period window.
Used by achievement evaluation (one user, one metric) and by leaderboard
generation (every user, every metric, one window).

The counter only reads.  It works inside a caller-supplied session so the
counts see the caller's own uncommitted writes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import Date, Select, func, select
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.sql.expression import FunctionElement

from agora.database.models import (
    Article,
    ArticleLike,
    ArticleStatus,
    AttendeeStatus,
    Event,
    EventAttendee,
    ForumPost,
    ForumReply,
    MetricType,
    Period,
    PointsTransaction,
    User,
)
from agora.engine.leaderboard import ActivityStats
from agora.engine.periods import PeriodWindow, resolve_period
from agora.errors import NotFoundError, ValidationError, parse_enum

logger = logging.getLogger(__name__)


class utc_date(FunctionElement):
    """Calendar date of a timestamp, taken in UTC.

    PostgreSQL's ``date()`` truncates in the session time zone, so the UTC
    conversion is explicit there.  SQLite stores naive UTC already.
    """

    type = Date()
    name = "utc_date"
    inherit_cache = True


@compiles(utc_date)
def _compile_utc_date(element, compiler, **kw):
    return "date(%s)" % compiler.process(element.clauses, **kw)


@compiles(utc_date, "postgresql")
def _compile_utc_date_pg(element, compiler, **kw):
    return "date(timezone('UTC', %s))" % compiler.process(element.clauses, **kw)

CONTENT_METRICS: frozenset[MetricType] = frozenset({
    MetricType.ARTICLE_COUNT,
    MetricType.FORUM_POSTS,
    MetricType.FORUM_REPLIES,
    MetricType.EVENT_ATTENDANCE,
    MetricType.EVENT_CREATION,
    MetricType.LIKES_RECEIVED,
    MetricType.DAYS_ACTIVE,
})


def _article_count(user_id: int, window: PeriodWindow) -> Select:
    return select(func.count(Article.id)).where(
        Article.author_id == user_id,
        Article.status == ArticleStatus.PUBLISHED.value,
        Article.created_at >= window.start,
        Article.created_at < window.end,
    )


def _forum_posts(user_id: int, window: PeriodWindow) -> Select:
    return select(func.count(ForumPost.id)).where(
        ForumPost.author_id == user_id,
        ForumPost.created_at >= window.start,
        ForumPost.created_at < window.end,
    )


def _forum_replies(user_id: int, window: PeriodWindow) -> Select:
    return select(func.count(ForumReply.id)).where(
        ForumReply.author_id == user_id,
        ForumReply.created_at >= window.start,
        ForumReply.created_at < window.end,
    )


def _event_attendance(user_id: int, window: PeriodWindow) -> Select:
    return select(func.count()).select_from(EventAttendee).where(
        EventAttendee.user_id == user_id,
        EventAttendee.status == AttendeeStatus.ATTENDING.value,
        EventAttendee.registered_at >= window.start,
        EventAttendee.registered_at < window.end,
    )


def _event_creation(user_id: int, window: PeriodWindow) -> Select:
    return select(func.count(Event.id)).where(
        Event.organizer_id == user_id,
        Event.created_at >= window.start,
        Event.created_at < window.end,
    )


def _likes_received(user_id: int, window: PeriodWindow) -> Select:
    # Lifetime likes on published articles; the window does not apply.
    return (
        select(func.count())
        .select_from(ArticleLike)
        .join(Article, Article.id == ArticleLike.article_id)
        .where(
            Article.author_id == user_id,
            Article.status == ArticleStatus.PUBLISHED.value,
        )
    )


def _days_active(user_id: int, window: PeriodWindow) -> Select:
    return select(
        func.count(func.distinct(utc_date(PointsTransaction.created_at)))
    ).where(
        PointsTransaction.user_id == user_id,
        PointsTransaction.created_at >= window.start,
        PointsTransaction.created_at < window.end,
    )


COUNT_QUERIES = {
    MetricType.ARTICLE_COUNT: _article_count,
    MetricType.FORUM_POSTS: _forum_posts,
    MetricType.FORUM_REPLIES: _forum_replies,
    MetricType.EVENT_ATTENDANCE: _event_attendance,
    MetricType.EVENT_CREATION: _event_creation,
    MetricType.LIKES_RECEIVED: _likes_received,
    MetricType.DAYS_ACTIVE: _days_active,
}


class ActivityCounter:
    """Counts content activity for users over period windows.

    Usage:
        with Session(engine) as session:
            counter = ActivityCounter(session)
            posts = counter.count(user_id, "forum_posts", "weekly")

    *now* pins the anchor of every window the counter resolves; it
    defaults to the current UTC time at construction.
    """

    def __init__(self, session: Session, now: datetime | None = None) -> None:
        self._session = session
        self._now = now

    def window(self, timeframe: Period | str) -> PeriodWindow:
        return resolve_period(timeframe, self._now)

    def count(self, user_id: int, metric: MetricType | str, timeframe: Period | str) -> int:
        """Number of *metric* events for *user_id* inside *timeframe*.

        Raises
        ------
        ValidationError
            For metric names that are not content metrics.
        NotFoundError
            If the user does not exist.
        """
        metric = parse_enum(MetricType, metric, "metric type")
        if metric not in CONTENT_METRICS:
            raise ValidationError(f"{metric.value!r} is not a countable activity metric")
        window = self.window(timeframe)

        user = self._session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if not user.is_active:
            return 0

        value = self._session.scalar(COUNT_QUERIES[metric](user_id, window)) or 0
        return max(int(value), 0)

    # -------------------------------------------------------------------
    # Bulk counts (leaderboard generation)
    # -------------------------------------------------------------------
    def collect_stats(
        self, user_ids: Iterable[int], window: PeriodWindow,
    ) -> dict[int, ActivityStats]:
        """Activity stats for every user in *user_ids* inside *window*.

        One grouped query per metric, regardless of the number of users.
        """
        ids = list(user_ids)
        stats = {uid: ActivityStats() for uid in ids}
        if not ids:
            return stats

        def grouped(key_col, count_expr, *criteria) -> dict[int, int]:
            rows = self._session.execute(
                select(key_col, count_expr)
                .where(key_col.in_(ids), *criteria)
                .group_by(key_col)
            ).all()
            return {uid: int(n) for uid, n in rows}

        articles = grouped(
            Article.author_id, func.count(Article.id),
            Article.status == ArticleStatus.PUBLISHED.value,
            Article.created_at >= window.start, Article.created_at < window.end,
        )
        posts = grouped(
            ForumPost.author_id, func.count(ForumPost.id),
            ForumPost.created_at >= window.start, ForumPost.created_at < window.end,
        )
        replies = grouped(
            ForumReply.author_id, func.count(ForumReply.id),
            ForumReply.created_at >= window.start, ForumReply.created_at < window.end,
        )
        attended = grouped(
            EventAttendee.user_id, func.count(EventAttendee.event_id),
            EventAttendee.status == AttendeeStatus.ATTENDING.value,
            EventAttendee.registered_at >= window.start,
            EventAttendee.registered_at < window.end,
        )
        created = grouped(
            Event.organizer_id, func.count(Event.id),
            Event.created_at >= window.start, Event.created_at < window.end,
        )
        days = grouped(
            PointsTransaction.user_id,
            func.count(func.distinct(utc_date(PointsTransaction.created_at))),
            PointsTransaction.created_at >= window.start,
            PointsTransaction.created_at < window.end,
        )
        likes = {
            uid: int(n)
            for uid, n in self._session.execute(
                select(Article.author_id, func.count())
                .select_from(ArticleLike)
                .join(Article, Article.id == ArticleLike.article_id)
                .where(
                    Article.author_id.in_(ids),
                    Article.status == ArticleStatus.PUBLISHED.value,
                )
                .group_by(Article.author_id)
            ).all()
        }

        for uid, s in stats.items():
            s.articles_created = articles.get(uid, 0)
            s.forum_posts = posts.get(uid, 0)
            s.forum_replies = replies.get(uid, 0)
            s.events_attended = attended.get(uid, 0)
            s.events_created = created.get(uid, 0)
            s.likes_received = likes.get(uid, 0)
            s.days_active = days.get(uid, 0)
        return stats

    def points_earned_in(
        self, user_ids: Iterable[int], window: PeriodWindow,
    ) -> dict[int, int]:
        """Sum of positive journal deltas per user inside *window*."""
        ids = list(user_ids)
        if not ids:
            return {}
        rows = self._session.execute(
            select(PointsTransaction.user_id, func.sum(PointsTransaction.delta))
            .where(
                PointsTransaction.user_id.in_(ids),
                PointsTransaction.delta > 0,
                PointsTransaction.created_at >= window.start,
                PointsTransaction.created_at < window.end,
            )
            .group_by(PointsTransaction.user_id)
        ).all()
        return {uid: int(total or 0) for uid, total in rows}
