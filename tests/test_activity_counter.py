"""
tests/test_activity_counter.py — Activity Counting over Period Windows
=======================================================================
Uses an in-memory SQLite database via the shared conftest fixtures and a
pinned *now* (Wednesday 2026-10-14; the week started Sunday 2026-10-11).
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from conftest import (
    NOW,
    add_article,
    add_event,
    add_forum_post,
    add_forum_reply,
    attend_event,
    make_user,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from agora.database.models import MetricType, Period, PointsTransaction
from agora.engine.periods import resolve_period
from agora.errors import NotFoundError, ValidationError
from agora.services.activity_service import COUNT_QUERIES, ActivityCounter

THIS_WEEK = datetime(2026, 10, 12, 10, 0, tzinfo=UTC)
LAST_WEEK = datetime(2026, 10, 5, 10, 0, tzinfo=UTC)


def _count(engine, user_id, metric, timeframe=Period.WEEKLY) -> int:
    with Session(engine) as session:
        return ActivityCounter(session, NOW).count(user_id, metric, timeframe)


def _journal(engine, user_id: int, *stamps: datetime, delta: int = 5) -> None:
    with Session(engine) as session:
        for ts in stamps:
            session.add(PointsTransaction(
                user_id=user_id, kind="ACTION", action="forum_post",
                delta=delta, balance_after=0, created_at=ts,
            ))
        session.commit()


class TestContentMetrics:
    def test_article_count_only_published_in_window(self, db_engine):
        uid = make_user(db_engine)
        add_article(db_engine, uid, created_at=THIS_WEEK)
        add_article(db_engine, uid, created_at=THIS_WEEK, status="draft")
        add_article(db_engine, uid, created_at=LAST_WEEK)

        assert _count(db_engine, uid, MetricType.ARTICLE_COUNT) == 1
        assert _count(db_engine, uid, MetricType.ARTICLE_COUNT, Period.MONTHLY) == 2

    def test_forum_posts_and_replies(self, db_engine):
        uid = make_user(db_engine)
        other = make_user(db_engine, "Bo")
        post = add_forum_post(db_engine, other, created_at=THIS_WEEK)
        add_forum_post(db_engine, uid, created_at=THIS_WEEK)
        add_forum_post(db_engine, uid, created_at=LAST_WEEK)
        add_forum_reply(db_engine, uid, post, created_at=THIS_WEEK)
        add_forum_reply(db_engine, uid, post, created_at=THIS_WEEK)

        assert _count(db_engine, uid, MetricType.FORUM_POSTS) == 1
        assert _count(db_engine, uid, MetricType.FORUM_REPLIES) == 2
        assert _count(db_engine, other, MetricType.FORUM_REPLIES) == 0

    def test_event_attendance_counts_attending_only(self, db_engine):
        host = make_user(db_engine, "Host")
        uid = make_user(db_engine)
        e1 = add_event(db_engine, host, created_at=THIS_WEEK)
        e2 = add_event(db_engine, host, created_at=THIS_WEEK)
        e3 = add_event(db_engine, host, created_at=THIS_WEEK)
        attend_event(db_engine, e1, uid, registered_at=THIS_WEEK)
        attend_event(db_engine, e2, uid, registered_at=THIS_WEEK, status="maybe")
        attend_event(db_engine, e3, uid, registered_at=LAST_WEEK)

        assert _count(db_engine, uid, MetricType.EVENT_ATTENDANCE) == 1
        assert _count(db_engine, host, MetricType.EVENT_CREATION) == 3

    def test_likes_received_ignore_the_window(self, db_engine):
        author = make_user(db_engine)
        fans = [make_user(db_engine, f"Fan{i}") for i in range(3)]
        add_article(db_engine, author, created_at=LAST_WEEK, liked_by=tuple(fans))
        add_article(db_engine, author, status="draft", liked_by=(fans[0],))

        assert _count(db_engine, author, MetricType.LIKES_RECEIVED, Period.DAILY) == 3

    def test_days_active_counts_distinct_days(self, db_engine):
        uid = make_user(db_engine)
        _journal(
            db_engine, uid,
            datetime(2026, 10, 12, 9, tzinfo=UTC),
            datetime(2026, 10, 12, 17, tzinfo=UTC),
            datetime(2026, 10, 13, 8, tzinfo=UTC),
            LAST_WEEK,
        )
        assert _count(db_engine, uid, MetricType.DAYS_ACTIVE) == 2
        assert _count(db_engine, uid, MetricType.DAYS_ACTIVE, Period.MONTHLY) == 3

    def test_days_are_utc_calendar_days_on_postgres(self):
        window = resolve_period(Period.WEEKLY, NOW)
        query = COUNT_QUERIES[MetricType.DAYS_ACTIVE](1, window)

        pg = str(query.compile(dialect=postgresql.dialect()))
        lite = str(query.compile(dialect=sqlite.dialect()))

        assert "date(timezone('UTC', points_transactions.created_at))" in pg
        assert "date(points_transactions.created_at)" in lite


class TestCounterContract:
    @pytest.mark.parametrize(
        "metric", [MetricType.POINTS_EARNED, MetricType.LEVEL_REACHED, MetricType.CUSTOM],
    )
    def test_non_content_metrics_rejected(self, db_engine, metric):
        uid = make_user(db_engine)
        with pytest.raises(ValidationError):
            _count(db_engine, uid, metric)

    def test_unknown_metric_rejected(self, db_engine):
        uid = make_user(db_engine)
        with pytest.raises(ValidationError, match="metric type"):
            _count(db_engine, uid, "karma")

    def test_unknown_timeframe_rejected(self, db_engine):
        uid = make_user(db_engine)
        with pytest.raises(ValidationError, match="period"):
            _count(db_engine, uid, MetricType.FORUM_POSTS, "hourly")

    def test_inactive_user_counts_zero(self, db_engine):
        uid = make_user(db_engine, is_active=False)
        add_forum_post(db_engine, uid, created_at=THIS_WEEK)
        assert _count(db_engine, uid, MetricType.FORUM_POSTS) == 0

    def test_unknown_user(self, db_engine):
        with pytest.raises(NotFoundError):
            _count(db_engine, 424242, MetricType.FORUM_POSTS)

    def test_new_user_counts_zero_everywhere(self, db_engine):
        uid = make_user(db_engine)
        for metric in (
            MetricType.ARTICLE_COUNT, MetricType.FORUM_POSTS, MetricType.LIKES_RECEIVED,
            MetricType.DAYS_ACTIVE, MetricType.EVENT_CREATION,
        ):
            assert _count(db_engine, uid, metric, Period.ALL_TIME) == 0


class TestBulkStats:
    def test_collect_stats_matches_single_counts(self, db_engine):
        a = make_user(db_engine, "Ann")
        b = make_user(db_engine, "Ben")
        add_article(db_engine, a, created_at=THIS_WEEK, liked_by=(b,))
        add_forum_post(db_engine, b, created_at=THIS_WEEK)
        add_forum_reply(db_engine, a, created_at=THIS_WEEK)
        event = add_event(db_engine, b, created_at=THIS_WEEK)
        attend_event(db_engine, event, a, registered_at=THIS_WEEK)
        _journal(db_engine, a, THIS_WEEK)

        with Session(db_engine) as session:
            counter = ActivityCounter(session, NOW)
            stats = counter.collect_stats([a, b], resolve_period(Period.WEEKLY, NOW))

        assert stats[a].articles_created == 1
        assert stats[a].likes_received == 1
        # add_forum_reply without a post opens one for the same author
        assert stats[a].forum_posts == 1
        assert stats[a].forum_replies == 1
        assert stats[a].events_attended == 1
        assert stats[a].days_active == 1
        assert stats[b].forum_posts == 1
        assert stats[b].events_created == 1
        assert stats[b].likes_received == 0

    def test_collect_stats_empty(self, db_engine):
        with Session(db_engine) as session:
            counter = ActivityCounter(session, NOW)
            assert counter.collect_stats([], resolve_period(Period.DAILY, NOW)) == {}

    def test_points_earned_in_window_sums_positive_deltas(self, db_engine):
        uid = make_user(db_engine)
        _journal(db_engine, uid, THIS_WEEK, THIS_WEEK, delta=10)
        _journal(db_engine, uid, THIS_WEEK, delta=-15)
        _journal(db_engine, uid, LAST_WEEK, delta=99)

        with Session(db_engine) as session:
            counter = ActivityCounter(session, NOW)
            earned = counter.points_earned_in([uid], resolve_period(Period.WEEKLY, NOW))
        assert earned == {uid: 20}
