"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import itertools
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of agora.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite renders JSONB as TEXT; SQLAlchemy's JSON processing still applies.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from agora.constants import calculate_level  # noqa: E402
from agora.database.models import (  # noqa: E402
    Achievement,
    Article,
    ArticleLike,
    Base,
    Event,
    EventAttendee,
    ForumPost,
    ForumReply,
    User,
)
from agora.database.seed import seed_default_settings  # noqa: E402
from agora.engine.cache import ConfigCache  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()

# Wednesday; the enclosing week starts Sunday 2026-10-11.
NOW = datetime(2026, 10, 14, 12, 0, 0, tzinfo=UTC)
# Default content timestamp: safely in the past for real-clock windows.
PAST = datetime(2024, 3, 5, 9, 30, 0, tzinfo=UTC)

_emails = itertools.count(1)


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Agora tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` and the FastAPI threadpool).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def cache(db_engine: Engine) -> ConfigCache:
    """A real ConfigCache over the test DB with default settings seeded."""
    seed_default_settings(db_engine)
    cache = ConfigCache(db_engine)
    cache.load_all()
    return cache


# ---------------------------------------------------------------------------
# Factories — plain functions so tests can also import them directly
# ---------------------------------------------------------------------------
def make_user(
    engine: Engine,
    name: str = "Ada",
    *,
    points: int = 0,
    is_active: bool = True,
    user_id: int | None = None,
) -> int:
    with Session(engine) as session:
        user = User(
            id=user_id,
            name=name,
            email=f"{name.lower()}{next(_emails)}@example.com",
            points=points,
            level=calculate_level(points),
            is_active=is_active,
        )
        session.add(user)
        session.commit()
        return user.id


def add_article(
    engine: Engine,
    author_id: int,
    *,
    status: str = "published",
    created_at: datetime = PAST,
    liked_by: tuple[int, ...] = (),
) -> int:
    with Session(engine) as session:
        article = Article(
            author_id=author_id,
            title="How we ship",
            status=status,
            created_at=created_at,
            published_at=created_at if status == "published" else None,
        )
        session.add(article)
        session.flush()
        for uid in liked_by:
            session.add(ArticleLike(article_id=article.id, user_id=uid))
        session.commit()
        return article.id


def add_forum_post(engine: Engine, author_id: int, *, created_at: datetime = PAST) -> int:
    with Session(engine) as session:
        post = ForumPost(author_id=author_id, title="Question", created_at=created_at)
        session.add(post)
        session.commit()
        return post.id


def add_forum_reply(
    engine: Engine,
    author_id: int,
    post_id: int | None = None,
    *,
    created_at: datetime = PAST,
) -> int:
    if post_id is None:
        post_id = add_forum_post(engine, author_id, created_at=created_at)
    with Session(engine) as session:
        reply = ForumReply(post_id=post_id, author_id=author_id, created_at=created_at)
        session.add(reply)
        session.commit()
        return reply.id


def add_event(engine: Engine, organizer_id: int, *, created_at: datetime = PAST) -> int:
    with Session(engine) as session:
        event = Event(organizer_id=organizer_id, title="Lunch & learn", created_at=created_at)
        session.add(event)
        session.commit()
        return event.id


def attend_event(
    engine: Engine,
    event_id: int,
    user_id: int,
    *,
    status: str = "attending",
    registered_at: datetime = PAST,
) -> None:
    with Session(engine) as session:
        session.add(EventAttendee(
            event_id=event_id,
            user_id=user_id,
            status=status,
            registered_at=registered_at,
        ))
        session.commit()


def add_achievement(
    engine: Engine,
    name: str,
    metric_type: str,
    threshold: int,
    *,
    points: int = 0,
    timeframe: str = "all_time",
    category: str = "participation",
    rarity: str = "common",
    is_hidden: bool = False,
    is_active: bool = True,
) -> int:
    with Session(engine) as session:
        achievement = Achievement(
            name=name,
            description=f"{metric_type} >= {threshold}",
            category=category,
            rarity=rarity,
            points=points,
            metric_type=metric_type,
            threshold=threshold,
            timeframe=timeframe,
            is_hidden=is_hidden,
            is_active=is_active,
        )
        session.add(achievement)
        session.commit()
        return achievement.id


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from agora.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
