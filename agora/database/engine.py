"""
agora.database.engine — Engine Construction & Thread Bridge
============================================================

Services are synchronous SQLAlchemy code that open their own sessions.
The FastAPI lifespan and the leaderboard refresh job live on the event
loop and reach those services through :func:`run_db`.

Usage::

    from agora.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # DATABASE_URL from the environment
    init_db(engine)                      # tables + default settings/achievements

    snapshot = await run_db(generate, engine, cache, "overall", "weekly")
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine

from agora.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Checkout waits longer than this fail instead of queueing award calls.
POOL_TIMEOUT_SECONDS = 10


def create_db_engine(url: str | None = None) -> Engine:
    """Engine for *url*, or for ``DATABASE_URL`` when omitted.

    One API process runs request handlers and the refresh job side by side,
    so the pool keeps five connections with ten overflow slots.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is unset.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; see .env.example for the expected "
            "postgresql+psycopg2:// URL."
        )

    engine = create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=POOL_TIMEOUT_SECONDS,
        pool_recycle=3600,
    )
    logger.info("Gamification database at %s/%s", engine.url.host, engine.url.database)
    return engine


def init_db(engine: Engine) -> None:
    """Create missing tables, then seed settings and starter achievements.

    Alembic owns the production schema; ``create_all`` covers dev databases
    and is a no-op once the migrations have run.
    """
    Base.metadata.create_all(engine)

    from agora.database.seed import seed_default_achievements, seed_default_settings

    seed_default_settings(engine)
    seed_default_achievements(engine)
    logger.info("Schema ready, defaults seeded")


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous service call on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
