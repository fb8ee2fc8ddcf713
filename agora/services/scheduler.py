"""
agora.services.scheduler — Periodic Leaderboard Refresh
========================================================

An APScheduler :class:`AsyncIOScheduler` on the API's event loop with one
interval job that regenerates every ``(scope, period)`` leaderboard.  The
job body hands the synchronous service call to
:func:`~agora.database.engine.run_db` so request handling is not blocked.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from agora.database.engine import run_db
from agora.engine.periods import utcnow
from agora.services.leaderboard_service import generate_all

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from agora.engine.cache import ConfigCache

logger = logging.getLogger(__name__)

JOB_ID = "leaderboard-refresh"


class LeaderboardRefresher:
    """Registers the refresh job and owns the scheduler lifecycle.

    Usage:
        refresher = LeaderboardRefresher(engine, cache, interval_minutes=60)
        refresher.start()          # inside a running event loop
        ...
        await refresher.stop()
    """

    def __init__(
        self,
        engine: Engine,
        cache: ConfigCache,
        *,
        interval_minutes: int,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self.engine = engine
        self.cache = cache
        self.interval_minutes = interval_minutes
        self.scheduler = scheduler or AsyncIOScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running) and self.scheduler.get_job(JOB_ID) is not None

    def start(self) -> None:
        """Schedule the job and start the scheduler.  A non-positive interval disables it.

        The first run fires immediately so boards exist right after boot.
        """
        if self.interval_minutes <= 0:
            logger.info("Leaderboard refresh disabled (interval=0)")
            return
        if self.running:
            return
        self.scheduler.add_job(
            self.refresh_once,
            "interval",
            minutes=self.interval_minutes,
            id=JOB_ID,
            next_run_time=utcnow(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Leaderboard refresh every %d min", self.interval_minutes)

    async def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def refresh_once(self) -> int:
        """Regenerate every board once.  Returns the number generated."""
        try:
            snapshots = await run_db(generate_all, self.engine, self.cache)
        except Exception:
            logger.exception("Leaderboard refresh failed", extra={"task": "leaderboard_refresh"})
            return 0
        logger.info("Leaderboard refresh complete: %d snapshots", len(snapshots))
        return len(snapshots)
