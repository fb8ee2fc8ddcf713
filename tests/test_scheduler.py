"""
tests/test_scheduler.py — Periodic Leaderboard Refresh
=======================================================
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

from conftest import make_user
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agora.database.models import Leaderboard, LeaderboardScope, Period
from agora.services.scheduler import JOB_ID, LeaderboardRefresher


class TestLeaderboardRefresher:
    def test_refresh_once_generates_every_board(self, db_engine, cache):
        make_user(db_engine, points=12)
        refresher = LeaderboardRefresher(db_engine, cache, interval_minutes=60)

        count = asyncio.run(refresher.refresh_once())

        assert count == len(LeaderboardScope) * len(Period)
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Leaderboard)) == count

    def test_refresh_failure_is_logged_not_raised(self, db_engine, cache, caplog):
        refresher = LeaderboardRefresher(db_engine, cache, interval_minutes=60)
        with patch("agora.services.scheduler.generate_all", side_effect=RuntimeError("db down")):
            assert asyncio.run(refresher.refresh_once()) == 0
        assert "Leaderboard refresh failed" in caplog.text

    def test_zero_interval_schedules_nothing(self, db_engine, cache):
        scheduler = MagicMock()
        refresher = LeaderboardRefresher(
            db_engine, cache, interval_minutes=0, scheduler=scheduler,
        )

        refresher.start()

        scheduler.add_job.assert_not_called()
        scheduler.start.assert_not_called()

    def test_registers_interval_job(self, db_engine, cache):
        scheduler = MagicMock()
        scheduler.running = False
        refresher = LeaderboardRefresher(
            db_engine, cache, interval_minutes=15, scheduler=scheduler,
        )

        refresher.start()

        args, kwargs = scheduler.add_job.call_args
        assert args == (refresher.refresh_once, "interval")
        assert kwargs["minutes"] == 15
        assert kwargs["id"] == JOB_ID
        assert kwargs["max_instances"] == 1
        scheduler.start.assert_called_once()

    def test_start_and_stop(self, db_engine, cache):
        refresher = LeaderboardRefresher(db_engine, cache, interval_minutes=60)

        async def scenario():
            with patch.object(refresher, "refresh_once", return_value=0):
                refresher.start()
                started = refresher.running
                job = refresher.scheduler.get_job(JOB_ID)
                await refresher.stop()
                # shutdown is dispatched onto the loop
                await asyncio.sleep(0)
                return started, job

        started, job = asyncio.run(scenario())
        assert started is True
        assert job is not None
        assert refresher.scheduler.running is False
