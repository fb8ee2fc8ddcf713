"""
agora.engine.cache — In-Memory Settings & Achievement Cache
============================================================

Gameplay tuning (points per action, leaderboard weights) and the active
achievement catalogue are read on every award, so they are cached in
memory.  Writers that change either table call :meth:`ConfigCache.handle_notify`
with the table name; the cache reloads just that partition.

The cache is created once per process and injected into the services
(see :func:`agora.api.deps.get_cache`), never held in module globals.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import Achievement, Setting

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


class ConfigCache:
    """Thread-safe in-memory cache for settings and active achievements.

    Usage:
        cache = ConfigCache(engine)
        cache.load_all()

        reward = cache.get_int("points.article_create", 0)
        achievements = cache.get_active_achievements()
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._lock = threading.Lock()

        # Active achievements ordered by id (expunged ORM rows)
        self._achievements: list[Achievement] = []
        # key → parsed JSON value
        self._settings: dict[str, Any] = {}

    # -------------------------------------------------------------------
    # Cache loading
    # -------------------------------------------------------------------
    def load_all(self) -> None:
        """Load every cache partition from the DB. Call on startup."""
        self._load_achievements()
        self._load_settings()
        logger.info(
            "ConfigCache loaded: %d active achievements, %d settings",
            len(self._achievements),
            len(self._settings),
        )

    def _load_achievements(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(
                select(Achievement)
                .where(Achievement.is_active.is_(True))
                .order_by(Achievement.id)
            ).all()
            for row in rows:
                session.expunge(row)
        with self._lock:
            self._achievements = list(rows)

    def _load_settings(self) -> None:
        with Session(self._engine) as session:
            rows = session.scalars(select(Setting)).all()
            parsed: dict[str, Any] = {}
            for row in rows:
                try:
                    parsed[row.key] = json.loads(row.value_json)
                except (json.JSONDecodeError, TypeError):
                    parsed[row.key] = row.value_json

        with self._lock:
            self._settings = parsed

    # -------------------------------------------------------------------
    # Cache reads (thread-safe)
    # -------------------------------------------------------------------
    def get_active_achievements(self, *, include_hidden: bool = False) -> list[Achievement]:
        with self._lock:
            rows = list(self._achievements)
        if include_hidden:
            return rows
        return [a for a in rows if not a.is_hidden]

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Return the parsed JSON value for *key*, or *default*."""
        with self._lock:
            return self._settings.get(key, default)

    def has_setting(self, key: str) -> bool:
        with self._lock:
            return key in self._settings

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return int(val)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        val = self.get_setting(key)
        if val is None:
            return default
        try:
            return float(val)
        except (TypeError, ValueError):
            return default

    # -------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------
    def handle_notify(self, table_name: str) -> None:
        """Reload the cache partition behind *table_name*."""
        table_name = table_name.strip().lower()
        logger.info("Config cache invalidation for table: %s", table_name)

        if table_name == "achievements":
            self._load_achievements()
        elif table_name == "settings":
            self._load_settings()
        else:
            logger.warning("Ignoring cache invalidation for unknown table: %s", table_name)
