"""
tests/test_cache.py — ConfigCache Unit Tests
=============================================

Invalidation routing (mock engine) and typed reads over a seeded SQLite DB.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from conftest import add_achievement

from agora.engine.cache import ConfigCache
from agora.services import settings_service


class TestNotifyRouting:
    """Invalidation payloads reload only the matching partition."""

    @pytest.fixture
    def cache(self):
        return ConfigCache(MagicMock())

    @pytest.mark.parametrize(
        "table_name, expected_method",
        [
            ("achievements", "_load_achievements"),
            ("settings", "_load_settings"),
            ("  Settings ", "_load_settings"),
        ],
    )
    def test_routes_to_partition(self, cache, table_name, expected_method):
        with patch.object(cache, expected_method) as mock_method:
            cache.handle_notify(table_name)
            mock_method.assert_called_once()

    def test_unknown_table_ignored(self, cache):
        with (
            patch.object(cache, "_load_achievements") as mock_ach,
            patch.object(cache, "_load_settings") as mock_set,
        ):
            cache.handle_notify("leaderboards")
            mock_ach.assert_not_called()
            mock_set.assert_not_called()


class TestReads:
    def test_defaults_seeded(self, cache):
        assert cache.get_int("points.article_create") == 10
        assert cache.get_int("leaderboard.default_limit") == 10
        assert cache.has_setting("leaderboard.weight.like")

    def test_missing_key_falls_back(self, cache):
        assert cache.get_setting("nope") is None
        assert cache.get_setting("nope", "x") == "x"
        assert cache.get_int("nope", 7) == 7
        assert cache.get_float("nope", 1.5) == 1.5
        assert not cache.has_setting("nope")

    def test_non_numeric_value_falls_back(self, db_engine, cache):
        settings_service.bulk_upsert(
            db_engine, cache, [{"key": "points.forum_post", "value": "lots"}], actor_id=1,
        )
        assert cache.get_setting("points.forum_post") == "lots"
        assert cache.get_int("points.forum_post", 5) == 5
        assert cache.get_float("points.forum_post", 2.0) == 2.0

    def test_hidden_achievements_filtered_unless_asked(self, db_engine, cache):
        shown = add_achievement(db_engine, "Shown", "forum_posts", 1)
        hidden = add_achievement(db_engine, "Hidden", "forum_posts", 1, is_hidden=True)
        add_achievement(db_engine, "Retired", "forum_posts", 1, is_active=False)
        cache.handle_notify("achievements")

        assert [a.id for a in cache.get_active_achievements()] == [shown]
        assert [a.id for a in cache.get_active_achievements(include_hidden=True)] == [
            shown, hidden,
        ]

    def test_reads_are_stale_until_notified(self, db_engine, cache):
        add_achievement(db_engine, "Late", "forum_posts", 1)
        assert cache.get_active_achievements() == []
        cache.handle_notify("achievements")
        assert [a.name for a in cache.get_active_achievements()] == ["Late"]
