"""
agora.database.seed — Default Settings & Starter Achievements
==============================================================

Baseline rows written on first startup so points are awarded and
achievements can be earned before an admin touches anything.

Idempotent — only inserts keys/names that don't already exist.  Values
changed later by admins are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from agora.database.models import (
    Achievement,
    AchievementCategory,
    AchievementRarity,
    MetricType,
    Period,
    Setting,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings catalogue
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS: dict[str, tuple[object, str, str]] = {
    "points.article_create": (10, "points", "Points for publishing an article"),
    "points.article_like": (2, "points", "Points for a like on one of your articles"),
    "points.forum_post": (5, "points", "Points for starting a forum discussion"),
    "points.forum_reply": (3, "points", "Points for replying in a forum discussion"),
    "points.event_attend": (8, "points", "Points for attending an event"),
    "points.event_create": (15, "points", "Points for organizing an event"),
    "leaderboard.weight.article": (10, "leaderboard", "Articles scope: score per article"),
    "leaderboard.weight.forum_post": (5, "leaderboard", "Forums scope: score per post"),
    "leaderboard.weight.forum_reply": (3, "leaderboard", "Forums scope: score per reply"),
    "leaderboard.weight.event_attend": (
        8, "leaderboard", "Events scope: score per attended event",
    ),
    "leaderboard.weight.event_create": (
        15, "leaderboard", "Events scope: score per organized event",
    ),
    "leaderboard.weight.like": (2, "leaderboard", "Engagement scope: score per like received"),
    "leaderboard.default_limit": (10, "display", "Entries returned by the leaderboard API"),
}
"""Each entry maps ``key`` → ``(default_value, category, description)``."""


# ---------------------------------------------------------------------------
# Starter achievements
# ---------------------------------------------------------------------------
DEFAULT_ACHIEVEMENTS: list[dict] = [
    {
        "name": "First Post",
        "description": "Made your first discussion post",
        "category": AchievementCategory.PARTICIPATION,
        "rarity": AchievementRarity.COMMON,
        "icon": "\U0001f3af",
        "points": 5,
        "metric_type": MetricType.FORUM_POSTS,
        "threshold": 1,
    },
    {
        "name": "Helpful Member",
        "description": "Received 10 likes on your articles",
        "category": AchievementCategory.COMMUNITY,
        "rarity": AchievementRarity.COMMON,
        "icon": "\U0001f44d",
        "points": 10,
        "metric_type": MetricType.LIKES_RECEIVED,
        "threshold": 10,
    },
    {
        "name": "Knowledge Sharer",
        "description": "Published 5 knowledge articles",
        "category": AchievementCategory.KNOWLEDGE,
        "rarity": AchievementRarity.UNCOMMON,
        "icon": "\U0001f4da",
        "points": 25,
        "metric_type": MetricType.ARTICLE_COUNT,
        "threshold": 5,
    },
    {
        "name": "Event Host",
        "description": "Organized 3 events",
        "category": AchievementCategory.LEADERSHIP,
        "rarity": AchievementRarity.RARE,
        "icon": "\U0001f3a4",
        "points": 30,
        "metric_type": MetricType.EVENT_CREATION,
        "threshold": 3,
    },
    {
        "name": "Community Champion",
        "description": "Replied to 50 discussions",
        "category": AchievementCategory.MENTORSHIP,
        "rarity": AchievementRarity.LEGENDARY,
        "icon": "\U0001f31f",
        "points": 100,
        "metric_type": MetricType.FORUM_REPLIES,
        "threshold": 50,
    },
    {
        "name": "Rising Star",
        "description": "Reached level 5",
        "category": AchievementCategory.MILESTONE,
        "rarity": AchievementRarity.EPIC,
        "icon": "\u2b50",
        "points": 0,
        "metric_type": MetricType.LEVEL_REACHED,
        "threshold": 5,
    },
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_settings(engine: Engine) -> None:
    """Insert default settings that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        for key, (value, category, desc) in DEFAULT_SETTINGS.items():
            existing = session.get(Setting, key)
            if existing is None:
                session.add(Setting(
                    key=key,
                    value_json=json.dumps(value),
                    category=category,
                    description=desc,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default settings.", inserted)


def seed_default_achievements(engine: Engine) -> None:
    """Insert the starter achievements whose names are not taken yet."""
    with Session(engine) as session:
        existing = set(session.scalars(select(Achievement.name)).all())
        inserted = 0
        for spec in DEFAULT_ACHIEVEMENTS:
            if spec["name"] in existing:
                continue
            session.add(Achievement(
                name=spec["name"],
                description=spec["description"],
                category=spec["category"].value,
                rarity=spec["rarity"].value,
                icon=spec["icon"],
                points=spec["points"],
                metric_type=spec["metric_type"].value,
                threshold=spec["threshold"],
                timeframe=Period.ALL_TIME.value,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d starter achievements.", inserted)
