"""
agora.constants — Shared Constants & Helpers
=============================================

Single source of truth for the leveling formula and presentation constants.
Import from here instead of duplicating in services, routes, and tests.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Rarity presentation (used by the achievements API)
# ---------------------------------------------------------------------------
RARITY_EMOJI: dict[str, str] = {
    "common": "\u26aa",        # ⚪
    "uncommon": "\U0001f7e2",  # 🟢
    "rare": "\U0001f535",      # 🔵
    "epic": "\U0001f7e3",      # 🟣
    "legendary": "\U0001f7e1", # 🟡
}

RARITY_ORDER: list[str] = ["common", "uncommon", "rare", "epic", "legendary"]

# Upper bound for any single point grant (bonus or achievement reward).
MAX_POINT_AMOUNT = 1_000_000


# ---------------------------------------------------------------------------
# Leveling formula (the only place the level is computed)
# ---------------------------------------------------------------------------
POINTS_PER_LEVEL = 100


def calculate_level(points: int) -> int:
    """Level for a cumulative *points* total.

    Uses the linear formula::

        level = floor(points / 100) + 1

    so 0–99 points is level 1, 100–199 is level 2, and so on.
    """
    return max(points, 0) // POINTS_PER_LEVEL + 1


def calculate_points_to_next_level(points: int) -> int:
    """Points still missing before the next level boundary."""
    return calculate_level(points) * POINTS_PER_LEVEL - points


def get_level_progress(points: int) -> float:
    """Percentage (0–100) of the way through the current level."""
    level_start = (calculate_level(points) - 1) * POINTS_PER_LEVEL
    progress = (points - level_start) / POINTS_PER_LEVEL
    return min(progress * 100, 100.0)
