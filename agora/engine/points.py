"""
agora.engine.points — Action Rewards & Award Results
=====================================================

Pure lookup of how many points a content action is worth, plus the result
type every points award returns.  No DB I/O inside the engine.

Rewards come from the ``points.<action>`` settings; the built-in actions
fall back to :data:`DEFAULT_ACTION_POINTS` when the setting is missing.
Any other action name with a configured setting is a custom action.
Everything else is worth zero points.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agora.constants import MAX_POINT_AMOUNT
from agora.database.models import ActionKind
from agora.errors import ValidationError

if TYPE_CHECKING:
    from agora.database.models import Achievement
    from agora.engine.cache import ConfigCache

DEFAULT_ACTION_POINTS: dict[str, int] = {
    ActionKind.ARTICLE_CREATE: 10,
    ActionKind.ARTICLE_LIKE: 2,
    ActionKind.FORUM_POST: 5,
    ActionKind.FORUM_REPLY: 3,
    ActionKind.EVENT_ATTEND: 8,
    ActionKind.EVENT_CREATE: 15,
}

_ACTION_NAME = re.compile(r"^[a-z][a-z0-9_]{0,49}$")


# ---------------------------------------------------------------------------
# AwardResult — output of every points award
# ---------------------------------------------------------------------------
@dataclass
class AwardResult:
    """Outcome of a points award."""

    points_awarded: int = 0
    total_points: int = 0
    level: int = 1
    leveled_up: bool = False
    achievements: list[Achievement] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Validation & lookup
# ---------------------------------------------------------------------------
def validate_action(action: str) -> str:
    """Normalize *action* or raise ValidationError for malformed names."""
    if not isinstance(action, str):
        raise ValidationError(f"Action name must be a string, got {type(action).__name__}")
    name = action.strip().lower()
    if not _ACTION_NAME.match(name):
        raise ValidationError(f"Malformed action name {action!r}")
    return name


def validate_amount(amount: int) -> int:
    """Accept ``0 <= amount <= MAX_POINT_AMOUNT`` integers only."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Point amount must be an integer")
    if amount < 0:
        raise ValidationError("Point amount must not be negative")
    if amount > MAX_POINT_AMOUNT:
        raise ValidationError(f"Point amount must not exceed {MAX_POINT_AMOUNT}")
    return amount


def reward_for_action(action: str, cache: ConfigCache) -> int:
    """Points *action* is worth under the current settings (never negative)."""
    name = validate_action(action)
    reward = cache.get_int(f"points.{name}", DEFAULT_ACTION_POINTS.get(name, 0))
    return min(max(reward, 0), MAX_POINT_AMOUNT)
