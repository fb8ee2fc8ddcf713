"""
agora.engine.achievements — Achievement Criteria Evaluation
============================================================

Handler-registry evaluation of an achievement's ``(metric_type, threshold,
timeframe)`` criteria.  Each :class:`MetricType` maps to one handler that
measures the metric for the user; the criteria hold when the measured
value reaches the threshold.

Content metrics are measured through an
:class:`~agora.services.activity_service.ActivityCounter`; ``points_earned``
and ``level_reached`` read the user's stored totals from the context.
``custom`` achievements are granted by admins only and never fire here.

No database writes happen in this module.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agora.database.models import MetricType, Period
from agora.errors import parse_enum

if TYPE_CHECKING:
    from agora.database.models import Achievement
    from agora.services.activity_service import ActivityCounter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Achievement Context — passed to every metric handler
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AchievementContext:
    """Snapshot of user state passed to metric handlers.

    Parameters
    ----------
    user_id : The user being evaluated.
    points : Cumulative points as currently stored.
    level : Current level as currently stored.
    earned : Achievement ids the user already holds.
    """

    user_id: int
    points: int = 0
    level: int = 1
    earned: frozenset[int] = field(default_factory=frozenset)


MetricHandler = Callable[[AchievementContext, "ActivityCounter", Period], int]


# ---------------------------------------------------------------------------
# Metric handlers — (ctx, counter, timeframe) → measured value
# ---------------------------------------------------------------------------
def _activity(metric: MetricType) -> MetricHandler:
    """Handler that delegates a content metric to the activity counter."""

    def handler(ctx: AchievementContext, counter: ActivityCounter, timeframe: Period) -> int:
        return counter.count(ctx.user_id, metric, timeframe)

    handler.__name__ = f"_count_{metric.value}"
    return handler


def _points_earned(ctx: AchievementContext, counter: ActivityCounter, timeframe: Period) -> int:
    return ctx.points


def _level_reached(ctx: AchievementContext, counter: ActivityCounter, timeframe: Period) -> int:
    return ctx.level


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------
METRIC_HANDLERS: dict[MetricType, MetricHandler] = {
    MetricType.ARTICLE_COUNT: _activity(MetricType.ARTICLE_COUNT),
    MetricType.FORUM_POSTS: _activity(MetricType.FORUM_POSTS),
    MetricType.FORUM_REPLIES: _activity(MetricType.FORUM_REPLIES),
    MetricType.EVENT_ATTENDANCE: _activity(MetricType.EVENT_ATTENDANCE),
    MetricType.EVENT_CREATION: _activity(MetricType.EVENT_CREATION),
    MetricType.LIKES_RECEIVED: _activity(MetricType.LIKES_RECEIVED),
    MetricType.DAYS_ACTIVE: _activity(MetricType.DAYS_ACTIVE),
    MetricType.POINTS_EARNED: _points_earned,
    MetricType.LEVEL_REACHED: _level_reached,
    # MetricType.CUSTOM is admin-granted only
}

MANUAL_METRICS: frozenset[MetricType] = frozenset({MetricType.CUSTOM})


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def measure(
    achievement: Achievement,
    ctx: AchievementContext,
    counter: ActivityCounter,
) -> int | None:
    """Measure the achievement's metric for the user.

    Returns ``None`` for metrics that are never auto-evaluated.
    Raises :class:`~agora.errors.ValidationError` for malformed criteria.
    """
    metric = parse_enum(MetricType, achievement.metric_type, "metric type")
    timeframe = parse_enum(Period, achievement.timeframe, "timeframe")
    handler = METRIC_HANDLERS.get(metric)
    if handler is None:
        return None
    return handler(ctx, counter, timeframe)


def check_criteria(
    achievement: Achievement,
    ctx: AchievementContext,
    counter: ActivityCounter,
) -> bool:
    """True iff the measured metric is at least the achievement's threshold."""
    value = measure(achievement, ctx, counter)
    if value is None:
        return False
    return value >= achievement.threshold


def check_achievements(
    achievements: Iterable[Achievement],
    ctx: AchievementContext,
    counter: ActivityCounter,
    *,
    guard: Callable[[], AbstractContextManager] = nullcontext,
) -> list[Achievement]:
    """Return the achievements the user newly qualifies for.

    Already-earned achievements are skipped before any measurement.  A
    failure while evaluating one achievement is logged and does not stop
    evaluation of the others.  Each evaluation runs inside ``guard()``;
    the service passes ``session.begin_nested`` so a failed count rolls
    back to its own SAVEPOINT and leaves the transaction usable.
    """
    newly_qualified: list[Achievement] = []

    for achievement in achievements:
        if achievement.id in ctx.earned:
            continue

        try:
            with guard():
                qualified = check_criteria(achievement, ctx, counter)
        except Exception:
            logger.exception(
                "Criteria check failed for achievement %s (id=%d), user %d",
                achievement.name, achievement.id, ctx.user_id,
            )
            continue

        if qualified:
            newly_qualified.append(achievement)
            logger.info(
                "Achievement criteria met: %s (id=%d) for user %d",
                achievement.name, achievement.id, ctx.user_id,
            )

    return newly_qualified
