"""
agora.engine.periods — Period Window Resolution
================================================

The one place that turns a :class:`~agora.database.models.Period` into a
concrete ``[start, end)`` window.  Achievement timeframes, activity counts
and leaderboard generation all resolve through :func:`resolve_period` so
the three can never disagree about what "this week" means.

All windows are anchored at *now* in UTC:

- ``daily``    — today 00:00 → tomorrow 00:00
- ``weekly``   — most recent Sunday 00:00 → the following Sunday
- ``monthly``  — the 1st of this month → the 1st of next month
- ``yearly``   — Jan 1 → Jan 1 of next year
- ``all_time`` — the Unix epoch → *now*
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import NamedTuple

from agora.database.models import Period
from agora.errors import parse_enum

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class PeriodWindow(NamedTuple):
    start: datetime
    end: datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(now: datetime | None) -> datetime:
    if now is None:
        return utcnow()
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


def resolve_period(period: Period | str, now: datetime | None = None) -> PeriodWindow:
    """Return the ``[start, end)`` window for *period* anchored at *now*.

    Raises :class:`~agora.errors.ValidationError` for unknown period names.
    """
    period = parse_enum(Period, period, "period")
    now = as_utc(now)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if period is Period.DAILY:
        return PeriodWindow(midnight, midnight + timedelta(days=1))

    if period is Period.WEEKLY:
        # Python weekdays are Monday=0; weeks here start on Sunday.
        days_since_sunday = (midnight.weekday() + 1) % 7
        start = midnight - timedelta(days=days_since_sunday)
        return PeriodWindow(start, start + timedelta(days=7))

    if period is Period.MONTHLY:
        start = midnight.replace(day=1)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return PeriodWindow(start, end)

    if period is Period.YEARLY:
        start = midnight.replace(month=1, day=1)
        return PeriodWindow(start, start.replace(year=start.year + 1))

    return PeriodWindow(EPOCH, now)
