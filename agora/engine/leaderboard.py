"""
agora.engine.leaderboard — Leaderboard Scoring & Ranking
=========================================================

Pure functions that turn per-user activity into a ranked snapshot.

Scoring is a handler registry keyed by :class:`LeaderboardScope`; each
handler maps a :class:`Candidate` and the configured :class:`ScopeWeights`
to an integer score.  Ranking is a total order (score descending, then
user id ascending) so two generations over the same data always produce
the same ranks.

No database access happens in this module; the
:mod:`agora.services.leaderboard_service` gathers the candidates and
persists the result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import TYPE_CHECKING

from agora.database.models import LeaderboardScope, Period

if TYPE_CHECKING:
    from agora.engine.cache import ConfigCache


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ActivityStats:
    """Per-user activity counts inside the snapshot's window."""

    articles_created: int = 0
    forum_posts: int = 0
    forum_replies: int = 0
    events_attended: int = 0
    events_created: int = 0
    likes_received: int = 0
    days_active: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True)
class Candidate:
    """Everything the scope handlers need to score one user."""

    user_id: int
    points: int
    level: int
    stats: ActivityStats = field(default_factory=ActivityStats)
    period_points: int = 0
    badges: list[int] = field(default_factory=list)
    achievements: list[int] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ScopeWeights:
    """Per-unit score multipliers for the content scopes."""

    article: int = 10
    forum_post: int = 5
    forum_reply: int = 3
    event_attend: int = 8
    event_create: int = 15
    like: int = 2

    @classmethod
    def from_cache(cls, cache: ConfigCache) -> ScopeWeights:
        """Weights from ``leaderboard.weight.*`` settings, negatives clamped to 0."""
        defaults = cls()
        weights = {}
        for f in fields(cls):
            value = cache.get_int(f"leaderboard.weight.{f.name}", getattr(defaults, f.name))
            weights[f.name] = max(value, 0)
        return cls(**weights)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Standing:
    """One ranked row of a snapshot."""

    user_id: int
    rank: int
    points: int
    level: int
    stats: dict[str, int]
    badges: list[int]
    achievements: list[int]
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """A materialized leaderboard for one (scope, period, window) key."""

    id: int | None
    scope: LeaderboardScope
    period: Period
    period_start: datetime
    period_end: datetime
    generated_at: datetime | None
    is_active: bool
    entries: list[Standing]

    @property
    def total_participants(self) -> int:
        return len(self.entries)


# ---------------------------------------------------------------------------
# Scope handlers — (candidate, weights) → score
# ---------------------------------------------------------------------------
ScopeHandler = Callable[[Candidate, ScopeWeights], int]


def _score_overall(c: Candidate, w: ScopeWeights) -> int:
    return c.points


def _score_articles(c: Candidate, w: ScopeWeights) -> int:
    return c.stats.articles_created * w.article


def _score_forums(c: Candidate, w: ScopeWeights) -> int:
    return c.stats.forum_posts * w.forum_post + c.stats.forum_replies * w.forum_reply


def _score_events(c: Candidate, w: ScopeWeights) -> int:
    return c.stats.events_attended * w.event_attend + c.stats.events_created * w.event_create


def _score_engagement(c: Candidate, w: ScopeWeights) -> int:
    return c.stats.likes_received * w.like


def _score_custom(c: Candidate, w: ScopeWeights) -> int:
    return c.period_points


SCOPE_HANDLERS: dict[LeaderboardScope, ScopeHandler] = {
    LeaderboardScope.OVERALL: _score_overall,
    LeaderboardScope.ARTICLES: _score_articles,
    LeaderboardScope.FORUMS: _score_forums,
    LeaderboardScope.EVENTS: _score_events,
    LeaderboardScope.ENGAGEMENT: _score_engagement,
    LeaderboardScope.CUSTOM: _score_custom,
}


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def rank_candidates(
    scope: LeaderboardScope,
    candidates: Iterable[Candidate],
    weights: ScopeWeights | None = None,
) -> list[Standing]:
    """Score, filter and rank *candidates* for *scope*.

    A candidate is included when its score is positive, or always for the
    ``overall`` scope.  Ordering is score descending, then user id
    ascending; ``rank`` is the 1-based position in that order.
    """
    weights = weights or ScopeWeights()
    handler = SCOPE_HANDLERS[scope]

    scored: list[tuple[int, Candidate]] = []
    for candidate in candidates:
        score = handler(candidate, weights)
        if score > 0 or scope is LeaderboardScope.OVERALL:
            scored.append((score, candidate))

    scored.sort(key=lambda pair: (-pair[0], pair[1].user_id))

    return [
        Standing(
            user_id=c.user_id,
            rank=i + 1,
            points=score,
            level=c.level,
            stats=c.stats.as_dict(),
            badges=list(c.badges),
            achievements=list(c.achievements),
        )
        for i, (score, c) in enumerate(scored)
    ]


# ---------------------------------------------------------------------------
# Queries over a snapshot
# ---------------------------------------------------------------------------
def get_user_rank(snapshot: Snapshot, user_id: int) -> int | None:
    """Rank of *user_id* in *snapshot*, or ``None`` if absent."""
    for standing in snapshot.entries:
        if standing.user_id == user_id:
            return standing.rank
    return None


def get_users_around_rank(snapshot: Snapshot, rank: int, radius: int = 2) -> list[Standing]:
    """Entries whose rank lies in ``[rank - radius, rank + radius]``, clamped."""
    start = max(0, rank - radius - 1)
    end = min(len(snapshot.entries), rank + radius)
    if start >= end:
        return []
    return snapshot.entries[start:end]


def top(snapshot: Snapshot, limit: int) -> list[Standing]:
    """First *limit* entries of *snapshot*."""
    return snapshot.entries[:max(limit, 0)]
