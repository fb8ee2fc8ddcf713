"""
agora.services.leaderboard_service — Leaderboard Generation & Queries
======================================================================

Materializes ranked snapshots for a ``(scope, period)`` pair and serves
them back.

Generation:
  1. Resolve the period window (shared resolver)
  2. Collect activity stats for every active user in one grouped query per
     metric
  3. Score and rank through :mod:`agora.engine.leaderboard`
  4. Upsert the snapshot by (scope, period, window start), replace its
     entries, deactivate every other snapshot of the same
     ``(scope, period)``
  5. Commit

Snapshots are returned as :class:`~agora.engine.leaderboard.Snapshot`
values, never as live ORM rows.
"""

from __future__ import annotations

import dataclasses
import logging
from collections import defaultdict
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.database.models import (
    AdminActionType,
    Leaderboard,
    LeaderboardEntry,
    LeaderboardScope,
    Period,
    User,
    UserAchievement,
)
from agora.engine.leaderboard import (
    Candidate,
    ScopeWeights,
    Snapshot,
    Standing,
    get_user_rank,
    get_users_around_rank,
    rank_candidates,
)
from agora.engine.periods import PeriodWindow, as_utc, resolve_period
from agora.errors import NotFoundError, parse_enum
from agora.services.activity_service import ActivityCounter
from agora.services.admin_service import log_admin_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from agora.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def _earned_by_user(session: Session, user_ids: list[int]) -> dict[int, list[int]]:
    earned: dict[int, list[int]] = defaultdict(list)
    if not user_ids:
        return earned
    rows = session.execute(
        select(UserAchievement.user_id, UserAchievement.achievement_id)
        .where(UserAchievement.user_id.in_(user_ids))
        .order_by(UserAchievement.earned_at, UserAchievement.achievement_id)
    ).all()
    for uid, aid in rows:
        earned[uid].append(aid)
    return earned


def _load_snapshot(session: Session, board: Leaderboard) -> Snapshot:
    rows = session.execute(
        select(LeaderboardEntry, User.name)
        .join(User, User.id == LeaderboardEntry.user_id)
        .where(LeaderboardEntry.leaderboard_id == board.id)
        .order_by(LeaderboardEntry.rank)
    ).all()
    entries = [
        Standing(
            user_id=e.user_id,
            rank=e.rank,
            points=e.points,
            level=e.level,
            stats=dict(e.stats or {}),
            badges=list(e.badges or []),
            achievements=list(e.achievements or []),
            name=name,
        )
        for e, name in rows
    ]
    return Snapshot(
        id=board.id,
        scope=LeaderboardScope(board.scope),
        period=Period(board.period),
        period_start=board.period_start,
        period_end=board.period_end,
        generated_at=board.generated_at,
        is_active=board.is_active,
        entries=entries,
    )


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------
def _find_board(
    session: Session, scope: LeaderboardScope, period: Period, start: datetime,
) -> Leaderboard | None:
    # The window start pins the key; all_time's end moves with *now*.
    return session.scalar(
        select(Leaderboard).where(
            Leaderboard.scope == scope.value,
            Leaderboard.period == period.value,
            Leaderboard.period_start == start,
        )
    )


def _insert_board(
    session: Session, scope: LeaderboardScope, period: Period, window: PeriodWindow,
) -> Leaderboard:
    """Insert the snapshot row, or return the one a concurrent run just inserted."""
    board = Leaderboard(
        scope=scope.value,
        period=period.value,
        period_start=window.start,
        period_end=window.end,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(board)
            session.flush()
    except IntegrityError:
        logger.info(
            "%s/%s snapshot for %s created concurrently; reusing it",
            scope.value, period.value, window.start.isoformat(),
        )
        existing = _find_board(session, scope, period, window.start)
        if existing is None:
            raise
        return existing
    return board


def generate(
    engine: Engine,
    cache: ConfigCache,
    scope: LeaderboardScope | str,
    period: Period | str,
    *,
    generated_by: int | None = None,
    now: datetime | None = None,
) -> Snapshot:
    """Recompute and persist the snapshot for *scope* over *period*.

    Deterministic for a fixed data state: ranks follow score descending,
    then user id ascending.  Re-running for the same window replaces the
    previous entries in place.
    """
    scope = parse_enum(LeaderboardScope, scope, "scope")
    period = parse_enum(Period, period, "period")
    generated_at = as_utc(now)
    window = resolve_period(period, generated_at)
    weights = ScopeWeights.from_cache(cache)

    with Session(engine, expire_on_commit=False) as session:
        users = session.scalars(
            select(User).where(User.is_active.is_(True)).order_by(User.id)
        ).all()
        ids = [u.id for u in users]
        names = {u.id: u.name for u in users}

        counter = ActivityCounter(session, generated_at)
        stats = counter.collect_stats(ids, window)
        period_points = (
            counter.points_earned_in(ids, window)
            if scope is LeaderboardScope.CUSTOM else {}
        )
        earned = _earned_by_user(session, ids)

        candidates = [
            Candidate(
                user_id=u.id,
                points=u.points,
                level=u.level,
                stats=stats[u.id],
                period_points=period_points.get(u.id, 0),
                badges=sorted(earned.get(u.id, [])),
                achievements=list(earned.get(u.id, [])),
            )
            for u in users
        ]
        standings = [
            dataclasses.replace(s, name=names[s.user_id])
            for s in rank_candidates(scope, candidates, weights)
        ]

        board = _find_board(session, scope, period, window.start)
        if board is None:
            board = _insert_board(session, scope, period, window)
        session.execute(
            delete(LeaderboardEntry).where(LeaderboardEntry.leaderboard_id == board.id)
        )
        board.period_end = window.end
        board.total_participants = len(standings)
        board.is_active = True
        board.generated_at = generated_at
        board.generated_by = generated_by
        session.flush()

        session.add_all([
            LeaderboardEntry(
                leaderboard_id=board.id,
                user_id=s.user_id,
                rank=s.rank,
                points=s.points,
                level=s.level,
                stats=s.stats,
                badges=s.badges,
                achievements=s.achievements,
            )
            for s in standings
        ])
        session.execute(
            update(Leaderboard)
            .where(
                Leaderboard.scope == scope.value,
                Leaderboard.period == period.value,
                Leaderboard.id != board.id,
            )
            .values(is_active=False)
        )

        if generated_by is not None:
            log_admin_action(
                session,
                actor_id=generated_by,
                action_type=AdminActionType.LEADERBOARD_GENERATE,
                target_table="leaderboards",
                target_id=board.id,
                before=None,
                after={
                    "scope": scope.value,
                    "period": period.value,
                    "total_participants": len(standings),
                },
            )
        session.commit()
        board_id = board.id

    logger.info(
        "Generated %s/%s leaderboard (id=%d) with %d participants",
        scope.value, period.value, board_id, len(standings),
    )
    return Snapshot(
        id=board_id,
        scope=scope,
        period=period,
        period_start=window.start,
        period_end=window.end,
        generated_at=generated_at,
        is_active=True,
        entries=standings,
    )


def generate_all(
    engine: Engine,
    cache: ConfigCache,
    *,
    now: datetime | None = None,
) -> list[Snapshot]:
    """Regenerate every ``(scope, period)`` snapshot.

    A failure for one key is logged and does not stop the others.
    """
    snapshots: list[Snapshot] = []
    for scope in LeaderboardScope:
        for period in Period:
            try:
                snapshots.append(generate(engine, cache, scope, period, now=now))
            except Exception:
                logger.exception(
                    "Leaderboard generation failed for %s/%s", scope.value, period.value,
                )
    return snapshots


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_current(
    engine: Engine,
    cache: ConfigCache,
    scope: LeaderboardScope | str,
    period: Period | str = Period.ALL_TIME,
) -> Snapshot:
    """The latest active snapshot for *scope*/*period*.

    Generated on first read when none has been materialized yet.
    """
    scope = parse_enum(LeaderboardScope, scope, "scope")
    period = parse_enum(Period, period, "period")

    with Session(engine) as session:
        board = session.scalar(
            select(Leaderboard)
            .where(
                Leaderboard.scope == scope.value,
                Leaderboard.period == period.value,
                Leaderboard.is_active.is_(True),
            )
            .order_by(Leaderboard.generated_at.desc(), Leaderboard.id.desc())
            .limit(1)
        )
        if board is not None:
            return _load_snapshot(session, board)

    logger.info("No %s/%s snapshot yet; generating", scope.value, period.value)
    return generate(engine, cache, scope, period)


def get_user_position(
    engine: Engine,
    cache: ConfigCache,
    user_id: int,
    scope: LeaderboardScope | str,
    period: Period | str = Period.ALL_TIME,
    *,
    radius: int = 2,
) -> dict | None:
    """Where *user_id* stands on the current *scope*/*period* board.

    Returns ``None`` when the user is not on the board (for example a zero
    score on a content scope).

    Raises
    ------
    NotFoundError
        If the user does not exist.
    """
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

    snapshot = get_current(engine, cache, scope, period)
    rank = get_user_rank(snapshot, user_id)
    if rank is None:
        return None

    standing = snapshot.entries[rank - 1]
    return {
        "rank": rank,
        "points": standing.points,
        "level": standing.level,
        "stats": standing.stats,
        "total_participants": snapshot.total_participants,
        "neighbors": get_users_around_rank(snapshot, rank, radius),
    }
