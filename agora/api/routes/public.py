"""
agora.api.routes.public — Read-only public endpoints
=====================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from agora.api.deps import get_cache, get_engine
from agora.constants import RARITY_EMOJI
from agora.database.models import Achievement, Period
from agora.engine.cache import ConfigCache
from agora.engine.leaderboard import Snapshot, Standing, top
from agora.services import achievement_service, leaderboard_service, points_service

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def achievement_dict(a: Achievement) -> dict:
    return {
        "id": a.id,
        "name": a.name,
        "description": a.description,
        "category": a.category,
        "rarity": a.rarity,
        "rarity_emoji": RARITY_EMOJI.get(a.rarity, ""),
        "icon": a.icon,
        "points": a.points,
        "criteria": {
            "metric_type": a.metric_type,
            "threshold": a.threshold,
            "timeframe": a.timeframe,
        },
        "is_hidden": a.is_hidden,
    }


def standing_dict(s: Standing) -> dict:
    return {
        "rank": s.rank,
        "user_id": s.user_id,
        "name": s.name,
        "points": s.points,
        "level": s.level,
        "stats": s.stats,
        "badges": s.badges,
        "achievements": s.achievements,
    }


def snapshot_dict(snapshot: Snapshot, entries: list[Standing]) -> dict:
    return {
        "id": snapshot.id,
        "scope": snapshot.scope.value,
        "period": snapshot.period.value,
        "period_start": snapshot.period_start.isoformat(),
        "period_end": snapshot.period_end.isoformat(),
        "generated_at": snapshot.generated_at.isoformat() if snapshot.generated_at else None,
        "total_participants": snapshot.total_participants,
        "entries": [standing_dict(s) for s in entries],
    }


# ---------------------------------------------------------------------------
# GET /leaderboard/{scope}
# ---------------------------------------------------------------------------
@router.get("/leaderboard/{scope}")
def get_leaderboard(
    scope: str,
    period: str = Query(Period.ALL_TIME.value),
    limit: int | None = Query(None, ge=1, le=500),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """Top of the current leaderboard for *scope* over *period*."""
    snapshot = leaderboard_service.get_current(engine, cache, scope, period)
    if limit is None:
        limit = cache.get_int("leaderboard.default_limit", 10)
    return snapshot_dict(snapshot, top(snapshot, limit))


# ---------------------------------------------------------------------------
# GET /leaderboard/{scope}/users/{user_id}
# ---------------------------------------------------------------------------
@router.get("/leaderboard/{scope}/users/{user_id}")
def get_leaderboard_position(
    scope: str,
    user_id: int,
    period: str = Query(Period.ALL_TIME.value),
    radius: int = Query(2, ge=0, le=25),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
):
    """A user's rank on the board plus the entries around it."""
    position = leaderboard_service.get_user_position(
        engine, cache, user_id, scope, period, radius=radius,
    )
    if position is None:
        return {"user_id": user_id, "scope": scope, "period": period, "position": None}

    neighbors = position.pop("neighbors")
    return {
        "user_id": user_id,
        "scope": scope,
        "period": period,
        "position": position,
        "neighbors": [standing_dict(s) for s in neighbors],
    }


# ---------------------------------------------------------------------------
# GET /users/{user_id}/gamification
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/gamification")
def get_user_gamification(user_id: int, engine: Engine = Depends(get_engine)):
    return points_service.get_user_gamification_stats(engine, user_id)


@router.get("/users/{user_id}/achievements")
def get_user_achievements(user_id: int, engine: Engine = Depends(get_engine)):
    return achievement_service.get_user_achievements(engine, user_id)


# ---------------------------------------------------------------------------
# Achievement catalogue
# ---------------------------------------------------------------------------
@router.get("/achievements")
def list_achievements(
    category: str | None = None,
    rarity: str | None = None,
    engine: Engine = Depends(get_engine),
):
    rows = achievement_service.list_achievements(engine, category=category, rarity=rarity)
    return [achievement_dict(a) for a in rows]


@router.get("/achievements/categories")
def list_achievement_categories(engine: Engine = Depends(get_engine)):
    return achievement_service.get_achievement_categories(engine)


@router.get("/achievements/rarities")
def list_achievement_rarities(engine: Engine = Depends(get_engine)):
    return [
        {"rarity": r, "emoji": RARITY_EMOJI.get(r, "")}
        for r in achievement_service.get_achievement_rarities(engine)
    ]
