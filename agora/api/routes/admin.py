"""
agora.api.routes.admin — Admin gamification endpoints
======================================================
Every endpoint requires a bearer JWT with ``is_admin``; the token's
numeric ``sub`` is recorded as the actor in ``admin_log``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from agora.api.deps import get_cache, get_current_admin, get_engine
from agora.api.routes.public import achievement_dict, snapshot_dict
from agora.constants import MAX_POINT_AMOUNT
from agora.database.models import AchievementRarity, Period
from agora.engine.cache import ConfigCache
from agora.engine.leaderboard import top
from agora.services import (
    achievement_service,
    admin_service,
    leaderboard_service,
    points_service,
    settings_service,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BonusAward(BaseModel):
    amount: int = Field(ge=0, le=MAX_POINT_AMOUNT)
    reason: str = Field(min_length=1, max_length=500)


class AchievementCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    category: str
    rarity: str = AchievementRarity.COMMON.value
    icon: str | None = None
    points: int = Field(0, ge=0, le=MAX_POINT_AMOUNT)
    metric_type: str
    threshold: int = Field(1, ge=1)
    timeframe: str = Period.ALL_TIME.value
    is_hidden: bool = False


class SettingItem(BaseModel):
    key: str
    value: Any
    category: str | None = None
    description: str | None = None


class SettingsBulk(BaseModel):
    settings: list[SettingItem]


# ---------------------------------------------------------------------------
# Leaderboards
# ---------------------------------------------------------------------------
@router.post("/leaderboard/{scope}/generate")
def generate_leaderboard(
    scope: str,
    period: str = Query(Period.ALL_TIME.value),
    limit: int = Query(10, ge=1, le=500),
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    admin: dict = Depends(get_current_admin),
):
    """Force regeneration of one (scope, period) board."""
    snapshot = leaderboard_service.generate(
        engine, cache, scope, period, generated_by=admin["admin_id"],
    )
    return snapshot_dict(snapshot, top(snapshot, limit))


# ---------------------------------------------------------------------------
# User gamification
# ---------------------------------------------------------------------------
@router.post("/users/{user_id}/bonus")
def award_bonus(
    user_id: int,
    body: BonusAward,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    result = points_service.award_bonus_points(
        engine, user_id, body.reason, body.amount, admin_id=admin["admin_id"],
    )
    return {
        "points_awarded": result.points_awarded,
        "total_points": result.total_points,
        "level": result.level,
        "leveled_up": result.leveled_up,
    }


@router.post("/users/{user_id}/reset")
def reset_user(
    user_id: int,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    logger.warning("Admin %d requested gamification reset for user %d", admin["admin_id"], user_id)
    return points_service.reset_user_gamification(engine, user_id, admin["admin_id"])


@router.post("/users/{user_id}/achievements/{achievement_id}")
def grant_achievement(
    user_id: int,
    achievement_id: int,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    achievement = achievement_service.grant_achievement(
        engine,
        user_id=user_id,
        achievement_id=achievement_id,
        admin_id=admin["admin_id"],
    )
    return {"granted": True, "achievement": achievement_dict(achievement)}


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------
@router.get("/achievements")
def list_all_achievements(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    """Every active achievement, hidden ones included."""
    rows = achievement_service.list_achievements(engine, include_hidden=True)
    return [achievement_dict(a) for a in rows]


@router.post("/achievements", status_code=201)
def create_achievement(
    body: AchievementCreate,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    admin: dict = Depends(get_current_admin),
):
    achievement = achievement_service.create_achievement(
        engine, cache, admin_id=admin["admin_id"], **body.model_dump(),
    )
    return achievement_dict(achievement)


@router.get("/analytics")
def get_analytics(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return achievement_service.get_gamification_analytics(engine)


# ---------------------------------------------------------------------------
# Settings & audit
# ---------------------------------------------------------------------------
@router.get("/settings")
def list_settings(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return settings_service.get_all_settings(engine)


@router.put("/settings")
def update_settings(
    body: SettingsBulk,
    engine: Engine = Depends(get_engine),
    cache: ConfigCache = Depends(get_cache),
    admin: dict = Depends(get_current_admin),
):
    items = [item.model_dump(exclude_none=True) for item in body.settings]
    for item, raw in zip(items, body.settings):
        item["value"] = raw.value
    count = settings_service.bulk_upsert(engine, cache, items, actor_id=admin["admin_id"])
    return {"updated": count}


@router.get("/audit")
def get_audit_log(
    target_table: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    rows = admin_service.get_audit_log(engine, target_table=target_table, limit=limit)
    return [
        {
            "id": r.id,
            "actor_id": r.actor_id,
            "action_type": r.action_type,
            "target_table": r.target_table,
            "target_id": r.target_id,
            "before": r.before_snapshot,
            "after": r.after_snapshot,
            "reason": r.reason,
            "timestamp": r.timestamp.isoformat() if r.timestamp else None,
        }
        for r in rows
    ]
