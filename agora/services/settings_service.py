"""
agora.services.settings_service — Gameplay Settings Reads & Writes
===================================================================

Typed read/write access to the ``settings`` table (points per action,
leaderboard scope weights).  Every write reloads the settings partition of
the :class:`~agora.engine.cache.ConfigCache` so the next award sees the
new value.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import AdminActionType, Setting
from agora.services.admin_service import log_admin_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from agora.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def _decode(value_json: str) -> Any:
    try:
        return json.loads(value_json)
    except (json.JSONDecodeError, TypeError):
        return value_json


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_all_settings(engine: Engine) -> list[dict]:
    """Every setting, ordered by category then key, with decoded values."""
    with Session(engine) as session:
        rows = session.scalars(
            select(Setting).order_by(Setting.category, Setting.key)
        ).all()
        return [
            {
                "key": r.key,
                "value": _decode(r.value_json),
                "category": r.category,
                "description": r.description,
            }
            for r in rows
        ]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def bulk_upsert(
    engine: Engine,
    cache: ConfigCache,
    settings: list[dict],
    *,
    actor_id: int,
) -> int:
    """Upsert many settings at once.

    Each dict should have at least ``key`` and ``value``.
    Optional: ``category``, ``description``.

    Every change that actually alters a row is recorded in ``admin_log``
    with before/after snapshots.  Returns the number of rows touched.
    """
    count = 0
    with Session(engine) as session:
        for item in settings:
            key = item["key"]
            existing = session.get(Setting, key)

            before: dict | None = None
            if existing:
                before = {
                    "key": existing.key,
                    "value": _decode(existing.value_json),
                    "category": existing.category,
                    "description": existing.description,
                }
                existing.value_json = json.dumps(item["value"])
                if "category" in item:
                    existing.category = item["category"]
                if "description" in item:
                    existing.description = item["description"]
            else:
                existing = Setting(
                    key=key,
                    value_json=json.dumps(item["value"]),
                    category=item.get("category", "general"),
                    description=item.get("description"),
                )
                session.add(existing)

            after = {
                "key": key,
                "value": item["value"],
                "category": existing.category,
                "description": existing.description,
            }
            if before != after:
                log_admin_action(
                    session,
                    actor_id=actor_id,
                    action_type=AdminActionType.UPDATE if before else AdminActionType.CREATE,
                    target_table="settings",
                    target_id=key,
                    before=before,
                    after=after,
                )
            count += 1
        session.commit()

    cache.handle_notify("settings")
    logger.info("Upserted %d settings (actor=%d)", count, actor_id)
    return count
