"""
agora.services.admin_service — Admin Audit Helpers
===================================================

Every admin mutation (bonus awards, resets, manual grants, achievement
creation, forced leaderboard generation) writes an ``admin_log`` row inside
the same transaction as the change itself:

  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit
  6. Reload the affected :class:`~agora.engine.cache.ConfigCache` partition
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import AdminActionType, AdminLog

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from agora.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------
def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key if col.key != "metadata" else "metadata_", None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: AdminActionType | str,
    target_table: str,
    target_id: str | int | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=str(action_type),
        target_table=target_table,
        target_id=None if target_id is None else str(target_id),
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def audited_create(
    engine: Engine,
    row: Any,
    *,
    table_name: str,
    actor_id: int,
    cache: ConfigCache | None = None,
) -> Any:
    """Audited CREATE: add -> flush -> log -> commit -> reload cache -> return.

    Parameters
    ----------
    row : ORM instance (already constructed, not yet added to a session).
    """
    with Session(engine, expire_on_commit=False) as session:
        session.add(row)
        session.flush()
        log_admin_action(
            session,
            actor_id=actor_id,
            action_type=AdminActionType.CREATE,
            target_table=table_name,
            target_id=row.id,
            before=None,
            after=row_to_dict(row),
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)

    if cache is not None:
        cache.handle_notify(table_name)
    return row


# ---------------------------------------------------------------------------
# Audit log reads
# ---------------------------------------------------------------------------
def get_audit_log(
    engine: Engine,
    *,
    target_table: str | None = None,
    actor_id: int | None = None,
    limit: int = 50,
) -> list[AdminLog]:
    """Most recent admin_log rows, newest first, optionally filtered."""
    with Session(engine) as session:
        stmt = select(AdminLog).order_by(AdminLog.timestamp.desc(), AdminLog.id.desc())
        if target_table:
            stmt = stmt.where(AdminLog.target_table == target_table)
        if actor_id is not None:
            stmt = stmt.where(AdminLog.actor_id == actor_id)
        rows = session.scalars(stmt.limit(limit)).all()
        for r in rows:
            session.expunge(r)
        return list(rows)
