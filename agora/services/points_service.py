"""
agora.services.points_service — Points Ledger
==============================================

Owns every change to a user's ``points`` and ``level``.  Callable by the
content write paths of the wider platform and by the admin API.

Every change:
  1. Locks the user row (``SELECT … FOR UPDATE``) so concurrent awards to
     the same user serialize
  2. Adds the delta and recomputes the level with
     :func:`~agora.constants.calculate_level`
  3. Appends a ``points_transactions`` journal row
  4. Commits

Content awards then run achievement evaluation; bonus awards do not.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from agora.constants import (
    calculate_level,
    calculate_points_to_next_level,
    get_level_progress,
)
from agora.database.models import (
    AdminActionType,
    PointsTransaction,
    TransactionKind,
    User,
    UserAchievement,
)
from agora.engine.points import AwardResult, reward_for_action, validate_action, validate_amount
from agora.errors import NotFoundError, ValidationError
from agora.services.admin_service import log_admin_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from agora.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal ledger primitives (shared with achievement_service)
# ---------------------------------------------------------------------------
def lock_user(session: Session, user_id: int) -> User:
    """Load *user_id* with a row lock held until the transaction ends."""
    user = session.scalar(select(User).where(User.id == user_id).with_for_update())
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def credit_points(
    session: Session,
    user: User,
    amount: int,
    *,
    kind: TransactionKind,
    action: str | None = None,
    reason: str | None = None,
    metadata: dict | None = None,
) -> bool:
    """Add *amount* to *user*, recompute the level and journal the change.

    Does not commit and never triggers achievement evaluation.
    Returns True when the level went up.
    """
    old_level = user.level
    user.points += amount
    user.level = calculate_level(user.points)
    session.add(PointsTransaction(
        user_id=user.id,
        kind=kind.value,
        action=action,
        delta=amount,
        balance_after=user.points,
        reason=reason,
        metadata_=metadata,
    ))
    return user.level > old_level


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------
def award_points(
    engine: Engine,
    cache: ConfigCache,
    user_id: int,
    action: str,
) -> AwardResult:
    """Award the configured reward for *action* to *user_id*.

    Unknown actions are worth zero points and change nothing.  A positive
    award is followed by achievement evaluation; points credited by newly
    earned achievements are included in the returned totals.

    Raises
    ------
    NotFoundError
        If the user does not exist.
    ValidationError
        If *action* is malformed.
    """
    action = validate_action(action)
    amount = reward_for_action(action, cache)

    with Session(engine) as session:
        user = lock_user(session, user_id)
        old_level = user.level
        if amount <= 0:
            return AwardResult(total_points=user.points, level=user.level)

        credit_points(session, user, amount, kind=TransactionKind.ACTION, action=action)
        session.commit()

    logger.info("Awarded %d points to user %d for %s", amount, user_id, action)

    from agora.services.achievement_service import check_and_award_achievements

    achievements = check_and_award_achievements(engine, cache, user_id)

    with Session(engine) as session:
        user = session.get(User, user_id)
        return AwardResult(
            points_awarded=amount,
            total_points=user.points,
            level=user.level,
            leveled_up=user.level > old_level,
            achievements=achievements,
        )


def award_bonus_points(
    engine: Engine,
    user_id: int,
    reason: str,
    amount: int,
    *,
    admin_id: int | None = None,
) -> AwardResult:
    """Credit a bonus of *amount* points.  Does not evaluate achievements.

    Raises
    ------
    ValidationError
        If *amount* is negative, above ``MAX_POINT_AMOUNT`` or not an int,
        or *reason* is empty.
    NotFoundError
        If the user does not exist.
    """
    amount = validate_amount(amount)
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for bonus points")

    with Session(engine) as session:
        user = lock_user(session, user_id)
        if amount == 0:
            return AwardResult(total_points=user.points, level=user.level)

        before = {"points": user.points, "level": user.level}
        leveled_up = credit_points(
            session, user, amount,
            kind=TransactionKind.BONUS,
            reason=reason,
            metadata={"admin_id": admin_id} if admin_id is not None else None,
        )
        if admin_id is not None:
            log_admin_action(
                session,
                actor_id=admin_id,
                action_type=AdminActionType.BONUS_AWARD,
                target_table="users",
                target_id=user_id,
                before=before,
                after={"points": user.points, "level": user.level},
                reason=reason,
            )
        session.commit()

        logger.info("Bonus of %d points to user %d: %s", amount, user_id, reason)
        return AwardResult(
            points_awarded=amount,
            total_points=user.points,
            level=user.level,
            leveled_up=leveled_up,
        )


def reset_user_gamification(engine: Engine, user_id: int, admin_id: int) -> dict:
    """Zero a user's points, drop back to level 1 and remove every achievement.

    The reset is journaled and recorded in ``admin_log``.  Returns the
    user's gamification stats after the reset.
    """
    with Session(engine) as session:
        user = lock_user(session, user_id)
        earned = sorted(session.scalars(
            select(UserAchievement.achievement_id)
            .where(UserAchievement.user_id == user_id)
        ).all())
        before = {"points": user.points, "level": user.level, "achievements": earned}

        session.execute(delete(UserAchievement).where(UserAchievement.user_id == user_id))
        session.add(PointsTransaction(
            user_id=user_id,
            kind=TransactionKind.RESET.value,
            delta=-user.points,
            balance_after=0,
            reason="Gamification reset",
            metadata_={"admin_id": admin_id},
        ))
        user.points = 0
        user.level = calculate_level(0)

        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.GAMIFICATION_RESET,
            target_table="users",
            target_id=user_id,
            before=before,
            after={"points": 0, "level": 1, "achievements": []},
        )
        session.commit()

    logger.info("Gamification reset for user %d by admin %d", user_id, admin_id)
    return get_user_gamification_stats(engine, user_id)


def get_user_gamification_stats(engine: Engine, user_id: int) -> dict:
    """Points, level, badges, earned achievements and level progress."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        achievements = [
            {
                "id": ua.achievement.id,
                "name": ua.achievement.name,
                "icon": ua.achievement.icon,
                "rarity": ua.achievement.rarity,
                "points": ua.achievement.points,
                "earned_at": ua.earned_at,
            }
            for ua in user.achievements
        ]
        return {
            "user_id": user.id,
            "name": user.name,
            "points": user.points,
            "level": user.level,
            "badges": sorted(user.badges),
            "achievements": achievements,
            "points_to_next_level": calculate_points_to_next_level(user.points),
            "level_progress": get_level_progress(user.points),
        }
