"""
agora.services.achievement_service — Achievement Evaluation, Grants & Catalogue
================================================================================

Evaluates achievement criteria against a user's activity, grants newly
qualifying achievements and credits their reward through the points
ledger.  Also hosts the admin catalogue operations (create, manual grant)
and the read-side catalogue and analytics queries.

Grants insert ``user_achievements`` inside a SAVEPOINT; the composite
primary key turns a concurrent duplicate grant into a no-op.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.constants import RARITY_ORDER
from agora.database.models import (
    Achievement,
    AchievementCategory,
    AchievementRarity,
    AdminActionType,
    MetricType,
    Period,
    TransactionKind,
    User,
    UserAchievement,
)
from agora.engine import achievements as criteria
from agora.engine.achievements import AchievementContext, check_achievements
from agora.engine.points import validate_amount
from agora.errors import ConflictError, NotFoundError, ValidationError, parse_enum
from agora.services.activity_service import ActivityCounter
from agora.services.admin_service import audited_create, log_admin_action
from agora.services.points_service import credit_points, lock_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from agora.engine.cache import ConfigCache

logger = logging.getLogger(__name__)


def get_earned_achievement_ids(session: Session, user_id: int) -> set[int]:
    """Ids of every achievement *user_id* holds."""
    return set(session.scalars(
        select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
    ).all())


def _context_for(session: Session, user: User) -> AchievementContext:
    return AchievementContext(
        user_id=user.id,
        points=user.points,
        level=user.level,
        earned=frozenset(get_earned_achievement_ids(session, user.id)),
    )


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------
def check_criteria(
    engine: Engine,
    achievement: Achievement,
    user_id: int,
    *,
    now: datetime | None = None,
) -> bool:
    """True iff *user_id* currently meets *achievement*'s criteria."""
    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        ctx = _context_for(session, user)
        return criteria.check_criteria(achievement, ctx, ActivityCounter(session, now))


def check_and_award_achievements(
    engine: Engine,
    cache: ConfigCache,
    user_id: int,
    *,
    now: datetime | None = None,
) -> list[Achievement]:
    """Grant every active, visible achievement *user_id* newly qualifies for.

    Each grant inserts the ``user_achievements`` row and credits the reward
    in the same transaction.  Rewards never trigger another evaluation
    round.  Returns exactly the achievements granted by this call.
    """
    with Session(engine) as session:
        user = lock_user(session, user_id)
        ctx = _context_for(session, user)
        counter = ActivityCounter(session, now)

        qualified = check_achievements(
            cache.get_active_achievements(), ctx, counter, guard=session.begin_nested,
        )

        granted: list[Achievement] = []
        for achievement in qualified:
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(UserAchievement(
                        user_id=user_id,
                        achievement_id=achievement.id,
                    ))
                    session.flush()
            except IntegrityError:
                # Granted concurrently; the SAVEPOINT was rolled back.
                logger.debug(
                    "Achievement %d already held by user %d", achievement.id, user_id,
                )
                continue

            credit_points(
                session, user, achievement.points,
                kind=TransactionKind.ACHIEVEMENT,
                reason=f"Achievement earned: {achievement.name}",
                metadata={"achievement_id": achievement.id},
            )
            granted.append(achievement)

        session.commit()

    for achievement in granted:
        logger.info(
            "User %d earned achievement %s (id=%d, +%d points)",
            user_id, achievement.name, achievement.id, achievement.points,
        )
    return granted


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------
def grant_achievement(
    engine: Engine,
    *,
    user_id: int,
    achievement_id: int,
    admin_id: int,
) -> Achievement:
    """Grant *achievement_id* to *user_id* regardless of its criteria.

    Raises
    ------
    NotFoundError
        If the user or achievement does not exist.
    ConflictError
        If the user already holds the achievement.
    """
    with Session(engine, expire_on_commit=False) as session:
        user = lock_user(session, user_id)
        achievement = session.get(Achievement, achievement_id)
        if achievement is None:
            raise NotFoundError(f"Achievement {achievement_id} not found")
        if session.get(UserAchievement, (user_id, achievement_id)) is not None:
            raise ConflictError(
                f"User {user_id} has already earned achievement {achievement.name!r}"
            )

        before = {"points": user.points, "level": user.level}
        session.add(UserAchievement(
            user_id=user_id,
            achievement_id=achievement_id,
            granted_by=admin_id,
        ))
        credit_points(
            session, user, achievement.points,
            kind=TransactionKind.ACHIEVEMENT,
            reason=f"Achievement granted: {achievement.name}",
            metadata={"achievement_id": achievement.id, "admin_id": admin_id},
        )
        log_admin_action(
            session,
            actor_id=admin_id,
            action_type=AdminActionType.ACHIEVEMENT_GRANT,
            target_table="user_achievements",
            target_id=f"{user_id}:{achievement_id}",
            before=before,
            after={"points": user.points, "level": user.level},
        )
        session.commit()
        session.expunge(achievement)

    logger.info(
        "Admin %d granted achievement %s to user %d", admin_id, achievement.name, user_id,
    )
    return achievement


def create_achievement(
    engine: Engine,
    cache: ConfigCache,
    *,
    name: str,
    description: str,
    category: str,
    metric_type: str,
    threshold: int,
    admin_id: int,
    rarity: str = AchievementRarity.COMMON.value,
    timeframe: str = Period.ALL_TIME.value,
    points: int = 0,
    icon: str | None = None,
    is_hidden: bool = False,
) -> Achievement:
    """Validate and insert a new achievement, audited.

    Raises
    ------
    ValidationError
        For unknown enum values, an empty name, ``threshold < 1`` or an
        out-of-range reward.
    ConflictError
        If the name is already taken.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Achievement name must not be empty")
    category = parse_enum(AchievementCategory, category, "category")
    rarity = parse_enum(AchievementRarity, rarity, "rarity")
    metric_type = parse_enum(MetricType, metric_type, "metric type")
    timeframe = parse_enum(Period, timeframe, "timeframe")
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 1:
        raise ValidationError("Threshold must be an integer of at least 1")
    points = validate_amount(points)

    with Session(engine) as session:
        taken = session.scalar(select(Achievement.id).where(Achievement.name == name))
    if taken is not None:
        raise ConflictError(f"An achievement named {name!r} already exists")

    row = Achievement(
        name=name,
        description=description or "",
        category=category.value,
        rarity=rarity.value,
        icon=icon,
        points=points,
        metric_type=metric_type.value,
        threshold=threshold,
        timeframe=timeframe.value,
        is_hidden=is_hidden,
        created_by=admin_id,
    )
    try:
        created = audited_create(
            engine, row, table_name="achievements", actor_id=admin_id, cache=cache,
        )
    except IntegrityError as exc:
        raise ConflictError(f"An achievement named {name!r} already exists") from exc

    logger.info("Achievement %s (id=%d) created by admin %d", name, created.id, admin_id)
    return created


# ---------------------------------------------------------------------------
# Catalogue reads
# ---------------------------------------------------------------------------
def list_achievements(
    engine: Engine,
    *,
    category: str | None = None,
    rarity: str | None = None,
    include_hidden: bool = False,
) -> list[Achievement]:
    """Active achievements, optionally filtered, cheapest reward first."""
    stmt = select(Achievement).where(Achievement.is_active.is_(True))
    if category:
        stmt = stmt.where(
            Achievement.category == parse_enum(AchievementCategory, category, "category").value
        )
    if rarity:
        stmt = stmt.where(
            Achievement.rarity == parse_enum(AchievementRarity, rarity, "rarity").value
        )
    if not include_hidden:
        stmt = stmt.where(Achievement.is_hidden.is_(False))

    with Session(engine) as session:
        rows = session.scalars(stmt.order_by(Achievement.points, Achievement.id)).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def get_achievement_categories(engine: Engine) -> list[str]:
    """Distinct categories among active achievements."""
    with Session(engine) as session:
        return sorted(session.scalars(
            select(Achievement.category)
            .where(Achievement.is_active.is_(True))
            .distinct()
        ).all())


def get_achievement_rarities(engine: Engine) -> list[str]:
    """Distinct rarities among active achievements, common first."""
    with Session(engine) as session:
        found = set(session.scalars(
            select(Achievement.rarity)
            .where(Achievement.is_active.is_(True))
            .distinct()
        ).all())
    return [r for r in RARITY_ORDER if r in found]


def get_user_achievements(engine: Engine, user_id: int) -> list[dict]:
    """Achievements *user_id* has earned, oldest first."""
    with Session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")
        rows = session.execute(
            select(Achievement, UserAchievement.earned_at, UserAchievement.granted_by)
            .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
            .where(UserAchievement.user_id == user_id)
            .order_by(UserAchievement.earned_at, Achievement.id)
        ).all()
        return [
            {
                "id": a.id,
                "name": a.name,
                "description": a.description,
                "category": a.category,
                "rarity": a.rarity,
                "icon": a.icon,
                "points": a.points,
                "earned_at": earned_at,
                "granted_by": granted_by,
            }
            for a, earned_at, granted_by in rows
        ]


def get_gamification_analytics(engine: Engine) -> dict:
    """Community-wide totals, top users, category and level distributions."""
    with Session(engine) as session:
        total_users = session.scalar(
            select(func.count(User.id)).where(User.is_active.is_(True))
        ) or 0
        total_achievements = session.scalar(
            select(func.count(Achievement.id)).where(Achievement.is_active.is_(True))
        ) or 0
        top_users = session.execute(
            select(User.id, User.name, User.points, User.level)
            .where(User.is_active.is_(True))
            .order_by(User.points.desc(), User.id)
            .limit(10)
        ).all()
        by_category = session.execute(
            select(Achievement.category, func.count(Achievement.id))
            .where(Achievement.is_active.is_(True))
            .group_by(Achievement.category)
            .order_by(Achievement.category)
        ).all()
        by_level = session.execute(
            select(User.level, func.count(User.id))
            .where(User.is_active.is_(True))
            .group_by(User.level)
            .order_by(User.level)
        ).all()

    return {
        "total_users": total_users,
        "total_achievements": total_achievements,
        "top_users": [
            {"user_id": uid, "name": name, "points": points, "level": level}
            for uid, name, points, level in top_users
        ],
        "achievements_by_category": {cat: n for cat, n in by_category},
        "level_distribution": {level: n for level, n in by_level},
    }
