"""Achievement unlock service with duplicate prevention."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import UserAchievement
from woodpecker.gamification.achievements import ACHIEVEMENT_DEFINITIONS, evaluate_snapshot
from woodpecker.gamification.schemas import AchievementStatus
from woodpecker.gamification.stats import load_snapshot

logger = logging.getLogger(__name__)


async def get_unlocked(db: AsyncSession, user_id: int) -> dict[str, datetime]:
    result = await db.execute(
        select(UserAchievement.achievement_id, UserAchievement.unlocked_at)
        .where(UserAchievement.user_id == user_id)
    )
    return {row[0]: row[1] for row in result.all()}


async def unlock_achievement(
    db: AsyncSession, user_id: int, achievement_id: str, now: datetime | None = None,
) -> bool:
    """Insert one unlock. Returns False if the pair already exists."""
    db.add(UserAchievement(
        user_id=user_id,
        achievement_id=achievement_id,
        unlocked_at=now or datetime.now(timezone.utc),
    ))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        return False  # Race condition: already unlocked
    return True


async def evaluate_achievements(
    db: AsyncSession, user_id: int, now: datetime | None = None,
) -> list[str]:
    """Unlock every achievement the user now qualifies for. Returns the new ids.

    Each unlock is committed on its own; calling it again without new
    activity returns [].
    """
    unlocked = await get_unlocked(db, user_id)
    snapshot = await load_snapshot(db, user_id)
    candidates = evaluate_snapshot(snapshot, unlocked)

    newly_unlocked = []
    for achievement_id in candidates:
        if await unlock_achievement(db, user_id, achievement_id, now):
            await db.commit()
            newly_unlocked.append(achievement_id)
    await db.commit()

    if newly_unlocked:
        logger.info("User %d unlocked %s", user_id, ", ".join(newly_unlocked))
    return newly_unlocked


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[AchievementStatus]:
    """Every definition with the user's unlock status."""
    unlocked = await get_unlocked(db, user_id)
    return [
        AchievementStatus(
            id=d["id"],
            name=d["name"],
            description=d["description"],
            category=d["category"],
            unlocked=d["id"] in unlocked,
            unlocked_at=unlocked.get(d["id"]),
        )
        for d in ACHIEVEMENT_DEFINITIONS
    ]
