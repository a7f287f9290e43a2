"""XP ledger service with idempotency and level-up detection."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import User, UserGamification, XPLedger
from woodpecker.errors import UserNotFound
from woodpecker.gamification.level_thresholds import compute_level
from woodpecker.gamification.schemas import AwardResult, XpAward, XpBreakdown

logger = logging.getLogger(__name__)


async def get_or_create_gamification(db: AsyncSession, user_id: int) -> UserGamification:
    """Get or create the denormalized gamification row for a user."""
    result = await db.execute(
        select(UserGamification).where(UserGamification.user_id == user_id)
    )
    gam = result.scalar_one_or_none()
    if gam is None:
        if await db.get(User, user_id) is None:
            raise UserNotFound(f"User {user_id} not found")
        gam = UserGamification(
            user_id=user_id,
            total_xp=0,
            level=1,
            level_title="Pawn",
            current_streak=0,
            longest_streak=0,
            grace_used=False,
            updated_at=datetime.now(timezone.utc),
        )
        db.add(gam)
        await db.flush()
    return gam


def _award_from_entry(entry: XPLedger) -> XpAward:
    return XpAward(
        user_id=entry.user_id,
        source=entry.source,
        source_id=entry.source_id or "",
        breakdown=XpBreakdown(**(entry.breakdown or {})),
        total=entry.amount,
        capped=entry.capped,
        awarded_at=entry.created_at,
        idempotency_key=entry.idempotency_key,
    )


async def get_award(db: AsyncSession, idempotency_key: str) -> XpAward | None:
    result = await db.execute(
        select(XPLedger).where(XPLedger.idempotency_key == idempotency_key)
    )
    entry = result.scalar_one_or_none()
    return _award_from_entry(entry) if entry else None


async def _replay(db: AsyncSession, existing: XpAward) -> AwardResult:
    gam = await get_or_create_gamification(db, existing.user_id)
    return AwardResult(
        award=existing,
        granted=False,
        total_xp=gam.total_xp,
        old_level=gam.level,
        new_level=gam.level,
    )


async def award_xp(db: AsyncSession, award: XpAward) -> AwardResult:
    """Persist an award exactly once per idempotency key.

    After granting:
    1. Insert into xp_ledger
    2. Update user_gamification.total_xp
    3. Recompute level from total_xp

    A retry with the same key returns the originally stored award.
    """
    existing = await get_award(db, award.idempotency_key)
    if existing is not None:
        return await _replay(db, existing)

    gam = await get_or_create_gamification(db, award.user_id)
    old_level = gam.level

    db.add(XPLedger(
        user_id=award.user_id,
        amount=award.total,
        source=award.source,
        source_id=award.source_id,
        breakdown={k: str(v) for k, v in award.breakdown.model_dump().items()},
        capped=award.capped,
        description=f"{award.source} {award.source_id}",
        idempotency_key=award.idempotency_key,
        created_at=award.awarded_at,
    ))

    gam.total_xp += award.total
    level_info = compute_level(gam.total_xp)
    gam.level = level_info["level"]
    gam.level_title = level_info["title"]
    gam.updated_at = datetime.now(timezone.utc)

    try:
        await db.flush()
    except IntegrityError:
        # Race: a concurrent request stored the same key first
        await db.rollback()
        existing = await get_award(db, award.idempotency_key)
        if existing is None:
            raise
        return await _replay(db, existing)

    if award.capped:
        logger.warning("XP award %s capped at %d", award.idempotency_key, award.total)
    if gam.level > old_level:
        logger.info("User %d leveled up: %d -> %d (%s)", award.user_id, old_level, gam.level, gam.level_title)

    return AwardResult(
        award=award,
        granted=True,
        total_xp=gam.total_xp,
        old_level=old_level,
        new_level=gam.level,
    )


async def get_total_xp(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(UserGamification.total_xp).where(UserGamification.user_id == user_id)
    )
    return result.scalar_one_or_none() or 0
