"""Integration: XP ledger idempotency and level tracking."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import XPLedger
from woodpecker.errors import UserNotFound
from woodpecker.gamification.schemas import XpAward, XpBreakdown
from woodpecker.gamification.xp_calculator import cycle_idempotency_key
from woodpecker.gamification.xp_service import award_xp, get_award, get_or_create_gamification, get_total_xp

NOW = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


def make_award(user_id: int, total: int, cycle_id: int = 1) -> XpAward:
    return XpAward(
        user_id=user_id,
        source="cycle",
        source_id=str(cycle_id),
        breakdown=XpBreakdown(base=Decimal(total)),
        total=total,
        awarded_at=NOW,
        idempotency_key=cycle_idempotency_key(user_id, cycle_id),
    )


class TestAwardXp:
    """Test award_xp."""

    @pytest.mark.asyncio
    async def test_first_award_granted(self, db_session: AsyncSession, user_id: int):
        result = await award_xp(db_session, make_award(user_id, 90))
        await db_session.commit()
        assert result.granted is True
        assert result.total_xp == 90
        assert await get_total_xp(db_session, user_id) == 90

    @pytest.mark.asyncio
    async def test_retry_is_replayed(self, db_session: AsyncSession, user_id: int):
        award = make_award(user_id, 90)
        await award_xp(db_session, award)
        await db_session.commit()

        replay = await award_xp(db_session, award)
        assert replay.granted is False
        assert replay.award == award
        assert replay.total_xp == 90

        count = await db_session.execute(select(func.count(XPLedger.id)))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_replay_returns_stored_award(self, db_session: AsyncSession, user_id: int):
        original = make_award(user_id, 90)
        await award_xp(db_session, original)
        await db_session.commit()

        # Same key, different amount: the stored award wins
        replay = await award_xp(db_session, make_award(user_id, 500))
        assert replay.award.total == 90
        assert await get_total_xp(db_session, user_id) == 90

    @pytest.mark.asyncio
    async def test_breakdown_round_trips_exactly(self, db_session: AsyncSession, user_id: int):
        award = make_award(user_id, 90).model_copy(update={
            "breakdown": XpBreakdown(
                base=Decimal(60), rating_bonus=Decimal(13), streak_bonus=Decimal(2), accuracy_bonus=Decimal("14.6"),
            ),
        })
        await award_xp(db_session, award)
        await db_session.commit()

        stored = await get_award(db_session, award.idempotency_key)
        assert stored is not None
        assert stored.breakdown.accuracy_bonus == Decimal("14.6")
        assert stored.breakdown.exact_total == Decimal("89.6")

    @pytest.mark.asyncio
    async def test_level_up(self, db_session: AsyncSession, user_id: int):
        first = await award_xp(db_session, make_award(user_id, 200, cycle_id=1))
        assert first.leveled_up is False

        second = await award_xp(db_session, make_award(user_id, 100, cycle_id=2))
        await db_session.commit()
        assert second.old_level == 1
        assert second.new_level == 2
        assert second.leveled_up is True

        gam = await get_or_create_gamification(db_session, user_id)
        assert gam.level == 2
        assert gam.level_title == "Pawn"

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session: AsyncSession):
        with pytest.raises(UserNotFound):
            await award_xp(db_session, make_award(404, 10))

    @pytest.mark.asyncio
    async def test_total_for_user_without_awards(self, db_session: AsyncSession, user_id: int):
        assert await get_total_xp(db_session, user_id) == 0
