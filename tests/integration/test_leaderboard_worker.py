"""Integration: arq leaderboard refresh jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.competition.leaderboard_worker import (
    LeaderboardWorkerSettings,
    refresh_alltime_leaderboard,
    refresh_weekly_leaderboard,
)
from woodpecker.competition.week_utils import get_current_week_iso
from woodpecker.gamification.schemas import XpAward, XpBreakdown
from woodpecker.gamification.xp_service import award_xp


class TestLeaderboardJobs:
    """Test the refresh jobs against a mocked cache client."""

    @pytest.mark.asyncio
    async def test_alltime_refresh(self, db_session: AsyncSession, user_id: int):
        await award_xp(db_session, XpAward(
            user_id=user_id,
            source="review",
            source_id="s1",
            breakdown=XpBreakdown(base=Decimal(30)),
            total=30,
            awarded_at=datetime(2026, 1, 5, tzinfo=timezone.utc),
            idempotency_key=f"review:{user_id}:s1",
        ))
        await db_session.commit()

        ctx = {"cache": AsyncMock()}
        assert await refresh_alltime_leaderboard(ctx) == 1
        key, _, _ = ctx["cache"].setex.await_args.args
        assert key == "leaderboard:alltime"

    @pytest.mark.asyncio
    async def test_weekly_refresh_uses_current_week(self, db_engine: None):
        ctx = {"cache": AsyncMock()}
        assert await refresh_weekly_leaderboard(ctx) == 0
        key, _, payload = ctx["cache"].setex.await_args.args
        assert key == f"leaderboard:weekly:{get_current_week_iso()}"
        assert payload == "[]"


class TestWorkerSettings:
    def test_both_periods_scheduled(self):
        assert len(LeaderboardWorkerSettings.cron_jobs) == 2
        assert refresh_weekly_leaderboard in LeaderboardWorkerSettings.functions
        assert refresh_alltime_leaderboard in LeaderboardWorkerSettings.functions
