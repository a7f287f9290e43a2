"""Training service facade — the entry point callers use.

Each method runs in its own short-lived session. ``finish_cycle`` drives
the post-cycle pipeline: streak update, XP award, achievement evaluation.
Achievements are also re-evaluated whenever a streak is extended by daily
attempts and after every granted XP award.
Every step is idempotent, so a retried ``finish_cycle`` returns the
original award and unlocks nothing new.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from woodpecker.competition import leaderboard_service
from woodpecker.competition.schemas import LeaderboardPage, UserRank
from woodpecker.config import Settings, get_settings
from woodpecker.database import get_session_factory
from woodpecker.gamification import achievement_service, streak_service, xp_service
from woodpecker.gamification.level_thresholds import compute_level, get_level_from_xp
from woodpecker.gamification.schemas import (
    AchievementStatus,
    AwardResult,
    LevelInfo,
    StreakState,
    StreakStatus,
    StreakUpdate,
    XpAward,
)
from woodpecker.gamification.xp_calculator import calculate_cycle_xp, calculate_review_xp
from woodpecker.training import cycle_engine
from woodpecker.training.catalog import PuzzleCatalog
from woodpecker.training.history import load_attempt_history
from woodpecker.training.schemas import (
    CycleState,
    CycleStatistics,
    PuzzleProgress,
    PuzzleSetDefinition,
    ReviewResult,
    SetProgress,
    ThemeWeakness,
    WeakPuzzle,
)
from woodpecker.training.set_generator import RATING_CEILING, RATING_FLOOR, generate_puzzle_set
from woodpecker.training.weak_puzzles import (
    find_weak_puzzles,
    reviewable_puzzle_ids,
    summarize_theme_weaknesses,
)

logger = structlog.get_logger()


class CycleCompletion(BaseModel):
    """Everything produced by finishing one cycle."""

    model_config = ConfigDict(frozen=True)

    statistics: CycleStatistics
    streak: StreakUpdate
    award: AwardResult
    level: LevelInfo
    unlocked: list[str]


class TrainingService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        redis: Redis | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._redis = redis
        self._settings = settings or get_settings()
        self._rng = rng
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self._clock()

    # --- Puzzle sets -------------------------------------------------------

    async def generate_puzzle_set(
        self,
        min_rating: int,
        max_rating: int,
        size: int,
        focus_theme: str | None = None,
    ) -> PuzzleSetDefinition:
        """Sample a set definition without saving it."""
        async with self._session_factory() as db:
            return await generate_puzzle_set(
                PuzzleCatalog(db), min_rating, max_rating, size, focus_theme,
                rng=self._rng, now=self._now(),
            )

    async def create_puzzle_set(
        self,
        user_id: int,
        name: str,
        min_rating: int,
        max_rating: int,
        size: int,
        focus_theme: str | None = None,
        target_cycles: int | None = None,
    ) -> PuzzleSetDefinition:
        """Sample and persist a set for a user."""
        size_limits = (self._settings.min_set_size, self._settings.max_set_size)
        if not size_limits[0] <= size <= size_limits[1]:
            raise ValueError(f"size must be between {size_limits[0]} and {size_limits[1]}, got {size}")

        async with self._session_factory() as db:
            definition = await generate_puzzle_set(
                PuzzleCatalog(db), min_rating, max_rating, size, focus_theme,
                rng=self._rng, now=self._now(),
            )
            saved = await cycle_engine.save_puzzle_set(
                db, user_id, definition, name,
                target_cycles or self._settings.default_target_cycles,
            )
        logger.info("puzzle_set_created", user_id=user_id, set_id=saved.set_id, size=saved.size)
        return saved

    async def get_set_progress(self, user_id: int) -> list[SetProgress]:
        async with self._session_factory() as db:
            return await cycle_engine.get_set_progress(db, user_id)

    async def get_puzzle_progress(self, set_id: int) -> list[PuzzleProgress]:
        async with self._session_factory() as db:
            return await cycle_engine.get_puzzle_progress(db, set_id)

    # --- Cycles ------------------------------------------------------------

    async def start_cycle(self, set_id: int) -> CycleState:
        async with self._session_factory() as db:
            state = await cycle_engine.start_cycle(db, set_id, now=self._now())
        logger.info("cycle_started", set_id=set_id, cycle_id=state.cycle_id, cycle_number=state.cycle_number)
        return state

    async def get_cycle_state(self, cycle_id: int) -> CycleState:
        async with self._session_factory() as db:
            return await cycle_engine.get_cycle_state(db, cycle_id)

    async def submit_attempt(
        self,
        cycle_id: int,
        puzzle_id: str,
        correct: bool,
        time_ms: int,
        skip: bool = False,
    ) -> CycleState:
        """Record one attempt. Reaching the daily attempt minimum counts toward the streak."""
        now = self._now()
        async with self._session_factory() as db:
            state = await cycle_engine.submit_attempt(
                db, cycle_id, puzzle_id, correct, time_ms, skip, now=now,
            )
            user_id = (await cycle_engine.get_puzzle_set(db, state.set_id)).user_id
            update = await streak_service.record_daily_attempts(
                db, user_id, now,
                self._settings.streak_min_daily_attempts,
                self._settings.streak_grace_days,
            )
            await db.commit()

        if update is not None and (update.incremented or update.broken):
            logger.info("streak_updated", user_id=user_id, streak=update.state.current, source="attempts")
            await self._check_achievements(user_id)
        return state

    async def complete_cycle(self, cycle_id: int) -> CycleStatistics:
        async with self._session_factory() as db:
            return await cycle_engine.complete_cycle(db, cycle_id)

    async def finish_cycle(self, cycle_id: int) -> CycleCompletion:
        """Run the post-cycle pipeline for a completed cycle."""
        now = self._now()
        async with self._session_factory() as db:
            stats = await cycle_engine.complete_cycle(db, cycle_id)
            streak = await streak_service.record_activity(
                db, stats.user_id, stats.completed_at or now, self._settings.streak_grace_days,
            )
            await db.commit()

            award = calculate_cycle_xp(stats, streak.state, now=now)
            result = await xp_service.award_xp(db, award)
            await db.commit()

            unlocked = await achievement_service.evaluate_achievements(db, stats.user_id, now=now)

        logger.info(
            "cycle_finished",
            user_id=stats.user_id,
            cycle_id=cycle_id,
            accuracy=stats.accuracy,
            xp=result.award.total,
            granted=result.granted,
            streak=streak.state.current,
            unlocked=unlocked,
        )
        if result.leveled_up:
            logger.info("level_up", user_id=stats.user_id, old_level=result.old_level, new_level=result.new_level)

        return CycleCompletion(
            statistics=stats,
            streak=streak,
            award=result,
            level=LevelInfo(**compute_level(result.total_xp)),
            unlocked=unlocked,
        )

    # --- XP and levels -----------------------------------------------------

    async def award_xp(
        self,
        user_id: int,
        cycle_statistics: CycleStatistics,
        streak_state: StreakState,
    ) -> XpAward:
        """Score and persist a cycle award. A retry returns the original award."""
        if cycle_statistics.user_id != user_id:
            raise ValueError(
                f"Cycle {cycle_statistics.cycle_id} belongs to user {cycle_statistics.user_id}, not {user_id}"
            )
        award = calculate_cycle_xp(cycle_statistics, streak_state, now=self._now())
        async with self._session_factory() as db:
            result = await xp_service.award_xp(db, award)
            await db.commit()
        if result.granted:
            await self._check_achievements(user_id)
        return result.award

    def get_level(self, cumulative_xp: int) -> int:
        return get_level_from_xp(cumulative_xp)

    def get_level_info(self, cumulative_xp: int) -> LevelInfo:
        return LevelInfo(**compute_level(cumulative_xp))

    async def record_review_session(
        self,
        user_id: int,
        session_id: str,
        results: Iterable[ReviewResult | dict[str, Any]],
    ) -> XpAward:
        """Award XP for a standalone review, once per session id.

        Only puzzles the user has missed before are eligible; results for any
        other puzzle are ignored.
        """
        if not session_id:
            raise ValueError("session_id is required")
        reviewed = [ReviewResult.model_validate(r) for r in results]

        async with self._session_factory() as db:
            eligible = reviewable_puzzle_ids(await load_attempt_history(db, user_id))
            puzzles = await PuzzleCatalog(db).get_puzzles(
                r.puzzle_id for r in reviewed if r.puzzle_id in eligible
            )
            award = calculate_review_xp(
                user_id, session_id, reviewed,
                {pid: p.rating for pid, p in puzzles.items()},
                RATING_FLOOR, RATING_CEILING,
                now=self._now(),
            )
            result = await xp_service.award_xp(db, award)
            await db.commit()

        logger.info(
            "review_recorded",
            user_id=user_id,
            session_id=session_id,
            puzzles=len(reviewed),
            ignored=sum(1 for r in reviewed if r.puzzle_id not in puzzles),
            xp=result.award.total,
            granted=result.granted,
        )
        if result.granted:
            await self._check_achievements(user_id)
        return result.award

    # --- Streaks -----------------------------------------------------------

    async def get_streak_status(self, user_id: int) -> StreakStatus:
        async with self._session_factory() as db:
            tz = await streak_service.get_user_timezone(db, user_id)
            state = await streak_service.get_streak_state(db, user_id)
            await db.commit()
        return streak_service.streak_status(state, self._now(), tz, self._settings.streak_grace_days)

    # --- Weak puzzles ------------------------------------------------------

    async def get_weak_puzzle_details(self, user_id: int, threshold: int | None = None) -> list[WeakPuzzle]:
        async with self._session_factory() as db:
            history = await load_attempt_history(db, user_id)
        return find_weak_puzzles(history, threshold or self._settings.weak_puzzle_threshold)

    async def get_weak_puzzles(self, user_id: int, threshold: int | None = None) -> list[str]:
        """Ids of the user's weak puzzles, most-missed first."""
        return [w.puzzle_id for w in await self.get_weak_puzzle_details(user_id, threshold)]

    async def get_theme_weaknesses(self, user_id: int, threshold: int | None = None) -> list[ThemeWeakness]:
        async with self._session_factory() as db:
            history = await load_attempt_history(db, user_id)
        weak = find_weak_puzzles(history, threshold or self._settings.weak_puzzle_threshold)
        return summarize_theme_weaknesses(history, weak)

    # --- Achievements ------------------------------------------------------

    async def evaluate_achievements(self, user_id: int) -> list[str]:
        async with self._session_factory() as db:
            return await achievement_service.evaluate_achievements(db, user_id, now=self._now())

    async def _check_achievements(self, user_id: int) -> list[str]:
        unlocked = await self.evaluate_achievements(user_id)
        if unlocked:
            logger.info("achievements_unlocked", user_id=user_id, unlocked=unlocked)
        return unlocked

    async def get_user_achievements(self, user_id: int) -> list[AchievementStatus]:
        async with self._session_factory() as db:
            return await achievement_service.get_user_achievements(db, user_id)

    # --- Leaderboards ------------------------------------------------------

    async def get_leaderboard(
        self,
        period: str = "weekly",
        limit: int | None = None,
        offset: int = 0,
    ) -> LeaderboardPage:
        limit = min(limit or self._settings.leaderboard_default_limit, self._settings.leaderboard_max_limit)
        async with self._session_factory() as db:
            return await leaderboard_service.get_leaderboard(
                db, period, limit, offset,
                redis=self._redis,
                ttl=self._settings.leaderboard_cache_ttl_seconds,
                now=self._now(),
            )

    async def get_user_rank(self, user_id: int, period: str = "weekly") -> UserRank:
        async with self._session_factory() as db:
            return await leaderboard_service.get_user_rank(
                db, user_id, period,
                redis=self._redis,
                ttl=self._settings.leaderboard_cache_ttl_seconds,
                now=self._now(),
            )
