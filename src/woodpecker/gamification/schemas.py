"""Pydantic models for XP, levels, streaks and achievements."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

XpSource = Literal["cycle", "review"]


class StreakState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current: int = 0
    longest: int = 0
    last_active_day: date | None = None
    grace_used: bool = False


class StreakUpdate(BaseModel):
    """Result of applying one qualifying activity to a streak."""

    model_config = ConfigDict(frozen=True)

    state: StreakState
    incremented: bool = False
    broken: bool = False
    new_record: bool = False
    milestone: int | None = None


class StreakStatus(BaseModel):
    current: int
    longest: int
    last_active_day: date | None
    active_today: bool
    at_risk: bool
    days_since_active: int | None
    next_milestone: int | None


class XpBreakdown(BaseModel):
    """Fixed-shape itemization of one award. Every item is exact and non-negative."""

    model_config = ConfigDict(frozen=True)

    base: Decimal = Field(default=Decimal(0), ge=0)
    rating_bonus: Decimal = Field(default=Decimal(0), ge=0)
    streak_bonus: Decimal = Field(default=Decimal(0), ge=0)
    accuracy_bonus: Decimal = Field(default=Decimal(0), ge=0)

    @property
    def exact_total(self) -> Decimal:
        return self.base + self.rating_bonus + self.streak_bonus + self.accuracy_bonus


class XpAward(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    source: XpSource
    source_id: str
    breakdown: XpBreakdown
    total: int = Field(ge=0)
    capped: bool = False
    awarded_at: datetime
    idempotency_key: str


class AwardResult(BaseModel):
    """Outcome of persisting an award; ``granted`` is False on an idempotent replay."""

    model_config = ConfigDict(frozen=True)

    award: XpAward
    granted: bool
    total_xp: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


class LevelInfo(BaseModel):
    level: int
    title: str
    xp_into_level: int
    xp_for_level: int
    next_level: int
    next_title: str
    progress_percent: float


# --- Achievements ---


class ThemeStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    attempts: int = 0
    correct: int = 0

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempts if self.attempts else 0.0


class UserStatsSnapshot(BaseModel):
    """Cumulative statistics the achievement predicates read. Never mutated."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    total_attempts: int = 0
    total_correct: int = 0
    cycles_completed: int = 0
    max_cycles_on_one_set: int = 0
    sets_mastered: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    best_cycle_accuracy: float = 0.0
    largest_perfect_cycle: int = 0
    best_large_cycle_accuracy: float = 0.0
    best_time_improvement_pct: float = 0.0
    fastest_correct_ms: int | None = None
    max_correct_run: int = 0
    max_fast_correct_run: int = 0
    hard_puzzles_solved: int = 0
    theme_stats: dict[str, ThemeStats] = Field(default_factory=dict)
    practice_hours: frozenset[int] = frozenset()
    total_xp: int = 0
    level: int = 1


class AchievementStatus(BaseModel):
    id: str
    name: str
    description: str
    category: str
    unlocked: bool
    unlocked_at: datetime | None = None
