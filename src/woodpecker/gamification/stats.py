"""User statistics snapshot for achievement evaluation.

``build_snapshot`` is pure and works from the attempt history and the
completed cycles; ``load_snapshot`` gathers those from the database.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Sequence
from datetime import timezone
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import Cycle, PuzzleSet
from woodpecker.gamification.schemas import StreakState, ThemeStats, UserStatsSnapshot
from woodpecker.gamification.streak_service import get_streak_state, get_user_timezone
from woodpecker.gamification.xp_service import get_or_create_gamification
from woodpecker.training.history import load_attempt_history
from woodpecker.training.schemas import AttemptRecord

FAST_SOLVE_MS = 5000
HARD_PUZZLE_RATING = 1800
LARGE_CYCLE_PUZZLES = 50


class CycleSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    set_id: int
    cycle_number: int
    total_puzzles: int
    correct: int
    total_time_ms: int
    target_cycles: int


def _longest_run(history: Sequence[AttemptRecord], qualifies: Callable[[AttemptRecord], bool]) -> int:
    """Longest stretch of consecutive qualifying attempts anywhere in the history."""
    best = run = 0
    for record in history:
        run = run + 1 if qualifies(record) else 0
        best = max(best, run)
    return best


def _best_time_improvement(cycles: Sequence[CycleSummary]) -> float:
    """Largest first-to-latest cycle time reduction on any one set, in percent."""
    by_set: dict[int, list[CycleSummary]] = defaultdict(list)
    for cycle in cycles:
        by_set[cycle.set_id].append(cycle)

    best = 0.0
    for set_cycles in by_set.values():
        if len(set_cycles) < 2:
            continue
        ordered = sorted(set_cycles, key=lambda c: c.cycle_number)
        first, latest = ordered[0], ordered[-1]
        if first.total_time_ms <= 0:
            continue
        best = max(best, (first.total_time_ms - latest.total_time_ms) / first.total_time_ms * 100)
    return best


def build_snapshot(
    user_id: int,
    history: Sequence[AttemptRecord],
    cycles: Sequence[CycleSummary],
    streak: StreakState,
    total_xp: int = 0,
    level: int = 1,
    tz: ZoneInfo | timezone = timezone.utc,
) -> UserStatsSnapshot:
    solved = [r for r in history if r.is_correct and not r.was_skipped]

    theme_attempts: dict[str, int] = defaultdict(int)
    theme_correct: dict[str, int] = defaultdict(int)
    for record in history:
        for theme in record.themes:
            theme_attempts[theme] += 1
            if record.is_correct and not record.was_skipped:
                theme_correct[theme] += 1

    per_set: dict[int, int] = defaultdict(int)
    targets: dict[int, int] = {}
    for cycle in cycles:
        per_set[cycle.set_id] += 1
        targets[cycle.set_id] = cycle.target_cycles

    accuracies = [c.correct / c.total_puzzles for c in cycles if c.total_puzzles]
    perfect = [c.total_puzzles for c in cycles if c.total_puzzles and c.correct == c.total_puzzles]
    large = [
        c.correct / c.total_puzzles for c in cycles if c.total_puzzles >= LARGE_CYCLE_PUZZLES
    ]

    return UserStatsSnapshot(
        user_id=user_id,
        total_attempts=len(history),
        total_correct=len(solved),
        cycles_completed=len(cycles),
        max_cycles_on_one_set=max(per_set.values(), default=0),
        sets_mastered=sum(1 for set_id, done in per_set.items() if done >= targets[set_id]),
        current_streak=streak.current,
        longest_streak=streak.longest,
        best_cycle_accuracy=max(accuracies, default=0.0),
        largest_perfect_cycle=max(perfect, default=0),
        best_large_cycle_accuracy=max(large, default=0.0),
        best_time_improvement_pct=_best_time_improvement(cycles),
        fastest_correct_ms=min((r.time_ms for r in solved), default=None),
        max_correct_run=_longest_run(history, lambda r: r.is_correct and not r.was_skipped),
        max_fast_correct_run=_longest_run(
            history, lambda r: r.is_correct and not r.was_skipped and r.time_ms < FAST_SOLVE_MS,
        ),
        hard_puzzles_solved=sum(1 for r in solved if r.rating >= HARD_PUZZLE_RATING),
        theme_stats={
            theme: ThemeStats(attempts=count, correct=theme_correct[theme])
            for theme, count in theme_attempts.items()
        },
        practice_hours=frozenset(r.attempted_at.astimezone(tz).hour for r in history),
        total_xp=total_xp,
        level=level,
    )


async def load_completed_cycles(db: AsyncSession, user_id: int) -> list[CycleSummary]:
    result = await db.execute(
        select(
            Cycle.puzzle_set_id,
            Cycle.cycle_number,
            Cycle.total_puzzles,
            Cycle.solved_correct,
            Cycle.total_time_ms,
            PuzzleSet.target_cycles,
        )
        .join(PuzzleSet, PuzzleSet.id == Cycle.puzzle_set_id)
        .where(PuzzleSet.user_id == user_id, Cycle.status == "completed")
        .order_by(Cycle.puzzle_set_id, Cycle.cycle_number)
    )
    return [
        CycleSummary(
            set_id=row[0],
            cycle_number=row[1],
            total_puzzles=row[2],
            correct=row[3],
            total_time_ms=row[4],
            target_cycles=row[5],
        )
        for row in result.all()
    ]


async def load_snapshot(db: AsyncSession, user_id: int) -> UserStatsSnapshot:
    """Fresh snapshot from the ledgers and the denormalized gamification row."""
    tz = await get_user_timezone(db, user_id)
    gam = await get_or_create_gamification(db, user_id)
    return build_snapshot(
        user_id,
        await load_attempt_history(db, user_id),
        await load_completed_cycles(db, user_id),
        await get_streak_state(db, user_id),
        total_xp=gam.total_xp,
        level=gam.level,
        tz=tz,
    )
