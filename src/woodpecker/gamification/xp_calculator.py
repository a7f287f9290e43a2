"""XP calculation — pure functions from cycle statistics to an itemized award.

Breakdown items (all exact Decimals, all >= 0):
- base:           XP_PER_SOLVE per correct, non-skipped puzzle
- rating_bonus:   per correct puzzle, (rating - band_min) / 100,
                  clamped to [0, (band_max - band_min) / 100]
- streak_bonus:   STREAK_BONUS_PER_DAY * min(streak, STREAK_BONUS_MAX_DAYS)
- accuracy_bonus: (base + rating_bonus) * (multiplier - 1), where
                  multiplier = 1 + accuracy_factor * cycle_weight
                  accuracy_factor = max(0, (accuracy - 0.5) / 0.5)
                  cycle_weight = 1 + 0.25 * (min(cycle, 5) - 1)

The total is the exact sum rounded half-up once, then clamped to MAX_AWARD_XP.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from woodpecker.gamification.schemas import StreakState, XpAward, XpBreakdown
from woodpecker.training.schemas import CycleStatistics, ReviewResult

XP_PER_SOLVE = 10
RATING_BONUS_DIVISOR = 100
STREAK_BONUS_PER_DAY = 2
STREAK_BONUS_MAX_DAYS = 10
ACCURACY_FLOOR = Decimal("0.5")
CYCLE_WEIGHT_STEP = Decimal("0.25")
CYCLE_WEIGHT_MAX_CYCLE = 5
MAX_AWARD_XP = 5000

_ZERO = Decimal(0)


def cycle_idempotency_key(user_id: int, cycle_id: int) -> str:
    return f"cycle:{user_id}:{cycle_id}"


def review_idempotency_key(user_id: int, session_id: str) -> str:
    return f"review:{user_id}:{session_id}"


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def rating_bonus(ratings: Iterable[int], min_rating: int, max_rating: int) -> Decimal:
    """Sum of per-puzzle bonuses for solved puzzles above the band floor."""
    ceiling = Decimal(max(0, max_rating - min_rating)) / RATING_BONUS_DIVISOR
    total = _ZERO
    for rating in ratings:
        bonus = Decimal(rating - min_rating) / RATING_BONUS_DIVISOR
        total += min(max(bonus, _ZERO), ceiling)
    return total


def streak_bonus(streak_days: int) -> Decimal:
    return Decimal(STREAK_BONUS_PER_DAY * min(max(streak_days, 0), STREAK_BONUS_MAX_DAYS))


def cycle_weight(cycle_number: int) -> Decimal:
    """1.0 on the first cycle, +0.25 per cycle up to 2.0 from cycle 5 on."""
    capped = min(max(cycle_number, 1), CYCLE_WEIGHT_MAX_CYCLE)
    return 1 + CYCLE_WEIGHT_STEP * (capped - 1)


def accuracy_factor(correct: int, total: int) -> Decimal:
    if total <= 0:
        return _ZERO
    accuracy = Decimal(correct) / Decimal(total)
    return max(_ZERO, (accuracy - ACCURACY_FLOOR) / ACCURACY_FLOOR)


def _finalize(
    user_id: int,
    source: str,
    source_id: str,
    breakdown: XpBreakdown,
    idempotency_key: str,
    now: datetime | None,
) -> XpAward:
    total = round_half_up(breakdown.exact_total)
    capped = total > MAX_AWARD_XP
    return XpAward(
        user_id=user_id,
        source=source,
        source_id=source_id,
        breakdown=breakdown,
        total=min(total, MAX_AWARD_XP),
        capped=capped,
        awarded_at=now or datetime.now(timezone.utc),
        idempotency_key=idempotency_key,
    )


def calculate_cycle_xp(
    stats: CycleStatistics,
    streak: StreakState,
    now: datetime | None = None,
) -> XpAward:
    """Award for a completed cycle. ``streak`` is the state after this cycle's activity."""
    base = Decimal(XP_PER_SOLVE * stats.correct)
    bonus = rating_bonus(stats.correct_puzzle_ratings, stats.min_rating, stats.max_rating)
    multiplier = 1 + accuracy_factor(stats.correct, stats.total_puzzles) * cycle_weight(stats.cycle_number)

    breakdown = XpBreakdown(
        base=base,
        rating_bonus=bonus,
        streak_bonus=streak_bonus(streak.current),
        accuracy_bonus=(base + bonus) * (multiplier - 1),
    )
    return _finalize(
        stats.user_id,
        "cycle",
        str(stats.cycle_id),
        breakdown,
        cycle_idempotency_key(stats.user_id, stats.cycle_id),
        now,
    )


def calculate_review_xp(
    user_id: int,
    session_id: str,
    results: Iterable[ReviewResult],
    ratings: dict[str, int],
    min_rating: int,
    max_rating: int,
    now: datetime | None = None,
) -> XpAward:
    """Award for a standalone review session: base and rating bonus only.

    ``ratings`` maps the puzzles eligible for review to their rating. Results
    for any other puzzle earn nothing, and each puzzle scores at most once.
    """
    solved: dict[str, int] = {}
    for result in results:
        if result.is_correct and result.puzzle_id in ratings:
            solved.setdefault(result.puzzle_id, ratings[result.puzzle_id])

    breakdown = XpBreakdown(
        base=Decimal(XP_PER_SOLVE * len(solved)),
        rating_bonus=rating_bonus(solved.values(), min_rating, max_rating),
    )
    return _finalize(
        user_id,
        "review",
        session_id,
        breakdown,
        review_idempotency_key(user_id, session_id),
        now,
    )
