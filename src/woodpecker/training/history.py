"""Attempt history loader shared by the weak-puzzle and achievement projections."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import Attempt, Cycle, Puzzle
from woodpecker.training.schemas import AttemptRecord


async def load_attempt_history(db: AsyncSession, user_id: int) -> list[AttemptRecord]:
    """Every attempt the user has made, across all sets and cycles, oldest first."""
    result = await db.execute(
        select(Attempt, Puzzle.rating, Puzzle.themes, Cycle.puzzle_set_id)
        .join(Puzzle, Puzzle.id == Attempt.puzzle_id)
        .join(Cycle, Cycle.id == Attempt.cycle_id)
        .where(Attempt.user_id == user_id)
        .order_by(Attempt.attempted_at, Attempt.id)
    )
    return [
        AttemptRecord(
            puzzle_id=attempt.puzzle_id,
            is_correct=attempt.is_correct,
            was_skipped=attempt.was_skipped,
            time_ms=attempt.time_ms,
            attempted_at=attempt.attempted_at,
            rating=rating,
            themes=tuple(themes or ()),
            set_id=set_id,
            cycle_id=attempt.cycle_id,
        )
        for attempt, rating, themes, set_id in result.all()
    ]
