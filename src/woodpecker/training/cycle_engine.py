"""Cycle engine — state machine and attempt recording for puzzle-set passes.

State progression: not_started -> in_progress -> completed
A cycle that has not completed is abandoned when a new one is started on
the same set. Completed and abandoned cycles are terminal.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import Attempt, Cycle, Puzzle, PuzzleSet, PuzzleSetItem, User
from woodpecker.errors import InvalidCycleState, NoActiveCycle, SetNotFound, UserNotFound
from woodpecker.training.schemas import (
    AttemptSubmission,
    CycleState,
    CycleStatistics,
    PuzzleProgress,
    PuzzleSetDefinition,
    SetProgress,
)

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, list[str]] = {
    "not_started": ["in_progress", "abandoned"],
    "in_progress": ["completed", "abandoned"],
    "completed": [],
    "abandoned": [],
}

UNFINISHED_STATUSES = ("not_started", "in_progress")


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a state transition. Raises InvalidCycleState if invalid."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidCycleState(
            f"Invalid transition: {current_status} -> {target_status}. "
            f"Valid transitions: {valid}"
        )


def _transition(cycle: Cycle, target_status: str) -> None:
    validate_transition(cycle.status, target_status)
    cycle.status = target_status


def _attempts_recorded(cycle: Cycle) -> int:
    return cycle.solved_correct + cycle.solved_incorrect + cycle.skipped


def _to_state(cycle: Cycle, puzzle_set: PuzzleSet) -> CycleState:
    recorded = _attempts_recorded(cycle)
    next_position: int | None = None
    next_puzzle_id: str | None = None
    if cycle.status in UNFINISHED_STATUSES and recorded < cycle.total_puzzles:
        next_position = recorded
        next_puzzle_id = puzzle_set.items[recorded].puzzle_id
    return CycleState(
        cycle_id=cycle.id,
        set_id=cycle.puzzle_set_id,
        cycle_number=cycle.cycle_number,
        status=cycle.status,
        attempts_recorded=recorded,
        total_puzzles=cycle.total_puzzles,
        next_position=next_position,
        next_puzzle_id=next_puzzle_id,
    )


# ---------------------------------------------------------------------------
# Puzzle sets
# ---------------------------------------------------------------------------


async def get_puzzle_set(db: AsyncSession, set_id: int) -> PuzzleSet:
    """Get a puzzle set by ID."""
    result = await db.execute(select(PuzzleSet).where(PuzzleSet.id == set_id))
    puzzle_set = result.scalar_one_or_none()
    if puzzle_set is None:
        raise SetNotFound(f"Puzzle set {set_id} not found")
    return puzzle_set


async def save_puzzle_set(
    db: AsyncSession,
    user_id: int,
    definition: PuzzleSetDefinition,
    name: str,
    target_cycles: int,
) -> PuzzleSetDefinition:
    """Persist a generated definition. Membership and order are fixed from here on."""
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")

    puzzle_set = PuzzleSet(
        user_id=user_id,
        name=name,
        min_rating=definition.min_rating,
        max_rating=definition.max_rating,
        focus_theme=definition.focus_theme,
        size=definition.size,
        target_cycles=target_cycles,
        created_at=definition.created_at,
        items=[
            PuzzleSetItem(puzzle_id=puzzle_id, position=position)
            for position, puzzle_id in enumerate(definition.puzzle_ids)
        ],
    )
    db.add(puzzle_set)
    await db.commit()

    logger.info("Puzzle set %d saved for user %d (%d puzzles)", puzzle_set.id, user_id, definition.size)
    return definition.model_copy(update={"set_id": puzzle_set.id, "user_id": user_id})


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


async def get_cycle(db: AsyncSession, cycle_id: int, for_update: bool = False) -> Cycle:
    """Get a cycle by ID, optionally locking its row."""
    stmt = select(Cycle).where(Cycle.id == cycle_id)
    if for_update:
        stmt = stmt.with_for_update(of=Cycle)
    result = await db.execute(stmt)
    cycle = result.unique().scalar_one_or_none()
    if cycle is None:
        raise NoActiveCycle(f"Cycle {cycle_id} not found")
    return cycle


async def get_latest_cycle(db: AsyncSession, set_id: int) -> Cycle | None:
    result = await db.execute(
        select(Cycle)
        .where(Cycle.puzzle_set_id == set_id)
        .order_by(Cycle.cycle_number.desc())
        .limit(1)
    )
    return result.unique().scalar_one_or_none()


async def get_cycle_state(db: AsyncSession, cycle_id: int) -> CycleState:
    cycle = await get_cycle(db, cycle_id)
    return _to_state(cycle, cycle.puzzle_set)


async def start_cycle(db: AsyncSession, set_id: int, now: datetime | None = None) -> CycleState:
    """Open the next cycle on a set, abandoning an unfinished predecessor.

    An abandoned cycle keeps its index, so indices stay contiguous.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    puzzle_set = await get_puzzle_set(db, set_id)
    latest = await get_latest_cycle(db, set_id)

    next_number = 1
    if latest is not None:
        next_number = latest.cycle_number + 1
        if latest.status in UNFINISHED_STATUSES:
            _transition(latest, "abandoned")
            latest.abandoned_at = now
            logger.info(
                "Cycle %d abandoned at %d/%d attempts",
                latest.id, _attempts_recorded(latest), latest.total_puzzles,
            )

    cycle = Cycle(
        puzzle_set=puzzle_set,
        cycle_number=next_number,
        status="not_started",
        total_puzzles=puzzle_set.size,
        solved_correct=0,
        solved_incorrect=0,
        skipped=0,
        total_time_ms=0,
        started_at=now,
    )
    db.add(cycle)

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise InvalidCycleState(f"Cycle {next_number} already exists on set {set_id}") from None

    await db.commit()
    logger.info("Cycle %d started on set %d (cycle #%d)", cycle.id, set_id, next_number)
    return _to_state(cycle, puzzle_set)


async def submit_attempt(
    db: AsyncSession,
    cycle_id: int,
    puzzle_id: str,
    correct: bool,
    time_ms: int,
    skip: bool = False,
    now: datetime | None = None,
) -> CycleState:
    """Record the attempt at the cycle's next position.

    The first attempt moves the cycle to in_progress; the attempt on the
    final position completes it.
    """
    submission = AttemptSubmission(puzzle_id=puzzle_id, correct=correct, time_ms=time_ms, skip=skip)
    if now is None:
        now = datetime.now(timezone.utc)

    cycle = await get_cycle(db, cycle_id, for_update=True)
    if cycle.status not in UNFINISHED_STATUSES:
        raise InvalidCycleState(f"Cycle {cycle_id} is {cycle.status}")

    puzzle_set = cycle.puzzle_set
    position = _attempts_recorded(cycle)
    expected = puzzle_set.items[position].puzzle_id
    if submission.puzzle_id != expected:
        member = any(item.puzzle_id == submission.puzzle_id for item in puzzle_set.items)
        reason = "out of order" if member else "not in this set"
        logger.info(
            "Attempt rejected on cycle %d: puzzle %s %s (expected %s at position %d)",
            cycle_id, submission.puzzle_id, reason, expected, position,
        )
        raise InvalidCycleState(
            f"Puzzle {submission.puzzle_id} is {reason}; expected {expected} at position {position}"
        )

    if cycle.status == "not_started":
        _transition(cycle, "in_progress")

    db.add(Attempt(
        cycle_id=cycle.id,
        user_id=puzzle_set.user_id,
        puzzle_id=submission.puzzle_id,
        position=position,
        is_correct=submission.correct,
        was_skipped=submission.skip,
        time_ms=submission.time_ms,
        attempted_at=now,
    ))

    if submission.skip:
        cycle.skipped += 1
    elif submission.correct:
        cycle.solved_correct += 1
    else:
        cycle.solved_incorrect += 1
    cycle.total_time_ms += submission.time_ms

    if _attempts_recorded(cycle) == cycle.total_puzzles:
        _transition(cycle, "completed")
        cycle.completed_at = now

    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.warning("Duplicate attempt on cycle %d position %d", cycle_id, position)
        raise InvalidCycleState(f"Position {position} of cycle {cycle_id} already answered") from None

    await db.commit()
    if cycle.status == "completed":
        logger.info("Cycle %d completed", cycle.id)
    return _to_state(cycle, puzzle_set)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def summarize_attempts(
    cycle: Cycle,
    user_id: int,
    min_rating: int,
    max_rating: int,
    attempts: list[tuple[Attempt, int]],
) -> CycleStatistics:
    """Build CycleStatistics from a cycle's attempts joined with puzzle ratings."""
    correct = incorrect = skipped = 0
    timed_total = timed_count = 0
    total_time = 0
    missed: list[str] = []
    correct_ratings: list[int] = []

    for attempt, rating in sorted(attempts, key=lambda row: row[0].position):
        total_time += attempt.time_ms
        if attempt.was_skipped:
            skipped += 1
            missed.append(attempt.puzzle_id)
            continue
        timed_total += attempt.time_ms
        timed_count += 1
        if attempt.is_correct:
            correct += 1
            correct_ratings.append(rating)
        else:
            incorrect += 1
            missed.append(attempt.puzzle_id)

    total = cycle.total_puzzles
    return CycleStatistics(
        user_id=user_id,
        set_id=cycle.puzzle_set_id,
        cycle_id=cycle.id,
        cycle_number=cycle.cycle_number,
        total_puzzles=total,
        correct=correct,
        incorrect=incorrect,
        skipped=skipped,
        accuracy=correct / total if total else 0.0,
        average_time_ms=timed_total / timed_count if timed_count else None,
        total_time_ms=total_time,
        missed_puzzle_ids=tuple(missed),
        correct_puzzle_ratings=tuple(correct_ratings),
        min_rating=min_rating,
        max_rating=max_rating,
        completed_at=cycle.completed_at,
    )


async def complete_cycle(db: AsyncSession, cycle_id: int) -> CycleStatistics:
    """Statistics for a completed cycle. Unfinished cycles are rejected."""
    cycle = await get_cycle(db, cycle_id)
    if cycle.status != "completed":
        raise InvalidCycleState(
            f"Cycle {cycle_id} is {cycle.status}; statistics need a completed cycle"
        )

    result = await db.execute(
        select(Attempt, Puzzle.rating)
        .join(Puzzle, Puzzle.id == Attempt.puzzle_id)
        .where(Attempt.cycle_id == cycle_id)
    )
    attempts = [(row[0], row[1]) for row in result.all()]

    puzzle_set = cycle.puzzle_set
    return summarize_attempts(
        cycle, puzzle_set.user_id, puzzle_set.min_rating, puzzle_set.max_rating, attempts,
    )


# ---------------------------------------------------------------------------
# Progress views
# ---------------------------------------------------------------------------


async def get_set_progress(db: AsyncSession, user_id: int) -> list[SetProgress]:
    """All of a user's sets with completed-cycle counts and the open cycle, newest first."""
    sets_result = await db.execute(
        select(PuzzleSet)
        .where(PuzzleSet.user_id == user_id)
        .order_by(PuzzleSet.created_at.desc(), PuzzleSet.id.desc())
    )
    puzzle_sets = list(sets_result.scalars())
    if not puzzle_sets:
        return []

    set_ids = [s.id for s in puzzle_sets]
    completed_result = await db.execute(
        select(Cycle.puzzle_set_id, func.count(Cycle.id))
        .where(Cycle.puzzle_set_id.in_(set_ids), Cycle.status == "completed")
        .group_by(Cycle.puzzle_set_id)
    )
    completed = {row[0]: row[1] for row in completed_result.all()}

    open_result = await db.execute(
        select(Cycle.puzzle_set_id, Cycle.id, Cycle.cycle_number)
        .where(Cycle.puzzle_set_id.in_(set_ids), Cycle.status.in_(UNFINISHED_STATUSES))
    )
    open_cycles = {row[0]: (row[1], row[2]) for row in open_result.all()}

    progress = []
    for s in puzzle_sets:
        current = open_cycles.get(s.id)
        progress.append(SetProgress(
            set_id=s.id,
            name=s.name,
            size=s.size,
            target_cycles=s.target_cycles,
            completed_cycles=completed.get(s.id, 0),
            current_cycle_id=current[0] if current else None,
            current_cycle_number=current[1] if current else None,
        ))
    return progress


async def get_puzzle_progress(db: AsyncSession, set_id: int) -> list[PuzzleProgress]:
    """Per-puzzle attempt counts and average solve time across every cycle of a set."""
    puzzle_set = await get_puzzle_set(db, set_id)

    result = await db.execute(
        select(Attempt.puzzle_id, Attempt.is_correct, Attempt.was_skipped, Attempt.time_ms)
        .join(Cycle, Cycle.id == Attempt.cycle_id)
        .where(Cycle.puzzle_set_id == set_id)
    )
    rows = result.all()

    progress = []
    for item in puzzle_set.items:
        own = [r for r in rows if r.puzzle_id == item.puzzle_id]
        timed = [r.time_ms for r in own if not r.was_skipped]
        progress.append(PuzzleProgress(
            puzzle_id=item.puzzle_id,
            position=item.position,
            total_attempts=len(own),
            correct_attempts=sum(1 for r in own if r.is_correct),
            average_time_ms=sum(timed) / len(timed) if timed else None,
        ))
    return progress
