"""Weak puzzle detection — pure projections over a user's attempt history.

A puzzle is weak when it has been missed (answered incorrectly or skipped)
at least ``threshold`` times and its most recent attempt was also a miss.
Solving it once takes it off the list until it is missed again.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable

from woodpecker.training.schemas import AttemptRecord, ThemeWeakness, WeakPuzzle

MAX_THEME_WEAKNESSES = 15


def find_weak_puzzles(history: Iterable[AttemptRecord], threshold: int = 2) -> list[WeakPuzzle]:
    """Return weak puzzles, most-missed first, then stalest, then by id."""
    if threshold < 1:
        raise ValueError(f"threshold must be >= 1, got {threshold}")

    by_puzzle: dict[str, list[AttemptRecord]] = defaultdict(list)
    for record in history:
        by_puzzle[record.puzzle_id].append(record)

    weak = []
    for puzzle_id, records in by_puzzle.items():
        misses = sum(1 for r in records if r.is_miss)
        if misses < threshold:
            continue
        latest = sorted(records, key=lambda r: r.attempted_at)[-1]
        if not latest.is_miss:
            continue
        weak.append(WeakPuzzle(
            puzzle_id=puzzle_id,
            miss_count=misses,
            attempt_count=len(records),
            last_attempted_at=latest.attempted_at,
            themes=latest.themes,
        ))

    weak.sort(key=lambda w: (-w.miss_count, w.last_attempted_at, w.puzzle_id))
    return weak


def reviewable_puzzle_ids(history: Iterable[AttemptRecord]) -> set[str]:
    """Puzzles the user has missed at least once. Only these can earn review XP."""
    return {record.puzzle_id for record in history if record.is_miss}


def summarize_theme_weaknesses(
    history: Iterable[AttemptRecord],
    weak: Iterable[WeakPuzzle],
    limit: int = MAX_THEME_WEAKNESSES,
) -> list[ThemeWeakness]:
    """Per-theme accuracy over the attempts on weak puzzles, worst theme first."""
    weak_ids = {w.puzzle_id for w in weak}
    totals: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    puzzles: dict[str, set[str]] = defaultdict(set)

    for record in history:
        if record.puzzle_id not in weak_ids:
            continue
        for theme in record.themes:
            totals[theme][0] += 1
            if record.is_correct and not record.was_skipped:
                totals[theme][1] += 1
            puzzles[theme].add(record.puzzle_id)

    summary = [
        ThemeWeakness(
            theme=theme,
            total_attempts=attempts,
            correct_attempts=correct,
            accuracy=correct / attempts if attempts else 0.0,
            puzzle_count=len(puzzles[theme]),
        )
        for theme, (attempts, correct) in totals.items()
    ]
    summary.sort(key=lambda t: (t.accuracy, -t.total_attempts, t.theme))
    return summary[:limit]
