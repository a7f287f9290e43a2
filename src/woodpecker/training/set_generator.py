"""Puzzle set generation — uniform sampling from a rating-bounded catalog pool.

The generator never persists anything; saving the resulting definition is
the caller's job. Randomness defaults to ``random.SystemRandom`` so that
every call is an independent, unreproducible sample. Tests pass a seeded
``random.Random`` instead.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Protocol

from woodpecker.errors import InsufficientCandidates
from woodpecker.training.schemas import PuzzleInfo, PuzzleSetDefinition, PuzzleSetRequest

logger = logging.getLogger(__name__)

RATING_FLOOR = 800
RATING_CEILING = 2600


class CandidateSource(Protocol):
    async def find_candidates(
        self, min_rating: int, max_rating: int, theme: str | None = None,
    ) -> list[PuzzleInfo]: ...


def rating_band_for(target_rating: int, rating_range: int) -> tuple[int, int]:
    """Center a band of width ``rating_range`` on ``target_rating``, clamped to 800..2600."""
    half = rating_range // 2
    return max(RATING_FLOOR, target_rating - half), min(RATING_CEILING, target_rating + half)


def sample_puzzle_ids(
    candidates: Sequence[PuzzleInfo],
    size: int,
    rng: random.Random | None = None,
) -> list[str]:
    """Draw ``size`` distinct puzzle ids uniformly from the pool.

    Raises InsufficientCandidates rather than returning a short sample.
    """
    # De-duplicate and fix an order so that a seeded rng is reproducible
    pool = sorted({p.id for p in candidates})
    if len(pool) < size:
        raise InsufficientCandidates(len(pool), size)
    source = rng if rng is not None else random.SystemRandom()
    return source.sample(pool, size)


async def generate_puzzle_set(
    catalog: CandidateSource,
    min_rating: int,
    max_rating: int,
    size: int,
    focus_theme: str | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> PuzzleSetDefinition:
    """Build an ordered puzzle-set definition from the catalog."""
    request = PuzzleSetRequest(
        min_rating=min_rating, max_rating=max_rating, size=size, focus_theme=focus_theme,
    )
    candidates = await catalog.find_candidates(request.min_rating, request.max_rating, request.focus_theme)

    try:
        puzzle_ids = sample_puzzle_ids(candidates, request.size, rng)
    except InsufficientCandidates as exc:
        detail = f"rating {request.min_rating}-{request.max_rating}"
        if request.focus_theme:
            detail += f', theme "{request.focus_theme}"'
        logger.info("Set request rejected: %d/%d candidates (%s)", exc.found, exc.requested, detail)
        raise InsufficientCandidates(exc.found, exc.requested, detail) from exc

    return PuzzleSetDefinition(
        puzzle_ids=tuple(puzzle_ids),
        min_rating=request.min_rating,
        max_rating=request.max_rating,
        focus_theme=request.focus_theme,
        created_at=now or datetime.now(timezone.utc),
    )
