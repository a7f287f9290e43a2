"""Puzzle catalog adapter — read-only access filtered by rating band and theme."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import cast, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import Puzzle
from woodpecker.training.schemas import PuzzleInfo

logger = logging.getLogger(__name__)


def _to_info(puzzle: Puzzle) -> PuzzleInfo:
    return PuzzleInfo(id=puzzle.id, rating=puzzle.rating, themes=tuple(puzzle.themes or ()))


def matches(puzzle: PuzzleInfo, min_rating: int, max_rating: int, theme: str | None) -> bool:
    """Band is inclusive on both ends."""
    if not min_rating <= puzzle.rating <= max_rating:
        return False
    return theme is None or theme in puzzle.themes


class PuzzleCatalog:
    """Catalog backed by the ``puzzles`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_candidates(
        self, min_rating: int, max_rating: int, theme: str | None = None,
    ) -> list[PuzzleInfo]:
        """Return the unordered candidate pool for a rating band and optional theme."""
        stmt = select(Puzzle).where(Puzzle.rating >= min_rating, Puzzle.rating <= max_rating)
        if theme is not None and self.db.get_bind().dialect.name == "postgresql":
            stmt = stmt.where(cast(Puzzle.themes, JSONB).contains([theme]))

        result = await self.db.execute(stmt)
        pool = [_to_info(p) for p in result.scalars()]
        if theme is not None:
            pool = [p for p in pool if theme in p.themes]

        logger.debug(
            "Catalog pool: %d puzzles in [%d, %d] theme=%s",
            len(pool), min_rating, max_rating, theme,
        )
        return pool

    async def get_puzzles(self, puzzle_ids: Iterable[str]) -> dict[str, PuzzleInfo]:
        """Batch-load puzzles by id. Unknown ids are absent from the result."""
        ids = list(set(puzzle_ids))
        if not ids:
            return {}
        result = await self.db.execute(select(Puzzle).where(Puzzle.id.in_(ids)))
        return {p.id: _to_info(p) for p in result.scalars()}


class InMemoryCatalog:
    """Catalog over a fixed sequence of puzzles, e.g. loaded from a CSV dump."""

    def __init__(self, puzzles: Sequence[PuzzleInfo]) -> None:
        self._puzzles = {p.id: p for p in puzzles}

    async def find_candidates(
        self, min_rating: int, max_rating: int, theme: str | None = None,
    ) -> list[PuzzleInfo]:
        return [p for p in self._puzzles.values() if matches(p, min_rating, max_rating, theme)]

    async def get_puzzles(self, puzzle_ids: Iterable[str]) -> dict[str, PuzzleInfo]:
        return {pid: self._puzzles[pid] for pid in puzzle_ids if pid in self._puzzles}
