"""Unit tests for puzzle set generation."""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from woodpecker.errors import InsufficientCandidates, TrainingError
from woodpecker.training.catalog import InMemoryCatalog, matches
from woodpecker.training.schemas import PuzzleInfo
from woodpecker.training.set_generator import (
    generate_puzzle_set,
    rating_band_for,
    sample_puzzle_ids,
)


def _catalog() -> InMemoryCatalog:
    puzzles = [
        PuzzleInfo(id=f"p{i:02d}", rating=1000 + 50 * i, themes=("fork",) if i % 2 == 0 else ("pin",))
        for i in range(20)
    ]
    return InMemoryCatalog(puzzles)


class TestRatingBand:
    """Test rating_band_for."""

    def test_centered_band(self):
        assert rating_band_for(1500, 200) == (1400, 1600)

    def test_clamped_to_floor(self):
        assert rating_band_for(850, 400) == (800, 1050)

    def test_clamped_to_ceiling(self):
        assert rating_band_for(2500, 400) == (2300, 2600)


class TestSamplePuzzleIds:
    """Test uniform sampling of distinct ids."""

    def test_returns_exact_size_distinct(self):
        pool = [PuzzleInfo(id=f"x{i}", rating=1500) for i in range(10)]
        ids = sample_puzzle_ids(pool, 7, random.Random(1))
        assert len(ids) == 7
        assert len(set(ids)) == 7

    def test_seeded_rng_is_reproducible(self):
        pool = [PuzzleInfo(id=f"x{i}", rating=1500) for i in range(10)]
        first = sample_puzzle_ids(pool, 5, random.Random(7))
        second = sample_puzzle_ids(list(reversed(pool)), 5, random.Random(7))
        assert first == second

    def test_duplicate_candidates_count_once(self):
        pool = [PuzzleInfo(id="dup", rating=1500)] * 5
        with pytest.raises(InsufficientCandidates) as exc_info:
            sample_puzzle_ids(pool, 2)
        assert exc_info.value.found == 1
        assert exc_info.value.requested == 2

    def test_whole_pool_when_size_matches(self):
        pool = [PuzzleInfo(id=f"x{i}", rating=1500) for i in range(4)]
        assert sorted(sample_puzzle_ids(pool, 4)) == ["x0", "x1", "x2", "x3"]


class TestGeneratePuzzleSet:
    """Test generate_puzzle_set against an in-memory catalog."""

    @pytest.mark.asyncio
    async def test_all_puzzles_inside_band(self):
        catalog = _catalog()
        definition = await generate_puzzle_set(catalog, 1200, 1500, 5, rng=random.Random(3))
        assert definition.size == 5
        infos = await catalog.get_puzzles(definition.puzzle_ids)
        assert all(1200 <= p.rating <= 1500 for p in infos.values())
        assert (definition.min_rating, definition.max_rating) == (1200, 1500)

    @pytest.mark.asyncio
    async def test_band_is_inclusive(self):
        # 1200, 1250 and 1300 are exactly the three puzzles in the band
        definition = await generate_puzzle_set(_catalog(), 1200, 1300, 3, rng=random.Random(0))
        assert sorted(definition.puzzle_ids) == ["p04", "p05", "p06"]

    @pytest.mark.asyncio
    async def test_focus_theme_filters_pool(self):
        catalog = _catalog()
        definition = await generate_puzzle_set(catalog, 1000, 2000, 6, focus_theme="fork", rng=random.Random(5))
        infos = await catalog.get_puzzles(definition.puzzle_ids)
        assert all("fork" in p.themes for p in infos.values())
        assert definition.focus_theme == "fork"

    @pytest.mark.asyncio
    async def test_insufficient_candidates_carries_counts(self):
        with pytest.raises(InsufficientCandidates) as exc_info:
            await generate_puzzle_set(_catalog(), 1000, 1100, 5)
        err = exc_info.value
        assert (err.found, err.requested) == (3, 5)
        assert "rating 1000-1100" in str(err)
        assert isinstance(err, TrainingError)
        assert isinstance(err, ValueError)

    @pytest.mark.asyncio
    async def test_insufficient_message_names_theme(self):
        with pytest.raises(InsufficientCandidates, match='theme "pin"'):
            await generate_puzzle_set(_catalog(), 1000, 1100, 3, focus_theme="pin")

    @pytest.mark.asyncio
    async def test_uses_injected_timestamp(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        definition = await generate_puzzle_set(_catalog(), 1000, 2000, 2, rng=random.Random(1), now=now)
        assert definition.created_at == now
        assert definition.set_id is None

    @pytest.mark.asyncio
    async def test_inverted_band_rejected(self):
        with pytest.raises(ValidationError):
            await generate_puzzle_set(_catalog(), 1600, 1200, 2)

    @pytest.mark.asyncio
    async def test_unknown_theme_rejected(self):
        with pytest.raises(ValidationError, match="Unknown training theme"):
            await generate_puzzle_set(_catalog(), 1000, 2000, 2, focus_theme="zugzwangish")

    @pytest.mark.asyncio
    async def test_size_limits(self):
        with pytest.raises(ValidationError):
            await generate_puzzle_set(_catalog(), 1000, 2000, 0)
        with pytest.raises(ValidationError):
            await generate_puzzle_set(_catalog(), 1000, 2000, 501)


class TestMatches:
    """Test the catalog predicate."""

    def test_theme_required_when_given(self):
        puzzle = PuzzleInfo(id="a", rating=1500, themes=("fork",))
        assert matches(puzzle, 1500, 1500, None)
        assert matches(puzzle, 1400, 1600, "fork")
        assert not matches(puzzle, 1400, 1600, "pin")
        assert not matches(puzzle, 1501, 1600, None)
