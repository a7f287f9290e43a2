"""Level computation tests."""

from __future__ import annotations

from woodpecker.gamification.level_thresholds import (
    LEVEL_THRESHOLDS,
    MAX_LEVEL,
    compute_level,
    get_level_from_xp,
)


class TestLevelThresholds:
    """Test the generated level table."""

    def test_fifty_levels(self):
        assert len(LEVEL_THRESHOLDS) == MAX_LEVEL == 50
        assert [t["level"] for t in LEVEL_THRESHOLDS] == list(range(1, 51))

    def test_curve_values(self):
        cumulative = {t["level"]: t["cumulative"] for t in LEVEL_THRESHOLDS}
        assert cumulative[1] == 0
        assert cumulative[2] == 282
        assert cumulative[4] == 800
        assert cumulative[50] == 35355

    def test_strictly_increasing(self):
        values = [t["cumulative"] for t in LEVEL_THRESHOLDS]
        assert values == sorted(set(values))

    def test_xp_required_matches_cumulative_deltas(self):
        for prev, cur in zip(LEVEL_THRESHOLDS, LEVEL_THRESHOLDS[1:]):
            assert cur["xp_required"] == cur["cumulative"] - prev["cumulative"]

    def test_titles(self):
        titles = {t["level"]: t["title"] for t in LEVEL_THRESHOLDS}
        assert titles[1] == "Pawn"
        assert titles[4] == "Pawn"
        assert titles[5] == "Knight"
        assert titles[10] == "Bishop"
        assert titles[20] == "Rook"
        assert titles[35] == "Queen"
        assert titles[49] == "Queen"
        assert titles[50] == "Grandmaster"


class TestGetLevelFromXp:
    """Test the total, monotonic level mapping."""

    def test_zero_is_level_one(self):
        assert get_level_from_xp(0) == 1

    def test_negative_is_level_one(self):
        assert get_level_from_xp(-500) == 1

    def test_exact_threshold(self):
        assert get_level_from_xp(281) == 1
        assert get_level_from_xp(282) == 2

    def test_clamped_at_max(self):
        assert get_level_from_xp(10**9) == 50

    def test_monotonic(self):
        levels = [get_level_from_xp(xp) for xp in range(0, 40000, 97)]
        assert levels == sorted(levels)


class TestComputeLevel:
    """Test compute_level details."""

    def test_level_one_progress(self):
        info = compute_level(141)
        assert info["level"] == 1
        assert info["title"] == "Pawn"
        assert info["xp_into_level"] == 141
        assert info["xp_for_level"] == 282
        assert info["next_level"] == 2
        assert info["progress_percent"] == 50.0

    def test_max_level(self):
        info = compute_level(50000)
        assert info["level"] == 50
        assert info["title"] == "Grandmaster"
        assert info["next_level"] == 50
        assert info["xp_for_level"] == 1
        assert info["progress_percent"] == 100.0

    def test_negative_xp(self):
        info = compute_level(-10)
        assert info["level"] == 1
        assert info["xp_into_level"] == 0
