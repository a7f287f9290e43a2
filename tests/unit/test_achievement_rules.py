"""Achievement rule tests — pure evaluation over statistics snapshots."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from woodpecker.gamification.achievements import (
    ACHIEVEMENT_DEFINITIONS,
    ACHIEVEMENTS_BY_ID,
    TRIGGERS,
    evaluate_snapshot,
)
from woodpecker.gamification.schemas import StreakState, ThemeStats, UserStatsSnapshot
from woodpecker.gamification.stats import CycleSummary, build_snapshot
from woodpecker.training.schemas import AttemptRecord

T0 = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)


def attempt(correct: bool = True, time_ms: int = 8000, rating: int = 1500,
            themes: tuple[str, ...] = (), minutes: int = 0, skipped: bool = False) -> AttemptRecord:
    return AttemptRecord(
        puzzle_id=f"p{minutes}",
        is_correct=correct,
        was_skipped=skipped,
        time_ms=time_ms,
        attempted_at=T0 + timedelta(minutes=minutes),
        rating=rating,
        themes=themes,
    )


class TestDefinitions:
    """Test the definition table."""

    def test_ids_unique(self):
        ids = [d["id"] for d in ACHIEVEMENT_DEFINITIONS]
        assert len(ids) == len(set(ids))

    def test_every_trigger_type_known(self):
        for definition in ACHIEVEMENT_DEFINITIONS:
            assert definition["trigger_type"] in TRIGGERS

    @pytest.mark.parametrize("achievement_id", [
        "first-blood", "century", "half-thousand", "millennium", "speed-demon",
        "lightning-fast", "speed-streak", "flawless-streak", "perfectionist",
        "no-mistakes", "sharp-shooter", "cycle-complete", "woodpecker-pro",
        "woodpecker-master", "improvement-king", "early-bird", "night-owl",
        "on-fire", "consistent-trainer", "unstoppable", "dedicated",
        "theme-master-fork", "theme-master-pin", "theme-master-skewer",
        "mate-master", "tactical-prodigy", "rating-climber", "versatile", "set-master",
    ])
    def test_defined(self, achievement_id):
        definition = ACHIEVEMENTS_BY_ID[achievement_id]
        assert definition["name"]
        assert definition["description"]
        assert definition["category"] in {"puzzles", "speed", "cycles", "time", "streaks", "themes"}


class TestEvaluateSnapshot:
    """Test evaluate_snapshot."""

    def test_empty_snapshot_unlocks_nothing(self):
        assert evaluate_snapshot(UserStatsSnapshot(user_id=1)) == []

    def test_first_blood(self):
        assert "first-blood" in evaluate_snapshot(UserStatsSnapshot(user_id=1, total_attempts=1, total_correct=1))

    def test_already_unlocked_skipped(self):
        snapshot = UserStatsSnapshot(user_id=1, total_attempts=150, total_correct=120)
        assert evaluate_snapshot(snapshot, {"first-blood"}) == ["century"]

    def test_result_in_definition_order(self):
        snapshot = UserStatsSnapshot(user_id=1, total_attempts=600, total_correct=600, cycles_completed=1)
        unlocked = evaluate_snapshot(snapshot)
        order = [d["id"] for d in ACHIEVEMENT_DEFINITIONS]
        assert unlocked == sorted(unlocked, key=order.index)

    def test_snapshot_not_mutated(self):
        snapshot = UserStatsSnapshot(user_id=1, total_correct=5, theme_stats={"fork": ThemeStats(attempts=3, correct=3)})
        before = snapshot.model_dump()
        evaluate_snapshot(snapshot)
        assert snapshot.model_dump() == before

    def test_speed_thresholds(self):
        assert evaluate_snapshot(UserStatsSnapshot(user_id=1, fastest_correct_ms=3000)) == []
        fast = evaluate_snapshot(UserStatsSnapshot(user_id=1, fastest_correct_ms=1400))
        assert {"speed-demon", "lightning-fast"} <= set(fast)

    def test_perfect_cycle_sizes(self):
        small = evaluate_snapshot(UserStatsSnapshot(user_id=1, largest_perfect_cycle=10))
        assert "perfectionist" in small
        assert "no-mistakes" not in small
        large = evaluate_snapshot(UserStatsSnapshot(user_id=1, largest_perfect_cycle=20))
        assert "no-mistakes" in large

    def test_streak_uses_longest(self):
        unlocked = evaluate_snapshot(UserStatsSnapshot(user_id=1, current_streak=1, longest_streak=14))
        assert {"on-fire", "consistent-trainer"} <= set(unlocked)
        assert "unstoppable" not in unlocked

    def test_theme_master_needs_min_attempts(self):
        few = UserStatsSnapshot(user_id=1, theme_stats={"fork": ThemeStats(attempts=19, correct=19)})
        assert "theme-master-fork" not in evaluate_snapshot(few)
        enough = UserStatsSnapshot(user_id=1, theme_stats={"fork": ThemeStats(attempts=20, correct=18)})
        assert "theme-master-fork" in evaluate_snapshot(enough)

    def test_versatile(self):
        themes = {t: ThemeStats(attempts=15, correct=12) for t in ["fork", "pin", "skewer", "mate", "sacrifice"]}
        snapshot = UserStatsSnapshot(user_id=1, total_attempts=75, theme_stats=themes)
        assert "versatile" in evaluate_snapshot(snapshot)
        assert "versatile" not in evaluate_snapshot(snapshot.model_copy(update={"total_attempts": 74}))

    def test_tactical_prodigy(self):
        assert "tactical-prodigy" in evaluate_snapshot(
            UserStatsSnapshot(user_id=1, total_attempts=200, total_correct=170)
        )
        assert "tactical-prodigy" not in evaluate_snapshot(
            UserStatsSnapshot(user_id=1, total_attempts=200, total_correct=169)
        )


class TestBuildSnapshot:
    """Test snapshot construction from attempt history and cycles."""

    def test_counts_and_runs(self):
        history = [
            attempt(correct=False, minutes=0),
            attempt(time_ms=4000, minutes=1),
            attempt(time_ms=9000, minutes=2),
            attempt(time_ms=2000, minutes=3),
            attempt(time_ms=1000, minutes=4),
        ]
        snapshot = build_snapshot(1, history, [], StreakState())
        assert snapshot.total_attempts == 5
        assert snapshot.total_correct == 4
        assert snapshot.max_correct_run == 4
        assert snapshot.max_fast_correct_run == 2
        assert snapshot.fastest_correct_ms == 1000

    def test_skip_breaks_runs_and_is_not_fastest(self):
        history = [
            attempt(time_ms=3000, minutes=0),
            attempt(correct=False, skipped=True, time_ms=10, minutes=1),
            attempt(time_ms=3500, minutes=2),
        ]
        snapshot = build_snapshot(1, history, [], StreakState())
        assert snapshot.max_correct_run == 1
        assert snapshot.max_fast_correct_run == 1
        assert snapshot.fastest_correct_ms == 3000

    def test_long_run_survives_a_later_miss(self):
        history = [attempt(time_ms=3000, minutes=i) for i in range(30)]
        history.append(attempt(correct=False, minutes=30))
        snapshot = build_snapshot(1, history, [], StreakState())
        assert snapshot.max_correct_run == 30
        assert snapshot.max_fast_correct_run == 30

        unlocked = evaluate_snapshot(snapshot)
        assert {"flawless-streak", "speed-streak"} <= set(unlocked)

    def test_runs_below_threshold_do_not_unlock(self):
        history = [attempt(minutes=i) for i in range(24)]
        history.append(attempt(correct=False, minutes=24))
        history.extend(attempt(minutes=25 + i) for i in range(24))
        snapshot = build_snapshot(1, history, [], StreakState())
        assert snapshot.max_correct_run == 24
        assert "flawless-streak" not in evaluate_snapshot(snapshot)

    def test_hard_puzzles_and_themes(self):
        history = [
            attempt(rating=1800, themes=("fork",), minutes=0),
            attempt(rating=1799, themes=("fork", "pin"), minutes=1),
            attempt(correct=False, rating=2000, themes=("fork",), minutes=2),
        ]
        snapshot = build_snapshot(1, history, [], StreakState())
        assert snapshot.hard_puzzles_solved == 1
        assert snapshot.theme_stats["fork"] == ThemeStats(attempts=3, correct=2)
        assert snapshot.theme_stats["pin"] == ThemeStats(attempts=1, correct=1)

    def test_practice_hours_in_local_time(self):
        # 12:00 UTC is 21:00 in Tokyo
        snapshot = build_snapshot(1, [attempt()], [], StreakState(), tz=ZoneInfo("Asia/Tokyo"))
        assert snapshot.practice_hours == frozenset({21})

    def test_cycle_aggregates(self):
        cycles = [
            CycleSummary(set_id=1, cycle_number=1, total_puzzles=20, correct=15, total_time_ms=100_000, target_cycles=2),
            CycleSummary(set_id=1, cycle_number=2, total_puzzles=20, correct=20, total_time_ms=40_000, target_cycles=2),
            CycleSummary(set_id=2, cycle_number=1, total_puzzles=50, correct=48, total_time_ms=90_000, target_cycles=7),
        ]
        snapshot = build_snapshot(1, [], cycles, StreakState(current=3, longest=9), total_xp=900, level=3)
        assert snapshot.cycles_completed == 3
        assert snapshot.max_cycles_on_one_set == 2
        assert snapshot.sets_mastered == 1
        assert snapshot.best_cycle_accuracy == 1.0
        assert snapshot.largest_perfect_cycle == 20
        assert snapshot.best_large_cycle_accuracy == pytest.approx(0.96)
        assert snapshot.best_time_improvement_pct == pytest.approx(60.0)
        assert snapshot.longest_streak == 9
        assert snapshot.total_xp == 900

        unlocked = evaluate_snapshot(snapshot)
        assert {"cycle-complete", "perfectionist", "no-mistakes", "sharp-shooter",
                "improvement-king", "set-master"} <= set(unlocked)
        assert "woodpecker-pro" not in unlocked
