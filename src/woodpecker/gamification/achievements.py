"""Achievement definitions and pure evaluation against a statistics snapshot.

Each definition names a trigger type and its config; TRIGGERS maps the
type to a predicate over UserStatsSnapshot.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from woodpecker.gamification.schemas import UserStatsSnapshot

ACHIEVEMENT_DEFINITIONS: list[dict] = [
    # Puzzles
    {
        "id": "first-blood",
        "name": "First Blood",
        "description": "Solve your first puzzle",
        "category": "puzzles",
        "trigger_type": "correct_count",
        "trigger_config": {"threshold": 1},
    },
    {
        "id": "century",
        "name": "Century",
        "description": "Solve 100 puzzles",
        "category": "puzzles",
        "trigger_type": "correct_count",
        "trigger_config": {"threshold": 100},
    },
    {
        "id": "half-thousand",
        "name": "Half Thousand",
        "description": "Solve 500 puzzles",
        "category": "puzzles",
        "trigger_type": "correct_count",
        "trigger_config": {"threshold": 500},
    },
    {
        "id": "millennium",
        "name": "Millennium",
        "description": "Solve 1,000 puzzles",
        "category": "puzzles",
        "trigger_type": "correct_count",
        "trigger_config": {"threshold": 1000},
    },
    {
        "id": "flawless-streak",
        "name": "Flawless Streak",
        "description": "Solve 25 puzzles in a row without a miss",
        "category": "puzzles",
        "trigger_type": "correct_run",
        "trigger_config": {"threshold": 25},
    },
    {
        "id": "tactical-prodigy",
        "name": "Tactical Prodigy",
        "description": "Hold 85%+ overall accuracy over at least 200 attempts",
        "category": "puzzles",
        "trigger_type": "overall_accuracy",
        "trigger_config": {"percent": 85, "min_attempts": 200},
    },
    {
        "id": "rating-climber",
        "name": "Rating Climber",
        "description": "Solve 50 puzzles rated 1800 or higher",
        "category": "puzzles",
        "trigger_type": "hard_puzzles",
        "trigger_config": {"threshold": 50},
    },
    # Speed
    {
        "id": "speed-demon",
        "name": "Speed Demon",
        "description": "Solve a puzzle in under 3 seconds",
        "category": "speed",
        "trigger_type": "fastest_correct",
        "trigger_config": {"under_ms": 3000},
    },
    {
        "id": "lightning-fast",
        "name": "Lightning Fast",
        "description": "Solve a puzzle in under 1.5 seconds",
        "category": "speed",
        "trigger_type": "fastest_correct",
        "trigger_config": {"under_ms": 1500},
    },
    {
        "id": "speed-streak",
        "name": "Speed Streak",
        "description": "Solve 10 puzzles in a row, each in under 5 seconds",
        "category": "speed",
        "trigger_type": "fast_correct_run",
        "trigger_config": {"threshold": 10},
    },
    # Cycles
    {
        "id": "cycle-complete",
        "name": "Cycle Complete",
        "description": "Complete your first cycle",
        "category": "cycles",
        "trigger_type": "cycles_completed",
        "trigger_config": {"threshold": 1},
    },
    {
        "id": "perfectionist",
        "name": "Perfectionist",
        "description": "Complete a cycle with 100% accuracy",
        "category": "cycles",
        "trigger_type": "perfect_cycle",
        "trigger_config": {"min_puzzles": 1},
    },
    {
        "id": "no-mistakes",
        "name": "No Mistakes",
        "description": "Complete a cycle of 20+ puzzles with 100% accuracy",
        "category": "cycles",
        "trigger_type": "perfect_cycle",
        "trigger_config": {"min_puzzles": 20},
    },
    {
        "id": "sharp-shooter",
        "name": "Sharp Shooter",
        "description": "Complete a cycle of 50+ puzzles with 95%+ accuracy",
        "category": "cycles",
        "trigger_type": "large_cycle_accuracy",
        "trigger_config": {"percent": 95},
    },
    {
        "id": "woodpecker-pro",
        "name": "Woodpecker Pro",
        "description": "Complete 5 cycles of the same set",
        "category": "cycles",
        "trigger_type": "cycles_same_set",
        "trigger_config": {"threshold": 5},
    },
    {
        "id": "woodpecker-master",
        "name": "Woodpecker Master",
        "description": "Complete 10 cycles of the same set",
        "category": "cycles",
        "trigger_type": "cycles_same_set",
        "trigger_config": {"threshold": 10},
    },
    {
        "id": "improvement-king",
        "name": "Improvement King",
        "description": "Cut a set's cycle time in half from its first cycle",
        "category": "cycles",
        "trigger_type": "time_improvement",
        "trigger_config": {"percent": 50},
    },
    {
        "id": "set-master",
        "name": "Set Master",
        "description": "Reach the target cycle count on a puzzle set",
        "category": "cycles",
        "trigger_type": "sets_mastered",
        "trigger_config": {"threshold": 1},
    },
    # Time of day (user's local time)
    {
        "id": "early-bird",
        "name": "Early Bird",
        "description": "Practice before 7am",
        "category": "time",
        "trigger_type": "practice_hour",
        "trigger_config": {"from_hour": 0, "to_hour": 7},
    },
    {
        "id": "night-owl",
        "name": "Night Owl",
        "description": "Practice after midnight",
        "category": "time",
        "trigger_type": "practice_hour",
        "trigger_config": {"from_hour": 0, "to_hour": 5},
    },
    # Streaks
    {
        "id": "on-fire",
        "name": "On Fire",
        "description": "Reach a 7-day streak",
        "category": "streaks",
        "trigger_type": "streak_days",
        "trigger_config": {"days": 7},
    },
    {
        "id": "consistent-trainer",
        "name": "Consistent Trainer",
        "description": "Reach a 14-day streak",
        "category": "streaks",
        "trigger_type": "streak_days",
        "trigger_config": {"days": 14},
    },
    {
        "id": "unstoppable",
        "name": "Unstoppable",
        "description": "Reach a 30-day streak",
        "category": "streaks",
        "trigger_type": "streak_days",
        "trigger_config": {"days": 30},
    },
    {
        "id": "dedicated",
        "name": "Dedicated",
        "description": "Reach a 60-day streak",
        "category": "streaks",
        "trigger_type": "streak_days",
        "trigger_config": {"days": 60},
    },
    # Themes
    {
        "id": "theme-master-fork",
        "name": "Theme Master: Forks",
        "description": "90%+ accuracy on fork puzzles (min 20 attempts)",
        "category": "themes",
        "trigger_type": "theme_accuracy",
        "trigger_config": {"theme": "fork", "percent": 90, "min_attempts": 20},
    },
    {
        "id": "theme-master-pin",
        "name": "Theme Master: Pins",
        "description": "90%+ accuracy on pin puzzles (min 20 attempts)",
        "category": "themes",
        "trigger_type": "theme_accuracy",
        "trigger_config": {"theme": "pin", "percent": 90, "min_attempts": 20},
    },
    {
        "id": "theme-master-skewer",
        "name": "Theme Master: Skewers",
        "description": "90%+ accuracy on skewer puzzles (min 20 attempts)",
        "category": "themes",
        "trigger_type": "theme_accuracy",
        "trigger_config": {"theme": "skewer", "percent": 90, "min_attempts": 20},
    },
    {
        "id": "mate-master",
        "name": "Mate Master",
        "description": "90%+ accuracy on mating puzzles (min 30 attempts)",
        "category": "themes",
        "trigger_type": "theme_accuracy",
        "trigger_config": {"theme": "mate", "percent": 90, "min_attempts": 30},
    },
    {
        "id": "versatile",
        "name": "Versatile",
        "description": "80%+ accuracy on 5 different themes (min 15 attempts each)",
        "category": "themes",
        "trigger_type": "multi_theme",
        "trigger_config": {"themes": 5, "percent": 80, "min_attempts": 15, "min_total": 75},
    },
]

ACHIEVEMENTS_BY_ID: dict[str, dict] = {a["id"]: a for a in ACHIEVEMENT_DEFINITIONS}


def _percent(part: int, whole: int) -> float:
    return part / whole * 100 if whole else 0.0


def _theme_accuracy(s: UserStatsSnapshot, c: dict) -> bool:
    stats = s.theme_stats.get(c["theme"])
    if stats is None or stats.attempts < c["min_attempts"]:
        return False
    return stats.accuracy * 100 >= c["percent"]


def _multi_theme(s: UserStatsSnapshot, c: dict) -> bool:
    if s.total_attempts < c["min_total"]:
        return False
    qualifying = sum(
        1 for t in s.theme_stats.values()
        if t.attempts >= c["min_attempts"] and t.accuracy * 100 >= c["percent"]
    )
    return qualifying >= c["themes"]


TRIGGERS: dict[str, Callable[[UserStatsSnapshot, dict], bool]] = {
    "correct_count": lambda s, c: s.total_correct >= c["threshold"],
    "correct_run": lambda s, c: s.max_correct_run >= c["threshold"],
    "overall_accuracy": lambda s, c: (
        s.total_attempts >= c["min_attempts"]
        and _percent(s.total_correct, s.total_attempts) >= c["percent"]
    ),
    "hard_puzzles": lambda s, c: s.hard_puzzles_solved >= c["threshold"],
    "fastest_correct": lambda s, c: (
        s.fastest_correct_ms is not None and s.fastest_correct_ms < c["under_ms"]
    ),
    "fast_correct_run": lambda s, c: s.max_fast_correct_run >= c["threshold"],
    "cycles_completed": lambda s, c: s.cycles_completed >= c["threshold"],
    "perfect_cycle": lambda s, c: (
        s.largest_perfect_cycle > 0 and s.largest_perfect_cycle >= c["min_puzzles"]
    ),
    "large_cycle_accuracy": lambda s, c: s.best_large_cycle_accuracy * 100 >= c["percent"],
    "cycles_same_set": lambda s, c: s.max_cycles_on_one_set >= c["threshold"],
    "time_improvement": lambda s, c: s.best_time_improvement_pct >= c["percent"],
    "sets_mastered": lambda s, c: s.sets_mastered >= c["threshold"],
    "practice_hour": lambda s, c: any(c["from_hour"] <= h < c["to_hour"] for h in s.practice_hours),
    "streak_days": lambda s, c: s.longest_streak >= c["days"],
    "theme_accuracy": _theme_accuracy,
    "multi_theme": _multi_theme,
}


def check_achievement(definition: dict, snapshot: UserStatsSnapshot) -> bool:
    predicate = TRIGGERS[definition["trigger_type"]]
    return predicate(snapshot, definition["trigger_config"])


def evaluate_snapshot(snapshot: UserStatsSnapshot, unlocked: Iterable[str] = ()) -> list[str]:
    """Ids of achievements whose condition holds and that are not yet unlocked, in definition order."""
    already = set(unlocked)
    return [
        d["id"] for d in ACHIEVEMENT_DEFINITIONS
        if d["id"] not in already and check_achievement(d, snapshot)
    ]
