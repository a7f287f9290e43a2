"""Level thresholds and computation.

Cumulative XP for level n is floor(100 * n^1.5), with level 1 starting at 0.
Levels are capped at 50.
"""

from __future__ import annotations

MAX_LEVEL = 50

LEVEL_TITLES: list[tuple[int, str]] = [
    (1, "Pawn"),
    (5, "Knight"),
    (10, "Bishop"),
    (20, "Rook"),
    (35, "Queen"),
    (50, "Grandmaster"),
]


def _title_for(level: int) -> str:
    title = LEVEL_TITLES[0][1]
    for first_level, name in LEVEL_TITLES:
        if level >= first_level:
            title = name
    return title


def _cumulative_for(level: int) -> int:
    if level <= 1:
        return 0
    return int(100 * level ** 1.5)


LEVEL_THRESHOLDS: list[dict] = [
    {
        "level": n,
        "title": _title_for(n),
        "xp_required": _cumulative_for(n) - _cumulative_for(n - 1),
        "cumulative": _cumulative_for(n),
    }
    for n in range(1, MAX_LEVEL + 1)
]


def get_level_from_xp(total_xp: int) -> int:
    """Highest level whose cumulative threshold is reached. Negative XP is level 1."""
    level = 1
    for threshold in LEVEL_THRESHOLDS:
        if total_xp >= threshold["cumulative"]:
            level = threshold["level"]
        else:
            break
    return level


def compute_level(total_xp: int) -> dict:
    """Compute level info from total XP."""
    current = LEVEL_THRESHOLDS[get_level_from_xp(total_xp) - 1]
    if current["level"] < MAX_LEVEL:
        next_level = LEVEL_THRESHOLDS[current["level"]]
    else:
        next_level = current

    xp_into_level = max(0, total_xp - current["cumulative"])
    xp_for_level = next_level["cumulative"] - current["cumulative"]

    # At max level, avoid division by zero
    if xp_for_level == 0:
        xp_for_level = 1
        progress = 100.0
    else:
        progress = round(min(100.0, xp_into_level / xp_for_level * 100), 1)

    return {
        "level": current["level"],
        "title": current["title"],
        "xp_into_level": xp_into_level,
        "xp_for_level": xp_for_level,
        "next_level": next_level["level"],
        "next_title": next_level["title"],
        "progress_percent": progress,
    }
