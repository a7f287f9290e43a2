"""Tactical themes a puzzle set can focus on."""

from __future__ import annotations

TRAINING_THEMES: dict[str, dict[str, str]] = {
    "mate": {"label": "Mates", "description": "General mating patterns"},
    "mateIn1": {"label": "Mate in 1", "description": "Immediate checkmates"},
    "mateIn2": {"label": "Mate in 2", "description": "Two-move mating combinations"},
    "mateIn3": {"label": "Mate in 3", "description": "Three-move mating combinations"},
    "fork": {"label": "Forks", "description": "Attacking multiple targets at once"},
    "pin": {"label": "Pins", "description": "Immobilize pieces with line pressure"},
    "skewer": {"label": "Skewers", "description": "Attack through a more valuable piece"},
    "discoveredAttack": {"label": "Discovered Attacks", "description": "Reveal hidden attacks by moving a piece"},
    "doubleCheck": {"label": "Double Checks", "description": "Force king moves with two simultaneous checks"},
    "backRankMate": {"label": "Back Rank Mate", "description": "Punish weak back rank defenses"},
    "attraction": {"label": "Attraction", "description": "Lure pieces to vulnerable squares"},
    "deflection": {"label": "Deflection", "description": "Distract defenders from key squares"},
    "sacrifice": {"label": "Sacrifices", "description": "Give material for tactical gain"},
    "hangingPiece": {"label": "Hanging Pieces", "description": "Punish undefended pieces"},
    "trappedPiece": {"label": "Trapped Pieces", "description": "Win pieces with restricted mobility"},
}


def is_training_theme(theme: str) -> bool:
    return theme in TRAINING_THEMES


def get_theme_label(theme: str | None) -> str:
    """Human label for a theme key; unknown keys are returned as-is."""
    if not theme:
        return "Any theme"
    return TRAINING_THEMES.get(theme, {}).get("label", theme)
