"""Pydantic models for puzzle sets, cycles and attempts."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from woodpecker.training.themes import is_training_theme

CycleStatus = Literal["not_started", "in_progress", "completed", "abandoned"]


# --- Catalog ---


class PuzzleInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    rating: int
    themes: tuple[str, ...] = ()


# --- Puzzle sets ---


class PuzzleSetRequest(BaseModel):
    """Validated input for generating a puzzle set."""

    min_rating: int = Field(ge=400, le=3200)
    max_rating: int = Field(ge=400, le=3200)
    size: int = Field(ge=1, le=500)
    focus_theme: str | None = None

    @field_validator("focus_theme")
    @classmethod
    def _known_theme(cls, value: str | None) -> str | None:
        if value is not None and not is_training_theme(value):
            msg = f"Unknown training theme: {value}"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _band_order(self) -> PuzzleSetRequest:
        if self.min_rating > self.max_rating:
            msg = f"min_rating {self.min_rating} exceeds max_rating {self.max_rating}"
            raise ValueError(msg)
        return self


class PuzzleSetDefinition(BaseModel):
    """Ordered, immutable puzzle selection. Not persisted until a caller saves it."""

    model_config = ConfigDict(frozen=True)

    puzzle_ids: tuple[str, ...]
    min_rating: int
    max_rating: int
    focus_theme: str | None = None
    created_at: datetime
    set_id: int | None = None
    user_id: int | None = None

    @property
    def size(self) -> int:
        return len(self.puzzle_ids)


class SetProgress(BaseModel):
    set_id: int
    name: str
    size: int
    target_cycles: int
    completed_cycles: int
    current_cycle_id: int | None = None
    current_cycle_number: int | None = None


class PuzzleProgress(BaseModel):
    puzzle_id: str
    position: int
    total_attempts: int
    correct_attempts: int
    average_time_ms: float | None = None


# --- Cycles ---


class CycleState(BaseModel):
    model_config = ConfigDict(frozen=True)

    cycle_id: int
    set_id: int
    cycle_number: int
    status: CycleStatus
    attempts_recorded: int
    total_puzzles: int
    next_position: int | None
    next_puzzle_id: str | None = None


class CycleStatistics(BaseModel):
    """Derived statistics of a completed cycle; the XP engine's only input besides streak state."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    set_id: int
    cycle_id: int
    cycle_number: int
    total_puzzles: int
    correct: int
    incorrect: int
    skipped: int
    accuracy: float
    average_time_ms: float | None
    total_time_ms: int
    missed_puzzle_ids: tuple[str, ...] = ()
    correct_puzzle_ratings: tuple[int, ...] = ()
    min_rating: int
    max_rating: int
    completed_at: datetime | None = None


MAX_ATTEMPT_TIME_MS = 3_600_000


class AttemptSubmission(BaseModel):
    """Validated attempt input. A skip is always recorded as incorrect."""

    model_config = ConfigDict(frozen=True)

    puzzle_id: str = Field(min_length=1)
    correct: bool
    time_ms: int = Field(ge=0, le=MAX_ATTEMPT_TIME_MS)
    skip: bool = False

    @model_validator(mode="before")
    @classmethod
    def _skip_is_miss(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("skip"):
            data = {**data, "correct": False}
        return data


# --- Attempt history / review ---


class AttemptRecord(BaseModel):
    """One row of a user's attempt history, as consumed by the projections."""

    model_config = ConfigDict(frozen=True)

    puzzle_id: str
    is_correct: bool
    was_skipped: bool = False
    time_ms: int
    attempted_at: datetime
    rating: int = 0
    themes: tuple[str, ...] = ()
    set_id: int | None = None
    cycle_id: int | None = None

    @property
    def is_miss(self) -> bool:
        return self.was_skipped or not self.is_correct


class WeakPuzzle(BaseModel):
    model_config = ConfigDict(frozen=True)

    puzzle_id: str
    miss_count: int
    attempt_count: int
    last_attempted_at: datetime
    themes: tuple[str, ...] = ()


class ThemeWeakness(BaseModel):
    theme: str
    total_attempts: int
    correct_attempts: int
    accuracy: float
    puzzle_count: int


class ReviewResult(BaseModel):
    """One answered puzzle in a standalone review session."""

    model_config = ConfigDict(frozen=True)

    puzzle_id: str
    is_correct: bool
    time_ms: int = Field(ge=0)
