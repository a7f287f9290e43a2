"""Pydantic models for leaderboards."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

LeaderboardPeriod = Literal["weekly", "alltime"]


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    display_name: str
    xp: int
    joined_at: datetime


class LeaderboardPage(BaseModel):
    period: LeaderboardPeriod
    week_iso: str | None = None
    entries: list[LeaderboardEntry]
    total: int
    limit: int
    offset: int
    cached: bool = False


class UserRank(BaseModel):
    user_id: int
    period: LeaderboardPeriod
    rank: int | None
    xp: int
    total: int
    percentile: float
