"""Leaderboard service — XP standings derived from the award ledger.

Standings are always recomputable from xp_ledger; Redis only holds a
short-lived JSON copy of the full ranked list per period.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.competition.schemas import LeaderboardEntry, LeaderboardPage, UserRank
from woodpecker.competition.week_utils import (
    calculate_percentile,
    get_current_week_iso,
    get_week_boundaries,
    iso_week_to_monday,
)
from woodpecker.db.models import User, XPLedger

logger = logging.getLogger(__name__)

PERIODS = ("weekly", "alltime")


def build_leaderboard_key(period: str, week_iso: str | None = None) -> str:
    """Build the Redis cache key for a leaderboard period."""
    if period == "weekly":
        return f"leaderboard:weekly:{week_iso or get_current_week_iso()}"
    elif period == "alltime":
        return "leaderboard:alltime"
    raise ValueError(f"Unknown period: {period}")


def rank_entries(rows: list[dict[str, Any]]) -> list[LeaderboardEntry]:
    """Rank users deterministically: XP desc, earlier account first, then user id.

    Input: dicts with user_id, xp, joined_at and display_name.
    Users with no positive XP are dropped.
    """
    eligible = [r for r in rows if r["xp"] > 0]

    def sort_key(r: dict[str, Any]) -> tuple[int, datetime, int]:
        return (-r["xp"], r["joined_at"], r["user_id"])

    return [
        LeaderboardEntry(
            rank=idx + 1,
            user_id=r["user_id"],
            display_name=r["display_name"],
            xp=r["xp"],
            joined_at=r["joined_at"],
        )
        for idx, r in enumerate(sorted(eligible, key=sort_key))
    ]


def _resolve_week(period: str, week_iso: str | None, now: datetime | None) -> str | None:
    if period != "weekly":
        return None
    return week_iso or get_current_week_iso(now)


async def compute_standings(
    db: AsyncSession, period: str, week_iso: str | None = None,
) -> list[LeaderboardEntry]:
    """Full ranked list for a period, straight from the ledger."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")

    xp_sum = func.sum(XPLedger.amount)
    stmt = (
        select(XPLedger.user_id, xp_sum.label("xp"), User.display_name, User.created_at)
        .join(User, User.id == XPLedger.user_id)
        .where(User.show_on_leaderboard.is_(True))
        .group_by(XPLedger.user_id, User.display_name, User.created_at)
        .having(xp_sum > 0)
    )
    if period == "weekly":
        week_iso = week_iso or get_current_week_iso()
        start, end = get_week_boundaries(
            datetime.combine(iso_week_to_monday(week_iso), datetime.min.time(), tzinfo=timezone.utc)
        )
        stmt = stmt.where(XPLedger.created_at >= start, XPLedger.created_at < end)

    result = await db.execute(stmt)
    rows = [
        {
            "user_id": row.user_id,
            "xp": int(row.xp or 0),
            "display_name": row.display_name or f"Player-{row.user_id}",
            "joined_at": row.created_at,
        }
        for row in result.all()
    ]
    return rank_entries(rows)


async def _read_cache(redis: Redis, key: str) -> list[LeaderboardEntry] | None:
    try:
        cached = await redis.get(key)
    except RedisError:
        logger.warning("Leaderboard cache read failed for %s", key, exc_info=True)
        return None
    if not cached:
        return None
    return [LeaderboardEntry.model_validate(e) for e in json.loads(cached)]


async def _write_cache(redis: Redis, key: str, entries: list[LeaderboardEntry], ttl: int) -> None:
    payload = json.dumps([e.model_dump(mode="json") for e in entries])
    try:
        await redis.setex(key, ttl, payload)
    except RedisError:
        logger.warning("Leaderboard cache write failed for %s", key, exc_info=True)


async def refresh_leaderboard_cache(
    db: AsyncSession,
    redis: Redis,
    period: str,
    ttl: int,
    now: datetime | None = None,
) -> int:
    """Recompute a period's standings and store them. Returns the entry count."""
    week_iso = _resolve_week(period, None, now)
    entries = await compute_standings(db, period, week_iso)
    await _write_cache(redis, build_leaderboard_key(period, week_iso), entries, ttl)
    return len(entries)


async def get_standings(
    db: AsyncSession,
    period: str,
    redis: Redis | None = None,
    ttl: int = 300,
    week_iso: str | None = None,
    now: datetime | None = None,
) -> tuple[list[LeaderboardEntry], str | None, bool]:
    """Standings plus the resolved ISO week and whether they came from cache."""
    if period not in PERIODS:
        raise ValueError(f"Unknown period: {period}")
    week = _resolve_week(period, week_iso, now)

    if redis is not None:
        key = build_leaderboard_key(period, week)
        cached = await _read_cache(redis, key)
        if cached is not None:
            return cached, week, True
        entries = await compute_standings(db, period, week)
        await _write_cache(redis, key, entries, ttl)
        return entries, week, False

    return await compute_standings(db, period, week), week, False


async def get_leaderboard(
    db: AsyncSession,
    period: str,
    limit: int = 50,
    offset: int = 0,
    redis: Redis | None = None,
    ttl: int = 300,
    week_iso: str | None = None,
    now: datetime | None = None,
) -> LeaderboardPage:
    """One page of a period's standings."""
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")

    entries, week, cached = await get_standings(db, period, redis, ttl, week_iso, now)
    return LeaderboardPage(
        period=period,
        week_iso=week,
        entries=entries[offset:offset + limit],
        total=len(entries),
        limit=limit,
        offset=offset,
        cached=cached,
    )


async def get_user_rank(
    db: AsyncSession,
    user_id: int,
    period: str,
    redis: Redis | None = None,
    ttl: int = 300,
    now: datetime | None = None,
) -> UserRank:
    """A user's position in a period, even when off the requested page."""
    entries, _, _ = await get_standings(db, period, redis, ttl, None, now)
    for entry in entries:
        if entry.user_id == user_id:
            return UserRank(
                user_id=user_id,
                period=period,
                rank=entry.rank,
                xp=entry.xp,
                total=len(entries),
                percentile=calculate_percentile(entry.rank, len(entries)),
            )
    return UserRank(user_id=user_id, period=period, rank=None, xp=0, total=len(entries), percentile=0.0)
