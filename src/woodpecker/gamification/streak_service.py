"""Streak tracking: day-granularity continuity in the user's own time zone.

A calendar day is evaluated in the user's IANA time zone (UTC when unset).
Activity on the day after the last active day extends the streak; a gap
of up to ``grace_days`` missed days also extends it but marks the grace
period as used. The grace period cannot be used twice in a row, and any
longer gap starts over at 1.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.db.models import Attempt, User
from woodpecker.gamification.schemas import StreakState, StreakStatus, StreakUpdate
from woodpecker.gamification.xp_service import get_or_create_gamification

logger = logging.getLogger(__name__)

STREAK_MILESTONES: list[int] = [3, 7, 14, 21, 30, 50, 100, 200, 365]


def resolve_timezone(tz_name: str | None) -> ZoneInfo | timezone:
    """IANA zone for a user; unknown or missing names fall back to UTC."""
    if not tz_name:
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r, using UTC", tz_name)
        return timezone.utc


def local_day(moment: datetime, tz: ZoneInfo | timezone) -> date:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def local_day_bounds(day: date, tz: ZoneInfo | timezone) -> tuple[datetime, datetime]:
    """UTC instants of local midnight at the start and end of ``day``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def milestone_reached(previous: int, current: int) -> int | None:
    """Milestone crossed when moving from ``previous`` to ``current`` days."""
    for milestone in STREAK_MILESTONES:
        if previous < milestone <= current:
            return milestone
    return None


def next_milestone(current: int) -> int | None:
    for milestone in STREAK_MILESTONES:
        if milestone > current:
            return milestone
    return None


def apply_activity(
    state: StreakState,
    activity_at: datetime,
    tz: ZoneInfo | timezone = timezone.utc,
    grace_days: int = 1,
) -> StreakUpdate:
    """Apply one qualifying activity. Same-day repeats leave the state unchanged."""
    today = local_day(activity_at, tz)
    last = state.last_active_day

    if last is not None and today <= last:
        return StreakUpdate(state=state)

    broken = False
    grace_used = False
    if last is None:
        current = 1
    else:
        missed = (today - last).days - 1
        if missed == 0:
            current = state.current + 1
        elif missed <= grace_days and not state.grace_used:
            current = state.current + 1
            grace_used = True
        else:
            current = 1
            broken = state.current > 0

    longest = max(state.longest, current)
    new_state = StreakState(
        current=current,
        longest=longest,
        last_active_day=today,
        grace_used=grace_used,
    )
    return StreakUpdate(
        state=new_state,
        incremented=current > state.current,
        broken=broken,
        new_record=longest > state.longest,
        milestone=milestone_reached(0 if broken else state.current, current),
    )


def streak_status(
    state: StreakState,
    now: datetime,
    tz: ZoneInfo | timezone = timezone.utc,
    grace_days: int = 1,
) -> StreakStatus:
    """Read-only view: a live streak is at risk on any day it has not been extended yet."""
    today = local_day(now, tz)
    last = state.last_active_day
    days_since = (today - last).days if last is not None else None

    current = state.current
    allowed_gap = 0 if state.grace_used else grace_days
    # A lapsed streak reads as 0 even though it is only reset on the next activity
    if days_since is not None and days_since - 1 > allowed_gap:
        current = 0

    return StreakStatus(
        current=current,
        longest=state.longest,
        last_active_day=last,
        active_today=days_since == 0,
        at_risk=current > 0 and days_since is not None and days_since >= 1,
        days_since_active=days_since,
        next_milestone=next_milestone(current),
    )


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


async def get_user_timezone(db: AsyncSession, user_id: int) -> ZoneInfo | timezone:
    result = await db.execute(select(User.timezone).where(User.id == user_id))
    return resolve_timezone(result.scalar_one_or_none())


async def get_streak_state(db: AsyncSession, user_id: int) -> StreakState:
    gam = await get_or_create_gamification(db, user_id)
    return StreakState(
        current=gam.current_streak,
        longest=gam.longest_streak,
        last_active_day=gam.last_active_day,
        grace_used=gam.grace_used,
    )


async def count_attempts_on_day(
    db: AsyncSession, user_id: int, moment: datetime, tz: ZoneInfo | timezone,
) -> int:
    """Attempts the user made on the local calendar day containing ``moment``."""
    start, end = local_day_bounds(local_day(moment, tz), tz)
    result = await db.execute(
        select(func.count(Attempt.id)).where(
            Attempt.user_id == user_id,
            Attempt.attempted_at >= start,
            Attempt.attempted_at < end,
        )
    )
    return result.scalar_one()


async def record_activity(
    db: AsyncSession,
    user_id: int,
    activity_at: datetime,
    grace_days: int = 1,
) -> StreakUpdate:
    """Apply a qualifying activity to the stored streak. Flushes, does not commit."""
    tz = await get_user_timezone(db, user_id)
    gam = await get_or_create_gamification(db, user_id)
    state = StreakState(
        current=gam.current_streak,
        longest=gam.longest_streak,
        last_active_day=gam.last_active_day,
        grace_used=gam.grace_used,
    )

    update = apply_activity(state, activity_at, tz, grace_days)
    if update.state == state:
        return update

    gam.current_streak = update.state.current
    gam.longest_streak = update.state.longest
    gam.last_active_day = update.state.last_active_day
    gam.grace_used = update.state.grace_used
    gam.updated_at = datetime.now(timezone.utc)
    await db.flush()

    if update.broken:
        logger.info("Streak reset for user %d (was %d days)", user_id, state.current)
    if update.milestone:
        logger.info("User %d reached a %d-day streak", user_id, update.milestone)
    return update


async def record_daily_attempts(
    db: AsyncSession,
    user_id: int,
    activity_at: datetime,
    min_daily_attempts: int,
    grace_days: int = 1,
) -> StreakUpdate | None:
    """Count today's attempts toward the streak once they reach the daily minimum."""
    tz = await get_user_timezone(db, user_id)
    attempts_today = await count_attempts_on_day(db, user_id, activity_at, tz)
    if attempts_today < min_daily_attempts:
        return None
    return await record_activity(db, user_id, activity_at, grace_days)
