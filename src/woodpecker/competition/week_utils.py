"""ISO week boundary utilities for the weekly leaderboard window."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def get_week_iso(dt: datetime) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return dt.strftime("%G-W%V")


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def get_current_week_iso(now: datetime | None = None) -> str:
    """Get the ISO week string for the current week."""
    if now is None:
        now = datetime.now(timezone.utc)
    return get_week_iso(now.astimezone(timezone.utc))


def get_week_boundaries(dt: datetime | None = None) -> tuple[datetime, datetime]:
    """Get [Monday 00:00 UTC, next Monday 00:00 UTC) for the ISO week containing dt."""
    if dt is None:
        dt = datetime.now(timezone.utc)
    monday = get_monday(dt.astimezone(timezone.utc))
    start = datetime.combine(monday, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(weeks=1)


def iso_week_to_monday(week_iso: str) -> date:
    """Convert '2026-W09' to the Monday of that ISO week."""
    return datetime.strptime(week_iso + "-1", "%G-W%V-%u").date()


def calculate_percentile(rank: int, total: int) -> float:
    """Calculate percentile from rank and total participants.

    Rank 1 out of 100 → 99.0 (top 1%)
    Rank 100 out of 100 → 0.0 (bottom)
    """
    if total <= 0 or rank <= 0:
        return 0.0
    return round(100 - (rank / total * 100), 2)
