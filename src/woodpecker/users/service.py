"""User accounts: creation and training preferences."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from woodpecker.db.models import User
from woodpecker.errors import UserNotFound

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


def validate_timezone(tz_name: str | None) -> str | None:
    """Return the name unchanged if it is a known IANA zone.

    Raises:
        ValueError: If the zone is unknown.
    """
    if tz_name is None:
        return None
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown time zone: {tz_name}") from None
    return tz_name


async def create_user(
    db: AsyncSession,
    display_name: str | None = None,
    tz_name: str | None = None,
    show_on_leaderboard: bool = True,
    created_at: datetime | None = None,
) -> User:
    user = User(
        display_name=display_name,
        timezone=validate_timezone(tz_name),
        show_on_leaderboard=show_on_leaderboard,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(user)
    await db.commit()
    logger.info("user_created", user_id=user.id, timezone=user.timezone)
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    return user


async def update_preferences(
    db: AsyncSession,
    user_id: int,
    tz_name: str | None = None,
    show_on_leaderboard: bool | None = None,
) -> User:
    """
    Update training preferences. Fields left as None are unchanged.

    Raises:
        UserNotFound: If the user does not exist.
        ValueError: If the time zone is unknown.
    """
    user = await get_user(db, user_id)
    if tz_name is not None:
        user.timezone = validate_timezone(tz_name)
    if show_on_leaderboard is not None:
        user.show_on_leaderboard = show_on_leaderboard
    await db.commit()
    logger.info(
        "preferences_updated",
        user_id=user_id,
        timezone=user.timezone,
        show_on_leaderboard=user.show_on_leaderboard,
    )
    return user
