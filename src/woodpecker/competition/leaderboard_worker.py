"""Leaderboard refresh arq worker — rebuilds the cached standings.

Both periods refresh every 5 minutes. The cache TTL covers a missed run,
and a cache miss falls back to computing from the ledger.
"""

from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.competition.leaderboard_service import refresh_leaderboard_cache
from woodpecker.config import get_settings
from woodpecker.database import close_db, get_session, init_db
from woodpecker.logging_setup import setup_logging
from woodpecker.redis_client import cache_available, close_cache, connect_cache

logger = logging.getLogger(__name__)


async def _get_db_session() -> AsyncSession:
    """Get a database session for the worker."""
    async for session in get_session():
        return session
    raise RuntimeError("Failed to get database session")


async def _refresh(ctx: dict, period: str) -> int:
    redis_client: Redis = ctx["cache"]
    settings = get_settings()
    db = await _get_db_session()
    try:
        count = await refresh_leaderboard_cache(
            db, redis_client, period, settings.leaderboard_cache_ttl_seconds,
        )
        logger.info("%s leaderboard refreshed: %d entries", period.capitalize(), count)
        return count
    finally:
        await db.close()


async def refresh_weekly_leaderboard(ctx: dict) -> int:
    """Refresh the current ISO week's standings. Runs every 5 minutes."""
    return await _refresh(ctx, "weekly")


async def refresh_alltime_leaderboard(ctx: dict) -> int:
    """Refresh all-time standings. Runs every 5 minutes."""
    return await _refresh(ctx, "alltime")


async def leaderboard_startup(ctx: dict) -> None:
    """Initialize logging, Redis and DB connections on worker startup."""
    settings = get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)

    ctx["cache"] = await connect_cache(settings)
    if not await cache_available(ctx["cache"]):
        logger.warning("Leaderboard cache at %s is unreachable at startup", settings.redis_url)
    logger.info("Leaderboard worker started")


async def leaderboard_shutdown(ctx: dict) -> None:
    """Clean up on worker shutdown."""
    await close_cache()
    await close_db()
    logger.info("Leaderboard worker shut down")


_EVERY_5_MINUTES = set(range(0, 60, 5))


class LeaderboardWorkerSettings:
    """arq worker settings for leaderboard refresh."""

    functions = [
        refresh_weekly_leaderboard,
        refresh_alltime_leaderboard,
    ]
    cron_jobs = [
        cron(refresh_weekly_leaderboard, minute=_EVERY_5_MINUTES, run_at_startup=True),
        cron(refresh_alltime_leaderboard, minute=_EVERY_5_MINUTES, run_at_startup=True),
    ]
    on_startup = leaderboard_startup
    on_shutdown = leaderboard_shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
    max_jobs = 4
    job_timeout = 300  # 5 minutes max per job
