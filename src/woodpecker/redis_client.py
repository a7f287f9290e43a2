"""Shared Redis client for the leaderboard cache."""

import redis.asyncio as redis
from redis.exceptions import RedisError

from woodpecker.config import Settings

_cache: redis.Redis | None = None


async def connect_cache(settings: Settings) -> redis.Redis:
    """Create the cache client from settings. The pool connects lazily."""
    global _cache  # noqa: PLW0603
    if _cache is None:
        _cache = redis.from_url(  # type: ignore[no-untyped-call]
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis_max_connections,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
    return _cache


async def cache_available(client: redis.Redis) -> bool:
    """True when the server answers a PING."""
    try:
        return bool(await client.ping())
    except RedisError:
        return False


async def close_cache() -> None:
    global _cache  # noqa: PLW0603
    if _cache is not None:
        await _cache.aclose()
        _cache = None


def get_cache() -> redis.Redis:
    if _cache is None:
        msg = "Leaderboard cache not connected. Call connect_cache() first."
        raise RuntimeError(msg)
    return _cache
