"""Tests for the shared leaderboard cache client."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from woodpecker.config import Settings
from woodpecker.redis_client import cache_available, close_cache, connect_cache, get_cache


class TestCacheClient:
    def test_not_connected(self):
        with pytest.raises(RuntimeError, match="not connected"):
            get_cache()

    @pytest.mark.asyncio
    async def test_connect_uses_settings(self):
        # from_url is lazy; no server is contacted
        settings = Settings(redis_url="redis://localhost:6379/15", redis_max_connections=7)
        client = await connect_cache(settings)
        try:
            assert get_cache() is client
            assert client.connection_pool.connection_kwargs["db"] == 15
            assert client.connection_pool.max_connections == 7
            assert await connect_cache(settings) is client
        finally:
            await close_cache()
        with pytest.raises(RuntimeError):
            get_cache()

    @pytest.mark.asyncio
    async def test_close_without_connect(self):
        await close_cache()


class TestCacheAvailable:
    @pytest.mark.asyncio
    async def test_ping_ok(self):
        client = AsyncMock()
        client.ping.return_value = True
        assert await cache_available(client) is True

    @pytest.mark.asyncio
    async def test_ping_fails(self):
        client = AsyncMock()
        client.ping.side_effect = RedisConnectionError("refused")
        assert await cache_available(client) is False
