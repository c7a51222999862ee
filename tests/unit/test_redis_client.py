"""
Tests for the Redis caching client

Tests graceful degradation, JSON serialization and cache statistics
against a mocked redis.asyncio client.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from gradequest.cache import redis_client
from gradequest.cache.redis_client import RedisCache, close_cache, get_cache, init_cache


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.setex = AsyncMock(return_value=True)
    client.delete = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def connected_cache(mock_client):
    cache = RedisCache("redis://test:6379/0")
    cache._client = mock_client
    return cache


class TestConnection:
    """Connecting and disconnecting"""

    @pytest.mark.asyncio
    async def test_connect_pings_server(self, mock_client):
        with patch('gradequest.cache.redis_client.redis.from_url', return_value=mock_client) as from_url:
            cache = RedisCache("redis://test:6379/0")
            await cache.connect()

        from_url.assert_called_once()
        mock_client.ping.assert_awaited_once()
        assert cache.enabled is True

    @pytest.mark.asyncio
    async def test_connect_failure_disables_cache(self, mock_client):
        mock_client.ping.side_effect = RedisConnectionError("refused")

        with patch('gradequest.cache.redis_client.redis.from_url', return_value=mock_client):
            cache = RedisCache("redis://test:6379/0")
            await cache.connect()

        assert cache.enabled is False
        assert await cache.get("anything") is None

    @pytest.mark.asyncio
    async def test_disabled_cache_never_connects(self):
        with patch('gradequest.cache.redis_client.redis.from_url') as from_url:
            cache = RedisCache(enabled=False)
            await cache.connect()

        from_url.assert_not_called()
        assert await cache.set("key", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_close(self, connected_cache, mock_client):
        await connected_cache.close()
        mock_client.aclose.assert_awaited_once()


class TestOperations:
    """get / set / delete"""

    @pytest.mark.asyncio
    async def test_get_hit_deserializes_json(self, connected_cache, mock_client):
        mock_client.get.return_value = '{"easy": "weekly-risk-taker"}'

        assert await connected_cache.get("k") == {"easy": "weekly-risk-taker"}
        assert connected_cache.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_get_miss(self, connected_cache):
        assert await connected_cache.get("k") is None
        assert connected_cache.get_stats()["misses"] == 1

    @pytest.mark.asyncio
    async def test_get_corrupt_value_is_miss(self, connected_cache, mock_client):
        mock_client.get.return_value = "{not json"

        assert await connected_cache.get("k") is None
        assert connected_cache.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_get_redis_error_is_miss(self, connected_cache, mock_client):
        mock_client.get.side_effect = RedisConnectionError("gone")

        assert await connected_cache.get("k") is None
        assert connected_cache.get_stats()["errors"] == 1

    @pytest.mark.asyncio
    async def test_set_with_ttl_uses_setex(self, connected_cache, mock_client):
        assert await connected_cache.set("k", {"a": 1}, ttl=60) is True

        mock_client.setex.assert_awaited_once_with("k", 60, '{"a": 1}')
        mock_client.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, connected_cache, mock_client):
        assert await connected_cache.set("k", [1, 2]) is True
        mock_client.set.assert_awaited_once_with("k", "[1, 2]")

    @pytest.mark.asyncio
    async def test_set_unserializable_value(self, connected_cache, mock_client):
        assert await connected_cache.set("k", object()) is False
        mock_client.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete(self, connected_cache, mock_client):
        assert await connected_cache.delete("k") is True

        mock_client.delete.return_value = 0
        assert await connected_cache.delete("k") is False
        assert connected_cache.get_stats()["deletes"] == 2


class TestStats:

    @pytest.mark.asyncio
    async def test_hit_rate(self, connected_cache, mock_client):
        mock_client.get.side_effect = ['"x"', None, '"y"', None]
        for _ in range(4):
            await connected_cache.get("k")

        stats = connected_cache.get_stats()
        assert stats["hit_rate_percent"] == 50.0
        assert stats["total_reads"] == 4



class TestGlobalCache:

    @pytest.mark.asyncio
    async def test_init_and_close(self, mock_client):
        with patch('gradequest.cache.redis_client.redis.from_url', return_value=mock_client):
            cache = await init_cache("redis://test:6379/0")

        assert get_cache() is cache

        await close_cache()
        assert get_cache() is None
        assert redis_client.cache is None
