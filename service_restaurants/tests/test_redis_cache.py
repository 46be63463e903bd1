"""
Unit tests for the fail-open Redis cache.
"""

import json

import pytest

from service_restaurants.app.cache.redis_cache import RedisCache


class TestRedisCache:
    """Test cases for RedisCache."""

    @pytest.mark.asyncio
    async def test_set_and_get_round_trip(self, cache, fake_redis):
        assert await cache.set("restaurants:restaurant:a", {"name": "a", "rating": 4.5}, ttl_seconds=30)

        assert await cache.get("restaurants:restaurant:a") == {"name": "a", "rating": 4.5}
        assert fake_redis.ttls["restaurants:restaurant:a"] == 30

    @pytest.mark.asyncio
    async def test_set_without_ttl(self, cache, fake_redis):
        await cache.set("key", [1, 2])

        assert fake_redis.ttls["key"] is None
        assert json.loads(fake_redis.data["key"]) == [1, 2]

    @pytest.mark.asyncio
    async def test_get_missing_key(self, cache):
        assert await cache.get("missing") is None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, cache, fake_redis):
        await cache.set("key", {"a": 1})

        assert await cache.delete("key") is True
        assert await cache.delete("key") is True
        assert "key" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_errors_fail_open(self, cache, fake_redis, metrics):
        fake_redis.fail = True

        assert await cache.get("key") is None
        assert await cache.set("key", {"a": 1}) is False
        assert await cache.delete("key") is False
        assert metrics.get_sample_value("cache_errors_total", operation="get") == 1.0
        assert metrics.get_sample_value("cache_errors_total", operation="set") == 1.0

    @pytest.mark.asyncio
    async def test_timeouts_fail_open(self, cache, fake_redis):
        fake_redis.data["key"] = json.dumps({"a": 1})
        fake_redis.delay = 0.2

        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_open_circuit_skips_redis(self, cache, fake_redis):
        fake_redis.fail = True
        for _ in range(3):
            await cache.get("key")
        assert cache.breaker.is_open()

        fake_redis.fail = False
        calls_before = fake_redis.calls["get"]

        assert await cache.get("key") is None
        assert fake_redis.calls["get"] == calls_before

    @pytest.mark.asyncio
    async def test_circuit_recovers_after_timeout(self, fake_redis):
        now = [0.0]
        cache = RedisCache("redis://fake", client=fake_redis, failure_threshold=1, recovery_timeout=10.0)
        cache.breaker._clock = lambda: now[0]

        fake_redis.fail = True
        await cache.get("key")
        assert cache.breaker.is_open()

        fake_redis.fail = False
        fake_redis.data["key"] = json.dumps("value")
        now[0] = 11.0

        assert await cache.get("key") == "value"
        assert not cache.breaker.is_open()

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_dropped(self, cache, fake_redis):
        fake_redis.data["key"] = "{not json"

        assert await cache.get("key") is None
        assert "key" not in fake_redis.data

    @pytest.mark.asyncio
    async def test_health_check(self, cache, fake_redis):
        assert await cache.health_check() is True

        fake_redis.fail = True
        assert await cache.health_check() is False

    @pytest.mark.asyncio
    async def test_start_tolerates_unreachable_redis(self, cache, fake_redis):
        fake_redis.fail = True

        await cache.start()

    @pytest.mark.asyncio
    async def test_stop_closes_client(self, cache, fake_redis):
        await cache.stop()

        assert fake_redis.closed is True
