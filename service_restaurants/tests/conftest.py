"""
Shared fixtures and in-memory collaborators for Restaurants Service tests.
"""

import asyncio
from collections import Counter
from typing import Any, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from shared.errors import DependencyFailureError
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig
from service_restaurants.app.cache.redis_cache import RedisCache
from service_restaurants.app.coordinator.cache_aside import CacheAsideCoordinator
from service_restaurants.app.main import RestaurantsService
from service_restaurants.app.models import FilterKind, ListQuery, Restaurant


class FakeRedis:
    """Minimal async stand-in for a ``redis.asyncio.Redis`` client."""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.calls = Counter()
        self.fail = False
        self.delay = 0.0
        self.closed = False

    async def _maybe_fail(self, operation: str):
        self.calls[operation] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionError("cache unavailable")

    async def get(self, key: str) -> Optional[str]:
        await self._maybe_fail("get")
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        await self._maybe_fail("set")
        self.data[key] = value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys: str) -> int:
        await self._maybe_fail("delete")
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def ping(self) -> bool:
        await self._maybe_fail("ping")
        return True

    async def aclose(self):
        self.closed = True


class InMemoryRestaurantStore:
    """Dict-backed store with call counting and failure injection."""

    def __init__(self):
        self.records: Dict[str, Restaurant] = {}
        self.calls = Counter()
        self.failures: Counter = Counter()
        self.healthy = True

    def _enter(self, operation: str):
        self.calls[operation] += 1
        if self.failures[operation] > 0:
            self.failures[operation] -= 1
            raise DependencyFailureError("dynamodb", f"{operation} failed")

    def seed(self, *restaurants: Restaurant):
        for restaurant in restaurants:
            self.records[restaurant.name] = restaurant

    async def get(self, name: str) -> Optional[Restaurant]:
        self._enter("get")
        record = self.records.get(name)
        return Restaurant.from_dict(record.to_dict()) if record else None

    async def put_if_absent(self, restaurant: Restaurant) -> bool:
        self._enter("put")
        if restaurant.name in self.records:
            return False
        self.records[restaurant.name] = restaurant
        return True

    async def delete(self, name: str) -> bool:
        self._enter("delete")
        return self.records.pop(name, None) is not None

    async def update_rating(self, current: Restaurant, updated: Restaurant) -> Optional[Restaurant]:
        self._enter("update")
        stored = self.records.get(current.name)
        if stored is None or stored.rating_count != current.rating_count:
            return None
        stored.rating = updated.rating
        stored.rating_count = updated.rating_count
        return Restaurant.from_dict(stored.to_dict())

    async def query(self, query: ListQuery) -> List[Restaurant]:
        self._enter("query")
        if query.kind == FilterKind.CUISINE:
            match = lambda r: r.cuisine == query.values[0]
        elif query.kind == FilterKind.REGION:
            match = lambda r: r.region == query.values[0]
        else:
            match = lambda r: (r.region, r.cuisine) == query.values
        # insertion order, like an index that is not rating ordered
        return [
            Restaurant.from_dict(r.to_dict())
            for r in self.records.values()
            if match(r) and r.rating >= query.min_rating
        ]

    async def health_check(self) -> bool:
        return self.healthy


@pytest.fixture
def store():
    """In-memory restaurant store."""
    return InMemoryRestaurantStore()


@pytest.fixture
def fake_redis():
    """In-memory Redis client."""
    return FakeRedis()


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return MetricsCollector("restaurants")


@pytest.fixture
def cache(fake_redis, metrics):
    """Fail-open cache over the in-memory Redis client."""
    return RedisCache(
        "redis://fake:6379/0",
        client=fake_redis,
        timeout_seconds=0.05,
        failure_threshold=3,
        recovery_timeout=60.0,
        metrics=metrics,
    )


@pytest.fixture
def retry_config():
    """Retry without waiting between attempts."""
    return RetryConfig(max_attempts=3, base_delay=0.0, jitter=False)


@pytest.fixture
def coordinator(store, cache, metrics, retry_config):
    """Coordinator with caching enabled."""
    return CacheAsideCoordinator(
        store,
        cache,
        point_ttl_seconds=300,
        list_ttl_seconds=60,
        retry_config=retry_config,
        metrics=metrics,
    )


@pytest.fixture
def uncached_coordinator(store, cache, metrics, retry_config):
    """Coordinator with the cache toggled off."""
    return CacheAsideCoordinator(
        store,
        cache,
        use_cache=False,
        retry_config=retry_config,
        metrics=metrics,
    )


def build_service(store: Any, cache: Any, **overrides) -> RestaurantsService:
    settings = {
        "use_cache": True,
        "store_retry_base_delay": 0.0,
        "log_level": "warning",
    }
    settings.update(overrides)
    config = get_config("restaurants", 8080, **settings)
    return RestaurantsService(config, store=store, cache=cache)


@pytest.fixture
def service(store, cache):
    """Restaurants service wired to in-memory collaborators."""
    return build_service(store, cache)


@pytest.fixture
def client(service):
    """Create test client."""
    return TestClient(service.app)


@pytest.fixture
def make_service():
    """Factory for services with configuration overrides."""
    return build_service
