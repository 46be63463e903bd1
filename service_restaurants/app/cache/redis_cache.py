"""
Redis caching layer for the Restaurants Service.

Every call is bounded by a timeout and guarded by a circuit breaker. Any
failure is logged, counted and reported to the caller as a miss (for
reads) or as ``False`` (for writes); nothing raised by Redis escapes this
module.
"""

import asyncio
import json
from typing import Any, Optional

import redis.asyncio as redis

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.logging import get_logger
from shared.metrics import MetricsCollector


class RedisCache:
    """Fail-open JSON cache over a Redis client."""

    def __init__(
        self,
        redis_url: str,
        *,
        client: Optional[Any] = None,
        timeout_seconds: float = 0.25,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.redis_url = redis_url
        self.timeout_seconds = timeout_seconds
        self.metrics = metrics
        self.logger = get_logger("restaurants.cache.redis")
        self.breaker = CircuitBreaker(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            name="restaurants-cache",
        )
        self.redis = client if client is not None else redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=timeout_seconds,
            socket_timeout=timeout_seconds,
            health_check_interval=30,
        )

    async def start(self):
        """Verify connectivity. A down cache only degrades the service."""
        if await self.health_check():
            self.logger.info("Redis cache started", redis_url=self.redis_url)
        else:
            self.logger.warning("Redis cache unreachable, serving from the store only", redis_url=self.redis_url)

    async def stop(self):
        """Close the Redis connection pool."""
        await self.redis.aclose()
        self.logger.info("Redis cache stopped")

    async def _call(self, func, *args, **kwargs) -> Any:
        """Run one Redis command under the breaker and the timeout."""
        async def bounded():
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout_seconds)

        return await self.breaker.call(bounded)

    def _record_failure(self, operation: str, key: str, error: Exception):
        if isinstance(error, CircuitBreakerOpenException):
            self.logger.debug("Cache bypassed, circuit open", operation=operation, cache_key=key)
        else:
            self.logger.warning(
                "Cache call failed, failing open",
                operation=operation,
                cache_key=key,
                error=str(error) or type(error).__name__,
            )
        if self.metrics:
            self.metrics.increment_counter("cache_errors_total", operation=operation)

    async def get(self, key: str) -> Optional[Any]:
        """Get a decoded value; ``None`` on miss or any failure."""
        try:
            raw = await self._call(self.redis.get, key)
        except Exception as e:
            self._record_failure("get", key, e)
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.warning("Discarding undecodable cache entry", cache_key=key, error=str(e))
            await self.delete(key)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> bool:
        """Store a JSON-encoded value, with a TTL when given."""
        try:
            payload = json.dumps(value)
            if ttl_seconds:
                await self._call(self.redis.set, key, payload, ex=int(ttl_seconds))
            else:
                await self._call(self.redis.set, key, payload)
        except Exception as e:
            self._record_failure("set", key, e)
            return False

        self.logger.debug("Cached value", cache_key=key, ttl=ttl_seconds)
        return True

    async def delete(self, key: str) -> bool:
        """Remove a key; absent keys are not an error."""
        try:
            await self._call(self.redis.delete, key)
        except Exception as e:
            self._record_failure("delete", key, e)
            return False
        return True

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await asyncio.wait_for(self.redis.ping(), timeout=self.timeout_seconds)
            return True
        except Exception:
            return False
