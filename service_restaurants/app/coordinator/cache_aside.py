"""
Cache-aside coordination between the restaurant store and the cache.

The store is the source of truth and the cache is a disposable projection
of it:

- point entries are populated on every read miss, on create, and
  overwritten after each rating update;
- list entries are populated on list-query misses and expire after the
  list TTL; point mutations do not invalidate them;
- cache failures are misses (see ``RedisCache``), store failures are
  ``DependencyFailureError``;
- store reads and deletes are retried with backoff, writes are not.
"""

import math
from typing import Any, Callable, List, Optional, Sequence, Union

from shared.errors import (
    AlreadyExistsError,
    DependencyFailureError,
    InvalidArgumentError,
    NotFoundError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry
from ..models import FilterKind, ListQuery, Restaurant
from .keys import CacheKeyBuilder

FILTER_ARITY = {
    FilterKind.CUISINE: ("cuisine",),
    FilterKind.REGION: ("region",),
    FilterKind.REGION_CUISINE: ("region", "cuisine"),
}

EMPTY_RESULT_MESSAGES = {
    FilterKind.CUISINE: "No restaurants found for this cuisine",
    FilterKind.REGION: "No restaurants found for this region",
    FilterKind.REGION_CUISINE: "No restaurants found for the specified region, cuisine, and rating",
}


class CacheAsideCoordinator:
    """Mediates restaurant reads and writes between the store and the cache."""

    def __init__(
        self,
        store: Any,
        cache: Optional[Any] = None,
        *,
        use_cache: bool = True,
        key_builder: Optional[CacheKeyBuilder] = None,
        point_ttl_seconds: int = 300,
        list_ttl_seconds: int = 60,
        retry_config: Optional[RetryConfig] = None,
        rating_update_attempts: int = 3,
        min_rating_value: float = 0.0,
        max_rating_value: float = 5.0,
        default_list_limit: int = 10,
        max_list_limit: int = 100,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.cache = cache
        self.use_cache = use_cache
        self.keys = key_builder or CacheKeyBuilder()
        self.point_ttl_seconds = point_ttl_seconds
        self.list_ttl_seconds = list_ttl_seconds
        self.retry_config = retry_config or RetryConfig()
        self.rating_update_attempts = max(1, rating_update_attempts)
        self.min_rating_value = min_rating_value
        self.max_rating_value = max_rating_value
        self.default_list_limit = default_list_limit
        self.max_list_limit = max_list_limit
        self.metrics = metrics
        self.logger = get_logger("restaurants.coordinator")

    @property
    def caching_enabled(self) -> bool:
        return self.use_cache and self.cache is not None

    # Validation

    @staticmethod
    def _require(value: Optional[str], field: str) -> str:
        if not isinstance(value, str) or not value:
            raise InvalidArgumentError(f"{field} is required", details={"field": field})
        return value

    def _validate_rating(self, rating: Any) -> float:
        if isinstance(rating, bool) or not isinstance(rating, (int, float)):
            raise InvalidArgumentError("rating must be a number", details={"field": "rating"})
        rating = float(rating)
        if not math.isfinite(rating) or not self.min_rating_value <= rating <= self.max_rating_value:
            raise InvalidArgumentError(
                f"rating must be between {self.min_rating_value} and {self.max_rating_value}",
                details={"field": "rating", "value": rating},
            )
        return rating

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Clamp a requested list size into ``[1, max_list_limit]``."""
        if limit is None:
            return self.default_list_limit
        return max(1, min(self.max_list_limit, int(limit)))

    # Cache helpers

    def _record_lookup(self, cache_type: str, hit: bool):
        if self.metrics:
            metric = "cache_hits_total" if hit else "cache_misses_total"
            self.metrics.increment_counter(metric, cache_type=cache_type)

    async def _cached_restaurant(self, name: str) -> Optional[Restaurant]:
        if not self.caching_enabled:
            return None
        cached = await self.cache.get(self.keys.point_key(name))
        self._record_lookup("point", cached is not None)
        if cached is None:
            return None
        try:
            return Restaurant.from_dict(cached)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning("Ignoring malformed cached restaurant", name=name, error=str(e))
            return None

    async def _cache_restaurant(self, restaurant: Restaurant):
        if self.caching_enabled:
            await self.cache.set(
                self.keys.point_key(restaurant.name),
                restaurant.to_dict(),
                ttl_seconds=self.point_ttl_seconds,
            )

    async def _evict_restaurant(self, name: str):
        if self.caching_enabled:
            await self.cache.delete(self.keys.point_key(name))

    # Store helpers

    async def _with_retry(self, operation: str, func: Callable, *args) -> Any:
        """Call an idempotent store operation with bounded retries."""
        try:
            return await call_with_retry(
                func,
                *args,
                retry_on=(DependencyFailureError,),
                config=self.retry_config,
                operation=operation,
            )
        except RetryError as e:
            raise e.last_exception from e

    def _business_event(self, event_type: str):
        if self.metrics:
            self.metrics.record_business_event(event_type)

    # Operations

    async def create(
        self,
        name: Optional[str],
        cuisine: Optional[str],
        region: Optional[str],
        rating: Optional[float] = None,
    ) -> Restaurant:
        """Create a restaurant, failing with ``AlreadyExistsError`` on a taken name."""
        name = self._require(name, "name")
        cuisine = self._require(cuisine, "cuisine")
        region = self._require(region, "region")
        rating = 0.0 if rating is None else self._validate_rating(rating)

        if await self._cached_restaurant(name) is not None:
            raise AlreadyExistsError("Restaurant already exists", details={"name": name})

        existing = await self.store.get(name)
        if existing is not None:
            # heal an evicted point entry
            await self._cache_restaurant(existing)
            raise AlreadyExistsError("Restaurant already exists", details={"name": name})

        restaurant = Restaurant(name=name, cuisine=cuisine, region=region, rating=rating)
        if not await self.store.put_if_absent(restaurant):
            self.logger.info("Concurrent create detected", name=name)
            winner = await self.store.get(name)
            if winner is not None:
                await self._cache_restaurant(winner)
            raise AlreadyExistsError("Restaurant already exists", details={"name": name})

        await self._cache_restaurant(restaurant)
        self._business_event("restaurant_created")
        self.logger.info("Restaurant created", name=name, cuisine=cuisine, region=region)
        return restaurant

    async def read(self, name: Optional[str]) -> Restaurant:
        """Point lookup; a cache hit never touches the store."""
        name = self._require(name, "name")

        cached = await self._cached_restaurant(name)
        if cached is not None:
            return cached

        restaurant = await self._with_retry("store.get", self.store.get, name)
        if restaurant is None:
            raise NotFoundError("Restaurant not found", details={"name": name})

        await self._cache_restaurant(restaurant)
        return restaurant

    async def delete(self, name: Optional[str]) -> None:
        """Delete a restaurant and its point entry."""
        name = self._require(name, "name")

        await self._evict_restaurant(name)

        existing = await self._with_retry("store.get", self.store.get, name)
        if existing is None:
            raise NotFoundError("No such restaurant exists to delete", details={"name": name})

        attempts = 0

        async def delete_once() -> bool:
            nonlocal attempts
            attempts += 1
            return await self.store.delete(name)

        deleted = await self._with_retry("store.delete", delete_once)
        # a failed attempt may still have been applied, so a retry finding
        # nothing to delete counts as success
        if not deleted and attempts == 1:
            raise NotFoundError("No such restaurant exists to delete", details={"name": name})

        # a read racing the delete may have repopulated the entry
        await self._evict_restaurant(name)
        self._business_event("restaurant_deleted")
        self.logger.info("Restaurant deleted", name=name)

    async def rate(self, name: Optional[str], new_rating: Any) -> Restaurant:
        """Fold a rating into the running mean of a restaurant."""
        name = self._require(name, "name")
        if new_rating is None:
            raise InvalidArgumentError("rating is required", details={"field": "rating"})
        new_rating = self._validate_rating(new_rating)

        for attempt in range(1, self.rating_update_attempts + 1):
            current = await self._with_retry("store.get", self.store.get, name)
            if current is None:
                raise NotFoundError("Restaurant not found", details={"name": name})

            stored = await self.store.update_rating(current, current.rated(new_rating))
            if stored is not None:
                await self._cache_restaurant(stored)
                self._business_event("restaurant_rated")
                self.logger.info(
                    "Restaurant rated",
                    name=name,
                    rating=stored.rating,
                    rating_count=stored.rating_count,
                )
                return stored

            self.logger.info("Concurrent rating detected, retrying", name=name, attempt=attempt)

        raise DependencyFailureError(
            "dynamodb",
            "rating update kept conflicting with concurrent updates",
            details={"name": name, "attempts": self.rating_update_attempts},
        )

    async def list_by_filter(
        self,
        kind: Union[FilterKind, str],
        values: Sequence[Optional[str]],
        limit: Optional[int] = None,
        min_rating: Optional[float] = None,
    ) -> List[Restaurant]:
        """Top-rated restaurants for a cuisine, a region, or both."""
        try:
            kind = FilterKind(kind)
        except ValueError:
            raise InvalidArgumentError("Unknown filter", details={"filter": str(kind)})

        fields = FILTER_ARITY[kind]
        values = tuple(values)
        if len(values) != len(fields):
            raise InvalidArgumentError(
                "Wrong number of filter values",
                details={"filter": kind.value, "expected": list(fields)},
            )
        values = tuple(self._require(value, field) for value, field in zip(values, fields))

        min_rating = 0.0 if min_rating is None else float(min_rating)
        if not math.isfinite(min_rating):
            raise InvalidArgumentError("minRating must be a finite number", details={"field": "minRating"})

        query = ListQuery(kind=kind, values=values, limit=self.clamp_limit(limit), min_rating=min_rating)
        key = self.keys.list_key(query)

        if self.caching_enabled:
            cached = await self.cache.get(key)
            self._record_lookup("list", cached is not None)
            if cached is not None:
                try:
                    return [Restaurant.from_dict(item) for item in cached]
                except (KeyError, TypeError, ValueError) as e:
                    self.logger.warning("Ignoring malformed cached list", cache_key=key, error=str(e))

        candidates = await self._with_retry("store.query", self.store.query, query)
        matches = [restaurant for restaurant in candidates if restaurant.rating >= query.min_rating]
        matches.sort(key=lambda restaurant: restaurant.rating, reverse=True)
        results = matches[:query.limit]

        if not results:
            raise NotFoundError(EMPTY_RESULT_MESSAGES[kind], details=dict(zip(fields, values)))

        if self.caching_enabled:
            await self.cache.set(
                key,
                [restaurant.to_dict() for restaurant in results],
                ttl_seconds=self.list_ttl_seconds,
            )
        return results
