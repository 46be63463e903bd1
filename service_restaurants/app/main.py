"""
Restaurants service for the Restaurant Directory.
"""

import math
import re
from typing import Any, List, Optional

from fastapi import Query

from shared.base_service import BaseService
from shared.config import ServiceConfig, get_config
from shared.retry import RetryConfig

from .cache.redis_cache import RedisCache
from .coordinator.cache_aside import CacheAsideCoordinator
from .coordinator.keys import CacheKeyBuilder
from .models import (
    FilterKind,
    RatingRequest,
    RestaurantCreateRequest,
    RestaurantResponse,
    SuccessResponse,
)
from .persistence.dynamodb import DynamoDBRestaurantStore

SERVICE_NAME = "restaurants"
SERVICE_PORT = 8080

INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
FLOAT_PREFIX = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_limit(raw: Optional[str]) -> Optional[int]:
    """Lenient ``limit`` parsing.

    The leading integer is used (``"5abc"`` is 5, ``"4.9"`` is 4); no
    leading integer, or zero, means the default.
    """
    match = INT_PREFIX.match(raw or "")
    if not match:
        return None
    return int(match.group(1)) or None


def parse_min_rating(raw: Optional[str]) -> float:
    """Lenient ``minRating`` parsing: the leading number, else 0."""
    match = FLOAT_PREFIX.match(raw or "")
    if not match:
        return 0.0
    value = float(match.group(1))
    return value if math.isfinite(value) else 0.0


class RestaurantsService(BaseService):
    """Restaurants service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        store: Optional[Any] = None,
        cache: Optional[Any] = None,
    ):
        super().__init__(SERVICE_NAME, SERVICE_PORT, config or get_config(SERVICE_NAME, SERVICE_PORT))

        self.store = store
        if self.store is None:
            self.store = DynamoDBRestaurantStore(
                self.config.table_name,
                self.config.aws_region,
                endpoint_url=self.config.dynamodb_endpoint_url,
                timeout_seconds=self.config.store_timeout_seconds,
                metrics=self.metrics,
            )

        self.cache = cache
        if self.cache is None and self.config.use_cache:
            self.cache = RedisCache(
                self.config.cache_url,
                timeout_seconds=self.config.cache_timeout_seconds,
                failure_threshold=self.config.cache_failure_threshold,
                recovery_timeout=self.config.cache_recovery_timeout,
                metrics=self.metrics,
            )

        self.coordinator = CacheAsideCoordinator(
            self.store,
            self.cache,
            use_cache=self.config.use_cache,
            key_builder=CacheKeyBuilder(self.config.cache_key_prefix),
            point_ttl_seconds=self.config.cache_ttl_seconds,
            list_ttl_seconds=self.config.list_cache_ttl_seconds,
            retry_config=RetryConfig(
                max_attempts=self.config.store_max_attempts,
                base_delay=self.config.store_retry_base_delay,
            ),
            rating_update_attempts=self.config.rating_update_attempts,
            min_rating_value=self.config.min_rating_value,
            max_rating_value=self.config.max_rating_value,
            default_list_limit=self.config.default_list_limit,
            max_list_limit=self.config.max_list_limit,
            metrics=self.metrics,
        )

        self._setup_restaurant_routes()

    def _setup_restaurant_routes(self):
        """Set up restaurant routes."""

        @self.app.get("/")
        async def root():
            """Service information and the configuration it was started with."""
            return {
                "service": SERVICE_NAME,
                "message": "Restaurant Directory - Restaurants Service",
                "version": "1.0.0",
                "configuration": {
                    "cache_url": self.config.cache_url,
                    "table_name": self.config.table_name,
                    "aws_region": self.config.aws_region,
                    "use_cache": self.config.use_cache,
                },
            }

        @self.app.post("/restaurants", response_model=SuccessResponse)
        async def create_restaurant(request: RestaurantCreateRequest):
            """Create a restaurant."""
            await self.coordinator.create(request.name, request.cuisine, request.region, request.rating)
            return SuccessResponse()

        @self.app.post("/restaurants/rating", response_model=SuccessResponse)
        async def rate_restaurant(request: RatingRequest):
            """Submit a rating for a restaurant."""
            await self.coordinator.rate(request.name, request.rating)
            return SuccessResponse()

        @self.app.get("/restaurants/{restaurant_name}", response_model=RestaurantResponse)
        async def get_restaurant(restaurant_name: str):
            """Get a restaurant by name."""
            restaurant = await self.coordinator.read(restaurant_name)
            return RestaurantResponse.from_restaurant(restaurant)

        @self.app.delete("/restaurants/{restaurant_name}", response_model=SuccessResponse)
        async def delete_restaurant(restaurant_name: str):
            """Delete a restaurant by name."""
            await self.coordinator.delete(restaurant_name)
            return SuccessResponse()

        @self.app.get("/restaurants/cuisine/{cuisine}", response_model=List[RestaurantResponse])
        async def list_by_cuisine(
            cuisine: str,
            limit: Optional[str] = Query(None, description="Maximum results, 1-100"),
            min_rating: Optional[str] = Query(None, alias="minRating", description="Minimum rating"),
        ):
            """Top-rated restaurants for a cuisine."""
            return await self._list(FilterKind.CUISINE, (cuisine,), limit, min_rating)

        @self.app.get("/restaurants/region/{region}", response_model=List[RestaurantResponse])
        async def list_by_region(
            region: str,
            limit: Optional[str] = Query(None, description="Maximum results, 1-100"),
            min_rating: Optional[str] = Query(None, alias="minRating", description="Minimum rating"),
        ):
            """Top-rated restaurants for a region."""
            return await self._list(FilterKind.REGION, (region,), limit, min_rating)

        @self.app.get("/restaurants/region/{region}/cuisine/{cuisine}", response_model=List[RestaurantResponse])
        async def list_by_region_and_cuisine(
            region: str,
            cuisine: str,
            limit: Optional[str] = Query(None, description="Maximum results, 1-100"),
            min_rating: Optional[str] = Query(None, alias="minRating", description="Minimum rating"),
        ):
            """Top-rated restaurants for a cuisine within a region."""
            return await self._list(FilterKind.REGION_CUISINE, (region, cuisine), limit, min_rating)

    async def _list(self, kind: FilterKind, values, limit: Optional[str], min_rating: Optional[str]):
        restaurants = await self.coordinator.list_by_filter(
            kind,
            values,
            limit=parse_limit(limit),
            min_rating=parse_min_rating(min_rating),
        )
        return [RestaurantResponse.from_restaurant(restaurant) for restaurant in restaurants]

    async def _check_dependencies(self):
        """Check restaurants service dependencies."""
        dependencies = {}

        if self.coordinator.caching_enabled:
            dependencies["cache"] = "ok" if await self.cache.health_check() else "degraded"
        else:
            dependencies["cache"] = "disabled"

        dependencies["dynamodb"] = "ok" if await self.store.health_check() else "error"
        return dependencies

    async def start(self):
        """Start restaurants service components."""
        if self.coordinator.caching_enabled:
            await self.cache.start()
        self.logger.info(
            "Restaurants service started",
            table_name=self.config.table_name,
            use_cache=self.coordinator.caching_enabled,
        )

    async def stop(self):
        """Stop restaurants service components."""
        if self.coordinator.caching_enabled:
            await self.cache.stop()
        self.logger.info("Restaurants service stopped")


def create_app():
    """Create restaurants service application."""
    service = RestaurantsService()
    return service.app


def main():
    """Run the restaurants service."""
    service = RestaurantsService()
    service.run()


if __name__ == "__main__":
    main()
