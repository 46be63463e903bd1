"""
DynamoDB persistence layer for the Restaurants Service.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.errors import DependencyFailureError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..models import FilterKind, ListQuery, Restaurant

NAME_ATTRIBUTE = "RestaurantNameKey"
REGION_ATTRIBUTE = "GeoRegion"


@dataclass(frozen=True)
class IndexSpec:
    """Secondary index backing one list filter."""
    index_name: str
    key_attributes: Tuple[str, ...]
    rating_ordered: bool


INDEXES: Dict[FilterKind, IndexSpec] = {
    FilterKind.CUISINE: IndexSpec("CuisineRatingIndex", ("cuisine",), rating_ordered=True),
    FilterKind.REGION: IndexSpec("GeoRegionRatingIndex", (REGION_ATTRIBUTE,), rating_ordered=True),
    # hash GeoRegion, range cuisine: rating order is applied by the caller
    FilterKind.REGION_CUISINE: IndexSpec("GeoCuisineIndex", (REGION_ATTRIBUTE, "cuisine"), rating_ordered=False),
}


def _to_item(restaurant: Restaurant) -> Dict[str, Any]:
    return {
        NAME_ATTRIBUTE: restaurant.name,
        "cuisine": restaurant.cuisine,
        REGION_ATTRIBUTE: restaurant.region,
        "rating": Decimal(str(restaurant.rating)),
        "rating_count": restaurant.rating_count,
    }


def _from_item(item: Dict[str, Any]) -> Restaurant:
    return Restaurant(
        name=item[NAME_ATTRIBUTE],
        cuisine=item.get("cuisine", ""),
        region=item.get(REGION_ATTRIBUTE, ""),
        rating=float(item.get("rating") or 0),
        rating_count=int(item.get("rating_count") or 0),
    )


def _is_condition_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoDBRestaurantStore:
    """Durable restaurant store on a DynamoDB table.

    boto3 is synchronous, so each call runs in a worker thread. Timeouts
    are enforced by botocore with its own retries disabled; callers own
    the retry policy.
    """

    def __init__(
        self,
        table_name: str,
        region_name: str,
        *,
        endpoint_url: Optional[str] = None,
        timeout_seconds: float = 5.0,
        table: Optional[Any] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.table_name = table_name
        self.region_name = region_name
        self.metrics = metrics
        self.logger = get_logger("restaurants.persistence.dynamodb")

        if table is None:
            resource = boto3.resource(
                "dynamodb",
                region_name=region_name,
                endpoint_url=endpoint_url,
                config=Config(
                    connect_timeout=timeout_seconds,
                    read_timeout=timeout_seconds,
                    retries={"max_attempts": 1, "mode": "standard"},
                ),
            )
            table = resource.Table(table_name)
        self.table = table

    async def _run(self, operation: str, func, **kwargs) -> Dict[str, Any]:
        """Run a table call off the event loop, timing it."""
        if self.metrics:
            with self.metrics.time_operation("store_operation_duration_seconds", operation=operation):
                return await asyncio.to_thread(func, **kwargs)
        return await asyncio.to_thread(func, **kwargs)

    def _failure(self, operation: str, error: Exception, **context) -> DependencyFailureError:
        self.logger.error("DynamoDB call failed", operation=operation, error=str(error), **context)
        if self.metrics:
            self.metrics.increment_counter("store_errors_total", operation=operation)
        return DependencyFailureError(
            "dynamodb",
            f"{operation} failed",
            details={"operation": operation, "table": self.table_name},
        )

    async def get(self, name: str) -> Optional[Restaurant]:
        """Strongly consistent point read."""
        try:
            result = await self._run(
                "get",
                self.table.get_item,
                Key={NAME_ATTRIBUTE: name},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._failure("get", e, name=name) from e

        item = result.get("Item")
        return _from_item(item) if item else None

    async def put_if_absent(self, restaurant: Restaurant) -> bool:
        """Write a new record; ``False`` when the name is already taken."""
        try:
            await self._run(
                "put",
                self.table.put_item,
                Item=_to_item(restaurant),
                ConditionExpression=Attr(NAME_ATTRIBUTE).not_exists(),
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise self._failure("put", e, name=restaurant.name) from e
        except BotoCoreError as e:
            raise self._failure("put", e, name=restaurant.name) from e
        return True

    async def delete(self, name: str) -> bool:
        """Delete a record; ``False`` when it no longer exists."""
        try:
            await self._run(
                "delete",
                self.table.delete_item,
                Key={NAME_ATTRIBUTE: name},
                ConditionExpression=Attr(NAME_ATTRIBUTE).exists(),
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return False
            raise self._failure("delete", e, name=name) from e
        except BotoCoreError as e:
            raise self._failure("delete", e, name=name) from e
        return True

    async def update_rating(self, current: Restaurant, updated: Restaurant) -> Optional[Restaurant]:
        """Write ``updated``'s rating fields if nobody rated since ``current`` was read.

        Returns the stored record, or ``None`` when the version check failed.
        """
        expected = Attr(NAME_ATTRIBUTE).exists() & Attr("rating_count").eq(current.rating_count)
        if current.rating_count == 0:
            expected = Attr(NAME_ATTRIBUTE).exists() & (
                Attr("rating_count").not_exists() | Attr("rating_count").eq(0)
            )

        try:
            result = await self._run(
                "update",
                self.table.update_item,
                Key={NAME_ATTRIBUTE: current.name},
                UpdateExpression="SET rating = :rating, rating_count = :count",
                ConditionExpression=expected,
                ExpressionAttributeValues={
                    ":rating": Decimal(str(updated.rating)),
                    ":count": updated.rating_count,
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_condition_failure(e):
                return None
            raise self._failure("update", e, name=current.name) from e
        except BotoCoreError as e:
            raise self._failure("update", e, name=current.name) from e

        return _from_item(result["Attributes"])

    async def query(self, query: ListQuery) -> List[Restaurant]:
        """Records matching ``query`` with ``rating >= min_rating``.

        Rating-ordered indexes are read in descending rating order and
        paging stops once ``limit`` records are collected. The
        region+cuisine index is not rating ordered and is read to the end.
        """
        index = INDEXES[query.kind]
        min_rating = Decimal(str(query.min_rating))

        key_condition = None
        for attribute, value in zip(index.key_attributes, query.values):
            condition = Key(attribute).eq(value)
            key_condition = condition if key_condition is None else key_condition & condition

        params: Dict[str, Any] = {
            "IndexName": index.index_name,
            "ScanIndexForward": False,
        }
        if index.rating_ordered:
            params["KeyConditionExpression"] = key_condition & Key("rating").gte(min_rating)
            params["Limit"] = query.limit
        else:
            params["KeyConditionExpression"] = key_condition
            params["FilterExpression"] = Attr("rating").gte(min_rating)

        restaurants: List[Restaurant] = []
        while True:
            try:
                result = await self._run("query", self.table.query, **params)
            except (ClientError, BotoCoreError) as e:
                raise self._failure("query", e, index=index.index_name) from e

            restaurants.extend(_from_item(item) for item in result.get("Items", []))

            last_key = result.get("LastEvaluatedKey")
            if not last_key or (index.rating_ordered and len(restaurants) >= query.limit):
                break
            params["ExclusiveStartKey"] = last_key

        return restaurants

    async def health_check(self) -> bool:
        """Check that the table is reachable."""
        try:
            await asyncio.to_thread(self.table.load)
            return True
        except Exception:
            return False
