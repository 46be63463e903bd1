"""
Restaurant data models.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt


class FilterKind(str, Enum):
    """Secondary-index filters supported by list queries."""
    CUISINE = "cuisine"
    REGION = "region"
    REGION_CUISINE = "region_cuisine"


@dataclass
class Restaurant:
    """A restaurant record as held in the durable store."""
    name: str
    cuisine: str
    region: str
    rating: float = 0.0
    rating_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Restaurant":
        return cls(
            name=data["name"],
            cuisine=data["cuisine"],
            region=data["region"],
            rating=float(data.get("rating") or 0),
            rating_count=int(data.get("rating_count") or 0),
        )

    def rated(self, new_rating: float) -> "Restaurant":
        """Return a copy with ``new_rating`` folded into the running mean."""
        new_count = self.rating_count + 1
        new_average = (self.rating * self.rating_count + new_rating) / new_count
        return Restaurant(
            name=self.name,
            cuisine=self.cuisine,
            region=self.region,
            rating=new_average,
            rating_count=new_count,
        )


@dataclass(frozen=True)
class ListQuery:
    """A parameterized list query over one secondary index."""
    kind: FilterKind
    values: Tuple[str, ...]
    limit: int
    min_rating: float = 0.0


class RestaurantCreateRequest(BaseModel):
    """Request model for restaurant creation.

    Required fields are optional here so that missing and empty values
    are both reported by the coordinator as invalid arguments. Ratings
    must be JSON numbers; booleans and numeric strings are rejected.
    """
    name: Optional[str] = Field(None, description="Restaurant name (primary key)")
    cuisine: Optional[str] = Field(None, description="Cuisine")
    region: Optional[str] = Field(None, description="Geographic region")
    rating: Optional[Union[StrictInt, StrictFloat]] = Field(None, description="Initial rating")


class RatingRequest(BaseModel):
    """Request model for submitting a rating."""
    name: Optional[str] = Field(None, description="Restaurant name")
    rating: Optional[Union[StrictInt, StrictFloat]] = Field(None, description="Submitted rating")


class RestaurantResponse(BaseModel):
    """Public view of a restaurant."""
    name: str
    cuisine: str
    rating: float
    region: str

    @classmethod
    def from_restaurant(cls, restaurant: Restaurant) -> "RestaurantResponse":
        return cls(
            name=restaurant.name,
            cuisine=restaurant.cuisine,
            rating=restaurant.rating,
            region=restaurant.region,
        )


class SuccessResponse(BaseModel):
    """Acknowledgement for write operations."""
    success: bool = True
