# Data models for the search core: geometry, entities, result sets and GeoJSON output.

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    computed_field,
    field_validator,
    model_validator,
)

# --- Geometry ---

class Point(BaseModel):
    """GeoJSON Point, coordinates are [lng, lat].

    Range checks live in the geometry validator so that records with broken
    coordinates can still be loaded and are simply skipped on projection.
    """
    model_config = ConfigDict(frozen=True)

    type: Literal["Point"] = "Point"
    coordinates: List[float] = Field(..., description="[longitude, latitude]")

    @property
    def lng(self) -> float:
        return self.coordinates[0]

    @property
    def lat(self) -> float:
        return self.coordinates[1]


class LineString(BaseModel):
    """GeoJSON LineString, an ordered route/track of [lng, lat] vertices."""
    model_config = ConfigDict(frozen=True)

    type: Literal["LineString"] = "LineString"
    coordinates: List[List[float]] = Field(..., description="[[lng, lat], ...]")


# --- Entity ---

MetadataValue = Union[StrictBool, StrictInt, StrictFloat, str]
MAX_METADATA_KEYS = 64


class AvailabilityWindow(BaseModel):
    """Closed interval [start, end] during which an entity is open/available."""
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime


class Stop(BaseModel):
    """An ordered stop along a route (train stations)."""
    model_config = ConfigDict(frozen=True)

    seq: int
    name: str
    location: Optional[Point] = None
    arrival: Optional[str] = Field(None, description="ISO 8601 local time with offset")
    departure: Optional[str] = Field(None, description="ISO 8601 local time with offset")


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:120]


class SearchableEntity(BaseModel):
    """A read-only record served by the search core.

    ``labels`` hold single-valued categorical attributes (price level, operator,
    provider, history action). ``attributes`` hold multi-valued sets (cuisines,
    dietary tags, features, amenities).
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Stable identifier.")
    kind: str = Field(..., description="Entity kind (restaurant, train, cab, history).")
    name: str
    slug: Optional[str] = None
    description: Optional[str] = None

    city: Optional[str] = None
    country: Optional[str] = None
    tz: Optional[str] = None
    location: Optional[Point] = None
    path: Optional[LineString] = None
    stops: List[Stop] = Field(default_factory=list)

    category: Optional[str] = Field(None, description="Display category label.")
    labels: Dict[str, str] = Field(default_factory=dict)
    attributes: Dict[str, List[str]] = Field(default_factory=dict)

    price: Optional[float] = Field(None, description="Indicative price / fare amount.")
    currency: str = "USD"

    rating: float = Field(0.0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    popularity: float = Field(0.0, ge=0)
    view_count: int = Field(0, ge=0)
    bookings_count: int = Field(0, ge=0)

    availability: List[AvailabilityWindow] = Field(default_factory=list)
    started_at: Optional[datetime] = Field(None, description="History: when the trip/visit began.")

    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    metadata: Dict[str, MetadataValue] = Field(default_factory=dict)

    @field_validator("metadata")
    @classmethod
    def _bounded_metadata(cls, value: Dict[str, MetadataValue]) -> Dict[str, MetadataValue]:
        if len(value) > MAX_METADATA_KEYS:
            raise ValueError(f"metadata is limited to {MAX_METADATA_KEYS} keys")
        return value

    @model_validator(mode="before")
    @classmethod
    def _default_slug(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("slug") and data.get("name"):
            data = {**data, "slug": slugify(str(data["name"]))}
        return data

    @property
    def trending_score(self) -> float:
        return (
            self.bookings_count * 0.45
            + self.view_count * 0.2
            + self.review_count * 0.25
            + self.rating * 0.1
        )

    def field_value(self, name: str) -> Any:
        """Resolve a filter/sort/group field by name.

        Model fields and properties win, then labels, then attribute sets.
        Unknown names resolve to None.
        """
        if name in type(self).model_fields or name == "trending_score":
            return getattr(self, name)
        if name in self.labels:
            return self.labels[name]
        if name in self.attributes:
            return self.attributes[name]
        return None


class EntityCollection(BaseModel):
    """Root model for seed files."""
    entities: List[SearchableEntity]


# --- Results ---

class SearchHit(BaseModel):
    """An entity plus its great-circle distance from the query center, when known."""
    entity: SearchableEntity
    distance_meters: Optional[float] = None

    @computed_field
    @property
    def distance_km(self) -> Optional[float]:
        if self.distance_meters is None:
            return None
        return round(self.distance_meters / 1000, 2)


class PageResult(BaseModel):
    """One window of an ordered result set.

    ``has_more`` is derived from offset, window size and total; it is never stored.
    """
    items: List[SearchHit]
    page: int
    limit: int
    offset: int
    total: int
    next_cursor: Optional[str] = None

    @computed_field
    @property
    def has_more(self) -> bool:
        return self.offset + len(self.items) < self.total


class NearbyResult(BaseModel):
    hits: List[SearchHit]
    center: Point
    radius_km: float
    total_found: int


class FacetBucket(BaseModel):
    value: str
    count: int


class PriceRange(BaseModel):
    min: float = 0.0
    max: float = 0.0


class FacetResult(BaseModel):
    """Grouped counts per declared facet field plus the price range of the population."""
    facets: Dict[str, List[FacetBucket]]
    price_range: PriceRange


class Suggestion(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    category: Optional[str] = None
    geo_uri: Optional[str] = None


# --- GeoJSON (RFC 7946) ---

class FeatureProperties(BaseModel):
    """The fixed property subset attached to every projected Feature."""
    id: str
    kind: str
    name: str
    role: Literal["location", "path", "stop"] = "location"
    category: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    distance_km: Optional[float] = None
    seq: Optional[int] = None


class Feature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: Union[Point, LineString]
    properties: FeatureProperties


class FeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: List[Feature] = Field(default_factory=list)


# --- API Request Models ---

class ReviewRequest(BaseModel):
    """Request body for POST /api/entities/{id}/reviews."""
    rating: float = Field(..., ge=1, le=5, description="Star rating 1-5.")
    title: Optional[str] = None
    comment: Optional[str] = None


# --- Error Response Model ---

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="A machine-readable error code.")
    detail: str = Field(..., description="A human-readable explanation.")
    retry_after_seconds: Optional[int] = Field(None, description="Time until retry is allowed.")
