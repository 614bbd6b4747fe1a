# Query-side models: the compiled FilterSpec, spatial strategies, sort policy
# and the small plan representation handed to a store executor.

from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from geosearch.models.dto import Point

# --- Predicates ---

class NumericRange(BaseModel):
    """Inclusive numeric bounds. A missing side is unbounded.

    ``gte > lte`` is kept as given and simply matches nothing.
    """
    model_config = ConfigDict(frozen=True)

    gte: Optional[float] = None
    lte: Optional[float] = None

    def contains(self, value: Optional[float]) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lte is not None and value > self.lte:
            return False
        return True


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    gte: Optional[datetime] = None
    lte: Optional[datetime] = None

    def contains(self, value: Optional[datetime]) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lte is not None and value > self.lte:
            return False
        return True


class FilterSpec(BaseModel):
    """Normalized, backend-agnostic predicate bundle.

    Every populated entry restricts the population; empty dicts and None
    mean "no constraint" for that dimension.
    """
    model_config = ConfigDict(frozen=True)

    kind: Optional[str] = None
    exact: Dict[str, str] = Field(default_factory=dict)
    any_of: Dict[str, List[str]] = Field(default_factory=dict)
    all_of: Dict[str, List[str]] = Field(default_factory=dict)
    ranges: Dict[str, NumericRange] = Field(default_factory=dict)
    date_ranges: Dict[str, DateRange] = Field(default_factory=dict)
    open_at: Optional[datetime] = Field(None, description="Match entities with an availability window covering this instant.")
    text: Optional[str] = None
    text_fields: List[str] = Field(default_factory=list)
    active_only: bool = True

    def cache_key(self) -> str:
        return self.model_dump_json(exclude_none=True)


# --- Sorting ---

class SortKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    descending: bool = False


class SortStrategy(str, Enum):
    RATING_DESC = "rating_desc"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    NEWEST = "newest"
    POPULARITY = "popularity"
    TRENDING = "trending"


SORT_KEYS: Dict[SortStrategy, List[SortKey]] = {
    SortStrategy.RATING_DESC: [SortKey(field="rating", descending=True), SortKey(field="popularity", descending=True)],
    SortStrategy.PRICE_ASC: [SortKey(field="price"), SortKey(field="popularity", descending=True)],
    SortStrategy.PRICE_DESC: [SortKey(field="price", descending=True), SortKey(field="popularity", descending=True)],
    SortStrategy.NEWEST: [SortKey(field="created_at", descending=True)],
    SortStrategy.POPULARITY: [SortKey(field="popularity", descending=True), SortKey(field="view_count", descending=True)],
    SortStrategy.TRENDING: [SortKey(field="trending_score", descending=True)],
}


def resolve_sort(name: Optional[str]) -> SortStrategy:
    """Map a client sort name onto a strategy; unknown names fall back to popularity."""
    try:
        return SortStrategy(str(name).strip().lower())
    except ValueError:
        return SortStrategy.POPULARITY


def sort_keys(strategy: SortStrategy) -> List[SortKey]:
    return SORT_KEYS[strategy]


# --- Spatial strategies ---

class NoSpatial(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["none"] = "none"


class RadiusFromPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["radius"] = "radius"
    center: Point
    radius_meters: float


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["bbox"] = "bbox"
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    @property
    def is_degenerate(self) -> bool:
        return self.min_lng > self.max_lng or self.min_lat > self.max_lat


SpatialQuery = Annotated[Union[NoSpatial, RadiusFromPoint, BoundingBox], Field(discriminator="kind")]


# --- Plan stages ---

class Match(BaseModel):
    op: Literal["match"] = "match"
    filter: FilterSpec


class GeoNear(BaseModel):
    op: Literal["geo_near"] = "geo_near"
    center: Point
    max_distance_meters: float


class GeoWithin(BaseModel):
    op: Literal["geo_within"] = "geo_within"
    polygon: List[List[float]]


class GroupBy(BaseModel):
    op: Literal["group_by"] = "group_by"
    field: str


class Sort(BaseModel):
    op: Literal["sort"] = "sort"
    keys: List[SortKey]


class Skip(BaseModel):
    op: Literal["skip"] = "skip"
    count: int


class Limit(BaseModel):
    op: Literal["limit"] = "limit"
    count: int


Stage = Annotated[Union[Match, GeoNear, GeoWithin, GroupBy, Sort, Skip, Limit], Field(discriminator="op")]


class ExecutableQuery(BaseModel):
    """An ordered list of stages describing what to fetch, not how.

    ``empty`` short-circuits execution (degenerate bounding boxes).
    """
    stages: List[Stage] = Field(default_factory=list)
    empty: bool = False

    def stage(self, op: str) -> Optional[BaseModel]:
        for s in self.stages:
            if s.op == op:
                return s
        return None

    @property
    def filter(self) -> FilterSpec:
        match = self.stage("match")
        return match.filter if match is not None else FilterSpec()

    @property
    def is_spatial(self) -> bool:
        return self.stage("geo_near") is not None or self.stage("geo_within") is not None

    def with_stages(self, *stages: BaseModel) -> "ExecutableQuery":
        return ExecutableQuery(stages=[*self.stages, *stages], empty=self.empty)
