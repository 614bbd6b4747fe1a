# Entity store boundary and the in-memory reference backend.
#
# The search core only talks to the EntityStore protocol. InMemoryEntityStore
# evaluates FilterSpecs directly against loaded records and is what the service
# runs on when no external document store is wired in (and what the tests use).

import json
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import structlog
from pydantic import ValidationError

from geosearch.core.errors import StoreUnavailable
from geosearch.models.dto import EntityCollection, Point, SearchableEntity
from geosearch.models.query import FilterSpec, SortKey
from geosearch.services.geometry import is_valid_point, point_in_polygon
from geosearch.utils.haversine import haversine_meters

logger = structlog.get_logger(__name__)


class EntityStore(Protocol):
    """What the search core needs from persistence."""

    async def find_by_filter(
        self, spec: FilterSpec, sort: Sequence[SortKey], skip: int, limit: int
    ) -> List[SearchableEntity]: ...

    async def count_by_filter(self, spec: FilterSpec) -> int: ...

    async def near_point(
        self, center: Point, radius_meters: float, spec: FilterSpec, limit: int
    ) -> List[Tuple[SearchableEntity, float]]: ...

    async def within_polygon(
        self, polygon: List[List[float]], spec: FilterSpec, limit: int, sort: Sequence[SortKey] = ()
    ) -> List[SearchableEntity]: ...

    async def group_count(self, spec: FilterSpec, field: str) -> List[Tuple[str, int]]: ...

    async def numeric_range(self, spec: FilterSpec, field: str) -> Optional[Tuple[float, float]]: ...

    async def get(self, entity_id: str) -> Optional[SearchableEntity]: ...

    async def find_by_slug(self, slug: str) -> Optional[SearchableEntity]: ...

    async def replace(self, entity: SearchableEntity) -> SearchableEntity: ...


# --- Predicate evaluation ---

def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _as_set(value: Any) -> set:
    if value is None:
        return set()
    if isinstance(value, (list, tuple, set)):
        return {str(v) for v in value}
    return {str(value)}


def _text_hit(value: Any, term: str) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple)):
        return any(term in str(v).casefold() for v in value)
    return term in str(value).casefold()


def entity_matches(entity: SearchableEntity, spec: FilterSpec) -> bool:
    """Evaluate every populated predicate of ``spec`` against one entity."""
    if spec.kind and entity.kind != spec.kind:
        return False
    if spec.active_only and not entity.is_active:
        return False

    for field, expected in spec.exact.items():
        value = entity.field_value(field)
        if value is None or str(value).casefold() != expected.casefold():
            return False

    for field, wanted in spec.any_of.items():
        if not _as_set(entity.field_value(field)) & set(wanted):
            return False

    for field, wanted in spec.all_of.items():
        if not set(wanted) <= _as_set(entity.field_value(field)):
            return False

    for field, bounds in spec.ranges.items():
        value = entity.field_value(field)
        if not isinstance(value, (int, float)) or not bounds.contains(float(value)):
            return False

    for field, bounds in spec.date_ranges.items():
        value = entity.field_value(field)
        if not isinstance(value, datetime):
            return False
        lo = _aware(bounds.gte) if bounds.gte else None
        hi = _aware(bounds.lte) if bounds.lte else None
        v = _aware(value)
        if (lo is not None and v < lo) or (hi is not None and v > hi):
            return False

    if spec.open_at is not None:
        at = _aware(spec.open_at)
        if not any(_aware(w.start) <= at <= _aware(w.end) for w in entity.availability):
            return False

    if spec.text:
        term = spec.text.casefold()
        if not any(_text_hit(entity.field_value(f), term) for f in spec.text_fields):
            return False

    return True


def _sort_value(entity: SearchableEntity, field: str) -> Tuple[bool, Any]:
    value = entity.field_value(field)
    if isinstance(value, datetime):
        value = _aware(value)
    # Missing values sort below every present value.
    return (value is not None, value if value is not None else 0)


def sort_entities(entities: Iterable[SearchableEntity], keys: Sequence[SortKey]) -> List[SearchableEntity]:
    """Multi-key stable sort; identifier ascending is the final tie-breaker."""
    result = sorted(entities, key=lambda e: e.id)
    for key in reversed(keys):
        result.sort(key=lambda e, f=key.field: _sort_value(e, f), reverse=key.descending)
    return result


# --- In-memory backend ---

class InMemoryEntityStore:
    """EntityStore over a list of records held in memory.

    The handle is opened by the surrounding application at startup and closed
    at shutdown; calls on a closed handle raise StoreUnavailable.
    """

    def __init__(self, entities: Optional[Iterable[SearchableEntity]] = None):
        self._entities: Dict[str, SearchableEntity] = {}
        self._open = True
        for entity in entities or []:
            self._entities[entity.id] = entity

    @classmethod
    def from_file(cls, file_path: Optional[str]) -> "InMemoryEntityStore":
        """Load a seed JSON file (``{"entities": [...]}``) validated with the entity models."""
        if not file_path:
            logger.info("entity_store_empty", reason="no seed path configured")
            return cls()
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            collection = EntityCollection.model_validate(data)
        except FileNotFoundError:
            logger.error("seed_file_not_found", path=file_path)
            return cls()
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("seed_file_invalid", path=file_path, error=str(e))
            return cls()
        logger.info("entity_store_loaded", path=file_path, count=len(collection.entities))
        return cls(collection.entities)

    def __len__(self) -> int:
        return len(self._entities)

    @property
    def is_open(self) -> bool:
        return self._open

    async def close(self) -> None:
        self._open = False

    def _population(self, spec: FilterSpec) -> List[SearchableEntity]:
        if not self._open:
            raise StoreUnavailable("entity store is closed")
        return [e for e in self._entities.values() if entity_matches(e, spec)]

    async def find_by_filter(
        self, spec: FilterSpec, sort: Sequence[SortKey], skip: int, limit: int
    ) -> List[SearchableEntity]:
        ordered = sort_entities(self._population(spec), sort)
        return ordered[max(skip, 0):max(skip, 0) + max(limit, 0)]

    async def count_by_filter(self, spec: FilterSpec) -> int:
        return len(self._population(spec))

    async def near_point(
        self, center: Point, radius_meters: float, spec: FilterSpec, limit: int
    ) -> List[Tuple[SearchableEntity, float]]:
        hits = []
        for entity in self._population(spec):
            if entity.location is None or not is_valid_point(entity.location.coordinates):
                continue
            d = haversine_meters(center.lng, center.lat, entity.location.lng, entity.location.lat)
            if d <= radius_meters:
                hits.append((entity, d))
        hits.sort(key=lambda h: (h[1], h[0].id))
        return hits[:max(limit, 0)]

    async def within_polygon(
        self, polygon: List[List[float]], spec: FilterSpec, limit: int, sort: Sequence[SortKey] = ()
    ) -> List[SearchableEntity]:
        # Ordered before the cap so a truncated box keeps the best rows.
        out = []
        for entity in sort_entities(self._population(spec), sort):
            if entity.location is None or not is_valid_point(entity.location.coordinates):
                continue
            if point_in_polygon(entity.location.coordinates, polygon):
                out.append(entity)
                if len(out) >= limit:
                    break
        return out

    async def group_count(self, spec: FilterSpec, field: str) -> List[Tuple[str, int]]:
        counts: Counter = Counter()
        for entity in self._population(spec):
            # Multi-valued fields are unwound: one entity counts once per distinct value.
            for value in _as_set(entity.field_value(field)):
                if value:
                    counts[value] += 1
        return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))

    async def numeric_range(self, spec: FilterSpec, field: str) -> Optional[Tuple[float, float]]:
        values = [
            float(v) for v in (e.field_value(field) for e in self._population(spec))
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        ]
        if not values:
            return None
        return min(values), max(values)

    async def get(self, entity_id: str) -> Optional[SearchableEntity]:
        if not self._open:
            raise StoreUnavailable("entity store is closed")
        return self._entities.get(entity_id)

    async def find_by_slug(self, slug: str) -> Optional[SearchableEntity]:
        if not self._open:
            raise StoreUnavailable("entity store is closed")
        for entity in self._entities.values():
            if entity.slug == slug:
                return entity
        return None

    async def replace(self, entity: SearchableEntity) -> SearchableEntity:
        if not self._open:
            raise StoreUnavailable("entity store is closed")
        self._entities[entity.id] = entity
        return entity
