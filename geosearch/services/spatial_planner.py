"""Spatial Query Planner.

Turns raw location parameters into one spatial strategy (none, radius from a
point, or bounding box), composes it with a compiled FilterSpec into an
ExecutableQuery, and executes that plan against an EntityStore.

Caps are hard ceilings: a requested limit above the cap is clamped, never
rejected. Radius results come back in ascending distance order with the
distance attached to every hit.
"""

from typing import Any, List, Mapping, Optional, Tuple

import structlog

from geosearch.core.config import settings
from geosearch.core.errors import InvalidGeometry
from geosearch.models.dto import Point, SearchHit
from geosearch.models.query import (
    BoundingBox,
    ExecutableQuery,
    FilterSpec,
    GeoNear,
    GeoWithin,
    Limit,
    Match,
    NoSpatial,
    RadiusFromPoint,
    SpatialQuery,
)
from geosearch.services.filter_compiler import parse_number, split_values
from geosearch.services.geometry import bbox_polygon, validate_point
from geosearch.services.store import EntityStore

logger = structlog.get_logger(__name__)

# Ceiling for filter-only plans executed without a Limit stage.
UNPAGED_CAP = settings.GEOJSON_MAX_LIMIT


def clamp_limit(value: Any, default: int, cap: int) -> int:
    """Coerce a client limit into [1, cap]. Non-numeric input falls back to ``default``."""
    n = parse_number(value)
    if n is None:
        n = default
    return max(1, min(int(n), cap))


def _present(value: Any) -> bool:
    return value is not None and not (isinstance(value, str) and not value.strip())


def _coordinate(params: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if _present(params.get(name)):
            return params.get(name)
    return None


def _as_float(value: Any, name: str) -> float:
    n = parse_number(value)
    if n is None:
        raise InvalidGeometry(f"{name} must be a finite number", {name: repr(value)})
    return n


def parse_spatial(
    params: Optional[Mapping[str, Any]],
    default_radius_km: float = settings.NEARBY_DEFAULT_RADIUS_KM,
) -> SpatialQuery:
    """Pick the spatial strategy from raw parameters.

    ``bbox`` ("minLng,minLat,maxLng,maxLat") or the four separate bounds select
    a bounding box; ``lat``/``lng`` select a radius search with ``radiusKm``
    (alias ``radius``), defaulting when missing or not a positive number.
    Partial or out-of-range coordinates raise InvalidGeometry.
    """
    params = params or {}

    bbox_parts = split_values(params.get("bbox"))
    bounds = [_coordinate(params, k, k.lower()) for k in ("minLng", "minLat", "maxLng", "maxLat")]
    if bbox_parts or any(_present(b) for b in bounds):
        if bbox_parts:
            if len(bbox_parts) != 4:
                raise InvalidGeometry("bbox needs exactly 4 numbers: minLng,minLat,maxLng,maxLat")
            bounds = bbox_parts
        if not all(_present(b) for b in bounds):
            raise InvalidGeometry("bounding box needs minLng, minLat, maxLng and maxLat")
        min_lng, min_lat, max_lng, max_lat = (
            _as_float(v, n) for v, n in zip(bounds, ("minLng", "minLat", "maxLng", "maxLat"))
        )
        validate_point([min_lng, min_lat])
        validate_point([max_lng, max_lat])
        return BoundingBox(min_lng=min_lng, min_lat=min_lat, max_lng=max_lng, max_lat=max_lat)

    lat = _coordinate(params, "lat", "latitude")
    lng = _coordinate(params, "lng", "lon", "longitude")
    if lat is None and lng is None:
        return NoSpatial()
    if lat is None or lng is None:
        raise InvalidGeometry("both lat and lng are required for a radius search")

    coords = validate_point([_as_float(lng, "lng"), _as_float(lat, "lat")])
    radius_km = parse_number(_coordinate(params, "radiusKm", "radius_km", "radius"))
    if radius_km is None or radius_km <= 0:
        radius_km = default_radius_km
    return RadiusFromPoint(center=Point(coordinates=coords), radius_meters=radius_km * 1000)


def plan(
    spatial: SpatialQuery,
    spec: FilterSpec,
    limit: Any = None,
    radius_default_limit: int = settings.NEARBY_DEFAULT_LIMIT,
    radius_cap: int = settings.NEARBY_MAX_LIMIT,
    bbox_default_limit: int = settings.BBOX_DEFAULT_LIMIT,
    bbox_cap: int = settings.BBOX_MAX_LIMIT,
) -> ExecutableQuery:
    """Compose a spatial strategy with a FilterSpec into an ExecutableQuery."""
    if isinstance(spatial, RadiusFromPoint):
        validate_point(spatial.center.coordinates)
        return ExecutableQuery(stages=[
            GeoNear(center=spatial.center, max_distance_meters=spatial.radius_meters),
            Match(filter=spec),
            Limit(count=clamp_limit(limit, radius_default_limit, radius_cap)),
        ])

    if isinstance(spatial, BoundingBox):
        if spatial.is_degenerate:
            logger.info("bbox_degenerate", bbox=spatial.model_dump(exclude={"kind"}))
            return ExecutableQuery(stages=[Match(filter=spec)], empty=True)
        polygon = bbox_polygon(spatial.min_lng, spatial.min_lat, spatial.max_lng, spatial.max_lat)
        return ExecutableQuery(stages=[
            GeoWithin(polygon=polygon),
            Match(filter=spec),
            Limit(count=clamp_limit(limit, bbox_default_limit, bbox_cap)),
        ])

    return ExecutableQuery(stages=[Match(filter=spec)])


async def execute(query: ExecutableQuery, store: EntityStore) -> List[SearchHit]:
    """Run a spatial plan against the store.

    Filter-only plans are normally windowed by the paginator; executing one
    here honours its Sort/Skip/Limit stages and never returns more than
    UNPAGED_CAP rows.
    """
    if query.empty:
        return []

    spec = query.filter
    limit_stage = query.stage("limit")
    sort_stage = query.stage("sort")
    keys = sort_stage.keys if sort_stage is not None else []

    near = query.stage("geo_near")
    if near is not None:
        rows = await store.near_point(near.center, near.max_distance_meters, spec, limit_stage.count)
        hits = [SearchHit(entity=e, distance_meters=d) for e, d in rows]
        hits.sort(key=lambda h: h.distance_meters)
        logger.info("radius_search", center=near.center.coordinates,
                    radius_m=near.max_distance_meters, found=len(hits))
        return hits

    within = query.stage("geo_within")
    if within is not None:
        rows = await store.within_polygon(within.polygon, spec, limit_stage.count, keys)
        logger.info("bbox_search", polygon=within.polygon[0] + within.polygon[2], found=len(rows))
        return [SearchHit(entity=e) for e in rows]

    skip_stage = query.stage("skip")
    skip = skip_stage.count if skip_stage is not None else 0
    count = limit_stage.count if limit_stage is not None else UNPAGED_CAP
    rows = await store.find_by_filter(spec, keys, skip, count)
    return [SearchHit(entity=e) for e in rows]


async def aggregate(query: ExecutableQuery, store: EntityStore) -> List[Tuple[str, int]]:
    """Run a ``[Match, GroupBy]`` plan: distinct-value counts over the matched population."""
    group = query.stage("group_by")
    if group is None:
        raise ValueError("aggregate() needs a group_by stage")
    if query.empty:
        return []
    return await store.group_count(query.filter, group.field)
