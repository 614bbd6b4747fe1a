# geosearch/services/search_service.py
# Orchestrates the search core for one entity kind: compile filters, plan the
# spatial strategy, then paginate, aggregate or project.

from typing import Any, List, Mapping, Optional

import structlog

from geosearch.core.config import Settings, settings as default_settings
from geosearch.core.errors import InvalidGeometry, InvalidRange
from geosearch.models.dto import (
    FacetResult,
    FeatureCollection,
    NearbyResult,
    PageResult,
    SearchableEntity,
    SearchHit,
    Suggestion,
)
from geosearch.models.query import (
    BoundingBox,
    Limit,
    NoSpatial,
    RadiusFromPoint,
    Sort,
    SortStrategy,
    sort_keys,
)
from geosearch.services.cache import ResultCache
from geosearch.services.catalog import EntityKindSpec
from geosearch.services.facets import FacetAggregator
from geosearch.services.filter_compiler import compile_filters, parse_number
from geosearch.services.geojson import project, project_route
from geosearch.services.geometry import is_valid_point
from geosearch.services.paginator import paginate
from geosearch.services.spatial_planner import clamp_limit, execute, parse_spatial, plan
from geosearch.services.store import EntityStore
from geosearch.utils.haversine import haversine_meters

logger = structlog.get_logger(__name__)

MIN_SUGGEST_CHARS = 2


class SearchService:
    """Service layer over an explicitly passed EntityStore and ResultCache.

    - Listing with filters, sort strategies and pagination.
    - Radius ("nearby") and bounding-box (viewport) searches.
    - Facets, trending, suggestions and GeoJSON overlays.
    - Detail lookups and review aggregation.
    """

    def __init__(self, store: EntityStore, cache: ResultCache, config: Settings = default_settings):
        self.store = store
        self.cache = cache
        self.config = config

    # --- Listing ---

    async def list_entities(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> PageResult:
        """Filtered, sorted, paginated listing.

        A radius (``radiusKm``) or bounding box narrows the population; a bare
        ``lat``/``lng`` or ``userLat``/``userLng`` only attaches distances.
        """
        spec = compile_filters(params, kind)
        spatial = self._listing_spatial(params)
        cap = self.config.BBOX_MAX_LIMIT if isinstance(spatial, BoundingBox) else self.config.NEARBY_MAX_LIMIT
        query = plan(spatial, spec, limit=cap,
                     radius_cap=self.config.NEARBY_MAX_LIMIT, bbox_cap=self.config.BBOX_MAX_LIMIT)

        page = await paginate(
            query,
            self.store,
            page=params.get("page"),
            limit=params.get("limit"),
            sort=params.get("sort") or params.get("sortBy"),
            cursor=params.get("cursor"),
            default_limit=self.config.DEFAULT_PAGE_LIMIT,
            max_limit=self.config.MAX_PAGE_LIMIT,
            max_page=self.config.MAX_PAGE,
        )
        user_point = self._user_point(params)
        if user_point is not None:
            page.items = [self._with_distance(hit, user_point) for hit in page.items]
        return page

    @staticmethod
    def _listing_spatial(params: Mapping[str, Any]):
        keys = ("bbox", "minLng", "minLat", "maxLng", "maxLat", "radiusKm", "radius_km", "radius")
        if any(params.get(k) not in (None, "") for k in keys):
            return parse_spatial(params)
        return NoSpatial()

    @staticmethod
    def _user_point(params: Mapping[str, Any]) -> Optional[List[float]]:
        lat = parse_number(params.get("userLat", params.get("lat")))
        lng = parse_number(params.get("userLng", params.get("lng")))
        if lat is None or lng is None or not is_valid_point([lng, lat]):
            return None
        return [lng, lat]

    @staticmethod
    def _with_distance(hit: SearchHit, user_point: List[float]) -> SearchHit:
        if hit.distance_meters is not None or hit.entity.location is None:
            return hit
        if not is_valid_point(hit.entity.location.coordinates):
            return hit
        d = haversine_meters(user_point[0], user_point[1], hit.entity.location.lng, hit.entity.location.lat)
        return SearchHit(entity=hit.entity, distance_meters=d)

    # --- Spatial ---

    async def nearby(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> NearbyResult:
        spatial = parse_spatial(params, default_radius_km=self.config.NEARBY_DEFAULT_RADIUS_KM)
        if not isinstance(spatial, RadiusFromPoint):
            raise InvalidGeometry("lat and lng are required for a nearby search")
        spec = compile_filters(params, kind)
        query = plan(spatial, spec, limit=params.get("limit"),
                     radius_default_limit=self.config.NEARBY_DEFAULT_LIMIT,
                     radius_cap=self.config.NEARBY_MAX_LIMIT)

        # Open-now results depend on the current instant and are not cached.
        cache_key = None
        if spec.open_at is None:
            cache_key = "nearby:{}:{}:{}:{}:{}".format(
                kind.name,
                ",".join(f"{c:.6f}" for c in spatial.center.coordinates),
                spatial.radius_meters,
                query.stage("limit").count,
                spec.cache_key(),
            )
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug("nearby_cache_hit", key=cache_key)
                return NearbyResult.model_validate(cached)

        hits = await execute(query, self.store)
        result = NearbyResult(
            hits=hits,
            center=spatial.center,
            radius_km=spatial.radius_meters / 1000,
            total_found=len(hits),
        )
        if cache_key is not None:
            await self.cache.set(cache_key, result.model_dump(mode="json"), self.config.NEARBY_CACHE_TTL)
        return result

    async def within_bbox(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> List[SearchHit]:
        spatial = parse_spatial(params)
        if not isinstance(spatial, BoundingBox):
            raise InvalidGeometry("a bounding box (bbox or minLng/minLat/maxLng/maxLat) is required")
        spec = compile_filters(params, kind)
        query = plan(spatial, spec, limit=params.get("limit"),
                     bbox_default_limit=self.config.BBOX_DEFAULT_LIMIT,
                     bbox_cap=self.config.BBOX_MAX_LIMIT)
        return await execute(query, self.store)

    # --- Aggregations ---

    async def facets(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> FacetResult:
        spec = compile_filters(params, kind)
        aggregator = FacetAggregator(self.store, top_n=self.config.FACET_TOP_N)
        return await aggregator.facets(spec, kind.facets)

    async def trending(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> List[SearchHit]:
        spec = compile_filters(params, kind)
        limit = clamp_limit(params.get("limit"), self.config.TRENDING_DEFAULT_LIMIT, self.config.TRENDING_MAX_LIMIT)
        cache_key = None
        if spec.open_at is None:
            cache_key = f"trending:{kind.name}:{limit}:{spec.cache_key()}"
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return [SearchHit.model_validate(h) for h in cached]

        query = plan(NoSpatial(), spec).with_stages(
            Sort(keys=sort_keys(SortStrategy.TRENDING)),
            Limit(count=limit),
        )
        hits = await execute(query, self.store)
        if cache_key is not None:
            await self.cache.set(
                cache_key,
                [h.model_dump(mode="json") for h in hits],
                self.config.TRENDING_CACHE_TTL,
            )
        return hits

    # --- Map output ---

    async def geojson(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> FeatureCollection:
        spec = compile_filters(params, kind)
        spatial = parse_spatial(params, default_radius_km=self.config.NEARBY_DEFAULT_RADIUS_KM)
        if isinstance(spatial, NoSpatial):
            limit = clamp_limit(params.get("limit"), self.config.GEOJSON_DEFAULT_LIMIT, self.config.GEOJSON_MAX_LIMIT)
            query = plan(spatial, spec).with_stages(
                Sort(keys=sort_keys(SortStrategy.POPULARITY)),
                Limit(count=limit),
            )
        else:
            query = plan(spatial, spec, limit=params.get("limit"),
                         radius_default_limit=self.config.NEARBY_DEFAULT_LIMIT,
                         radius_cap=self.config.NEARBY_MAX_LIMIT,
                         bbox_default_limit=self.config.BBOX_DEFAULT_LIMIT,
                         bbox_cap=self.config.BBOX_MAX_LIMIT)
        hits = await execute(query, self.store)
        return project(hits)

    async def route(self, id_or_slug: str) -> Optional[FeatureCollection]:
        entity = await self.get_detail(id_or_slug)
        if entity is None:
            return None
        return project_route(entity)

    # --- Details ---

    async def get_detail(self, id_or_slug: str) -> Optional[SearchableEntity]:
        """Look up by identifier, then by slug. No match returns None."""
        if not id_or_slug:
            return None
        entity = await self.store.get(id_or_slug)
        if entity is None:
            entity = await self.store.find_by_slug(id_or_slug)
        return entity

    async def suggest(self, kind: EntityKindSpec, params: Mapping[str, Any]) -> List[Suggestion]:
        q = str(params.get("q") or "").strip()
        if len(q) < MIN_SUGGEST_CHARS:
            return []
        spec = compile_filters({"q": q, "city": params.get("city"), "country": params.get("country")}, kind)
        limit = clamp_limit(params.get("limit"), self.config.SUGGEST_DEFAULT_LIMIT, self.config.SUGGEST_MAX_LIMIT)
        rows = await self.store.find_by_filter(spec, sort_keys(SortStrategy.POPULARITY), 0, limit)

        suggestions = []
        for e in rows:
            geo_uri = None
            if e.location is not None and is_valid_point(e.location.coordinates):
                geo_uri = f"geo:{e.location.lat},{e.location.lng}"
            suggestions.append(Suggestion(
                id=e.id, name=e.name, slug=e.slug, city=e.city,
                country=e.country, category=e.category, geo_uri=geo_uri,
            ))
        return suggestions

    async def add_review(self, id_or_slug: str, rating: Any) -> Optional[SearchableEntity]:
        """Fold one rating into the entity's aggregate with a count-weighted average."""
        value = parse_number(rating)
        if value is None or not 1 <= value <= 5:
            raise InvalidRange("rating must be a number between 1 and 5", {"rating": rating})

        entity = await self.get_detail(id_or_slug)
        if entity is None:
            return None

        n = entity.review_count
        average = (entity.rating * n + value) / (n + 1)
        updated = entity.model_copy(update={"rating": round(average, 4), "review_count": n + 1})
        await self.store.replace(updated)
        logger.info("review_added", entity_id=entity.id, rating=value, reviews=n + 1, average=updated.rating)
        return updated
