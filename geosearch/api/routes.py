# geosearch/api/routes.py
# Thin HTTP surface over SearchService. Query strings are passed through as
# loosely-typed options; all coercion happens in the search core.

from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from geosearch.core.errors import InvalidGeometry, InvalidRange, SearchError, StoreUnavailable
from geosearch.models.dto import (
    ErrorResponse,
    FacetResult,
    NearbyResult,
    PageResult,
    ReviewRequest,
    SearchableEntity,
    SearchHit,
    Suggestion,
)
from geosearch.services.catalog import EntityKindSpec, get_kind
from geosearch.services.geojson import GEOJSON_MEDIA_TYPE
from geosearch.services.search_service import SearchService

router = APIRouter()
logger = structlog.get_logger(__name__)

STORE_RETRY_AFTER_SECONDS = 5

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


# ----------------------------------------------------------------------
# Dependencies
# ----------------------------------------------------------------------
def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def query_options(request: Request) -> Dict[str, Any]:
    """Query string as a dict. Repeated keys (``?cuisines=a&cuisines=b``) become lists."""
    options: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        options[key] = values if len(values) > 1 else values[0]
    return options


def resolve_kind(kind: str) -> EntityKindSpec:
    spec = get_kind(kind)
    if spec is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=ErrorResponse(error="UNKNOWN_KIND", detail=f"Unknown entity kind '{kind}'.").model_dump(),
        )
    return spec


def not_found(what: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=ErrorResponse(error="NOT_FOUND", detail=f"{what} not found.").model_dump(),
    )


def to_http(e: SearchError) -> HTTPException:
    if isinstance(e, StoreUnavailable):
        logger.error("store_unavailable", error=e.message)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=ErrorResponse(
                error=e.code,
                detail="Search is temporarily unavailable. Please retry.",
                retry_after_seconds=STORE_RETRY_AFTER_SECONDS,
            ).model_dump(),
            headers={"Retry-After": str(STORE_RETRY_AFTER_SECONDS)},
        )
    if isinstance(e, (InvalidGeometry, InvalidRange)):
        logger.info("request_rejected", code=e.code, error=e.message, details=e.details)
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(error=e.code, detail=e.message).model_dump(),
        )
    logger.error("search_failed", code=e.code, error=e.message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=ErrorResponse(error=e.code, detail=e.message).model_dump(),
    )


# ----------------------------------------------------------------------
# Single-entity endpoints (declared before /{kind}/... so they win)
# ----------------------------------------------------------------------
@router.get("/entities/{id_or_slug}", response_model=SearchableEntity, responses=ERROR_RESPONSES)
async def entity_detail(id_or_slug: str, service: SearchService = Depends(get_search_service)):
    try:
        entity = await service.get_detail(id_or_slug)
    except SearchError as e:
        raise to_http(e)
    if entity is None:
        raise not_found("Entity")
    return entity


@router.get("/entities/{id_or_slug}/route", responses=ERROR_RESPONSES)
async def entity_route(id_or_slug: str, service: SearchService = Depends(get_search_service)):
    """Path plus ordered stops as a FeatureCollection (trains)."""
    try:
        collection = await service.route(id_or_slug)
    except SearchError as e:
        raise to_http(e)
    if collection is None:
        raise not_found("Entity")
    return JSONResponse(content=collection.model_dump(mode="json"), media_type=GEOJSON_MEDIA_TYPE)


@router.post(
    "/entities/{id_or_slug}/reviews",
    response_model=SearchableEntity,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def add_review(id_or_slug: str, review: ReviewRequest, service: SearchService = Depends(get_search_service)):
    try:
        entity = await service.add_review(id_or_slug, review.rating)
    except SearchError as e:
        raise to_http(e)
    if entity is None:
        raise not_found("Entity")
    return entity


# ----------------------------------------------------------------------
# Per-kind search endpoints
# ----------------------------------------------------------------------
@router.get("/{kind}", response_model=PageResult, responses=ERROR_RESPONSES)
async def list_entities(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    """Filtered, sorted, paginated listing (``sort``, ``page``, ``limit``, ``cursor``)."""
    spec = resolve_kind(kind)
    try:
        return await service.list_entities(spec, options)
    except SearchError as e:
        raise to_http(e)


@router.get("/{kind}/nearby", response_model=NearbyResult, responses=ERROR_RESPONSES)
async def nearby(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    spec = resolve_kind(kind)
    try:
        return await service.nearby(spec, options)
    except SearchError as e:
        raise to_http(e)


@router.get("/{kind}/bbox", response_model=List[SearchHit], responses=ERROR_RESPONSES)
async def within_bbox(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    spec = resolve_kind(kind)
    try:
        return await service.within_bbox(spec, options)
    except SearchError as e:
        raise to_http(e)


@router.get("/{kind}/facets", response_model=FacetResult, responses=ERROR_RESPONSES)
async def facets(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    spec = resolve_kind(kind)
    try:
        return await service.facets(spec, options)
    except SearchError as e:
        raise to_http(e)


@router.get("/{kind}/trending", response_model=List[SearchHit], responses=ERROR_RESPONSES)
async def trending(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    spec = resolve_kind(kind)
    try:
        return await service.trending(spec, options)
    except SearchError as e:
        raise to_http(e)


@router.get("/{kind}/suggest", response_model=List[Suggestion], responses=ERROR_RESPONSES)
async def suggest(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    spec = resolve_kind(kind)
    try:
        return await service.suggest(spec, options)
    except SearchError as e:
        raise to_http(e)


@router.get("/{kind}/geojson", responses=ERROR_RESPONSES)
async def geojson(
    kind: str,
    options: Dict[str, Any] = Depends(query_options),
    service: SearchService = Depends(get_search_service),
):
    """Map overlay. Accepts the listing filters plus either lat/lng/radiusKm or a bbox."""
    spec = resolve_kind(kind)
    try:
        collection = await service.geojson(spec, options)
    except SearchError as e:
        raise to_http(e)
    return JSONResponse(content=collection.model_dump(mode="json"), media_type=GEOJSON_MEDIA_TYPE)
