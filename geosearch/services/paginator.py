# Result Paginator: deterministic ordering, offset/cursor windows and total counts.

import asyncio
import base64
import binascii
import json
from typing import Any, Optional

import structlog

from geosearch.core.config import settings
from geosearch.models.dto import PageResult
from geosearch.models.query import ExecutableQuery, Limit, Skip, Sort, SortStrategy, resolve_sort, sort_keys
from geosearch.services.filter_compiler import parse_number
from geosearch.services.spatial_planner import execute
from geosearch.services.store import EntityStore

logger = structlog.get_logger(__name__)


def encode_cursor(offset: int) -> str:
    raw = json.dumps({"offset": offset}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: Optional[str]) -> Optional[int]:
    """Return the offset carried by a cursor, or None when the token is missing or malformed."""
    if not token:
        return None
    try:
        padded = token + "=" * (-len(token) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        offset = data["offset"]
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeEncodeError):
        logger.info("cursor_rejected", cursor=token)
        return None
    if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
        return None
    return offset


def _coerce_positive_int(value: Any, default: int) -> int:
    n = parse_number(value)
    if n is None or n < 1:
        return default
    return int(n)


async def paginate(
    query: ExecutableQuery,
    store: EntityStore,
    page: Any = 1,
    limit: Any = None,
    sort: Any = None,
    cursor: Optional[str] = None,
    default_limit: int = settings.DEFAULT_PAGE_LIMIT,
    max_limit: int = settings.MAX_PAGE_LIMIT,
    max_page: int = settings.MAX_PAGE,
) -> PageResult:
    """Fetch one page of ``query``.

    Filter-only queries run the windowed fetch and the total count
    concurrently against the store. Spatial queries are executed once (they
    are already capped) and windowed in memory. Radius results keep distance
    order; bounding-box results follow the requested sort.
    Malformed page/limit/cursor input falls back to the defaults.
    """
    size = min(_coerce_positive_int(limit, default_limit), max_limit)

    offset = decode_cursor(cursor)
    if offset is None:
        p = min(_coerce_positive_int(page, 1), max_page)
        offset = (p - 1) * size
    else:
        # A forged cursor cannot reach past the deepest page.
        offset = min(offset, (max_page - 1) * size)
        p = offset // size + 1

    if query.empty:
        return PageResult(items=[], page=p, limit=size, offset=offset, total=0)

    if query.is_spatial:
        if query.stage("geo_within") is not None:
            query = query.with_stages(Sort(keys=sort_keys(resolve_sort(sort))))
        hits = await execute(query, store)
        total = len(hits)
        items = hits[offset:offset + size]
    else:
        strategy: SortStrategy = resolve_sort(sort)
        windowed = query.with_stages(Sort(keys=sort_keys(strategy)), Skip(count=offset), Limit(count=size))
        items, total = await asyncio.gather(
            execute(windowed, store),
            store.count_by_filter(query.filter),
        )

    result = PageResult(items=items, page=p, limit=size, offset=offset, total=total)
    if result.has_more:
        result.next_cursor = encode_cursor(offset + len(items))
    logger.debug("page_fetched", page=p, limit=size, total=total, returned=len(items))
    return result
