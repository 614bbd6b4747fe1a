# Filter Compiler: loosely-typed query options -> normalized FilterSpec.
# Pure transformation, no I/O.

import math
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Mapping, Optional

import structlog

from geosearch.models.query import DateRange, FilterSpec, NumericRange
from geosearch.services.catalog import CATALOG, DEFAULT_KIND, EntityKindSpec

logger = structlog.get_logger(__name__)

# Accepted spellings for the fixed options. Anything not listed here or
# declared by the entity kind is ignored.
_ALIASES = {
    "min_price": "minPrice",
    "max_price": "maxPrice",
    "min_rating": "minRating",
    "rating": "minRating",
    "open_now": "openNow",
    "is_active_only": "isActiveOnly",
    "active_only": "isActiveOnly",
    "start_date": "startDate",
    "end_date": "endDate",
    "search": "q",
    "dietaryOptions": "dietary",
}

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


def split_values(value: Any) -> List[str]:
    """Split comma-separated strings or arrays into trimmed, non-empty, de-duplicated strings."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        parts: List[str] = []
        for v in value:
            parts.extend(split_values(v))
    else:
        parts = [p.strip() for p in str(value).split(",")]

    seen = set()
    out = []
    for p in parts:
        if p and p not in seen:
            seen.add(p)
            out.append(p)
    return out


def parse_number(value: Any) -> Optional[float]:
    """Coerce to a finite float; missing, null, non-numeric or non-finite input gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return default


def parse_datetime(value: Any, end_of_day: bool = False) -> Optional[datetime]:
    """Parse an ISO 8601 date or datetime. Bare dates expand to the start/end of that day (UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.max if end_of_day else time.min)
    else:
        s = str(value).strip()
        try:
            if len(s) == 10:
                d = date.fromisoformat(s)
                dt = datetime.combine(d, time.max if end_of_day else time.min)
            else:
                dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _first(value: Any) -> Any:
    # Query strings may arrive as repeated keys; scalar options take the first.
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _normalize_keys(options: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in options.items():
        out[_ALIASES.get(key, key)] = value
    return out


def compile_filters(
    options: Optional[Mapping[str, Any]],
    kind: Optional[EntityKindSpec] = None,
    now: Optional[datetime] = None,
) -> FilterSpec:
    """Compile raw options into a FilterSpec.

    Recognized options: city, country, q, minPrice, maxPrice, minRating,
    openNow, isActiveOnly, startDate/endDate (kinds with a date field), plus the
    kind's declared any-of, all-of and exact fields. Empty sets and missing or
    non-numeric bounds are omitted, never turned into "match nothing".
    """
    kind = kind or CATALOG[DEFAULT_KIND]
    opts = _normalize_keys(options or {})

    exact: Dict[str, str] = {}
    for key in ("city", "country", *kind.exact):
        value = _first(opts.get(key))
        if value is not None and str(value).strip():
            exact[key] = str(value).strip()

    any_of: Dict[str, List[str]] = {}
    for key in kind.any_of:
        values = split_values(opts.get(key))
        if values:
            any_of[key] = values

    all_of: Dict[str, List[str]] = {}
    for key in kind.all_of:
        values = split_values(opts.get(key))
        if values:
            all_of[key] = values

    ranges: Dict[str, NumericRange] = {}
    min_price = parse_number(_first(opts.get("minPrice")))
    max_price = parse_number(_first(opts.get("maxPrice")))
    if min_price is not None or max_price is not None:
        ranges["price"] = NumericRange(gte=min_price, lte=max_price)
    min_rating = parse_number(_first(opts.get("minRating")))
    if min_rating is not None:
        ranges["rating"] = NumericRange(gte=min_rating)

    date_ranges: Dict[str, DateRange] = {}
    if kind.date_field:
        start = parse_datetime(_first(opts.get("startDate")))
        end = parse_datetime(_first(opts.get("endDate")), end_of_day=True)
        if start is not None or end is not None:
            date_ranges[kind.date_field] = DateRange(gte=start, lte=end)

    open_at = None
    if parse_bool(_first(opts.get("openNow")), default=False):
        open_at = now or datetime.now(timezone.utc)

    text = _first(opts.get("q"))
    text = str(text).strip() if text is not None else ""

    spec = FilterSpec(
        kind=kind.name,
        exact=exact,
        any_of=any_of,
        all_of=all_of,
        ranges=ranges,
        date_ranges=date_ranges,
        open_at=open_at,
        text=text or None,
        text_fields=list(kind.text_fields) if text else [],
        active_only=parse_bool(_first(opts.get("isActiveOnly")), default=True),
    )
    logger.debug("filters_compiled", kind=kind.name, filter=spec.cache_key())
    return spec
