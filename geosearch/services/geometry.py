# Geometry validation and the planar helpers used for bounding-box search.

import math
from typing import Any, List, Sequence

from geosearch.core.errors import InvalidGeometry

Coordinates = List[float]


def _as_pair(coords: Any, where: str) -> Coordinates:
    if not isinstance(coords, (list, tuple)) or len(coords) != 2:
        raise InvalidGeometry(f"{where} must be a [lng, lat] pair", {"value": repr(coords)})
    lng, lat = coords
    for v in (lng, lat):
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise InvalidGeometry(f"{where} coordinates must be finite numbers", {"value": repr(coords)})
    if not -180 <= lng <= 180:
        raise InvalidGeometry(f"{where} longitude {lng} outside [-180, 180]", {"lng": lng})
    if not -90 <= lat <= 90:
        raise InvalidGeometry(f"{where} latitude {lat} outside [-90, 90]", {"lat": lat})
    return [float(lng), float(lat)]


def validate_point(coords: Any) -> Coordinates:
    """Validate a single [lng, lat] vertex.

    Returns the coordinates as floats. Raises InvalidGeometry when the vertex
    does not have exactly two finite numbers or is outside the valid ranges.
    """
    return _as_pair(coords, "point")


def validate_path(coords: Any) -> List[Coordinates]:
    """Validate a LineString: at least two vertices, each a valid point."""
    if not isinstance(coords, (list, tuple)) or len(coords) < 2:
        raise InvalidGeometry("path needs at least 2 vertices")
    return [_as_pair(c, f"path vertex {i}") for i, c in enumerate(coords)]


def is_valid_point(coords: Any) -> bool:
    try:
        validate_point(coords)
    except InvalidGeometry:
        return False
    return True


def is_valid_path(coords: Any) -> bool:
    try:
        validate_path(coords)
    except InvalidGeometry:
        return False
    return True


def bbox_polygon(min_lng: float, min_lat: float, max_lng: float, max_lat: float) -> List[Coordinates]:
    """Closed exterior ring for a bounding box: 4 corners plus the closing vertex."""
    return [
        [min_lng, min_lat],
        [max_lng, min_lat],
        [max_lng, max_lat],
        [min_lng, max_lat],
        [min_lng, min_lat],
    ]


def _on_segment(px: float, py: float, a: Sequence[float], b: Sequence[float], eps: float = 1e-12) -> bool:
    (ax, ay), (bx, by) = a, b
    cross = (px - ax) * (by - ay) - (py - ay) * (bx - ax)
    if abs(cross) > eps:
        return False
    return min(ax, bx) - eps <= px <= max(ax, bx) + eps and min(ay, by) - eps <= py <= max(ay, by) + eps


def point_in_polygon(point: Sequence[float], ring: Sequence[Sequence[float]]) -> bool:
    """Ray casting over a closed ring. Points on the boundary count as inside."""
    px, py = point[0], point[1]
    n = len(ring)
    if n < 4:
        return False

    inside = False
    for i in range(n - 1):
        a, b = ring[i], ring[i + 1]
        if _on_segment(px, py, a, b):
            return True
        (ax, ay), (bx, by) = a, b
        if (ay > py) != (by > py):
            x_cross = ax + (py - ay) * (bx - ax) / (by - ay)
            if px < x_cross:
                inside = not inside
    return inside
