# Great-circle distance on a spherical earth.

from math import asin, cos, radians, sin, sqrt

# Mean earth radius in kilometers. The in-memory store and the distance
# enrichment both use this value so that ordering is identical everywhere.
R = 6371.0


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometers between two (lat, lon) points given in degrees."""
    phi1, phi2 = radians(lat1), radians(lat2)
    dphi = phi2 - phi1
    dlmb = radians(lon2 - lon1)

    a = sin(dphi / 2) ** 2 + cos(phi1) * cos(phi2) * sin(dlmb / 2) ** 2
    # Rounding can push near-antipodal points just past 1.0
    return 2 * R * asin(min(1.0, sqrt(a)))


def haversine_meters(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Same metric in meters, taking GeoJSON-ordered (lng, lat) pairs."""
    return haversine(lat1, lng1, lat2, lng2) * 1000.0
