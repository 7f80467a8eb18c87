from __future__ import annotations

import math

from ..catalog.models import GeoPoint

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: GeoPoint, b: GeoPoint, radius_km: float = EARTH_RADIUS_KM) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    return radius_km * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def distance_or_zero(a: GeoPoint | None, b: GeoPoint | None) -> float:
    """Distance when both points are known, else 0."""
    if a is None or b is None:
        return 0.0
    return haversine_km(a, b)
