# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Great-circle geometry — pure computation, no side effects.

Haversine distance between two coordinates, plus a coarse bounding box
used to prefilter radius searches in SQL.
"""

import math

from relief_dispatch.models.domain import Coordinate

EARTH_RADIUS_METERS = 6_371_000.0


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance between ``a`` and ``b`` in meters."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = math.radians(b.latitude - a.latitude)
    dlng = math.radians(b.longitude - a.longitude)

    h = (math.sin(dlat / 2) ** 2
         + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2)
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bounding_box(
    center: Coordinate, radius_meters: float,
) -> tuple[float, float, float | None, float | None]:
    """
    Return (min_lat, max_lat, min_lng, max_lng) enclosing the circle.

    Longitude bounds are None when the box would cross the antimeridian or
    touch a pole; callers then filter on latitude only.
    """
    dlat = math.degrees(radius_meters / EARTH_RADIUS_METERS)
    min_lat = max(center.latitude - dlat, -90.0)
    max_lat = min(center.latitude + dlat, 90.0)
    if min_lat <= -90.0 or max_lat >= 90.0:
        return min_lat, max_lat, None, None

    cos_lat = math.cos(math.radians(max(abs(min_lat), abs(max_lat))))
    dlng = math.degrees(radius_meters / (EARTH_RADIUS_METERS * cos_lat))
    min_lng = center.longitude - dlng
    max_lng = center.longitude + dlng
    if min_lng < -180.0 or max_lng > 180.0:
        return min_lat, max_lat, None, None
    return min_lat, max_lat, min_lng, max_lng
