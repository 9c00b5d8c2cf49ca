from __future__ import annotations

import math
from typing import Sequence

from src.domain.models import GeoPoint, Stop

EARTH_RADIUS_KM = 6371.0


def haversine_distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)

    s = (
        math.sin(dphi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2.0) ** 2
    )
    # Clamp rounding noise so asin never sees a value above 1.
    return 2.0 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, s)))


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_distance_km(a.lat, a.lon, b.lat, b.lon)


def haversine_distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters."""

    return distance_km(a, b) * 1000.0


def nearest_stop_ahead(
    position: GeoPoint, candidate_stops: Sequence[Stop]
) -> tuple[Stop, int, float]:
    """Return the closest candidate as (stop, index, distance_km).

    Ties go to the lowest index, i.e. the earliest candidate in the list.
    """

    if not candidate_stops:
        raise ValueError("No candidate stops")

    best_i = 0
    best_d = float("inf")
    for i, stop in enumerate(candidate_stops):
        d = distance_km(position, stop.location)
        if d < best_d:
            best_d = d
            best_i = i
    return candidate_stops[best_i], best_i, best_d


def polyline_distance_km(points: Sequence[GeoPoint]) -> float:
    if len(points) < 2:
        return 0.0
    return float(sum(distance_km(a, b) for a, b in zip(points, points[1:])))
