from __future__ import annotations

from dataclasses import dataclass

from .geo import GeoPoint


@dataclass(frozen=True, slots=True)
class RoadPath:
    """Shortest road path between two points, as returned by a router."""

    points: tuple[GeoPoint, ...]
    distance_m: float


@dataclass(frozen=True, slots=True)
class PolylineSegment:
    start: GeoPoint
    end: GeoPoint
    points: tuple[GeoPoint, ...]
    distance_km: float
    is_fallback: bool = False  # straight line used instead of a road path


@dataclass(frozen=True, slots=True)
class RoadPolyline:
    points: tuple[GeoPoint, ...]
    distance_km: float
    segments: tuple[PolylineSegment, ...] = ()

    @property
    def fallback_count(self) -> int:
        return sum(1 for s in self.segments if s.is_fallback)

    @property
    def road_route_available(self) -> bool:
        return bool(self.segments) and self.fallback_count == 0

    @staticmethod
    def from_segments(segments: tuple[PolylineSegment, ...]) -> "RoadPolyline":
        points: list[GeoPoint] = []
        total = 0.0
        for seg in segments:
            pts = list(seg.points)
            # Consecutive segments share their joint stop.
            if points and pts and points[-1] == pts[0]:
                pts = pts[1:]
            points.extend(pts)
            total += seg.distance_km
        return RoadPolyline(points=tuple(points), distance_km=total, segments=segments)
