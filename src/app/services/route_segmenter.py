from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from src.app.ports.output import IRoadRouter
from src.domain.algorithms.geo_utils import distance_km, polyline_distance_km
from src.domain.exceptions import NoPathFound, RoutingError
from src.domain.models import GeoPoint, PolylineSegment, RoadPolyline, Stop

logger = logging.getLogger(__name__)


def straight_segment(start: GeoPoint, end: GeoPoint) -> PolylineSegment:
    return PolylineSegment(
        start=start,
        end=end,
        points=(start, end),
        distance_km=distance_km(start, end),
        is_fallback=True,
    )


@dataclass(slots=True)
class RouteSegmenter:
    """Builds road-following polylines one stop pair at a time.

    A single multi-waypoint request lets a generic router reorder or skip
    waypoints; routing each consecutive pair on its own keeps the path
    visiting stops in exactly the given order. A pair the router cannot
    serve becomes a straight line, so a polyline is always returned.
    """

    road_router: IRoadRouter
    request_timeout_s: float = 10.0
    max_attempts: int = 2  # first try + at most one retry

    async def build_road_polyline(self, ordered_stops: Sequence[Stop]) -> RoadPolyline:
        return await self.build_polyline_through(
            tuple(s.location for s in ordered_stops)
        )

    async def build_polyline_through(
        self, waypoints: Sequence[GeoPoint]
    ) -> RoadPolyline:
        if len(waypoints) < 2:
            return RoadPolyline(points=tuple(waypoints), distance_km=0.0)

        segments = await asyncio.gather(
            *(self._segment(a, b) for a, b in zip(waypoints, waypoints[1:]))
        )
        polyline = RoadPolyline.from_segments(tuple(segments))
        if polyline.fallback_count:
            logger.info(
                "Road polyline degraded: %d of %d segments are straight lines",
                polyline.fallback_count,
                len(segments),
            )
        return polyline

    async def _segment(self, start: GeoPoint, end: GeoPoint) -> PolylineSegment:
        for attempt in range(1, self.max_attempts + 1):
            try:
                path = await asyncio.wait_for(
                    self.road_router.shortest_path(start, end),
                    timeout=self.request_timeout_s,
                )
            except NoPathFound as exc:
                logger.info("No road path %s -> %s: %s", start, end, exc)
                break
            except (RoutingError, asyncio.TimeoutError) as exc:
                logger.warning(
                    "Routing %s -> %s failed (attempt %d/%d): %s",
                    start,
                    end,
                    attempt,
                    self.max_attempts,
                    exc or type(exc).__name__,
                )
                continue

            if len(path.points) < 2:
                logger.info("Router returned an empty path %s -> %s", start, end)
                break
            distance = float(path.distance_m) / 1000.0
            if distance <= 0.0:
                # Geometry without a reported length.
                distance = polyline_distance_km(path.points)
            return PolylineSegment(
                start=start, end=end, points=path.points, distance_km=distance
            )

        return straight_segment(start, end)
