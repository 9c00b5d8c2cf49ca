from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from src.app.ports.output import IMapProvider, IRoadRouter
from src.app.services.routing_helpers import (
    path_length_m,
    path_points,
    shortest_node_path,
)
from src.domain.algorithms.geo_utils import haversine_distance_m
from src.domain.exceptions import NoPathFound, RoutingError
from src.domain.models import GeoPoint, RoadPath


@dataclass(slots=True)
class OSMnxRoadRouter(IRoadRouter):
    """Shortest road paths over a local OSM drive graph.

    Graph loading and networkx search are blocking, so each request runs in
    a worker thread.
    """

    map_provider: IMapProvider
    graph_margin_m: int = 2000

    async def shortest_path(self, origin: GeoPoint, destination: GeoPoint) -> RoadPath:
        return await asyncio.to_thread(self._shortest_path, origin, destination)

    def _graph_for(self, origin: GeoPoint, destination: GeoPoint) -> Any:
        center = GeoPoint(
            lat=(origin.lat + destination.lat) / 2.0,
            lon=(origin.lon + destination.lon) / 2.0,
        )
        half_span = haversine_distance_m(origin, destination) / 2.0
        try:
            return self.map_provider.get_street_graph(
                center=center, dist_m=int(half_span + self.graph_margin_m)
            )
        except Exception as exc:
            raise RoutingError(f"Road graph unavailable: {exc}") from exc

    def _shortest_path(self, origin: GeoPoint, destination: GeoPoint) -> RoadPath:
        graph = self._graph_for(origin, destination)
        nodes = shortest_node_path(graph, origin, destination)
        points = path_points(graph, nodes)
        if len(points) < 2:
            raise NoPathFound("Origin and destination snap to the same road node")
        return RoadPath(points=points, distance_m=path_length_m(graph, nodes))
