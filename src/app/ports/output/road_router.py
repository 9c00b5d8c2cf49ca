from __future__ import annotations

from abc import ABC, abstractmethod

from src.domain.models import GeoPoint, RoadPath


class IRoadRouter(ABC):
    """Port for point-to-point shortest road paths."""

    @abstractmethod
    async def shortest_path(self, origin: GeoPoint, destination: GeoPoint) -> RoadPath:
        """Return the road path from origin to destination.

        Raises RoutingError on failure and NoPathFound when the router has
        no path between the points.
        """
