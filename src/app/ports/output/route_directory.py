from __future__ import annotations

from abc import ABC, abstractmethod

from src.domain.models import Stop, TransitRoute


class IRouteDirectory(ABC):
    """Port to the system of record for routes and vehicle assignments."""

    @abstractmethod
    def route_for_vehicle(self, vehicle_id: str) -> TransitRoute | None:
        raise NotImplementedError

    @abstractmethod
    def get_route(self, route_id: str) -> TransitRoute | None:
        raise NotImplementedError

    @abstractmethod
    def stop_by_code(self, code: str) -> Stop | None:
        """Stop whose rider-facing code matches, else the stop with that id."""
        raise NotImplementedError

    @abstractmethod
    def vehicles_serving(self, stop_id: str) -> tuple[tuple[str, TransitRoute], ...]:
        """(vehicle id, route) for every vehicle assigned to a route via the stop."""
        raise NotImplementedError
