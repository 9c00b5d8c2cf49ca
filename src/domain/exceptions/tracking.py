class TrackingError(Exception):
    """Base exception for vehicle tracking failures."""


class InvalidPositionReport(TrackingError, ValueError):
    """Raised when a position report is malformed, out of range or stale."""


class VehicleNotConfigured(TrackingError, LookupError):
    """Raised when the route directory has no route for a vehicle."""

    def __init__(self, vehicle_id: str) -> None:
        super().__init__(f"Vehicle not configured: {vehicle_id}")
        self.vehicle_id = vehicle_id


class UnknownStop(TrackingError, LookupError):
    """Raised when a rider stop is not part of the vehicle's route."""

    def __init__(self, stop_id: str, route_id: str | None = None) -> None:
        where = f" on route {route_id}" if route_id else ""
        super().__init__(f"Unknown stop {stop_id}{where}")
        self.stop_id = stop_id
        self.route_id = route_id


class SessionNotFound(TrackingError, LookupError):
    """Raised when no tracking session exists for a vehicle and rider stop."""

    def __init__(self, vehicle_id: str, rider_stop_id: str) -> None:
        super().__init__(
            f"No tracking session for vehicle {vehicle_id} at stop {rider_stop_id}"
        )
        self.vehicle_id = vehicle_id
        self.rider_stop_id = rider_stop_id


class VehicleNotTracked(TrackingError, LookupError):
    """Raised when a vehicle has no tracking state."""

    def __init__(self, vehicle_id: str) -> None:
        super().__init__(f"Vehicle not tracked: {vehicle_id}")
        self.vehicle_id = vehicle_id


class PositionFeedError(TrackingError):
    """Raised when a position feed returns a payload that cannot be decoded."""
