from .routing import NoPathFound, RoutingError
from .tracking import (
    InvalidPositionReport,
    PositionFeedError,
    SessionNotFound,
    TrackingError,
    UnknownStop,
    VehicleNotConfigured,
    VehicleNotTracked,
)

__all__ = [
    "InvalidPositionReport",
    "NoPathFound",
    "PositionFeedError",
    "RoutingError",
    "SessionNotFound",
    "TrackingError",
    "UnknownStop",
    "VehicleNotConfigured",
    "VehicleNotTracked",
]
