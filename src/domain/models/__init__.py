from .geo import GeoPoint
from .realtime import PositionReport
from .road import PolylineSegment, RoadPath, RoadPolyline
from .route import TransitRoute
from .stop import Stop
from .tracking import (
    Direction,
    EtaMinutes,
    EtaSentinel,
    NotificationEvent,
    NotificationKind,
    ProgressSnapshot,
    RiderSession,
    RiderStatus,
    StatusReport,
    StopVehicles,
    TrackingPhase,
    TrackingStatus,
    VehicleAtStop,
    VehicleTrackState,
)

__all__ = [
    "Direction",
    "EtaMinutes",
    "EtaSentinel",
    "GeoPoint",
    "NotificationEvent",
    "NotificationKind",
    "PolylineSegment",
    "PositionReport",
    "ProgressSnapshot",
    "RiderSession",
    "RiderStatus",
    "RoadPath",
    "RoadPolyline",
    "StatusReport",
    "Stop",
    "StopVehicles",
    "TrackingPhase",
    "TrackingStatus",
    "TransitRoute",
    "VehicleAtStop",
    "VehicleTrackState",
]
