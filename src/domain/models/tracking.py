from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Union

from .geo import GeoPoint
from .realtime import PositionReport
from .road import RoadPolyline
from .stop import Stop

if TYPE_CHECKING:
    from .route import TransitRoute


class Direction(str, Enum):
    UNKNOWN = "unknown"
    FORWARD = "forward"  # first stop -> last stop
    REVERSE = "reverse"  # last stop -> first stop


class TrackingPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    TRACKING = "tracking"
    COMPLETED = "completed"
    OFFLINE = "offline"


class RiderStatus(str, Enum):
    APPROACHING = "approaching"
    PASSED = "passed"
    FAR = "far"


class EtaSentinel(str, Enum):
    STOPPED = "stopped"
    ARRIVING_NOW = "arriving_now"


EtaMinutes = Union[int, EtaSentinel]


class NotificationKind(str, Enum):
    STATUS_CHANGED = "status_changed"
    VEHICLE_OFFLINE = "vehicle_offline"


@dataclass(slots=True)
class RiderSession:
    """Per rider-stop slice of a vehicle's tracking state."""

    rider_stop_id: str
    last_status: RiderStatus | None = None
    last_notified_status: RiderStatus | None = None
    last_road_polyline: RoadPolyline | None = None
    last_road_distance_km: float | None = None

    # Position/direction the in-flight or last road request was built for.
    road_anchor: GeoPoint | None = None
    road_direction: Direction = Direction.UNKNOWN
    road_next_stop_index: int | None = None
    road_generation: int = 0

    def clear_road(self) -> None:
        self.last_road_polyline = None
        self.last_road_distance_km = None
        self.road_anchor = None
        self.road_direction = Direction.UNKNOWN
        self.road_next_stop_index = None
        self.road_generation += 1


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    next_stop: Stop | None
    passed_stops: tuple[Stop, ...]
    remaining_stops: tuple[Stop, ...]
    direction: Direction
    phase: TrackingPhase


@dataclass(slots=True)
class VehicleTrackState:
    vehicle_id: str
    route: TransitRoute | None = None
    phase: TrackingPhase = TrackingPhase.UNINITIALIZED
    current_position: GeoPoint | None = None
    previous_position: GeoPoint | None = None
    last_report: PositionReport | None = None
    previous_report: PositionReport | None = None
    last_seen_at: datetime | None = None
    direction: Direction = Direction.UNKNOWN
    # Opposite direction seen once; a second sighting confirms the turn.
    pending_direction: Direction = Direction.UNKNOWN
    ordered_stops: tuple[Stop, ...] = ()
    # len(ordered_stops) means the route is complete in this direction.
    next_stop_index: int = 0
    sessions: dict[str, RiderSession] = field(default_factory=dict)

    @property
    def next_stop(self) -> Stop | None:
        if 0 <= self.next_stop_index < len(self.ordered_stops):
            return self.ordered_stops[self.next_stop_index]
        return None


@dataclass(frozen=True, slots=True)
class StatusReport:
    status: RiderStatus
    eta_minutes: EtaMinutes | None
    distance_km: float | None
    road_route_available: bool = False


@dataclass(frozen=True, slots=True)
class TrackingStatus:
    vehicle_id: str
    rider_stop_id: str
    phase: TrackingPhase
    status: RiderStatus
    eta_minutes: EtaMinutes | None
    distance_km: float | None
    next_stop: Stop | None
    direction: Direction
    road_polyline: tuple[GeoPoint, ...] = ()
    road_route_available: bool = False


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    kind: NotificationKind
    vehicle_id: str
    rider_stop_id: str
    occurred_at: datetime
    status: RiderStatus | None = None
    previous_status: RiderStatus | None = None


@dataclass(frozen=True, slots=True)
class VehicleAtStop:
    """A live vehicle on a route through a rider's stop, seen from that stop."""

    vehicle_id: str
    route_id: str
    route_name: str | None
    position: GeoPoint
    phase: TrackingPhase
    direction: Direction
    next_stop: Stop | None
    status: RiderStatus
    eta_minutes: EtaMinutes | None
    distance_km: float | None


@dataclass(frozen=True, slots=True)
class StopVehicles:
    stop: Stop
    vehicles: tuple[VehicleAtStop, ...]
