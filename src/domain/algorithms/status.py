from __future__ import annotations

from src.domain.algorithms.geo_utils import distance_km
from src.domain.exceptions import UnknownStop
from src.domain.models import (
    EtaMinutes,
    EtaSentinel,
    RiderStatus,
    StatusReport,
    TrackingPhase,
    VehicleTrackState,
)

# Fixed tuning constants; see DESIGN.md for why they are not per-route.
APPROACHING_DISTANCE_KM = 1.0
STOPPED_SPEED_KMH = 5.0
DEFAULT_CRUISING_SPEED_KMH = 30.0


def derived_speed_kmh(state: VehicleTrackState) -> float | None:
    """Speed implied by the last two fixes, if they are usable."""

    prev, last = state.previous_report, state.last_report
    if prev is None or last is None:
        return None
    if state.previous_position is None or state.current_position is None:
        return None
    elapsed_s = (last.timestamp - prev.timestamp).total_seconds()
    if elapsed_s <= 0:
        return None
    km = distance_km(state.previous_position, state.current_position)
    return km / (elapsed_s / 3600.0)


def effective_speed_kmh(
    state: VehicleTrackState, default_speed_kmh: float = DEFAULT_CRUISING_SPEED_KMH
) -> float:
    last = state.last_report
    if last is not None and last.speed_kmh is not None:
        return float(last.speed_kmh)
    derived = derived_speed_kmh(state)
    if derived:
        return derived
    return default_speed_kmh


def estimate_eta(distance_km: float, speed_kmh: float) -> EtaMinutes:
    if speed_kmh < STOPPED_SPEED_KMH:
        return EtaSentinel.STOPPED
    # Half-up rounding, not Python's banker's rounding.
    minutes = int(distance_km / speed_kmh * 60.0 + 0.5)
    if minutes < 1:
        return EtaSentinel.ARRIVING_NOW
    return minutes


def classify(
    state: VehicleTrackState,
    rider_stop_id: str,
    *,
    default_speed_kmh: float = DEFAULT_CRUISING_SPEED_KMH,
) -> StatusReport:
    """Rider-facing status of a vehicle relative to one stop."""

    route = state.route
    rider_stop = route.stop(rider_stop_id) if route is not None else None
    if rider_stop is None:
        raise UnknownStop(rider_stop_id, route.id if route is not None else None)

    position = state.current_position
    if position is None:
        return StatusReport(status=RiderStatus.FAR, eta_minutes=None, distance_km=None)

    straight_km = distance_km(position, rider_stop.location)
    if state.phase not in (TrackingPhase.TRACKING, TrackingPhase.COMPLETED):
        return StatusReport(
            status=RiderStatus.FAR, eta_minutes=None, distance_km=straight_km
        )

    rider_index = state.ordered_stops.index(rider_stop)
    if rider_index < state.next_stop_index:
        return StatusReport(
            status=RiderStatus.PASSED, eta_minutes=None, distance_km=straight_km
        )

    session = state.sessions.get(rider_stop_id)
    polyline = session.last_road_polyline if session is not None else None
    if polyline is not None and session.last_road_distance_km is not None:
        # The road length was measured from the fix it was routed from.
        covered = distance_km(polyline.points[0], position) if polyline.points else 0.0
        distance = max(straight_km, session.last_road_distance_km - covered)
        road_available = polyline.road_route_available
    else:
        distance = straight_km
        road_available = False

    status = (
        RiderStatus.APPROACHING
        if distance <= APPROACHING_DISTANCE_KM
        else RiderStatus.FAR
    )
    eta = estimate_eta(distance, effective_speed_kmh(state, default_speed_kmh))
    return StatusReport(
        status=status,
        eta_minutes=eta,
        distance_km=distance,
        road_route_available=road_available,
    )
