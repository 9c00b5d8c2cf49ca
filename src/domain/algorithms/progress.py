from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone

from src.domain.algorithms.direction import direction_signal, terminus_fallback
from src.domain.algorithms.geo_utils import distance_km, nearest_stop_ahead
from src.domain.exceptions import InvalidPositionReport
from src.domain.models import (
    Direction,
    GeoPoint,
    PositionReport,
    ProgressSnapshot,
    Stop,
    TrackingPhase,
    TransitRoute,
    VehicleTrackState,
)


def validate_report(
    report: PositionReport, last_report: PositionReport | None
) -> GeoPoint:
    """Check a report before it is applied and return its position."""

    if not report.vehicle_id:
        raise InvalidPositionReport("Report has no vehicle id")
    try:
        lat = float(report.lat)
        lon = float(report.lon)
    except (TypeError, ValueError) as exc:
        raise InvalidPositionReport(f"Non-numeric coordinates: {exc}") from exc
    if not GeoPoint.is_valid(lat, lon):
        raise InvalidPositionReport(f"Coordinates out of range: ({lat}, {lon})")

    if report.speed_kmh is not None and not (
        math.isfinite(report.speed_kmh) and report.speed_kmh >= 0.0
    ):
        raise InvalidPositionReport(f"Invalid speed: {report.speed_kmh}")
    if report.heading_deg is not None and not (
        math.isfinite(report.heading_deg) and 0.0 <= report.heading_deg <= 360.0
    ):
        raise InvalidPositionReport(f"Invalid heading: {report.heading_deg}")

    if report.timestamp.tzinfo is None:
        raise InvalidPositionReport("Report timestamp must be timezone-aware")
    if last_report is not None and report.timestamp < last_report.timestamp:
        raise InvalidPositionReport(
            f"Report at {report.timestamp.isoformat()} is older than the last "
            f"applied report at {last_report.timestamp.isoformat()}"
        )

    return GeoPoint(lat=lat, lon=lon)


@dataclass(frozen=True, slots=True)
class ProgressChange:
    direction_changed: bool = False
    next_stop_changed: bool = False
    phase_changed: bool = False

    @property
    def any(self) -> bool:
        return self.direction_changed or self.next_stop_changed or self.phase_changed


class ProgressTracker:
    """Per-vehicle state machine: uninitialized -> tracking -> completed.

    Any phase can go offline; the first report after that starts over from
    uninitialized. The tracker is the only writer of its VehicleTrackState.
    """

    def __init__(
        self,
        state: VehicleTrackState,
        *,
        arrival_threshold_km: float = 0.05,
        direction_noise_km: float = 0.02,
        reversal_distance_km: float = 0.1,
    ) -> None:
        self.state = state
        self.arrival_threshold_km = arrival_threshold_km
        self.direction_noise_km = direction_noise_km
        self.reversal_distance_km = reversal_distance_km
        self._snapshot = self._build_snapshot()

    @property
    def vehicle_id(self) -> str:
        return self.state.vehicle_id

    def attach_route(self, route: TransitRoute) -> None:
        if self.state.route is not None:
            return
        self.state.route = route
        self._snapshot = self._build_snapshot()

    def current_progress(self) -> ProgressSnapshot:
        return self._snapshot

    def apply(
        self,
        report: PositionReport,
        *,
        rider_hint: str | None = None,
        received_at: datetime | None = None,
    ) -> ProgressChange:
        st = self.state
        position = validate_report(report, st.last_report)

        if st.phase is TrackingPhase.OFFLINE:
            self._reset()

        before = (st.direction, st.next_stop_index, st.phase)

        st.previous_report = st.last_report
        st.last_report = report
        st.previous_position = st.current_position
        st.current_position = position
        st.last_seen_at = received_at or datetime.now(timezone.utc)

        if st.route is not None:
            self._update(position, rider_hint)

        self._snapshot = self._build_snapshot()
        return ProgressChange(
            direction_changed=st.direction is not before[0],
            next_stop_changed=st.next_stop_index != before[1],
            phase_changed=st.phase is not before[2],
        )

    def mark_offline(self) -> None:
        self._reset()
        self.state.phase = TrackingPhase.OFFLINE
        self._snapshot = self._build_snapshot()

    def _reset(self) -> None:
        st = self.state
        st.phase = TrackingPhase.UNINITIALIZED
        st.current_position = None
        st.previous_position = None
        st.last_report = None
        st.previous_report = None
        st.direction = Direction.UNKNOWN
        st.pending_direction = Direction.UNKNOWN
        st.ordered_stops = ()
        st.next_stop_index = 0

    def _update(self, position: GeoPoint, rider_hint: str | None) -> None:
        st = self.state
        route = st.route
        if route is None:
            return
        stops = route.stops

        signal = direction_signal(
            position,
            st.previous_position,
            stops,
            rider_hint,
            noise_km=self.direction_noise_km,
        )
        if st.direction is Direction.UNKNOWN:
            direction = signal
            if direction is Direction.UNKNOWN:
                direction = terminus_fallback(position, stops)
        elif signal is Direction.UNKNOWN or signal is st.direction:
            # Ambiguous or confirming move: keep what we had.
            direction = st.direction
            st.pending_direction = Direction.UNKNOWN
        else:
            direction = self._confirm_reversal(position, signal)

        if direction is Direction.UNKNOWN:
            st.phase = TrackingPhase.UNINITIALIZED
            return

        if direction is not st.direction:
            st.direction = direction
            st.pending_direction = Direction.UNKNOWN
            st.ordered_stops = route.ordered(direction)
            st.next_stop_index = 0
            st.phase = TrackingPhase.TRACKING
        elif st.phase is TrackingPhase.COMPLETED:
            return
        else:
            st.phase = TrackingPhase.TRACKING

        self._advance(position)

    def _confirm_reversal(self, position: GeoPoint, signal: Direction) -> Direction:
        """Accept an opposite signal only when it is large or repeated.

        A single short backward jump is GPS noise, not a turnaround.
        """

        st = self.state
        moved_km = (
            distance_km(st.previous_position, position)
            if st.previous_position is not None
            else 0.0
        )
        if moved_km >= self.reversal_distance_km or st.pending_direction is signal:
            return signal
        st.pending_direction = signal
        return st.direction

    def _has_passed(self, position: GeoPoint, stop: Stop, following: Stop) -> bool:
        if distance_km(position, stop.location) <= self.arrival_threshold_km:
            return False
        return distance_km(position, following.location) < distance_km(
            stop.location, following.location
        )

    def _beyond_last(self, position: GeoPoint, stops: tuple[Stop, ...]) -> bool:
        last = stops[-1]
        penultimate = stops[-2]
        if distance_km(position, last.location) <= self.arrival_threshold_km:
            return True
        return distance_km(position, penultimate.location) > distance_km(
            penultimate.location, last.location
        )

    def _advance(self, position: GeoPoint) -> None:
        st = self.state
        stops = st.ordered_stops
        n = len(stops)
        idx = st.next_stop_index

        # Iterate to a fixed point so re-applying the same fix is a no-op.
        while True:
            _, offset, _ = nearest_stop_ahead(position, stops[idx:])
            j = idx + offset
            while j < n - 1 and self._has_passed(position, stops[j], stops[j + 1]):
                j += 1
            if j == idx:
                break
            idx = j

        if idx == n - 1 and self._beyond_last(position, stops):
            idx = n
            st.phase = TrackingPhase.COMPLETED

        st.next_stop_index = idx

    def _build_snapshot(self) -> ProgressSnapshot:
        st = self.state
        ordered = st.ordered_stops
        idx = min(st.next_stop_index, len(ordered))
        return ProgressSnapshot(
            next_stop=st.next_stop,
            passed_stops=ordered[:idx],
            remaining_stops=ordered[idx:],
            direction=st.direction,
            phase=st.phase,
        )
