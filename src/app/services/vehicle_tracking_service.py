from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable

from src.app.config import TrackingConfig
from src.app.ports.output import IRouteDirectory
from src.app.services.route_segmenter import RouteSegmenter
from src.domain.algorithms.geo_utils import distance_km
from src.domain.algorithms.notification import NotificationGate
from src.domain.algorithms.progress import ProgressTracker
from src.domain.algorithms.status import classify
from src.domain.exceptions import (
    InvalidPositionReport,
    SessionNotFound,
    UnknownStop,
    VehicleNotConfigured,
    VehicleNotTracked,
)
from src.domain.models import (
    GeoPoint,
    NotificationEvent,
    NotificationKind,
    PositionReport,
    ProgressSnapshot,
    RiderSession,
    RiderStatus,
    RoadPolyline,
    StatusReport,
    StopVehicles,
    TrackingPhase,
    TrackingStatus,
    TransitRoute,
    VehicleAtStop,
    VehicleTrackState,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[NotificationEvent], None]


@dataclass(slots=True)
class VehicleTrackingService:
    """Application service (use case) for realtime vehicle tracking.

    - One ProgressTracker per vehicle, registered by vehicle id.
    - Updates for a vehicle are serialized by a per-vehicle lock; different
      vehicles never share state.
    - Status and ETA are computed synchronously on every report. Road
      polylines are fetched in background tasks that are debounced,
      cancelled when superseded and discarded when stale.
    """

    route_directory: IRouteDirectory
    route_segmenter: RouteSegmenter
    config: TrackingConfig = field(default_factory=TrackingConfig)

    _trackers: dict[str, ProgressTracker] = field(
        default_factory=dict, init=False, repr=False
    )
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict, init=False, repr=False)
    _lock_users: dict[str, int] = field(default_factory=dict, init=False, repr=False)
    _subscribers: list[Subscriber] = field(default_factory=list, init=False, repr=False)
    _road_tasks: dict[tuple[str, str], asyncio.Task[None]] = field(
        default_factory=dict, init=False, repr=False
    )
    _route_polylines: dict[str, RoadPolyline] = field(
        default_factory=dict, init=False, repr=False
    )
    _gate: NotificationGate = field(
        default_factory=NotificationGate, init=False, repr=False
    )

    # Subscriptions ----------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for notification events; returns an unsubscriber."""

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, event: NotificationEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Notification subscriber failed for vehicle %s", event.vehicle_id
                )

    # Sessions ---------------------------------------------------------

    async def start_tracking(
        self, vehicle_id: str, rider_stop_id: str
    ) -> TrackingStatus:
        async with self._vehicle_lock(vehicle_id):
            tracker = self._trackers.get(vehicle_id)
            route = tracker.state.route if tracker is not None else None
            if route is None:
                route = self.route_directory.route_for_vehicle(vehicle_id)
                if route is None:
                    raise VehicleNotConfigured(vehicle_id)
            if route.index_of(rider_stop_id) is None:
                raise UnknownStop(rider_stop_id, route.id)

            if tracker is None:
                tracker = self._new_tracker(vehicle_id, route)
                self._trackers[vehicle_id] = tracker
            else:
                tracker.attach_route(route)

            session = tracker.state.sessions.get(rider_stop_id)
            if session is None:
                session = RiderSession(rider_stop_id=rider_stop_id)
                tracker.state.sessions[rider_stop_id] = session
                logger.info(
                    "Tracking vehicle %s for stop %s (route %s)",
                    vehicle_id,
                    rider_stop_id,
                    route.id,
                )

            self._schedule_road_refresh(tracker, session)
            self._evaluate(tracker, session)
            return self._status_for(tracker, session)

    async def stop_tracking(self, vehicle_id: str, rider_stop_id: str) -> None:
        async with self._vehicle_lock(vehicle_id):
            tracker = self._trackers.get(vehicle_id)
            session = (
                tracker.state.sessions.pop(rider_stop_id, None)
                if tracker is not None
                else None
            )
            if tracker is None or session is None:
                raise SessionNotFound(vehicle_id, rider_stop_id)

            self._cancel_road_task((vehicle_id, rider_stop_id))
            session.clear_road()
            if not tracker.state.sessions:
                del self._trackers[vehicle_id]
                logger.info("Released tracking state for vehicle %s", vehicle_id)

    # Feed -------------------------------------------------------------

    async def on_position_report(self, report: PositionReport) -> None:
        async with self._vehicle_lock(report.vehicle_id):
            tracker = self._trackers.get(report.vehicle_id)
            if tracker is None:
                tracker = self._new_tracker(report.vehicle_id, None)
            if tracker.state.route is None:
                route = self.route_directory.route_for_vehicle(report.vehicle_id)
                if route is not None:
                    tracker.attach_route(route)

            rider_hint = next(iter(tracker.state.sessions), None)
            try:
                change = tracker.apply(report, rider_hint=rider_hint)
            except InvalidPositionReport as exc:
                logger.warning(
                    "Rejected position report for vehicle %s: %s",
                    report.vehicle_id,
                    exc,
                )
                return

            self._trackers.setdefault(report.vehicle_id, tracker)
            if change.direction_changed:
                logger.info(
                    "Vehicle %s direction is now %s",
                    report.vehicle_id,
                    tracker.state.direction.value,
                )
            if change.phase_changed and tracker.state.phase is TrackingPhase.COMPLETED:
                logger.info("Vehicle %s completed its run", report.vehicle_id)

            for session in tracker.state.sessions.values():
                self._schedule_road_refresh(tracker, session)
                self._evaluate(tracker, session)

    async def mark_offline(self, vehicle_id: str) -> None:
        async with self._vehicle_lock(vehicle_id):
            tracker = self._trackers.get(vehicle_id)
            if tracker is None or tracker.state.phase is TrackingPhase.OFFLINE:
                return

            tracker.mark_offline()
            logger.info("Vehicle %s marked offline", vehicle_id)

            if not tracker.state.sessions:
                del self._trackers[vehicle_id]
                return

            now = datetime.now(timezone.utc)
            for session in tracker.state.sessions.values():
                self._cancel_road_task((vehicle_id, session.rider_stop_id))
                session.clear_road()
                # A vehicle coming back starts a fresh run for the rider.
                session.last_status = None
                session.last_notified_status = None
                self._publish(
                    NotificationEvent(
                        kind=NotificationKind.VEHICLE_OFFLINE,
                        vehicle_id=vehicle_id,
                        rider_stop_id=session.rider_stop_id,
                        occurred_at=now,
                    )
                )

    def silent_vehicles(
        self, timeout_s: float | None = None, *, now: datetime | None = None
    ) -> tuple[str, ...]:
        """Vehicles with no report for longer than the offline timeout."""

        now = now or datetime.now(timezone.utc)
        timeout = self.config.offline_timeout_s if timeout_s is None else timeout_s
        cutoff = now - timedelta(seconds=timeout)
        return tuple(
            vehicle_id
            for vehicle_id, tracker in self._trackers.items()
            if tracker.state.phase is not TrackingPhase.OFFLINE
            and tracker.state.last_seen_at is not None
            and tracker.state.last_seen_at < cutoff
        )

    # Reads ------------------------------------------------------------

    def current_status(self, vehicle_id: str, rider_stop_id: str) -> TrackingStatus:
        tracker = self._trackers.get(vehicle_id)
        session = (
            tracker.state.sessions.get(rider_stop_id) if tracker is not None else None
        )
        if tracker is None or session is None:
            raise SessionNotFound(vehicle_id, rider_stop_id)
        return self._status_for(tracker, session)

    def current_progress(self, vehicle_id: str) -> ProgressSnapshot:
        tracker = self._trackers.get(vehicle_id)
        if tracker is None:
            raise VehicleNotTracked(vehicle_id)
        return tracker.current_progress()

    def vehicles_at_stop(self, stop_code: str) -> StopVehicles:
        """Resolve a rider's stop and list live vehicles on routes through it.

        Only vehicles with a current position are listed: those still to
        reach the stop first, nearest first, then those already past it.
        """

        stop = self.route_directory.stop_by_code(stop_code)
        if stop is None:
            raise UnknownStop(stop_code)

        vehicles: list[VehicleAtStop] = []
        for vehicle_id, route in self.route_directory.vehicles_serving(stop.id):
            tracker = self._trackers.get(vehicle_id)
            if tracker is None:
                continue
            st = tracker.state
            if st.current_position is None or st.route is None:
                continue
            if st.route.index_of(stop.id) is None:
                continue
            report = classify(
                st, stop.id, default_speed_kmh=self.config.default_cruising_speed_kmh
            )
            vehicles.append(
                VehicleAtStop(
                    vehicle_id=vehicle_id,
                    route_id=route.id,
                    route_name=route.name,
                    position=st.current_position,
                    phase=st.phase,
                    direction=st.direction,
                    next_stop=st.next_stop,
                    status=report.status,
                    eta_minutes=report.eta_minutes,
                    distance_km=report.distance_km,
                )
            )

        vehicles.sort(
            key=lambda v: (v.status is RiderStatus.PASSED, v.distance_km or 0.0)
        )
        return StopVehicles(stop=stop, vehicles=tuple(vehicles))

    async def route_polyline(self, vehicle_id: str) -> tuple[TransitRoute, RoadPolyline]:
        """Road polyline for the whole route a vehicle is assigned to."""

        tracker = self._trackers.get(vehicle_id)
        route = tracker.state.route if tracker is not None else None
        if route is None:
            route = self.route_directory.route_for_vehicle(vehicle_id)
            if route is None:
                raise VehicleNotConfigured(vehicle_id)

        cached = self._route_polylines.get(route.id)
        if cached is not None and cached.road_route_available:
            return route, cached

        polyline = await self.route_segmenter.build_road_polyline(route.stops)
        self._route_polylines[route.id] = polyline
        return route, polyline

    # Background road refreshes ----------------------------------------

    async def wait_road_refreshes(self) -> None:
        tasks = [t for t in self._road_tasks.values() if not t.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def aclose(self) -> None:
        tasks = list(self._road_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._road_tasks.clear()

    def _schedule_road_refresh(
        self, tracker: ProgressTracker, session: RiderSession
    ) -> None:
        st = tracker.state
        key = (st.vehicle_id, session.rider_stop_id)
        waypoints = self._road_waypoints(st, session.rider_stop_id)
        if waypoints is None:
            if key in self._road_tasks or session.road_anchor is not None:
                self._cancel_road_task(key)
                session.clear_road()
            return

        position = waypoints[0]
        material = (
            session.road_anchor is None
            or session.road_direction is not st.direction
            or session.road_next_stop_index != st.next_stop_index
            or distance_km(session.road_anchor, position)
            >= self.config.road_refresh_distance_km
        )
        if not material:
            return

        if session.road_direction is not st.direction:
            # Routed the other way round; no use until the new path lands.
            session.last_road_polyline = None
            session.last_road_distance_km = None
        self._cancel_road_task(key)
        session.road_generation += 1
        session.road_anchor = position
        session.road_direction = st.direction
        session.road_next_stop_index = st.next_stop_index

        task = asyncio.create_task(
            self._refresh_road(
                st.vehicle_id, session.rider_stop_id, session.road_generation, waypoints
            )
        )
        self._road_tasks[key] = task
        task.add_done_callback(lambda t, key=key: self._forget_road_task(key, t))

    async def _refresh_road(
        self,
        vehicle_id: str,
        rider_stop_id: str,
        generation: int,
        waypoints: tuple[GeoPoint, ...],
    ) -> None:
        try:
            if self.config.road_debounce_s > 0:
                await asyncio.sleep(self.config.road_debounce_s)
            polyline = await self.route_segmenter.build_polyline_through(waypoints)
        except Exception:
            logger.exception("Road polyline refresh failed for vehicle %s", vehicle_id)
            return

        async with self._vehicle_lock(vehicle_id):
            tracker = self._trackers.get(vehicle_id)
            session = (
                tracker.state.sessions.get(rider_stop_id)
                if tracker is not None
                else None
            )
            if tracker is None or session is None or session.road_generation != generation:
                logger.debug(
                    "Discarding stale road polyline for vehicle %s stop %s",
                    vehicle_id,
                    rider_stop_id,
                )
                return

            session.last_road_polyline = polyline
            session.last_road_distance_km = polyline.distance_km
            self._evaluate(tracker, session)

    def _cancel_road_task(self, key: tuple[str, str]) -> None:
        task = self._road_tasks.pop(key, None)
        if task is not None and not task.done():
            task.cancel()

    def _forget_road_task(self, key: tuple[str, str], task: asyncio.Task[None]) -> None:
        if self._road_tasks.get(key) is task:
            del self._road_tasks[key]

    # Helpers ----------------------------------------------------------

    @asynccontextmanager
    async def _vehicle_lock(self, vehicle_id: str) -> AsyncIterator[None]:
        """Serialize work on one vehicle; the lock is dropped with its last user."""

        lock = self._locks.get(vehicle_id)
        if lock is None:
            lock = self._locks[vehicle_id] = asyncio.Lock()
        self._lock_users[vehicle_id] = self._lock_users.get(vehicle_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users.pop(vehicle_id) - 1
            if users:
                self._lock_users[vehicle_id] = users
            elif vehicle_id not in self._trackers:
                del self._locks[vehicle_id]

    def _new_tracker(
        self, vehicle_id: str, route: TransitRoute | None
    ) -> ProgressTracker:
        return ProgressTracker(
            VehicleTrackState(vehicle_id=vehicle_id, route=route),
            arrival_threshold_km=self.config.arrival_threshold_km,
            direction_noise_km=self.config.direction_noise_km,
            reversal_distance_km=self.config.direction_reversal_km,
        )

    def _classify(self, tracker: ProgressTracker, session: RiderSession) -> StatusReport:
        return classify(
            tracker.state,
            session.rider_stop_id,
            default_speed_kmh=self.config.default_cruising_speed_kmh,
        )

    def _evaluate(self, tracker: ProgressTracker, session: RiderSession) -> None:
        report = self._classify(tracker, session)
        event = self._gate.on_status_computed(
            tracker.vehicle_id, report.status, session=session
        )
        if event is not None:
            logger.info(
                "Vehicle %s is now %s for stop %s",
                event.vehicle_id,
                event.status.value if event.status else None,
                event.rider_stop_id,
            )
            self._publish(event)

    def _status_for(
        self, tracker: ProgressTracker, session: RiderSession
    ) -> TrackingStatus:
        st = tracker.state
        report = self._classify(tracker, session)
        polyline = session.last_road_polyline
        return TrackingStatus(
            vehicle_id=st.vehicle_id,
            rider_stop_id=session.rider_stop_id,
            phase=st.phase,
            status=report.status,
            eta_minutes=report.eta_minutes,
            distance_km=report.distance_km,
            next_stop=st.next_stop,
            direction=st.direction,
            road_polyline=polyline.points if polyline is not None else (),
            road_route_available=report.road_route_available,
        )

    @staticmethod
    def _road_waypoints(
        state: VehicleTrackState, rider_stop_id: str
    ) -> tuple[GeoPoint, ...] | None:
        """Vehicle position followed by the stops up to the rider's stop."""

        if (
            state.phase is not TrackingPhase.TRACKING
            or state.current_position is None
            or state.route is None
        ):
            return None
        rider_index = state.route.travel_index(rider_stop_id, state.direction)
        if rider_index is None or rider_index < state.next_stop_index:
            return None
        stops = state.ordered_stops[state.next_stop_index : rider_index + 1]
        return (state.current_position, *(s.location for s in stops))
