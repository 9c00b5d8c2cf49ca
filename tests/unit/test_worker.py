from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import httpx

from src.adapters.realtime.http_gtfs_realtime_position_feed import (
    HttpGtfsRealtimePositionFeed,
)
from src.app.config import TrackingConfig
from src.app.services.route_segmenter import RouteSegmenter
from src.app.services.vehicle_tracking_service import VehicleTrackingService
from src.domain.models import (
    GeoPoint,
    NotificationKind,
    PositionReport,
    RoadPath,
    TrackingPhase,
    TransitRoute,
)
from src.worker import poll_once, run_position_feed


@dataclass
class _FakeRouteDirectory:
    route: TransitRoute

    def route_for_vehicle(self, vehicle_id: str) -> TransitRoute | None:
        return self.route

    def get_route(self, route_id: str) -> TransitRoute | None:
        return self.route


class _StraightRoadRouter:
    async def shortest_path(self, origin: GeoPoint, destination: GeoPoint) -> RoadPath:
        return RoadPath(points=(origin, destination), distance_m=1000.0)


@dataclass
class _FakeFeed:
    batches: list[tuple[PositionReport, ...] | Exception]
    calls: int = 0

    async def fetch_reports(self) -> tuple[PositionReport, ...]:
        self.calls += 1
        batch = self.batches.pop(0) if self.batches else ()
        if isinstance(batch, Exception):
            raise batch
        return batch


@dataclass
class _ExplodingService:
    """Service stub whose report handling always fails."""

    config: TrackingConfig = field(default_factory=TrackingConfig)
    offline: list[str] = field(default_factory=list)

    async def on_position_report(self, report: PositionReport) -> None:
        raise RuntimeError("boom")

    def silent_vehicles(self) -> tuple[str, ...]:
        return ()

    async def mark_offline(self, vehicle_id: str) -> None:
        self.offline.append(vehicle_id)


def _service(route: TransitRoute) -> VehicleTrackingService:
    return VehicleTrackingService(
        route_directory=_FakeRouteDirectory(route=route),
        route_segmenter=RouteSegmenter(road_router=_StraightRoadRouter()),
        config=TrackingConfig(road_debounce_s=0.0),
    )


def test_poll_once_applies_reports_and_expires_silent_vehicles(
    route_abcd: TransitRoute, make_report
) -> None:
    events = []

    async def _run():
        service = _service(route_abcd)
        service.subscribe(events.append)
        await service.start_tracking("bus-1", "C")
        feed = _FakeFeed(batches=[(make_report(0.016, speed_kmh=30.0),)])

        applied = await poll_once(service, feed)
        tracker = service._trackers["bus-1"]
        tracker.state.last_seen_at = datetime.now(timezone.utc) - timedelta(minutes=10)
        await poll_once(service, feed)

        progress = service.current_progress("bus-1")
        await service.aclose()
        return applied, progress

    applied, progress = asyncio.run(_run())

    assert applied == 1
    assert progress.phase is TrackingPhase.OFFLINE
    assert [e.kind for e in events] == [
        NotificationKind.STATUS_CHANGED,
        NotificationKind.VEHICLE_OFFLINE,
    ]


def test_poll_once_survives_feed_outage(route_abcd: TransitRoute, caplog) -> None:
    service = _service(route_abcd)
    feed = _FakeFeed(batches=[httpx.ConnectError("refused")])

    applied = asyncio.run(poll_once(service, feed))

    assert applied == 0
    assert "Position feed unavailable" in caplog.text


def test_run_position_feed_survives_undecodable_payload(
    route_abcd: TransitRoute, caplog
) -> None:
    feed = HttpGtfsRealtimePositionFeed(
        url="http://feed.test/vehiclepositions",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"<html>maintenance</html>")
        ),
    )

    async def _run():
        service = _service(route_abcd)
        stop = asyncio.Event()
        task = asyncio.create_task(run_position_feed(service, feed, stop=stop))
        # Lets the loop poll, fail to decode, and go back to waiting.
        await asyncio.sleep(0.05)
        alive = not task.done()
        stop.set()
        await asyncio.wait_for(task, timeout=service.config.feed_poll_interval_s + 1)
        return alive

    assert asyncio.run(_run()) is True
    assert "Position feed unavailable" in caplog.text


def test_poll_once_logs_failing_reports(make_report, caplog) -> None:
    service = _ExplodingService()
    feed = _FakeFeed(batches=[(make_report(0.01), make_report(0.02, vehicle_id="bus-2"))])

    applied = asyncio.run(poll_once(service, feed))

    assert applied == 0
    assert "Failed to apply report for vehicle bus-1" in caplog.text
    assert "Failed to apply report for vehicle bus-2" in caplog.text


def test_run_position_feed_single_pass(route_abcd: TransitRoute, make_report) -> None:
    service = _service(route_abcd)
    feed = _FakeFeed(batches=[(make_report(0.016),)])

    asyncio.run(run_position_feed(service, feed, loop=False))

    assert feed.calls == 1
    assert service.current_progress("bus-1").phase is TrackingPhase.TRACKING


def test_run_position_feed_stops_on_event(route_abcd: TransitRoute) -> None:
    async def _run():
        service = _service(route_abcd)
        feed = _FakeFeed(batches=[])
        stop = asyncio.Event()
        stop.set()
        await run_position_feed(service, feed, stop=stop)
        return feed

    assert asyncio.run(_run()).calls == 1
