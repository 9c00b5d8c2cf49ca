from __future__ import annotations

from dataclasses import dataclass

import httpx
import pytest

from src.adapters.api.dependencies import get_tracking_service
from src.app.config import TrackingConfig
from src.app.services.route_segmenter import RouteSegmenter
from src.app.services.vehicle_tracking_service import VehicleTrackingService
from src.domain.algorithms.geo_utils import distance_km
from src.domain.models import GeoPoint, RoadPath, Stop, TransitRoute
from src.main import app


@dataclass
class _FakeRouteDirectory:
    route: TransitRoute

    def route_for_vehicle(self, vehicle_id: str) -> TransitRoute | None:
        return self.route if vehicle_id == "bus-1" else None

    def get_route(self, route_id: str) -> TransitRoute | None:
        return self.route if route_id == self.route.id else None

    def stop_by_code(self, code: str) -> Stop | None:
        return next((s for s in self.route.stops if code in (s.code, s.id)), None)

    def vehicles_serving(self, stop_id: str) -> tuple[tuple[str, TransitRoute], ...]:
        return (("bus-1", self.route),) if self.route.index_of(stop_id) is not None else ()


class _StraightRoadRouter:
    async def shortest_path(self, origin: GeoPoint, destination: GeoPoint) -> RoadPath:
        return RoadPath(
            points=(origin, destination),
            distance_m=distance_km(origin, destination) * 1000.0,
        )


@pytest.fixture
def service(route_abcd: TransitRoute):
    svc = VehicleTrackingService(
        route_directory=_FakeRouteDirectory(route=route_abcd),
        route_segmenter=RouteSegmenter(road_router=_StraightRoadRouter()),
        config=TrackingConfig(road_debounce_s=0.0),
    )
    app.dependency_overrides[get_tracking_service] = lambda: svc
    yield svc
    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def _position(lon: float, **extra) -> dict:
    return {
        "vehicle_id": "bus-1",
        "lat": 0.0,
        "lon": lon,
        "timestamp": "2026-03-02T08:00:00Z",
        **extra,
    }


@pytest.mark.unit
@pytest.mark.anyio
async def test_tracking_session_lifecycle(service: VehicleTrackingService) -> None:
    async with _client() as client:
        started = await client.post(
            "/tracking/sessions", json={"vehicle_id": "bus-1", "rider_stop_id": "C"}
        )
        posted = await client.post("/positions", json=_position(0.016, speed_kmh=30.0))
        status = await client.get(
            "/tracking/vehicles/bus-1/status", params={"rider_stop_id": "C"}
        )
        progress = await client.get("/tracking/vehicles/bus-1/progress")
        deleted = await client.delete("/tracking/sessions/bus-1/C")
        after = await client.get(
            "/tracking/vehicles/bus-1/status", params={"rider_stop_id": "C"}
        )

    await service.aclose()

    assert started.status_code == 200
    assert started.json()["phase"] == "uninitialized"
    assert started.json()["status"] == "far"

    assert posted.status_code == 202

    assert status.status_code == 200
    payload = status.json()
    assert payload["status"] == "approaching"
    assert payload["direction"] == "forward"
    assert payload["eta_minutes"] == 1
    assert payload["next_stop"]["stop_id"] == "C"
    assert payload["distance_km"] == pytest.approx(0.445, abs=1e-3)

    assert progress.status_code == 200
    assert [s["stop_id"] for s in progress.json()["passed_stops"]] == ["A", "B"]
    assert [s["stop_id"] for s in progress.json()["remaining_stops"]] == ["C", "D"]

    assert deleted.status_code == 204
    assert after.status_code == 404


@pytest.mark.unit
@pytest.mark.anyio
async def test_eta_sentinel_is_serialized_as_string(
    service: VehicleTrackingService,
) -> None:
    async with _client() as client:
        await client.post(
            "/tracking/sessions", json={"vehicle_id": "bus-1", "rider_stop_id": "C"}
        )
        # No offset: read as UTC.
        body = _position(0.02, speed_kmh=0.0)
        body["timestamp"] = "2026-03-02T08:00:00"
        posted = await client.post("/positions", json=body)
        status = await client.get(
            "/tracking/vehicles/bus-1/status", params={"rider_stop_id": "C"}
        )

    await service.aclose()

    assert posted.status_code == 202
    assert status.json()["eta_minutes"] == "stopped"


@pytest.mark.unit
@pytest.mark.anyio
async def test_unknown_vehicle_or_stop_is_404(service: VehicleTrackingService) -> None:
    async with _client() as client:
        ghost = await client.post(
            "/tracking/sessions", json={"vehicle_id": "ghost", "rider_stop_id": "C"}
        )
        bad_stop = await client.post(
            "/tracking/sessions", json={"vehicle_id": "bus-1", "rider_stop_id": "Z"}
        )
        no_session = await client.delete("/tracking/sessions/bus-1/C")
        no_progress = await client.get("/tracking/vehicles/bus-1/progress")
        no_route = await client.get("/tracking/vehicles/ghost/route-polyline")

    assert ghost.status_code == 404
    assert "ghost" in ghost.json()["detail"]
    assert bad_stop.status_code == 404
    assert no_session.status_code == 404
    assert no_progress.status_code == 404
    assert no_route.status_code == 404


@pytest.mark.unit
@pytest.mark.anyio
async def test_out_of_range_position_is_rejected(service: VehicleTrackingService) -> None:
    async with _client() as client:
        resp = await client.post("/positions", json=_position(0.016, lat=95.0))

    assert resp.status_code == 422


@pytest.mark.unit
@pytest.mark.anyio
async def test_route_polyline_and_offline(service: VehicleTrackingService) -> None:
    async with _client() as client:
        await client.post(
            "/tracking/sessions", json={"vehicle_id": "bus-1", "rider_stop_id": "C"}
        )
        await client.post("/positions", json=_position(0.016))
        polyline = await client.get("/tracking/vehicles/bus-1/route-polyline")
        offline = await client.post("/tracking/vehicles/bus-1/offline")
        status = await client.get(
            "/tracking/vehicles/bus-1/status", params={"rider_stop_id": "C"}
        )
        health = await client.get("/health")

    await service.aclose()

    assert polyline.status_code == 200
    body = polyline.json()
    assert body["route_id"] == "R1"
    assert [s["stop_id"] for s in body["stops"]] == ["A", "B", "C", "D"]
    assert body["road_route_available"] is True
    assert body["fallback_segments"] == 0
    assert len(body["points"]) == 4

    assert offline.status_code == 204
    assert status.json()["phase"] == "offline"
    assert status.json()["distance_km"] is None

    assert health.json() == {"status": "ok"}


@pytest.mark.unit
@pytest.mark.anyio
async def test_stop_code_lists_vehicles_serving_it(
    service: VehicleTrackingService,
) -> None:
    async with _client() as client:
        empty = await client.get("/stops/c/vehicles")
        await client.post("/positions", json=_position(0.016, speed_kmh=30.0))
        listing = await client.get("/stops/c/vehicles")
        unknown = await client.get("/stops/nope/vehicles")

    await service.aclose()

    assert empty.status_code == 200
    assert empty.json()["stop"]["stop_id"] == "C"
    assert empty.json()["vehicles"] == []

    assert listing.status_code == 200
    (vehicle,) = listing.json()["vehicles"]
    assert vehicle["vehicle_id"] == "bus-1"
    assert vehicle["route_id"] == "R1"
    assert vehicle["status"] == "approaching"
    assert vehicle["eta_minutes"] == 1
    assert vehicle["next_stop"]["stop_id"] == "C"
    assert vehicle["distance_km"] == pytest.approx(0.445, abs=1e-3)

    assert unknown.status_code == 404
