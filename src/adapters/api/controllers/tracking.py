from __future__ import annotations

from datetime import timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from src.adapters.api.dependencies import get_tracking_service
from src.adapters.api.schemas.tracking import (
    GeoPointSchema,
    PositionReportSchema,
    ProgressSchema,
    RoutePolylineSchema,
    StartTrackingRequestSchema,
    StopSchema,
    StopVehiclesSchema,
    TrackingStatusSchema,
    VehicleAtStopSchema,
)
from src.app.services.vehicle_tracking_service import VehicleTrackingService
from src.domain.models import EtaMinutes, PositionReport, Stop, TrackingStatus

router = APIRouter(tags=["tracking"])


def _stop_to_schema(stop: Stop) -> StopSchema:
    return StopSchema(
        stop_id=stop.id,
        name=stop.name,
        code=stop.code,
        location=GeoPointSchema(lat=stop.location.lat, lon=stop.location.lon),
    )


def _eta_value(eta: EtaMinutes | None) -> int | str | None:
    return eta if eta is None or isinstance(eta, int) else eta.value


def _status_to_schema(status: TrackingStatus) -> TrackingStatusSchema:
    return TrackingStatusSchema(
        vehicle_id=status.vehicle_id,
        rider_stop_id=status.rider_stop_id,
        phase=status.phase.value,
        status=status.status.value,
        eta_minutes=_eta_value(status.eta_minutes),
        distance_km=(
            round(status.distance_km, 3) if status.distance_km is not None else None
        ),
        next_stop=_stop_to_schema(status.next_stop) if status.next_stop else None,
        direction=status.direction.value,
        road_polyline=[GeoPointSchema(lat=p.lat, lon=p.lon) for p in status.road_polyline],
        road_route_available=status.road_route_available,
    )


def _not_found(exc: LookupError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


@router.get("/stops/{stop_code}/vehicles", response_model=StopVehiclesSchema)
def vehicles_at_stop(
    stop_code: str,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> StopVehiclesSchema:
    try:
        listing = service.vehicles_at_stop(stop_code)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return StopVehiclesSchema(
        stop=_stop_to_schema(listing.stop),
        vehicles=[
            VehicleAtStopSchema(
                vehicle_id=v.vehicle_id,
                route_id=v.route_id,
                route_name=v.route_name,
                location=GeoPointSchema(lat=v.position.lat, lon=v.position.lon),
                phase=v.phase.value,
                direction=v.direction.value,
                next_stop=_stop_to_schema(v.next_stop) if v.next_stop else None,
                status=v.status.value,
                eta_minutes=_eta_value(v.eta_minutes),
                distance_km=(
                    round(v.distance_km, 3) if v.distance_km is not None else None
                ),
            )
            for v in listing.vehicles
        ],
    )


@router.post("/tracking/sessions", response_model=TrackingStatusSchema)
async def start_tracking(
    req: StartTrackingRequestSchema,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> TrackingStatusSchema:
    try:
        status = await service.start_tracking(req.vehicle_id, req.rider_stop_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return _status_to_schema(status)


@router.delete("/tracking/sessions/{vehicle_id}/{rider_stop_id}", status_code=204)
async def stop_tracking(
    vehicle_id: str,
    rider_stop_id: str,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> Response:
    try:
        await service.stop_tracking(vehicle_id, rider_stop_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return Response(status_code=204)


@router.get(
    "/tracking/vehicles/{vehicle_id}/status", response_model=TrackingStatusSchema
)
def current_status(
    vehicle_id: str,
    rider_stop_id: str = Query(..., min_length=1),
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> TrackingStatusSchema:
    try:
        status = service.current_status(vehicle_id, rider_stop_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return _status_to_schema(status)


@router.get("/tracking/vehicles/{vehicle_id}/progress", response_model=ProgressSchema)
def current_progress(
    vehicle_id: str,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> ProgressSchema:
    try:
        progress = service.current_progress(vehicle_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return ProgressSchema(
        vehicle_id=vehicle_id,
        phase=progress.phase.value,
        direction=progress.direction.value,
        next_stop=_stop_to_schema(progress.next_stop) if progress.next_stop else None,
        passed_stops=[_stop_to_schema(s) for s in progress.passed_stops],
        remaining_stops=[_stop_to_schema(s) for s in progress.remaining_stops],
    )


@router.get(
    "/tracking/vehicles/{vehicle_id}/route-polyline",
    response_model=RoutePolylineSchema,
)
async def route_polyline(
    vehicle_id: str,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> RoutePolylineSchema:
    try:
        route, polyline = await service.route_polyline(vehicle_id)
    except LookupError as exc:
        raise _not_found(exc) from exc
    return RoutePolylineSchema(
        route_id=route.id,
        stops=[_stop_to_schema(s) for s in route.stops],
        points=[GeoPointSchema(lat=p.lat, lon=p.lon) for p in polyline.points],
        distance_km=round(polyline.distance_km, 3),
        road_route_available=polyline.road_route_available,
        fallback_segments=polyline.fallback_count,
    )


@router.post("/tracking/vehicles/{vehicle_id}/offline", status_code=204)
async def mark_offline(
    vehicle_id: str,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> Response:
    await service.mark_offline(vehicle_id)
    return Response(status_code=204)


@router.post("/positions", status_code=202)
async def post_position(
    req: PositionReportSchema,
    service: VehicleTrackingService = Depends(get_tracking_service),
) -> Response:
    timestamp = req.timestamp
    if timestamp.tzinfo is None:
        # Devices that omit an offset are assumed to send UTC.
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    await service.on_position_report(
        PositionReport(
            vehicle_id=req.vehicle_id,
            lat=req.lat,
            lon=req.lon,
            timestamp=timestamp,
            speed_kmh=req.speed_kmh,
            heading_deg=req.heading_deg,
        )
    )
    return Response(status_code=202)
