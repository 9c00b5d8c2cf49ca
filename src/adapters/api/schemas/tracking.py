from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class GeoPointSchema(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)


class StopSchema(BaseModel):
    stop_id: str
    name: str
    code: str | None = None
    location: GeoPointSchema


class StartTrackingRequestSchema(BaseModel):
    vehicle_id: str = Field(..., min_length=1)
    rider_stop_id: str = Field(..., min_length=1)


class TrackingStatusSchema(BaseModel):
    vehicle_id: str
    rider_stop_id: str
    phase: Literal["uninitialized", "tracking", "completed", "offline"]
    status: Literal["approaching", "passed", "far"]
    eta_minutes: int | Literal["stopped", "arriving_now"] | None = None
    distance_km: float | None = None
    next_stop: StopSchema | None = None
    direction: Literal["unknown", "forward", "reverse"]
    road_polyline: list[GeoPointSchema] = []
    road_route_available: bool = False


class PositionReportSchema(BaseModel):
    vehicle_id: str = Field(..., min_length=1)
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    timestamp: datetime
    speed_kmh: float | None = Field(default=None, ge=0.0)
    heading_deg: float | None = Field(default=None, ge=0.0, le=360.0)


class ProgressSchema(BaseModel):
    vehicle_id: str
    phase: Literal["uninitialized", "tracking", "completed", "offline"]
    direction: Literal["unknown", "forward", "reverse"]
    next_stop: StopSchema | None = None
    passed_stops: list[StopSchema]
    remaining_stops: list[StopSchema]


class RoutePolylineSchema(BaseModel):
    route_id: str
    stops: list[StopSchema]
    points: list[GeoPointSchema]
    distance_km: float
    road_route_available: bool
    fallback_segments: int


class VehicleAtStopSchema(BaseModel):
    vehicle_id: str
    route_id: str
    route_name: str | None = None
    location: GeoPointSchema
    phase: Literal["uninitialized", "tracking", "completed", "offline"]
    direction: Literal["unknown", "forward", "reverse"]
    next_stop: StopSchema | None = None
    status: Literal["approaching", "passed", "far"]
    eta_minutes: int | Literal["stopped", "arriving_now"] | None = None
    distance_km: float | None = None


class StopVehiclesSchema(BaseModel):
    stop: StopSchema
    vehicles: list[VehicleAtStopSchema]
