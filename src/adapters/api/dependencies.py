from __future__ import annotations

import os
from functools import lru_cache

from src.adapters.maps.osmnx_map_adapter import OSMnxMapAdapter
from src.adapters.maps.s3_cached_map_adapter import S3CachedMapAdapter
from src.adapters.persistence.local_gtfs_route_directory import (
    LocalGtfsRouteDirectory,
)
from src.adapters.realtime.http_gtfs_realtime_position_feed import (
    HttpGtfsRealtimePositionFeed,
)
from src.adapters.routing.osmnx_road_router import OSMnxRoadRouter
from src.adapters.routing.osrm_road_router import OsrmRoadRouter
from src.app.config import TrackingConfig
from src.app.ports.output import IMapProvider, IPositionFeed, IRoadRouter
from src.app.services.route_segmenter import RouteSegmenter
from src.app.services.vehicle_tracking_service import VehicleTrackingService


def get_road_router() -> IRoadRouter:
    kind = (os.getenv("ROAD_ROUTER") or "osrm").strip().lower()
    if kind == "osrm":
        return OsrmRoadRouter()
    if kind == "osmnx":
        map_provider: IMapProvider = OSMnxMapAdapter(network_type="drive")
        if os.getenv("STREET_GRAPH_BUCKET"):
            map_provider = S3CachedMapAdapter(upstream=map_provider)
        return OSMnxRoadRouter(map_provider=map_provider)
    raise RuntimeError(f"Unsupported ROAD_ROUTER: {kind}")


def build_tracking_service() -> VehicleTrackingService:
    config = TrackingConfig.from_env()
    segmenter = RouteSegmenter(
        road_router=get_road_router(), request_timeout_s=config.routing_timeout_s
    )
    return VehicleTrackingService(
        route_directory=LocalGtfsRouteDirectory(),
        route_segmenter=segmenter,
        config=config,
    )


@lru_cache(maxsize=1)
def get_tracking_service() -> VehicleTrackingService:
    # Tracking state lives in the service, so the API shares one instance.
    return build_tracking_service()


def get_position_feed() -> IPositionFeed | None:
    if not os.getenv("GTFS_RT_VEHICLE_POSITIONS_URL"):
        return None
    return HttpGtfsRealtimePositionFeed()
