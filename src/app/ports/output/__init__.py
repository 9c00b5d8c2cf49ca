from .map_provider import IMapProvider
from .position_feed import IPositionFeed
from .road_router import IRoadRouter
from .route_directory import IRouteDirectory

__all__ = [
    "IMapProvider",
    "IPositionFeed",
    "IRoadRouter",
    "IRouteDirectory",
]
