from .local_gtfs_route_directory import LocalGtfsRouteDirectory

__all__ = [
    "LocalGtfsRouteDirectory",
]
