class RoutingError(Exception):
    """Base exception for road-routing failures."""


class NoPathFound(RoutingError):
    """Raised when the router has no road path between the two points."""
