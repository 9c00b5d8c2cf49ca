from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import httpx

from src.app.ports.output import IRoadRouter
from src.domain.exceptions import NoPathFound, RoutingError
from src.domain.models import GeoPoint, RoadPath

DEFAULT_OSRM_BASE_URL = "https://router.project-osrm.org"


@dataclass(slots=True)
class OsrmRoadRouter(IRoadRouter):
    """Point-to-point driving routes from an OSRM server.

    Env vars:
      - OSRM_BASE_URL: server root (default: the public OSRM demo server)
      - OSRM_TIMEOUT_S: request timeout (default 10)

    Each call asks for exactly two coordinates; stop order along a route is
    handled by the caller, never by OSRM waypoint optimisation.
    """

    base_url: str | None = None
    profile: str = "driving"
    timeout_s: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    def __post_init__(self) -> None:
        if self.base_url is None:
            self.base_url = os.getenv("OSRM_BASE_URL") or DEFAULT_OSRM_BASE_URL
        if os.getenv("OSRM_TIMEOUT_S"):
            self.timeout_s = float(os.environ["OSRM_TIMEOUT_S"])

    def _url(self, origin: GeoPoint, destination: GeoPoint) -> str:
        base = (self.base_url or DEFAULT_OSRM_BASE_URL).rstrip("/")
        # OSRM takes lon,lat pairs.
        coords = f"{origin.lon},{origin.lat};{destination.lon},{destination.lat}"
        return f"{base}/route/v1/{self.profile}/{coords}"

    async def shortest_path(self, origin: GeoPoint, destination: GeoPoint) -> RoadPath:
        params = {"overview": "full", "geometries": "geojson"}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, transport=self.transport
            ) as client:
                resp = await client.get(self._url(origin, destination), params=params)
                if resp.status_code == 400:
                    # OSRM reports unroutable input as 400 with a JSON code.
                    return _parse_route(resp.json())
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise RoutingError(f"OSRM request failed: {exc}") from exc
        except ValueError as exc:
            raise RoutingError(f"OSRM returned invalid JSON: {exc}") from exc

        return _parse_route(data)


def _parse_route(data: Any) -> RoadPath:
    if not isinstance(data, dict):
        raise RoutingError("Unexpected OSRM response")

    code = data.get("code")
    routes = data.get("routes") or []
    if code != "Ok" or not routes:
        raise NoPathFound(f"OSRM found no route (code={code})")

    route = routes[0]
    try:
        coords = route["geometry"]["coordinates"]
        points = tuple(GeoPoint(lat=float(c[1]), lon=float(c[0])) for c in coords)
        distance_m = float(route["distance"])
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise RoutingError(f"Malformed OSRM route: {exc}") from exc

    return RoadPath(points=points, distance_m=distance_m)
