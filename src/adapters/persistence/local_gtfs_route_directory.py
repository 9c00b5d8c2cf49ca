from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from src.app.ports.output import IRouteDirectory
from src.domain.models import GeoPoint, Stop, TransitRoute

logger = logging.getLogger(__name__)


def _rows(path: Path) -> Iterator[dict[str, str]]:
    with path.open("r", encoding="utf-8-sig", newline="") as fp:
        yield from csv.DictReader(fp)


def _clean(row: dict[str, str], name: str) -> str:
    return (row.get(name) or "").strip()


@dataclass(slots=True)
class LocalGtfsRouteDirectory(IRouteDirectory):
    """Route directory backed by a GTFS feed on disk.

    Each GTFS route becomes one TransitRoute whose stop order is taken from
    its longest trip in direction 0 (any direction if none is tagged); the
    other direction is the same sequence reversed.

    Env vars:
      - GTFS_PATH: directory with stops.txt, routes.txt, trips.txt,
        stop_times.txt (default data/gtfs)
      - VEHICLE_ASSIGNMENTS_PATH: CSV with vehicle_id,route_id columns
        (default <GTFS_PATH>/vehicle_assignments.txt)
    """

    base_path: str | Path | None = None
    assignments_path: str | Path | None = None

    _routes: dict[str, TransitRoute] | None = field(default=None, repr=False)
    _assignments: dict[str, str] | None = field(default=None, repr=False)

    def _base(self) -> Path:
        return Path(self.base_path or os.getenv("GTFS_PATH") or "data/gtfs")

    def _assignments_file(self) -> Path:
        value = self.assignments_path or os.getenv("VEHICLE_ASSIGNMENTS_PATH")
        return Path(value) if value else self._base() / "vehicle_assignments.txt"

    def route_for_vehicle(self, vehicle_id: str) -> TransitRoute | None:
        route_id = self.load_assignments().get(vehicle_id)
        if route_id is None:
            return None
        return self.get_route(route_id)

    def get_route(self, route_id: str) -> TransitRoute | None:
        return self.load_routes().get(route_id)

    def stop_by_code(self, code: str) -> Stop | None:
        code = code.strip()
        by_id: Stop | None = None
        for route in self.load_routes().values():
            for stop in route.stops:
                if stop.code == code:
                    return stop
                if by_id is None and stop.id == code:
                    by_id = stop
        return by_id

    def vehicles_serving(self, stop_id: str) -> tuple[tuple[str, TransitRoute], ...]:
        routes = self.load_routes()
        out: list[tuple[str, TransitRoute]] = []
        for vehicle_id, route_id in sorted(self.load_assignments().items()):
            route = routes.get(route_id)
            if route is not None and route.index_of(stop_id) is not None:
                out.append((vehicle_id, route))
        return tuple(out)

    def load_assignments(self) -> dict[str, str]:
        if self._assignments is not None:
            return self._assignments

        assignments: dict[str, str] = {}
        path = self._assignments_file()
        if path.exists():
            for row in _rows(path):
                vehicle_id = _clean(row, "vehicle_id")
                route_id = _clean(row, "route_id")
                if vehicle_id and route_id:
                    assignments[vehicle_id] = route_id
        else:
            logger.warning("No vehicle assignments file at %s", path)

        self._assignments = assignments
        return assignments

    def load_routes(self) -> dict[str, TransitRoute]:
        if self._routes is not None:
            return self._routes

        base = self._base()

        stops_by_id: dict[str, Stop] = {}
        for row in _rows(base / "stops.txt"):
            stop_id = _clean(row, "stop_id")
            if not stop_id:
                continue
            try:
                location = GeoPoint(
                    lat=float(row["stop_lat"]), lon=float(row["stop_lon"])
                )
            except (KeyError, TypeError, ValueError):
                continue
            stops_by_id[stop_id] = Stop(
                id=stop_id,
                name=_clean(row, "stop_name") or stop_id,
                location=location,
                code=_clean(row, "stop_code") or None,
            )

        route_names: dict[str, str | None] = {}
        routes_path = base / "routes.txt"
        if routes_path.exists():
            for row in _rows(routes_path):
                route_id = _clean(row, "route_id")
                if route_id:
                    route_names[route_id] = (
                        _clean(row, "route_short_name")
                        or _clean(row, "route_long_name")
                        or None
                    )

        # trip_id -> (route_id, direction_id)
        trips: dict[str, tuple[str, str]] = {}
        for row in _rows(base / "trips.txt"):
            trip_id = _clean(row, "trip_id")
            route_id = _clean(row, "route_id")
            if trip_id and route_id:
                trips[trip_id] = (route_id, _clean(row, "direction_id"))

        stop_times: dict[str, list[tuple[int, str]]] = {}
        for row in _rows(base / "stop_times.txt"):
            trip_id = _clean(row, "trip_id")
            stop_id = _clean(row, "stop_id")
            if trip_id not in trips or stop_id not in stops_by_id:
                continue
            try:
                seq = int(_clean(row, "stop_sequence") or 0)
            except ValueError:
                continue
            stop_times.setdefault(trip_id, []).append((seq, stop_id))

        # route_id -> (prefers direction 0, stop count, trip_id, stop ids)
        best: dict[str, tuple[bool, int, str, tuple[str, ...]]] = {}
        for trip_id, entries in stop_times.items():
            route_id, direction_id = trips[trip_id]
            entries.sort(key=lambda e: e[0])
            stop_ids = tuple(stop_id for _, stop_id in entries)
            candidate = (direction_id in {"", "0"}, len(stop_ids), trip_id, stop_ids)
            current = best.get(route_id)
            if current is None or candidate[:2] > current[:2]:
                best[route_id] = candidate

        routes: dict[str, TransitRoute] = {}
        for route_id, (_, _, trip_id, stop_ids) in sorted(best.items()):
            try:
                routes[route_id] = TransitRoute(
                    id=route_id,
                    stops=tuple(stops_by_id[s] for s in stop_ids),
                    name=route_names.get(route_id),
                )
            except ValueError as exc:
                # Loop trips revisit stops; they cannot run both ways.
                logger.warning("Skipping route %s (trip %s): %s", route_id, trip_id, exc)

        self._routes = routes
        return routes
