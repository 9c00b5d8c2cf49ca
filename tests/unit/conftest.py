from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from src.domain.models import GeoPoint, PositionReport, Stop, TransitRoute

T0 = datetime(2026, 3, 2, 8, 0, 0, tzinfo=timezone.utc)

# Four stops on the equator, ~1.11 km apart: A(0.00) B(0.01) C(0.02) D(0.03).
STOP_LONS = {"A": 0.0, "B": 0.01, "C": 0.02, "D": 0.03}


@pytest.fixture
def route_abcd() -> TransitRoute:
    return TransitRoute(
        id="R1",
        name="1",
        stops=tuple(
            Stop(id=sid, name=f"Stop {sid}", location=GeoPoint(lat=0.0, lon=lon), code=sid.lower())
            for sid, lon in STOP_LONS.items()
        ),
    )


@pytest.fixture
def make_report() -> Callable[..., PositionReport]:
    def _make(
        lon: float,
        *,
        lat: float = 0.0,
        seconds: float = 0.0,
        speed_kmh: float | None = None,
        vehicle_id: str = "bus-1",
    ) -> PositionReport:
        return PositionReport(
            vehicle_id=vehicle_id,
            lat=lat,
            lon=lon,
            timestamp=T0 + timedelta(seconds=seconds),
            speed_kmh=speed_kmh,
        )

    return _make


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
