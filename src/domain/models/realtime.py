from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class PositionReport:
    """One raw position fix for a vehicle, as received from the feed.

    Values are kept as reported; range checks happen when the report is
    applied so that bad fixes can be logged and dropped.
    """

    vehicle_id: str
    lat: float
    lon: float
    timestamp: datetime
    speed_kmh: float | None = None
    heading_deg: float | None = None
