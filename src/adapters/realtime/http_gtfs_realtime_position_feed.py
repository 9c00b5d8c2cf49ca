from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx

from src.app.ports.output import IPositionFeed
from src.domain.exceptions import PositionFeedError
from src.domain.models import PositionReport

logger = logging.getLogger(__name__)


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse 'Key:Value;Key2:Value2' into a header mapping."""

    headers: dict[str, str] = {}
    for part in (raw or "").split(";"):
        if ":" not in part:
            continue
        k, v = part.split(":", 1)
        if k.strip():
            headers[k.strip()] = v.strip()
    return headers


@dataclass(slots=True)
class HttpGtfsRealtimePositionFeed(IPositionFeed):
    """Pulls a GTFS-Realtime VehiclePositions feed over HTTP.

    Env vars:
      - GTFS_RT_VEHICLE_POSITIONS_URL: URL to a GTFS-RT VehiclePositions feed
      - GTFS_RT_HEADERS: optional headers, as 'Key:Value;Key2:Value2'
      - GTFS_RT_TIMEOUT_S: request timeout (default 10)

    Notes:
      - If URL is not configured, returns no reports.
      - Entities without a vehicle id are skipped: reports are keyed by it.
    """

    url: str | None = None
    headers_raw: str | None = None
    timeout_s: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.url is None:
            self.url = os.getenv("GTFS_RT_VEHICLE_POSITIONS_URL")
        if self.headers_raw is None:
            self.headers_raw = os.getenv("GTFS_RT_HEADERS")
        if os.getenv("GTFS_RT_TIMEOUT_S"):
            self.timeout_s = float(os.environ["GTFS_RT_TIMEOUT_S"])

    async def fetch_reports(self) -> tuple[PositionReport, ...]:
        if not self.url:
            return ()

        async with self._lock:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, transport=self.transport
            ) as client:
                resp = await client.get(self.url, headers=parse_headers(self.headers_raw))
                resp.raise_for_status()
                content = resp.content

        return parse_vehicle_positions(content, received_at=datetime.now(timezone.utc))


def parse_vehicle_positions(
    content: bytes, *, received_at: datetime
) -> tuple[PositionReport, ...]:
    from google.protobuf.message import DecodeError
    from google.transit import gtfs_realtime_pb2

    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(content)
    except DecodeError as exc:
        raise PositionFeedError(
            f"Undecodable GTFS-RT payload ({len(content)} bytes): {exc}"
        ) from exc

    out: list[PositionReport] = []
    for ent in feed.entity:
        if not ent.HasField("vehicle"):
            continue
        v = ent.vehicle
        if not v.HasField("position"):
            continue

        vehicle_id = v.vehicle.id if v.HasField("vehicle") else ""
        if not vehicle_id:
            continue

        pos = v.position
        # GTFS-RT speed is in m/s.
        speed_kmh = float(pos.speed) * 3.6 if pos.HasField("speed") else None
        heading = float(pos.bearing) if pos.HasField("bearing") else None

        timestamp = received_at
        if v.HasField("timestamp") and int(v.timestamp) > 0:
            timestamp = datetime.fromtimestamp(int(v.timestamp), tz=timezone.utc)

        out.append(
            PositionReport(
                vehicle_id=vehicle_id,
                lat=float(pos.latitude),
                lon=float(pos.longitude),
                timestamp=timestamp,
                speed_kmh=speed_kmh,
                heading_deg=heading,
            )
        )

    logger.debug("Parsed %d vehicle positions", len(out))
    return tuple(out)
