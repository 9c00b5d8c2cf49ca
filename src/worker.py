from __future__ import annotations

import asyncio
import logging
import os

import httpx

from src.adapters.api.dependencies import build_tracking_service
from src.adapters.realtime.http_gtfs_realtime_position_feed import (
    HttpGtfsRealtimePositionFeed,
)
from src.app.ports.output import IPositionFeed
from src.app.services.vehicle_tracking_service import VehicleTrackingService
from src.domain.exceptions import PositionFeedError
from src.domain.models import NotificationEvent

logger = logging.getLogger(__name__)


async def poll_once(service: VehicleTrackingService, feed: IPositionFeed) -> int:
    """Apply one batch of feed reports and expire silent vehicles."""

    try:
        reports = await feed.fetch_reports()
    except (httpx.HTTPError, PositionFeedError) as exc:
        logger.warning("Position feed unavailable: %s", exc)
        reports = ()

    applied = 0
    for report in reports:
        try:
            await service.on_position_report(report)
            applied += 1
        except Exception:
            logger.exception("Failed to apply report for vehicle %s", report.vehicle_id)

    for vehicle_id in service.silent_vehicles():
        await service.mark_offline(vehicle_id)

    return applied


async def run_position_feed(
    service: VehicleTrackingService,
    feed: IPositionFeed,
    *,
    loop: bool = True,
    stop: asyncio.Event | None = None,
) -> None:
    interval = service.config.feed_poll_interval_s
    while True:
        await poll_once(service, feed)
        if not loop or (stop is not None and stop.is_set()):
            return
        if stop is None:
            await asyncio.sleep(interval)
            continue
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


def _log_event(event: NotificationEvent) -> None:
    logger.info(
        "%s vehicle=%s stop=%s status=%s",
        event.kind.value,
        event.vehicle_id,
        event.rider_stop_id,
        event.status.value if event.status else "-",
    )


async def _main() -> None:
    service = build_tracking_service()
    service.subscribe(_log_event)
    feed = HttpGtfsRealtimePositionFeed()
    if not feed.url:
        raise RuntimeError("GTFS_RT_VEHICLE_POSITIONS_URL is not set")

    loop = os.getenv("WORKER_LOOP", "1").strip().lower() not in {"0", "false", "no"}
    try:
        await run_position_feed(service, feed, loop=loop)
    finally:
        await service.aclose()


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_main())


if __name__ == "__main__":
    main()
