from __future__ import annotations

from abc import ABC, abstractmethod

from src.domain.models import PositionReport


class IPositionFeed(ABC):
    """Port for pulling vehicle position reports (e.g., via GTFS-Realtime)."""

    @abstractmethod
    async def fetch_reports(self) -> tuple[PositionReport, ...]:
        raise NotImplementedError
