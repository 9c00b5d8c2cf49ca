from __future__ import annotations

from dataclasses import dataclass, field

from .stop import Stop
from .tracking import Direction


@dataclass(frozen=True, slots=True)
class TransitRoute:
    """Fixed, ordered stop sequence a vehicle runs in either direction.

    The first and last stops are the route's termini.
    """

    id: str
    stops: tuple[Stop, ...]
    name: str | None = None

    _index: dict[str, int] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if len(self.stops) < 2:
            raise ValueError(f"Route {self.id} needs at least two stops")
        for i, stop in enumerate(self.stops):
            if stop.id in self._index:
                raise ValueError(f"Route {self.id} lists stop {stop.id} twice")
            self._index[stop.id] = i

    def index_of(self, stop_id: str) -> int | None:
        return self._index.get(stop_id)

    def stop(self, stop_id: str) -> Stop | None:
        i = self._index.get(stop_id)
        return None if i is None else self.stops[i]

    def ordered(self, direction: Direction) -> tuple[Stop, ...]:
        """Stops in travel order: the route order, or its exact reverse."""

        if direction is Direction.REVERSE:
            return tuple(reversed(self.stops))
        return self.stops

    def travel_index(self, stop_id: str, direction: Direction) -> int | None:
        i = self._index.get(stop_id)
        if i is None:
            return None
        if direction is Direction.REVERSE:
            return len(self.stops) - 1 - i
        return i
