"""Travel-direction inference along a bidirectional route.

A vehicle runs a route either first-to-last (forward) or last-to-first
(reverse). The direction is read from how the distances to the two termini
change between consecutive fixes; when that is ambiguous the rider's stop
and its neighbours break the tie, and as a last resort the nearer terminus
decides.
"""

from __future__ import annotations

from typing import Sequence

from src.domain.algorithms.geo_utils import distance_km
from src.domain.models import Direction, GeoPoint, Stop


def _closer(before: float, after: float, noise_km: float) -> bool:
    return after < before - noise_km


def _farther(before: float, after: float, noise_km: float) -> bool:
    return after > before + noise_km


def _rider_stop_hint(
    current: GeoPoint,
    previous: GeoPoint,
    stops: Sequence[Stop],
    rider_stop_id: str,
    noise_km: float,
) -> Direction:
    index = next((i for i, s in enumerate(stops) if s.id == rider_stop_id), None)
    # Only an intermediate stop has a neighbour on both sides.
    if index is None or index == 0 or index == len(stops) - 1:
        return Direction.UNKNOWN

    rider = stops[index].location
    if not _closer(distance_km(previous, rider), distance_km(current, rider), noise_km):
        return Direction.UNKNOWN

    to_earlier = distance_km(current, stops[index - 1].location)
    to_later = distance_km(current, stops[index + 1].location)
    if to_earlier < to_later:
        return Direction.FORWARD
    if to_later < to_earlier:
        return Direction.REVERSE
    return Direction.UNKNOWN


def direction_signal(
    current: GeoPoint,
    previous: GeoPoint | None,
    stops: Sequence[Stop],
    rider_stop_id: str | None = None,
    *,
    noise_km: float = 0.0,
) -> Direction:
    """Direction evidenced by the move from `previous` to `current`.

    Returns UNKNOWN when the move is ambiguous (GPS jitter, vehicle near a
    terminus, no previous fix). Distance changes within `noise_km` are
    ignored.
    """

    if previous is None or len(stops) < 2:
        return Direction.UNKNOWN

    first = stops[0].location
    last = stops[-1].location
    first_before, first_after = distance_km(previous, first), distance_km(current, first)
    last_before, last_after = distance_km(previous, last), distance_km(current, last)

    if _closer(last_before, last_after, noise_km) and _farther(
        first_before, first_after, noise_km
    ):
        return Direction.FORWARD
    if _closer(first_before, first_after, noise_km) and _farther(
        last_before, last_after, noise_km
    ):
        return Direction.REVERSE

    if rider_stop_id is not None:
        return _rider_stop_hint(current, previous, stops, rider_stop_id, noise_km)
    return Direction.UNKNOWN


def terminus_fallback(current: GeoPoint, stops: Sequence[Stop]) -> Direction:
    """Heuristic direction from position alone.

    Nearer the last stop reads as forward, nearer the first stop as reverse.
    This is a guess for a vehicle with no usable movement history; it has
    not been validated for vehicles idling mid-route.
    """

    if len(stops) < 2:
        return Direction.UNKNOWN
    to_first = distance_km(current, stops[0].location)
    to_last = distance_km(current, stops[-1].location)
    if to_last < to_first:
        return Direction.FORWARD
    if to_first < to_last:
        return Direction.REVERSE
    return Direction.UNKNOWN


def infer_direction(
    current: GeoPoint,
    previous: GeoPoint | None,
    stops: Sequence[Stop],
    rider_stop_id: str | None = None,
    *,
    noise_km: float = 0.0,
) -> Direction:
    signal = direction_signal(
        current, previous, stops, rider_stop_id, noise_km=noise_km
    )
    if signal is not Direction.UNKNOWN:
        return signal
    return terminus_fallback(current, stops)
