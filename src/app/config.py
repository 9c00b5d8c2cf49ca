from __future__ import annotations

import os
from dataclasses import dataclass


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class TrackingConfig:
    """Tuning knobs for the tracking engine.

    Env vars (all optional):
      - DEFAULT_CRUISING_SPEED_KMH: speed assumed when none can be derived (30)
      - ARRIVAL_THRESHOLD_KM: distance at which a stop counts as reached (0.05)
      - DIRECTION_NOISE_KM: moves smaller than this carry no direction (0.02)
      - DIRECTION_REVERSAL_KM: backward move that flips direction at once (0.1)
      - ROAD_REFRESH_DISTANCE_KM: movement that triggers a new road path (0.1)
      - ROAD_DEBOUNCE_S: delay before a road path request is sent (1.0)
      - ROUTING_TIMEOUT_S: per-segment routing timeout (10)
      - VEHICLE_OFFLINE_TIMEOUT_S: silence before a vehicle is offline (120)
      - FEED_POLL_INTERVAL_S: position feed polling interval (5)
    """

    default_cruising_speed_kmh: float = 30.0
    arrival_threshold_km: float = 0.05
    direction_noise_km: float = 0.02
    direction_reversal_km: float = 0.1
    road_refresh_distance_km: float = 0.1
    road_debounce_s: float = 1.0
    routing_timeout_s: float = 10.0
    offline_timeout_s: float = 120.0
    feed_poll_interval_s: float = 5.0

    @staticmethod
    def from_env() -> "TrackingConfig":
        defaults = TrackingConfig()
        return TrackingConfig(
            default_cruising_speed_kmh=_env_float(
                "DEFAULT_CRUISING_SPEED_KMH", defaults.default_cruising_speed_kmh
            ),
            arrival_threshold_km=_env_float(
                "ARRIVAL_THRESHOLD_KM", defaults.arrival_threshold_km
            ),
            direction_noise_km=_env_float(
                "DIRECTION_NOISE_KM", defaults.direction_noise_km
            ),
            direction_reversal_km=_env_float(
                "DIRECTION_REVERSAL_KM", defaults.direction_reversal_km
            ),
            road_refresh_distance_km=_env_float(
                "ROAD_REFRESH_DISTANCE_KM", defaults.road_refresh_distance_km
            ),
            road_debounce_s=_env_float("ROAD_DEBOUNCE_S", defaults.road_debounce_s),
            routing_timeout_s=_env_float(
                "ROUTING_TIMEOUT_S", defaults.routing_timeout_s
            ),
            offline_timeout_s=_env_float(
                "VEHICLE_OFFLINE_TIMEOUT_S", defaults.offline_timeout_s
            ),
            feed_poll_interval_s=_env_float(
                "FEED_POLL_INTERVAL_S", defaults.feed_poll_interval_s
            ),
        )
