"""Runtime configuration for the arrival tracker."""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "CATCHTHEBUS_"

# Sofia public transport GTFS endpoints
DEFAULT_STATIC_URL = "https://gtfs.sofiatraffic.bg/api/v1/static"
DEFAULT_TRIP_UPDATES_URL = "https://gtfs.sofiatraffic.bg/api/v1/trip-updates"
DEFAULT_VEHICLE_POSITIONS_URL = "https://gtfs.sofiatraffic.bg/api/v1/vehicle-positions"

DEFAULT_STOP_KEY = "vardar"
DEFAULT_TARGET_NAME = "Вардар"
DEFAULT_MAX_ARRIVALS = 8


@dataclass(frozen=True)
class Settings:
    """Settings for one monitored stop."""
    stop_key: str = DEFAULT_STOP_KEY
    target_name: str = DEFAULT_TARGET_NAME
    display_name: str = DEFAULT_TARGET_NAME
    static_url: str = DEFAULT_STATIC_URL
    trip_updates_url: str = DEFAULT_TRIP_UPDATES_URL
    vehicle_positions_url: str = DEFAULT_VEHICLE_POSITIONS_URL
    max_arrivals: int = DEFAULT_MAX_ARRIVALS
    request_timeout: float = 10.0
    host: str = "127.0.0.1"
    port: int = 4000

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from CATCHTHEBUS_* environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Returns:
            Settings with every unset variable left at its default.
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: str) -> str:
            value = env.get(ENV_PREFIX + name, "").strip()
            return value or default

        target_name = get("TARGET_NAME", DEFAULT_TARGET_NAME)
        return cls(
            stop_key=get("STOP_KEY", DEFAULT_STOP_KEY),
            target_name=target_name,
            display_name=get("DISPLAY_NAME", target_name),
            static_url=get("STATIC_URL", DEFAULT_STATIC_URL),
            trip_updates_url=get("TRIP_UPDATES_URL", DEFAULT_TRIP_UPDATES_URL),
            vehicle_positions_url=get("VEHICLE_POSITIONS_URL", DEFAULT_VEHICLE_POSITIONS_URL),
            max_arrivals=_parse_number(env, "MAX_ARRIVALS", DEFAULT_MAX_ARRIVALS, int),
            request_timeout=_parse_number(env, "REQUEST_TIMEOUT", 10.0, float),
            host=get("HOST", "127.0.0.1"),
            port=_parse_number(env, "PORT", 4000, int),
        )


def _parse_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {ENV_PREFIX}{name}={raw!r}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {ENV_PREFIX}{name}={raw!r}, using {default}")
        return default
    return value
