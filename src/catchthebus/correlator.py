"""Matches live trip updates against the target stop set."""

import logging
import math
from typing import Callable, Collection, Iterable, List, Optional

from .models import Arrival, TripUpdate

logger = logging.getLogger(__name__)


def minutes_until(event_time: int, now: int) -> Optional[int]:
    """
    Whole minutes from now until event_time, rounded half up.

    Returns:
        None if the event is already in the past.
    """
    seconds_away = event_time - now
    if seconds_away < 0:
        return None
    return max(0, math.floor(seconds_away / 60 + 0.5))


def correlate_arrivals(
    trip_updates: Iterable[TripUpdate],
    target_stop_ids: Collection[str],
    route_label: Callable[[Optional[str]], str],
    now: int,
) -> List[Arrival]:
    """
    Build one Arrival per stop time update that serves the target stop.

    Args:
        trip_updates: Decoded trip updates, in feed order.
        target_stop_ids: Stop ids that make up the monitored stop.
        route_label: Resolves a route id to its display label.
        now: Current Unix timestamp.

    Returns:
        Arrivals in feed order. Predictions without a time, or whose time
        has already passed, are dropped.
    """
    arrivals: List[Arrival] = []

    for trip_update in trip_updates:
        line = route_label(trip_update.route_id)

        for stop_time_update in trip_update.stop_time_updates:
            if stop_time_update.stop_id not in target_stop_ids:
                continue

            event_time = stop_time_update.event_time
            if event_time is None:
                continue

            in_minutes = minutes_until(event_time, now)
            if in_minutes is None:
                continue

            arrivals.append(
                Arrival(
                    line=line,
                    in_minutes=in_minutes,
                    direction=stop_time_update.headsign or trip_update.headsign or None,
                )
            )

    logger.debug(f"Correlated {len(arrivals)} arrivals")
    return arrivals
