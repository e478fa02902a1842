"""Ordering and capping of correlated arrivals."""

from typing import Iterable, List

from .config import DEFAULT_MAX_ARRIVALS
from .models import Arrival, RankedArrivals


def distinct_lines(arrivals: Iterable[Arrival]) -> List[str]:
    """Line labels in first-seen order, without duplicates or blanks."""
    seen = {}
    for arrival in arrivals:
        if arrival.line:
            seen.setdefault(arrival.line, None)
    return list(seen)


def rank_arrivals(arrivals: Iterable[Arrival], cap: int = DEFAULT_MAX_ARRIVALS) -> RankedArrivals:
    """
    Sort arrivals soonest first and keep at most `cap` of them.

    The sort is stable, so equal times keep feed order. `lines` is taken
    from the full sorted list, so a line whose only vehicle falls past
    the cap is still reported.
    """
    ordered = sorted(arrivals, key=lambda arrival: arrival.in_minutes)
    return RankedArrivals(arrivals=ordered[:max(0, cap)], lines=distinct_lines(ordered))
