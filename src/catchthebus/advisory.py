"""Leave-by advice for a rider walking to the stop."""

from typing import Dict, List, Optional, Sequence

from .models import AdvisoryResult, Arrival, Tone


def advise(in_minutes: int, walk_minutes: int, buffer_minutes: int) -> AdvisoryResult:
    """
    Work out when to leave to catch a vehicle.

    Args:
        in_minutes: Minutes until the vehicle arrives.
        walk_minutes: Minutes needed to walk to the stop.
        buffer_minutes: Safety margin in minutes.

    Returns:
        AdvisoryResult. `leave_in_minutes` is negative when the vehicle
        can no longer be reached.
    """
    leave_in = in_minutes - (walk_minutes + buffer_minutes)
    if leave_in < 0:
        return AdvisoryResult(leave_in_minutes=leave_in, tone=Tone.LATE, label="too late")
    if leave_in == 0:
        return AdvisoryResult(leave_in_minutes=leave_in, tone=Tone.NOW, label="go now")
    return AdvisoryResult(leave_in_minutes=leave_in, tone=Tone.OK, label=f"leave in {leave_in} min")


def find_highlight(
    arrivals: Sequence[Arrival],
    walk_minutes: int,
    buffer_minutes: int,
    line: Optional[str] = None,
) -> Optional[int]:
    """
    Index of the first arrival that can still be caught.

    Args:
        arrivals: Arrivals in display order.
        line: If given, only arrivals of this line are considered.

    Returns:
        Index into `arrivals`, or None if every candidate is too late.
    """
    for index, arrival in enumerate(arrivals):
        if line is not None and arrival.line != line:
            continue
        if advise(arrival.in_minutes, walk_minutes, buffer_minutes).tone is not Tone.LATE:
            return index
    return None


def group_by_line(arrivals: Sequence[Arrival]) -> Dict[str, List[Arrival]]:
    """Split arrivals into per-line lists, keeping display order."""
    groups: Dict[str, List[Arrival]] = {}
    for arrival in arrivals:
        groups.setdefault(arrival.line, []).append(arrival)
    return groups
