"""Data models for the arrival tracker."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class StopRecord:
    """Represents one physical stop from the static dataset."""
    stop_id: str
    name: str


@dataclass(frozen=True)
class RouteRecord:
    """Represents one route from the static dataset."""
    route_id: str
    short_label: str = ""
    long_label: str = ""


@dataclass(frozen=True)
class StopTimeUpdate:
    """One predicted arrival/departure event for one stop along a trip."""
    stop_id: str
    arrival_time: Optional[int] = None  # Unix timestamp
    departure_time: Optional[int] = None  # Unix timestamp
    headsign: Optional[str] = None

    @property
    def event_time(self) -> Optional[int]:
        """Arrival time if predicted, else departure time."""
        if self.arrival_time is not None:
            return self.arrival_time
        return self.departure_time


@dataclass(frozen=True)
class TripUpdate:
    """One vehicle's predicted stop times for its current trip."""
    route_id: str
    stop_time_updates: Tuple[StopTimeUpdate, ...] = ()
    trip_id: Optional[str] = None
    headsign: Optional[str] = None


@dataclass(frozen=True)
class Arrival:
    """Represents an upcoming vehicle at the target stop."""
    line: str
    in_minutes: int  # Minutes until arrival, never negative
    direction: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"line": self.line}
        if self.direction is not None:
            data["direction"] = self.direction
        data["inMinutes"] = self.in_minutes
        return data


class Tone(str, Enum):
    """Classification of a leave-by advisory."""
    LATE = "late"
    NOW = "now"
    OK = "ok"


@dataclass(frozen=True)
class AdvisoryResult:
    """Leave-by recommendation for one arrival."""
    leave_in_minutes: int
    tone: Tone
    label: str


@dataclass(frozen=True)
class RankedArrivals:
    """Sorted, capped arrivals plus every line seen before capping."""
    arrivals: List[Arrival]
    lines: List[str]


@dataclass
class ArrivalBoard:
    """Complete response for the monitored stop."""
    stop_name: str
    lines: List[str]
    arrivals: List[Arrival]
    generated_at: datetime
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stopName": self.stop_name,
            "lines": list(self.lines),
            "arrivals": [arrival.to_dict() for arrival in self.arrivals],
            "generatedAt": self.generated_at.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArrivalBoard":
        """
        Build a board from the JSON served by the arrivals endpoint.

        Raises:
            ValueError: If the document or one of its arrivals is not an object.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Expected an arrivals object, got {type(data).__name__}")
        items = data.get("arrivals", [])
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise ValueError("Expected 'arrivals' to be a list of objects")
        arrivals = [
            Arrival(
                line=str(item.get("line") or "?"),
                in_minutes=int(item["inMinutes"]),
                direction=item.get("direction"),
            )
            for item in items
        ]
        generated_at = data.get("generatedAt")
        return cls(
            stop_name=data.get("stopName", ""),
            lines=list(data.get("lines", [])),
            arrivals=arrivals,
            generated_at=datetime.fromisoformat(generated_at) if generated_at else datetime.now(),
            error=data.get("error"),
        )
