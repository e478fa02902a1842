"""CatchTheBus - Live arrivals and leave-by advice for one transit stop."""

__version__ = "0.1.0"

from .models import Arrival, AdvisoryResult, ArrivalBoard, RouteRecord, StopRecord, Tone
from .arrival_tracker import ArrivalTracker
from .gtfs_loader import GTFSLoader, StaticReference
from .feed_client import FeedClient
from .advisory import advise, find_highlight

__all__ = [
    "ArrivalTracker",
    "GTFSLoader",
    "StaticReference",
    "FeedClient",
    "advise",
    "find_highlight",
    "Arrival",
    "AdvisoryResult",
    "ArrivalBoard",
    "RouteRecord",
    "StopRecord",
    "Tone",
]
