"""Main arrival tracker tying static data, live feed and ranking together."""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from .config import Settings
from .correlator import correlate_arrivals
from .exceptions import UnknownStopError
from .feed_client import FeedClient
from .gtfs_loader import GTFSLoader, StaticReference
from .models import ArrivalBoard
from .ranker import rank_arrivals

logger = logging.getLogger(__name__)


class ArrivalTracker:
    """
    Serves upcoming arrivals for the one configured stop.

    This class provides methods to:
    - Start the one-off static GTFS load in the background
    - Build an arrival board from a fresh live feed snapshot
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        reference: Optional[StaticReference] = None,
        feed_client: Optional[FeedClient] = None,
    ):
        """
        Initialize the tracker.

        Args:
            settings: Stop and feed configuration. Defaults to Settings().
            reference: Shared static indexes. A new, empty one is created if omitted.
            feed_client: Live feed client. Built from settings if omitted.
        """
        self.settings = settings or Settings()
        self.reference = reference or StaticReference(self.settings.target_name)
        self.feed_client = feed_client or FeedClient(
            self.settings.trip_updates_url, timeout=self.settings.request_timeout
        )
        self.gtfs_loader = GTFSLoader(
            self.settings.target_name,
            static_url=self.settings.static_url,
            timeout=self.settings.request_timeout,
            reference=self.reference,
        )

    def start(self) -> None:
        """Begin loading static GTFS data without blocking."""
        self.gtfs_loader.start_background_load()

    def get_board(self, stop_key: str, now: Optional[int] = None) -> ArrivalBoard:
        """
        Get the ranked arrivals for a stop.

        Args:
            stop_key: Key of the requested stop; must match the configured one.
            now: Unix timestamp to measure against. Defaults to the current time.

        Returns:
            ArrivalBoard with capped arrivals and every active line.

        Raises:
            UnknownStopError: If stop_key is not the configured stop.
            ReferenceUnavailable: If the target stop set is not resolved yet.
            FeedFetchError: If the live feed cannot be fetched or decoded.
        """
        if stop_key.lower() != self.settings.stop_key.lower():
            raise UnknownStopError(f"Unknown stop '{stop_key}'")

        # Checked before fetching so a not-ready server does no network work
        self.reference.require_ready()

        trip_updates = self.feed_client.fetch_trip_updates()
        if now is None:
            now = int(time.time())

        arrivals = correlate_arrivals(
            trip_updates,
            self.reference.target_stop_ids,
            self.reference.route_label,
            now,
        )
        ranked = rank_arrivals(arrivals, cap=self.settings.max_arrivals)
        logger.debug(
            f"{len(arrivals)} arrivals for {stop_key}, returning {len(ranked.arrivals)}"
        )

        return ArrivalBoard(
            stop_name=self.settings.display_name,
            lines=ranked.lines,
            arrivals=ranked.arrivals,
            generated_at=datetime.now(timezone.utc),
        )
