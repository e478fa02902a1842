"""GTFS-Realtime feed fetcher and decoder."""

import logging
import operator
from typing import Any, List, Optional

import requests
from google.protobuf.message import DecodeError as ProtobufDecodeError
from google.transit import gtfs_realtime_pb2

from .config import DEFAULT_TRIP_UPDATES_URL
from .exceptions import DecodeError, FeedFetchError
from .models import StopTimeUpdate, TripUpdate

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


def normalize_timestamp(value: Any) -> Optional[int]:
    """
    Convert a decoded epoch-seconds value to a plain int.

    Accepts native ints, integer-like objects (numpy integers and anything
    implementing __index__), digit strings as produced by protobuf's JSON
    mapping of int64, and 64-bit wrappers exposing `low`/`high` 32-bit words.

    Returns:
        Epoch seconds, or None when no value is present.

    Raises:
        DecodeError: If the value cannot represent an integer timestamp.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise DecodeError(f"Invalid timestamp {value!r}")
    if isinstance(value, int):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            raise DecodeError(f"Invalid timestamp {value!r}") from None
    if hasattr(value, "__index__"):
        return operator.index(value)
    if hasattr(value, "low") and hasattr(value, "high"):
        low = int(value.low) & 0xFFFFFFFF
        high = int(value.high)
        if getattr(value, "unsigned", False):
            high &= 0xFFFFFFFF
        return (high << 32) | low
    raise DecodeError(f"Unsupported timestamp type {type(value).__name__}")


def _optional_field(message, field_name: str):
    """Return a set singular field, or None if unset or absent from the schema."""
    if field_name not in message.DESCRIPTOR.fields_by_name:
        return None
    if not message.HasField(field_name):
        return None
    return getattr(message, field_name)


def _event_time(stop_time_update, event_name: str) -> Optional[int]:
    event = _optional_field(stop_time_update, event_name)
    if event is None:
        return None
    return normalize_timestamp(_optional_field(event, "time"))


def _stop_headsign(stop_time_update) -> Optional[str]:
    properties = _optional_field(stop_time_update, "stop_time_properties")
    if properties is None:
        return None
    return _optional_field(properties, "stop_headsign") or None


def _trip_headsign(trip_update) -> Optional[str]:
    properties = _optional_field(trip_update, "trip_properties")
    if properties is None:
        return None
    return _optional_field(properties, "trip_headsign") or None


def parse_feed(feed_data: bytes) -> gtfs_realtime_pb2.FeedMessage:
    """Parse raw bytes into a FeedMessage."""
    feed = gtfs_realtime_pb2.FeedMessage()
    try:
        feed.ParseFromString(feed_data)
    except ProtobufDecodeError as e:
        raise DecodeError(f"Malformed GTFS-Realtime payload: {e}") from e
    return feed


def decode_trip_updates(feed_data: bytes) -> List[TripUpdate]:
    """
    Decode a GTFS-Realtime payload into TripUpdate records.

    Entities without a trip update are skipped. Stop time updates keep
    their feed order.

    Raises:
        DecodeError: If the payload is not a valid FeedMessage.
    """
    feed = parse_feed(feed_data)
    trip_updates: List[TripUpdate] = []

    for entity in feed.entity:
        if not entity.HasField("trip_update"):
            continue

        trip_update = entity.trip_update
        stop_time_updates = tuple(
            StopTimeUpdate(
                stop_id=stop_time_update.stop_id,
                arrival_time=_event_time(stop_time_update, "arrival"),
                departure_time=_event_time(stop_time_update, "departure"),
                headsign=_stop_headsign(stop_time_update),
            )
            for stop_time_update in trip_update.stop_time_update
        )
        trip_updates.append(
            TripUpdate(
                route_id=trip_update.trip.route_id,
                stop_time_updates=stop_time_updates,
                trip_id=trip_update.trip.trip_id or None,
                headsign=_trip_headsign(trip_update),
            )
        )

    logger.debug(f"Decoded {len(trip_updates)} trip updates from {len(feed.entity)} entities")
    return trip_updates


class FeedClient:
    """Fetches the live GTFS-Realtime feed. Nothing is cached."""

    def __init__(
        self,
        trip_updates_url: str = DEFAULT_TRIP_UPDATES_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.trip_updates_url = trip_updates_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, feed_url: str) -> bytes:
        """
        Fetch raw protobuf bytes from a feed URL.

        Raises:
            FeedFetchError: On a network failure or a non-success status.
        """
        logger.debug(f"Fetching {feed_url}")
        try:
            response = self.session.get(feed_url, timeout=self.timeout, headers=NO_CACHE_HEADERS)
            response.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "error"
            logger.error(f"Failed to fetch {feed_url}: HTTP {status}")
            raise FeedFetchError(f"HTTP {status} {feed_url}") from e
        except requests.RequestException as e:
            logger.error(f"Failed to fetch {feed_url}: {e}")
            raise FeedFetchError(f"Failed to fetch {feed_url}: {e}") from e
        return response.content

    def fetch_trip_updates(self) -> List[TripUpdate]:
        """Fetch and decode the trip updates feed."""
        return decode_trip_updates(self.fetch(self.trip_updates_url))

    def count_entities(self, feed_url: str) -> int:
        """Number of entities in a feed snapshot."""
        return len(parse_feed(self.fetch(feed_url)).entity)
