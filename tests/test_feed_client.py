"""Tests for GTFS-Realtime fetching and decoding."""

import sys
import unittest
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import requests
from google.transit import gtfs_realtime_pb2

# Add src to path so we can import catchthebus
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from catchthebus.correlator import correlate_arrivals
from catchthebus.exceptions import DecodeError, FeedFetchError
from catchthebus.feed_client import FeedClient, decode_trip_updates, normalize_timestamp

from feed_fixtures import build_feed, build_vehicle_feed

NOW = 1_700_000_000


class TestNormalizeTimestamp(unittest.TestCase):
    """Test conversion of decoded epoch values to plain ints."""

    def test_native_int(self):
        self.assertEqual(normalize_timestamp(NOW), NOW)

    def test_wide_integer_wrapper(self):
        """64-bit values split into low/high words are recombined."""
        wrapper = SimpleNamespace(low=NOW, high=0, unsigned=False)
        self.assertEqual(normalize_timestamp(wrapper), NOW)

        beyond_32_bits = SimpleNamespace(low=5, high=1)
        self.assertEqual(normalize_timestamp(beyond_32_bits), (1 << 32) + 5)

    def test_negative_low_word(self):
        """A low word reported as a signed 32-bit value is treated as unsigned."""
        value = 3_000_000_000
        wrapper = SimpleNamespace(low=value - (1 << 32), high=0)
        self.assertEqual(normalize_timestamp(wrapper), value)

    def test_json_int64_string(self):
        """Protobuf's JSON mapping renders int64 as a string."""
        self.assertEqual(normalize_timestamp(str(NOW)), NOW)

    def test_integer_like(self):
        class Index:
            def __index__(self):
                return NOW

        self.assertEqual(normalize_timestamp(Index()), NOW)

    def test_missing(self):
        self.assertIsNone(normalize_timestamp(None))

    def test_invalid_values(self):
        for value in ("soon", 1.5, True, object()):
            with self.subTest(value=value):
                with self.assertRaises(DecodeError):
                    normalize_timestamp(value)


class TestDecodeTripUpdates(unittest.TestCase):
    """Test decoding of FeedMessage payloads."""

    def test_decodes_routes_and_stop_times(self):
        """Stop time updates keep feed order and both event times."""
        feed = build_feed([
            ("R1", [("A1", NOW + 60, NOW + 90), ("A2", None, NOW + 300)]),
        ])

        trip_updates = decode_trip_updates(feed)

        self.assertEqual(len(trip_updates), 1)
        trip = trip_updates[0]
        self.assertEqual(trip.route_id, "R1")
        self.assertEqual(trip.trip_id, "trip-1")
        self.assertIsNone(trip.headsign)
        self.assertEqual([stu.stop_id for stu in trip.stop_time_updates], ["A1", "A2"])

        first, second = trip.stop_time_updates
        self.assertEqual(first.arrival_time, NOW + 60)
        self.assertEqual(first.departure_time, NOW + 90)
        self.assertEqual(first.event_time, NOW + 60)
        self.assertIsNone(second.arrival_time)
        self.assertEqual(second.event_time, NOW + 300)
        self.assertIsNone(second.headsign)

    def _require_headsign_fields(self):
        stop_properties = getattr(gtfs_realtime_pb2.TripUpdate.StopTimeUpdate, "StopTimeProperties", None)
        trip_properties = getattr(gtfs_realtime_pb2.TripUpdate, "TripProperties", None)
        if (
            stop_properties is None
            or trip_properties is None
            or "stop_headsign" not in stop_properties.DESCRIPTOR.fields_by_name
            or "trip_headsign" not in trip_properties.DESCRIPTOR.fields_by_name
        ):
            self.skipTest("installed gtfs-realtime-bindings has no headsign fields")

    def test_decodes_stop_and_trip_headsigns(self):
        """Both headsign fields are read from their properties messages."""
        self._require_headsign_fields()
        feed = build_feed([
            ("R1", [("A1", NOW + 60, None, "Airport"), ("A2", NOW + 120, None)], "Depot"),
        ])

        trip = decode_trip_updates(feed)[0]

        self.assertEqual(trip.headsign, "Depot")
        self.assertEqual([stu.headsign for stu in trip.stop_time_updates], ["Airport", None])

    def test_trip_headsign_only(self):
        """Without a stop headsign the direction comes from the trip."""
        self._require_headsign_fields()
        feed = build_feed([("R1", [("A1", NOW + 60, None)], "Depot")])

        trip = decode_trip_updates(feed)[0]
        arrivals = correlate_arrivals([trip], {"A1"}, lambda route_id: route_id, NOW)

        self.assertIsNone(trip.stop_time_updates[0].headsign)
        self.assertEqual(arrivals[0].direction, "Depot")

    def test_stop_headsign_wins_after_decoding(self):
        self._require_headsign_fields()
        feed = build_feed([("R1", [("A1", NOW + 60, None, "Airport")], "Depot")])

        arrivals = correlate_arrivals(decode_trip_updates(feed), {"A1"}, lambda route_id: route_id, NOW)

        self.assertEqual(arrivals[0].direction, "Airport")

    def test_stop_time_without_times(self):
        feed = build_feed([("R1", [("A1", None, None)])])
        stop_time = decode_trip_updates(feed)[0].stop_time_updates[0]
        self.assertIsNone(stop_time.event_time)

    def test_skips_non_trip_entities(self):
        self.assertEqual(decode_trip_updates(build_vehicle_feed(3)), [])

    def test_malformed_payload(self):
        """Garbage bytes raise DecodeError, which is a FeedFetchError."""
        with self.assertRaises(DecodeError):
            decode_trip_updates(b"\xff\xff\xff\xff")
        self.assertTrue(issubclass(DecodeError, FeedFetchError))


class TestFeedClient(unittest.TestCase):
    """Test fetching the live feed."""

    def setUp(self):
        self.session = MagicMock()
        self.client = FeedClient("http://test/trip-updates", session=self.session)

    def test_fetch_trip_updates(self):
        """Every call goes to the network with no-cache headers."""
        self.session.get.return_value.content = build_feed([("R1", [("A1", NOW, None)])])

        self.assertEqual(len(self.client.fetch_trip_updates()), 1)
        self.assertEqual(len(self.client.fetch_trip_updates()), 1)

        self.assertEqual(self.session.get.call_count, 2)
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["headers"]["Cache-Control"], "no-cache")

    def test_http_error_status(self):
        """Non-success responses raise FeedFetchError."""
        response = MagicMock(status_code=503)
        self.session.get.return_value.raise_for_status.side_effect = requests.HTTPError(
            "503 Server Error", response=response
        )

        with self.assertRaises(FeedFetchError) as ctx:
            self.client.fetch_trip_updates()
        self.assertIn("503", str(ctx.exception))

    def test_network_error(self):
        self.session.get.side_effect = requests.Timeout("timed out")
        with self.assertRaises(FeedFetchError):
            self.client.fetch_trip_updates()

    def test_count_entities(self):
        self.session.get.return_value.content = build_vehicle_feed(4)
        self.assertEqual(self.client.count_entities("http://test/vehicle-positions"), 4)


if __name__ == "__main__":
    unittest.main()
