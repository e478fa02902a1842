"""Tests for the client-side poller."""

import sys
import threading
import unittest
from concurrent.futures import Future
from pathlib import Path
from unittest.mock import MagicMock

# Add src to path so we can import catchthebus
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from catchthebus.poller import ArrivalPoller


class ManualExecutor:
    """Executor whose submitted calls run only when a test says so."""

    def __init__(self):
        self.calls = []

    def submit(self, fn, *args):
        future = Future()
        self.calls.append((future, fn, args))
        return future

    def begin(self, index):
        future, _, _ = self.calls[index]
        return future.set_running_or_notify_cancel()

    def finish(self, index):
        future, fn, args = self.calls[index]
        future.set_result(fn(*args))
        return future.result()

    def shutdown(self, wait=True):
        pass


def _response(body, status_code=200):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.json.return_value = body
    return response


def _board(minutes):
    return {
        "stopName": "Вардар",
        "lines": ["M1"],
        "arrivals": [{"line": "M1", "inMinutes": minutes}],
        "generatedAt": "2026-10-17T08:00:00+00:00",
    }


class TestArrivalPoller(unittest.TestCase):
    """Test tick-scoped polling."""

    def setUp(self):
        self.session = MagicMock()
        self.executor = ManualExecutor()
        self.updates = []
        self.poller = ArrivalPoller(
            "http://localhost:4000/",
            "vardar",
            on_update=self.updates.append,
            session=self.session,
            executor=self.executor,
        )

    def test_url(self):
        self.assertEqual(self.poller.url, "http://localhost:4000/arrivals/vardar")
        poller = ArrivalPoller("http://host", "два думи", session=self.session, executor=self.executor)
        self.assertTrue(poller.url.startswith("http://host/arrivals/%D0%B4"))

    def test_applies_board(self):
        self.session.get.return_value = _response(_board(5))

        self.poller.poll()
        self.executor.begin(0)
        self.assertTrue(self.executor.finish(0))

        state = self.poller.state
        self.assertEqual(state.tick, 1)
        self.assertEqual(state.board.arrivals[0].in_minutes, 5)
        self.assertTrue(state.status.startswith("Updated at"))
        self.assertEqual(self.updates, [state])
        _, kwargs = self.session.get.call_args
        self.assertEqual(kwargs["headers"], {"Cache-Control": "no-cache"})

    def test_slow_older_poll_is_discarded(self):
        """An earlier poll finishing after a later one does not overwrite it."""
        self.session.get.side_effect = [_response(_board(3)), _response(_board(9))]

        self.poller.poll()
        self.executor.begin(0)
        self.poller.poll()
        self.executor.begin(1)

        self.assertTrue(self.executor.finish(1))
        self.assertFalse(self.executor.finish(0))

        self.assertEqual(self.poller.state.tick, 2)
        self.assertEqual(len(self.updates), 1)

    def test_unstarted_poll_is_cancelled(self):
        self.session.get.return_value = _response(_board(5))

        first = self.poller.poll()
        self.poller.poll()

        self.assertTrue(first.cancelled())
        self.assertFalse(self.executor.begin(0))
        self.executor.begin(1)
        self.executor.finish(1)
        self.assertEqual(self.session.get.call_count, 1)

    def test_error_clears_previous_board(self):
        """A failed poll drops stale data and reports the server's message."""
        self.session.get.side_effect = [
            _response(_board(5)),
            _response({"error": "Static GTFS data is still loading"}, status_code=503),
        ]

        for index in range(2):
            self.poller.poll()
            self.executor.begin(index)
            self.executor.finish(index)

        state = self.poller.state
        self.assertIsNone(state.board)
        self.assertIn("HTTP 503", state.status)
        self.assertIn("still loading", state.status)

    def test_malformed_response(self):
        self.session.get.return_value = _response({"arrivals": [{"line": "M1"}]})

        self.poller.poll()
        self.executor.begin(0)
        self.executor.finish(0)

        self.assertIsNone(self.poller.state.board)
        self.assertTrue(self.poller.state.status.startswith("Error"))

    def test_non_object_body_clears_previous_board(self):
        """A JSON list or a non-object arrival is an error, not a kept board."""
        for body in (["not", "a", "board"], "board", {"arrivals": ["M1"]}):
            with self.subTest(body=body):
                executor = ManualExecutor()
                session = MagicMock()
                session.get.side_effect = [_response(_board(5)), _response(body)]
                poller = ArrivalPoller("http://host", "vardar", session=session, executor=executor)

                for index in range(2):
                    poller.poll()
                    executor.begin(index)
                    self.assertTrue(executor.finish(index))

                self.assertEqual(poller.state.tick, 2)
                self.assertIsNone(poller.state.board)
                self.assertTrue(poller.state.status.startswith("Error"))

    def test_restart_after_stop(self):
        """A stopped poller with its own executor can be started again."""
        updated = threading.Event()
        self.session.get.return_value = _response(_board(5))

        def on_update(state):
            updated.set()

        poller = ArrivalPoller(
            "http://host", "vardar", interval=60, on_update=on_update, session=self.session
        )
        for _ in range(2):
            updated.clear()
            poller.start()
            self.assertTrue(updated.wait(timeout=5))
            poller.stop()

        self.assertEqual(poller.state.tick, 2)

    def test_stop_cancels_pending(self):
        future = self.poller.poll()
        self.poller.stop()
        self.assertTrue(future.cancelled())


if __name__ == "__main__":
    unittest.main()
