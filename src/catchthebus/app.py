"""Flask app serving live arrivals for the monitored stop."""

import logging
from typing import Any, Optional

from flask import Flask, jsonify
from flask_cors import CORS

from .arrival_tracker import ArrivalTracker
from .config import Settings
from .exceptions import FeedFetchError, ReferenceUnavailable, UnknownStopError

logger = logging.getLogger(__name__)


def _error(message: str, status: int) -> Any:
    return jsonify({"error": message}), status


def create_app(settings: Optional[Settings] = None, tracker: Optional[ArrivalTracker] = None) -> Flask:
    """
    Build the Flask app.

    The static GTFS load is not started here; call `tracker.start()` (the
    `serve` command does) so tests can supply their own indexes.
    """
    settings = settings or Settings()
    tracker = tracker or ArrivalTracker(settings)

    app = Flask(__name__)
    app.json.ensure_ascii = False
    CORS(app)
    app.extensions["arrival_tracker"] = tracker

    @app.route("/arrivals/<stop_key>")
    def arrivals(stop_key: str) -> Any:
        try:
            board = tracker.get_board(stop_key)
        except UnknownStopError as e:
            return _error(str(e), 404)
        except ReferenceUnavailable as e:
            logger.warning(f"Arrivals requested before static data is ready: {e}")
            return _error(str(e), 503)
        except FeedFetchError as e:
            return _error(str(e), 500)
        return jsonify(board.to_dict())

    @app.route("/health")
    def health() -> Any:
        return jsonify({"ok": True, "referenceReady": tracker.reference.is_ready})

    @app.route("/debug/stops")
    def debug_stops() -> Any:
        stop_ids = sorted(tracker.reference.target_stop_ids)
        return jsonify({"count": len(stop_ids), "stopIds": stop_ids})

    @app.route("/debug/trip-updates")
    def debug_trip_updates() -> Any:
        return _entity_count(tracker, settings.trip_updates_url)

    @app.route("/debug/vehicle-positions")
    def debug_vehicle_positions() -> Any:
        return _entity_count(tracker, settings.vehicle_positions_url)

    return app


def _entity_count(tracker: ArrivalTracker, feed_url: str) -> Any:
    try:
        count = tracker.feed_client.count_entities(feed_url)
    except FeedFetchError as e:
        return _error(str(e), 500)
    return jsonify({"entities": count})
