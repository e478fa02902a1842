"""GTFS static data loader for the monitored stop."""

import io
import logging
import threading
import zipfile
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

import pandas as pd
import requests

from .config import DEFAULT_STATIC_URL
from .exceptions import ReferenceUnavailable
from .models import RouteRecord, StopRecord

logger = logging.getLogger(__name__)

UNKNOWN_ROUTE_LABEL = "?"

STOP_COLUMNS = ["stop_id", "stop_name"]
ROUTE_COLUMNS = ["route_id", "route_short_name", "route_long_name"]


class StaticReference:
    """
    Read-only stop and route indexes, installed once after startup.

    Readers must check `is_ready` (or call `require_ready()`) before use.
    Until an index is installed every mapping is empty, and an index is
    only ever installed whole.
    """

    def __init__(self, target_name: str = ""):
        self.target_name = target_name
        self._lock = threading.Lock()
        self._stops: Mapping[str, StopRecord] = MappingProxyType({})
        self._routes: Mapping[str, RouteRecord] = MappingProxyType({})
        self._target_stop_ids: FrozenSet[str] = frozenset()
        self._loaded = threading.Event()
        self.loaded_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def stops(self) -> Mapping[str, StopRecord]:
        return self._stops

    @property
    def routes(self) -> Mapping[str, RouteRecord]:
        return self._routes

    @property
    def target_stop_ids(self) -> FrozenSet[str]:
        return self._target_stop_ids

    @property
    def is_loaded(self) -> bool:
        return self._loaded.is_set()

    @property
    def is_ready(self) -> bool:
        """True once indexes are installed and the target stop set is non-empty."""
        return self.is_loaded and bool(self._target_stop_ids)

    def install(
        self,
        stops: Dict[str, StopRecord],
        routes: Dict[str, RouteRecord],
        target_stop_ids: Iterable[str],
    ) -> None:
        """Publish a fully built set of indexes."""
        with self._lock:
            self._stops = MappingProxyType(dict(stops))
            self._routes = MappingProxyType(dict(routes))
            self._target_stop_ids = frozenset(target_stop_ids)
            self.loaded_at = datetime.now(timezone.utc)
            self.last_error = None
            self._loaded.set()

    def mark_failed(self, error: BaseException) -> None:
        """Record a failed load; indexes stay as they were."""
        with self._lock:
            self.last_error = str(error) or error.__class__.__name__

    def wait_until_loaded(self, timeout: Optional[float] = None) -> bool:
        return self._loaded.wait(timeout)

    def require_ready(self) -> None:
        """
        Raise unless the target stop set can be used for correlation.

        Raises:
            ReferenceUnavailable: With a message describing why.
        """
        if self.is_ready:
            return
        if self.last_error is not None:
            raise ReferenceUnavailable(f"Static GTFS data failed to load: {self.last_error}")
        if not self.is_loaded:
            raise ReferenceUnavailable("Static GTFS data is still loading")
        raise ReferenceUnavailable(
            f"No stops matching '{self.target_name}' in static GTFS data"
        )

    def route_label(self, route_id: Optional[str]) -> str:
        """Short route label, else the raw route id, else a placeholder."""
        route = self._routes.get(route_id or "")
        if route is not None and route.short_label:
            return route.short_label
        return route_id or UNKNOWN_ROUTE_LABEL


def find_target_stop_ids(stops: Iterable[StopRecord], target_name: str) -> FrozenSet[str]:
    """
    Collect every stop id whose name contains target_name.

    Matching ignores case but does no other normalization, so several
    platforms sharing a display name are all captured.
    """
    needle = target_name.lower()
    if not needle:
        return frozenset()
    return frozenset(stop.stop_id for stop in stops if needle in stop.name.lower())


class GTFSLoader:
    """Downloads and indexes GTFS static stops and routes."""

    def __init__(
        self,
        target_name: str,
        static_url: str = DEFAULT_STATIC_URL,
        timeout: float = 10.0,
        reference: Optional[StaticReference] = None,
        session: Optional[requests.Session] = None,
    ):
        self.target_name = target_name
        self.static_url = static_url
        self.timeout = timeout
        self.reference = reference if reference is not None else StaticReference(target_name)
        self.session = session or requests.Session()
        self._thread: Optional[threading.Thread] = None

    def load_from_url(self) -> None:
        """Download the static GTFS archive and install its indexes."""
        logger.info(f"Downloading GTFS static data from {self.static_url}")
        response = self.session.get(self.static_url, timeout=self.timeout)
        response.raise_for_status()
        self.load_from_zip(response.content)

    def load_from_zip(self, data: bytes) -> None:
        """Index stops.txt and routes.txt from an in-memory GTFS archive."""
        with zipfile.ZipFile(io.BytesIO(data)) as zip_file:
            stops_csv = zip_file.read("stops.txt").decode("utf-8-sig")
            routes_csv = zip_file.read("routes.txt").decode("utf-8-sig")
        self._install(stops_csv, routes_csv)

    def load_from_files(self, stops_path: str, routes_path: str) -> None:
        """Load GTFS data from local CSV files."""
        logger.info("Loading GTFS static data from local files")
        with open(stops_path, "r", encoding="utf-8-sig") as f:
            stops_csv = f.read()
        with open(routes_path, "r", encoding="utf-8-sig") as f:
            routes_csv = f.read()
        self._install(stops_csv, routes_csv)

    def load(self) -> bool:
        """
        Load from the configured URL, leaving indexes empty on failure.

        Returns:
            True if the indexes were installed.
        """
        try:
            self.load_from_url()
        except Exception as e:
            logger.error(f"Failed to load GTFS static data: {e}", exc_info=True)
            self.reference.mark_failed(e)
            return False
        return True

    def start_background_load(self) -> threading.Thread:
        """Run `load()` once on a daemon thread."""
        if self._thread is None:
            self._thread = threading.Thread(target=self.load, name="gtfs-static-loader", daemon=True)
            self._thread.start()
        return self._thread

    def _install(self, stops_csv: str, routes_csv: str) -> None:
        # Parse everything before publishing so a bad file leaves no partial index
        stops = self._parse_stops(stops_csv)
        routes = self._parse_routes(routes_csv)
        target_stop_ids = find_target_stop_ids(stops.values(), self.target_name)
        self.reference.install(stops, routes, target_stop_ids)

        logger.info(f"Loaded {len(stops)} stops and {len(routes)} routes")
        if target_stop_ids:
            logger.info(
                f"Stop ids matching '{self.target_name}': {', '.join(sorted(target_stop_ids))}"
            )
        else:
            logger.warning(f"Could not find '{self.target_name}' in stops.txt")

    @staticmethod
    def _read_table(csv_content: str, columns, required: str) -> pd.DataFrame:
        frame = pd.read_csv(
            io.StringIO(csv_content),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
        frame.columns = [column.strip() for column in frame.columns]
        if required not in frame.columns:
            raise ValueError(f"GTFS table is missing required column '{required}'")
        frame = frame.reindex(columns=columns, fill_value="").fillna("").astype(str)
        return frame.apply(lambda column: column.str.strip())

    def _parse_stops(self, csv_content: str) -> Dict[str, StopRecord]:
        """Parse stops.txt into StopRecord objects keyed by stop_id."""
        frame = self._read_table(csv_content, STOP_COLUMNS, "stop_id")
        stops: Dict[str, StopRecord] = {}
        for stop_id, stop_name in zip(frame["stop_id"], frame["stop_name"]):
            if not stop_id:
                continue
            stops[stop_id] = StopRecord(stop_id=stop_id, name=stop_name)
        return stops

    def _parse_routes(self, csv_content: str) -> Dict[str, RouteRecord]:
        """Parse routes.txt into RouteRecord objects keyed by route_id."""
        frame = self._read_table(csv_content, ROUTE_COLUMNS, "route_id")
        routes: Dict[str, RouteRecord] = {}
        for route_id, short_name, long_name in zip(
            frame["route_id"], frame["route_short_name"], frame["route_long_name"]
        ):
            if not route_id:
                continue
            routes[route_id] = RouteRecord(
                route_id=route_id, short_label=short_name, long_label=long_name
            )
        return routes
