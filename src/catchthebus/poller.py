"""Client-side polling of the arrivals endpoint."""

import logging
import threading
from urllib.parse import quote
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from .models import ArrivalBoard

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 15.0


@dataclass(frozen=True)
class PollState:
    """What the consumer should display after a poll."""
    tick: int
    board: Optional[ArrivalBoard]
    status: str


class ArrivalPoller:
    """
    Polls the arrivals endpoint at a fixed interval.

    Every poll belongs to a tick. Issuing a new tick cancels older polls
    that have not started yet, and a response is only applied if its tick
    is newer than the last applied one, so a slow early response can never
    overwrite a later one. An older tick that finishes before any newer
    tick has been applied is still shown rather than discarded.
    """

    def __init__(
        self,
        base_url: str,
        stop_key: str,
        interval: float = DEFAULT_POLL_INTERVAL,
        on_update: Optional[Callable[[PollState], None]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        executor: Optional[Executor] = None,
    ):
        self.url = f"{base_url.rstrip('/')}/arrivals/{quote(stop_key, safe='')}"
        self.interval = interval
        self.on_update = on_update
        self.session = session or requests.Session()
        self.timeout = timeout
        self._owns_executor = executor is None
        self._executor_shut_down = False
        self._executor = executor or self._new_executor()
        self._lock = threading.Lock()
        self._issued_tick = 0
        self._applied_tick = 0
        self._pending: Dict[int, Future] = {}
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.state = PollState(tick=0, board=None, status="Idle")

    def fetch_board(self) -> ArrivalBoard:
        """
        Fetch one board from the server.

        Raises:
            requests.RequestException: On network failure or an error status.
            ValueError: If the body is not a valid arrivals document.
        """
        response = self.session.get(
            self.url, timeout=self.timeout, headers={"Cache-Control": "no-cache"}
        )
        if not response.ok:
            raise requests.HTTPError(_describe_error(response), response=response)
        try:
            return ArrivalBoard.from_dict(response.json())
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Malformed arrivals response: {e}") from e

    def poll(self) -> Future:
        """Issue a poll for a new tick."""
        with self._lock:
            self._issued_tick += 1
            tick = self._issued_tick
            for old_tick, future in list(self._pending.items()):
                if future.done() or future.cancel():
                    del self._pending[old_tick]
            future = self._executor.submit(self._run, tick)
            self._pending[tick] = future
        logger.debug(f"Issued poll {tick} for {self.url}")
        return future

    def _run(self, tick: int) -> bool:
        try:
            board = self.fetch_board()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Poll {tick} failed: {e}")
            return self._apply(tick, None, f"Error: {e}")
        status = f"Updated at {board.generated_at.astimezone().strftime('%H:%M:%S')}"
        return self._apply(tick, board, status)

    def _apply(self, tick: int, board: Optional[ArrivalBoard], status: str) -> bool:
        with self._lock:
            self._pending.pop(tick, None)
            if tick <= self._applied_tick:
                logger.debug(f"Discarding poll {tick}; poll {self._applied_tick} already applied")
                return False
            self._applied_tick = tick
            # A failed poll drops the previous board instead of leaving it on screen
            self.state = PollState(tick=tick, board=board, status=status)
            state = self.state
        if self.on_update is not None:
            self.on_update(state)
        return True

    def start(self) -> None:
        """Poll immediately, then every `interval` seconds until stopped."""
        if self._thread is not None:
            return
        if self._owns_executor and self._executor_shut_down:
            self._executor = self._new_executor()
            self._executor_shut_down = False
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="arrival-poller", daemon=True)
        self._thread.start()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll()
            self._stop_event.wait(self.interval)

    def stop(self) -> None:
        """Stop polling and drop polls that have not started."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval)
            self._thread = None
        with self._lock:
            for future in self._pending.values():
                future.cancel()
            self._pending.clear()
        self._executor.shutdown(wait=False)
        self._executor_shut_down = True

    @staticmethod
    def _new_executor() -> Executor:
        return ThreadPoolExecutor(max_workers=4, thread_name_prefix="arrival-poll")


def _describe_error(response: requests.Response) -> str:
    message = f"HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return message
    if isinstance(body, dict) and body.get("error"):
        message = f"{message}: {body['error']}"
    return message
