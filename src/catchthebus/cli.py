"""Command line entry points: run the server or watch a stop."""

import argparse
import logging
import sys
import time
from typing import List, Optional

from .advisory import advise, find_highlight, group_by_line
from .arrival_tracker import ArrivalTracker
from .config import Settings
from .gtfs_loader import GTFSLoader
from .models import ArrivalBoard
from .poller import DEFAULT_POLL_INTERVAL, ArrivalPoller, PollState

logger = logging.getLogger(__name__)

DEFAULT_WALK_MINUTES = 7
DEFAULT_BUFFER_MINUTES = 2


def render_board(
    board: Optional[ArrivalBoard],
    walk_minutes: int,
    buffer_minutes: int,
    by_line: bool = False,
) -> List[str]:
    """
    Format a board as text lines with leave-by advice.

    The first arrival that can still be caught is marked with '>'; with
    by_line the mark is chosen separately within each line.
    """
    if board is None:
        return ["No upcoming arrivals."]

    title = f"{board.stop_name} - Live Arrivals" if board.stop_name else "Live Arrivals"
    lines = [title, f"Lines: {', '.join(board.lines) if board.lines else '-'}"]
    if not board.arrivals:
        lines.append("No upcoming arrivals.")
        return lines

    if by_line:
        highlighted = set()
        for line in group_by_line(board.arrivals):
            index = find_highlight(board.arrivals, walk_minutes, buffer_minutes, line=line)
            if index is not None:
                highlighted.add(index)
    else:
        index = find_highlight(board.arrivals, walk_minutes, buffer_minutes)
        highlighted = {index} if index is not None else set()

    for index, arrival in enumerate(board.arrivals):
        advice = advise(arrival.in_minutes, walk_minutes, buffer_minutes)
        marker = ">" if index in highlighted else " "
        direction = f" {arrival.direction}" if arrival.direction else ""
        lines.append(
            f"{marker} Line {arrival.line or '?'}{direction}: "
            f"arrives in {arrival.in_minutes} min, {advice.label}"
        )
    if board.error:
        lines.append(board.error)
    return lines


def _serve(args: argparse.Namespace, settings: Settings) -> int:
    from .app import create_app

    tracker = ArrivalTracker(settings)
    tracker.start()
    app = create_app(settings, tracker)
    logger.info(f"Serving arrivals for '{settings.stop_key}' on http://{settings.host}:{settings.port}")
    app.run(host=settings.host, port=settings.port)
    return 0


def _watch(args: argparse.Namespace, settings: Settings) -> int:
    walk = max(0, args.walk)
    buffer = max(0, args.buffer)

    def show(state: PollState) -> None:
        print("\n".join(render_board(state.board, walk, buffer, by_line=args.by_line)))
        print(state.status)
        print()

    base_url = args.base_url or f"http://{settings.host}:{settings.port}"
    poller = ArrivalPoller(
        base_url,
        args.stop or settings.stop_key,
        interval=args.interval,
        on_update=show,
        timeout=settings.request_timeout,
    )
    if args.once:
        poller.poll().result()
        poller.stop()
        return 0 if poller.state.board is not None else 1

    poller.start()
    try:
        while True:
            time.sleep(3600)
    except KeyboardInterrupt:
        pass
    finally:
        poller.stop()
    return 0


def _stops(args: argparse.Namespace, settings: Settings) -> int:
    loader = GTFSLoader(
        settings.target_name, static_url=settings.static_url, timeout=settings.request_timeout
    )
    if not loader.load():
        print(f"Error: {loader.reference.last_error}")
        return 1
    reference = loader.reference
    if not reference.target_stop_ids:
        print(f"No stops matching '{settings.target_name}'")
        return 1
    for stop_id in sorted(reference.target_stop_ids):
        print(f"{stop_id}: {reference.stops[stop_id].name}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catchthebus", description="Live arrivals for one stop")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the arrivals HTTP server")
    serve.set_defaults(handler=_serve)

    watch = subparsers.add_parser("watch", help="Poll a server and show when to leave")
    watch.add_argument("--base-url", help="Server URL (default: configured host and port)")
    watch.add_argument("--stop", help="Stop key (default: configured stop key)")
    watch.add_argument("--walk", type=int, default=DEFAULT_WALK_MINUTES, help="Walk time in minutes")
    watch.add_argument("--buffer", type=int, default=DEFAULT_BUFFER_MINUTES, help="Safety buffer in minutes")
    watch.add_argument("--interval", type=float, default=DEFAULT_POLL_INTERVAL, help="Seconds between polls")
    watch.add_argument("--by-line", action="store_true", help="Highlight one arrival per line")
    watch.add_argument("--once", action="store_true", help="Poll once and exit")
    watch.set_defaults(handler=_watch)

    stops = subparsers.add_parser("stops", help="List stop ids matching the target name")
    stops.set_defaults(handler=_stops)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return args.handler(args, Settings.from_env())


if __name__ == "__main__":
    sys.exit(main())
