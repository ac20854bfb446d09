"""
mimir_tracker.cli
-----------------
Process entry point: `mimir-tracker [IPv6]:port`.
"""

from __future__ import annotations
import argparse
from typing import List, Optional

from . import __version__
from .constants import DEFAULT_DB_PATH
from .logger import LOG_LEVELS, get_logger
from .storage import StorageError, load_storage_provider
from .tracker import TrackerService
from .transport import TransportPermanentError

USAGE = "Usage: mimir-tracker [IPv6]:port"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mimir-tracker", description="Mimir peer-discovery tracker")
    parser.add_argument("listen", nargs="?", help="address to listen on, e.g. [::]:5050")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help=f"SQLite database path (default: {DEFAULT_DB_PATH})")
    parser.add_argument("--storage", choices=["sqlite", "memory"], default="sqlite", help="storage backend")
    parser.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default="INFO",
                        help="logging level (default: INFO)")
    parser.add_argument("--log-file", help="also write log lines to this file")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    print(f"Mimir tracker {__version__}")

    if not args.listen:
        print(USAGE)
        return 0

    log = get_logger("Tracker", level=args.log_level, to_file=args.log_file)

    try:
        storage = load_storage_provider({"provider": args.storage, "sqlite_path": args.db})
    except StorageError as e:
        log.error(f"[TRACKER] {e}")
        return 1

    service = TrackerService(args.listen, storage)
    try:
        thread = service.start()
    except TransportPermanentError as e:
        log.error(f"[TRACKER] {e}")
        storage.close()
        return 1

    try:
        thread.join()
    except KeyboardInterrupt:
        log.info("[TRACKER] interrupted, shutting down")
    finally:
        service.stop()
    return 0
