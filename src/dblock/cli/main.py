"""Command-line entry point for inspecting and exercising lock tables."""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import NoReturn

from dblock.core.config import LockConfig
from dblock.core.constants import VALID_LOG_FORMATS, VALID_LOG_LEVELS
from dblock.core.exceptions import ConfigurationError, DBLockError, LockStoreError
from dblock.core.locks.backends import SqlAlchemyLockStore
from dblock.core.locks.lease import current_time_millis
from dblock.core.locks.provider import DistributedLockProvider
from dblock.core.logging import flush_logging_handlers, setup_logging
from dblock.core.version import __version__

logger = logging.getLogger(__name__)


def _exit_error(message: str, code: int = 1) -> NoReturn:
    print(f"Error: {message}", file=sys.stderr)
    flush_logging_handlers()
    sys.exit(code)


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got '{value}'") from None
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number, got '{value}'")
    return parsed


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        prog="dblock",
        description="dblock - inspect and exercise distributed lock tables",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the lock table
  dblock --database-url postgresql://app@db/app init-db

  # Show one lock record
  dblock show job-42

  # List every lock record, JSON lines
  dblock list

  # Take a lock for 30 seconds with a 10 second lease, waiting up to 60 seconds
  dblock hold job-42 --seconds 30 --lease 10 --wait 60

Environment:
  DBLOCK_DATABASE_URL, DBLOCK_TABLE, DBLOCK_LEASE_SECONDS,
  DBLOCK_RETRY_INTERVAL, LOG_LEVEL (also read from a .env file)
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--database-url", help="SQLAlchemy URL of the lock database")
    parser.add_argument("--table", help="Lock table name (default: distributed_lock)")
    parser.add_argument("--log-level", choices=VALID_LOG_LEVELS, type=str.upper, help="Logging level")
    parser.add_argument("--log-format", choices=VALID_LOG_FORMATS, type=str.lower, help="Log output format")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the lock table if it does not exist")

    show = subparsers.add_parser("show", help="Print the record for one lock key")
    show.add_argument("lock_key")

    subparsers.add_parser("list", help="Print every lock record as JSON lines")

    hold = subparsers.add_parser("hold", help="Acquire a lock, hold it, then release it")
    hold.add_argument("lock_key")
    hold.add_argument("--seconds", type=_positive_float, default=10.0, help="How long to hold (default: 10)")
    hold.add_argument("--lease", type=_positive_float, help="Lease duration in seconds")
    hold.add_argument("--wait", type=_positive_float, help="Give up after waiting this many seconds")

    return parser.parse_args(argv)


def _record_payload(record, now_millis: int) -> dict:
    payload = record.to_dict()
    payload["expired"] = record.is_expired(now_millis)
    return payload


def _cmd_init_db(store: SqlAlchemyLockStore) -> int:
    store.create_schema()
    print(f"Lock table '{store.table.name}' is ready")
    return 0


def _cmd_show(store: SqlAlchemyLockStore, lock_key: str) -> int:
    record = store.read(lock_key)
    if record is None:
        print(f"No lock record for '{lock_key}'", file=sys.stderr)
        return 1
    print(json.dumps(_record_payload(record, current_time_millis()), sort_keys=True))
    return 0


def _cmd_list(store: SqlAlchemyLockStore) -> int:
    now = current_time_millis()
    for record in store.list_records():
        print(json.dumps(_record_payload(record, now), sort_keys=True))
    return 0


def _cmd_hold(provider: DistributedLockProvider, args: argparse.Namespace) -> int:
    lock = provider.get_lock(args.lock_key)
    if args.wait is None:
        lock.lock(lease_time=args.lease)
    elif not lock.try_lock(wait_time=args.wait, lease_time=args.lease):
        print(f"Timed out waiting for lock '{args.lock_key}'", file=sys.stderr)
        return 2

    logger.info("Holding lock '%s' for %.1fs", args.lock_key, args.seconds)
    try:
        time.sleep(args.seconds)
        lock.ensure_held()
    finally:
        lock.unlock()
    logger.info("Released lock '%s'", args.lock_key)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the script"""
    args = parse_arguments(argv)

    try:
        config = LockConfig.from_args(args, base=LockConfig.from_env())
    except ConfigurationError as e:
        _exit_error(str(e))

    setup_logging(log_level=config.log_level, log_format=config.log_format)

    try:
        store = SqlAlchemyLockStore.from_url(config.require_database_url(), table_name=config.table_name)
    except ConfigurationError as e:
        _exit_error(str(e))

    try:
        if args.command == "init-db":
            code = _cmd_init_db(store)
        elif args.command == "show":
            code = _cmd_show(store, args.lock_key)
        elif args.command == "list":
            code = _cmd_list(store)
        else:
            provider = DistributedLockProvider(
                store, lease_time=config.lease_time, retry_interval=config.retry_interval
            )
            code = _cmd_hold(provider, args)
    except LockStoreError as e:
        _exit_error(f"Lock store unavailable: {e}")
    except DBLockError as e:
        _exit_error(str(e))
    except KeyboardInterrupt:
        _exit_error("Interrupted", code=130)
    finally:
        store.dispose()

    flush_logging_handlers()
    sys.exit(code)


if __name__ == "__main__":
    main()
