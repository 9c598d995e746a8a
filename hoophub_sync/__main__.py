"""CLI entry point for HoopHub sync.

Usage:
    python -m hoophub_sync [-v] [--json-logs] [--log-file FILE] <command> ...
    python -m hoophub_sync sync [--force] [--persistence TYPE] [--csv-dir DIR] [--database-url URL]
    python -m hoophub_sync status [--json]
    python -m hoophub_sync verify [--json]

Commands:
    sync      Rebuild the CSV files from the database
    status    Show the active backend, database reachability and row counts
    verify    Compare the database and the CSV files record by record
"""

import argparse
import json
import sys
from pathlib import Path

from hoophub_sync import (
    PersistenceFacade,
    PersistenceError,
    PersistenceType,
    SyncConfig,
    __version__,
    start,
    verify_consistency,
)
from hoophub_sync.utils.logging import configure_logging


def setup_logging(config: SyncConfig) -> None:
    """Configure logging for CLI output."""
    configure_logging(config)


def build_config(args: argparse.Namespace) -> SyncConfig:
    """Build a SyncConfig from the common CLI options, creating data directories."""
    config = SyncConfig(
        persistence=args.persistence,
        csv_dir=Path(args.csv_dir),
        database_url=args.database_url,
        log_level="DEBUG" if args.verbose else "INFO",
        json_logs=args.json_logs,
        log_file=args.log_file,
    )
    config.csv_dir.mkdir(parents=True, exist_ok=True)
    if config.database_url.startswith("sqlite:///"):
        db_path = Path(config.database_url[len("sqlite:///"):])
        if str(db_path) not in ("", ":memory:"):
            db_path.parent.mkdir(parents=True, exist_ok=True)
    return config


def cmd_sync(args: argparse.Namespace, config: SyncConfig) -> int:
    """Handle the 'sync' command - bootstrap reconciliation.

    Args:
        args: Parsed CLI arguments
        config: Configuration built from the common options

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        ready = start(config)
    except PersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        result = ready.result
        if args.force and not result.performed:
            result = ready.sync_manager.force_resync()

        if args.json:
            summary = ready.to_dict()
            summary["initial_sync"] = result.to_dict()
            print(json.dumps(summary, indent=2))
        elif result.performed:
            print(f"Initial sync complete ({ready.active.value} active):")
            for family, count in result.written.items():
                print(f"  {family}: {count}")
            for family, ids in result.failed.items():
                print(f"  {family} failed: {', '.join(ids)}")
            print(f"  Duration: {result.duration_ms:.1f} ms")
        else:
            print(f"Initial sync skipped: {result.skipped_reason}")

        for error in result.errors:
            print(f"Error: {error}", file=sys.stderr)
        return 0 if result.success else 1
    finally:
        ready.facade.close()


def cmd_status(args: argparse.Namespace, config: SyncConfig) -> int:
    """Handle the 'status' command - show backend status.

    Args:
        args: Parsed CLI arguments
        config: Configuration built from the common options

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    facade = PersistenceFacade(config)
    try:
        try:
            reachable = facade.get_factory(PersistenceType.RELATIONAL).ping()
        except PersistenceError:
            reachable = False

        try:
            counts = facade.get_factory(PersistenceType.FILE).counts()
        except PersistenceError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        status = {
            "active_backend": facade.get_active_backend().value,
            "relational_reachable": reachable,
            "database_url": facade.config.database_url,
            "csv_dir": str(facade.config.csv_dir),
            "csv_counts": counts,
        }

        if args.json:
            print(json.dumps(status, indent=2))
        else:
            print(f"Active backend: {status['active_backend']}")
            print(f"Relational reachable: {reachable}")
            print(f"Database: {status['database_url']}")
            print(f"CSV directory: {status['csv_dir']}")
            for family, count in counts.items():
                print(f"  {family}: {count}")
        return 0
    finally:
        facade.close()


def cmd_verify(args: argparse.Namespace, config: SyncConfig) -> int:
    """Handle the 'verify' command - compare both backends.

    Args:
        args: Parsed CLI arguments
        config: Configuration built from the common options

    Returns:
        Exit code (0 if consistent, 1 if a resync is needed)
    """
    facade = PersistenceFacade(config)
    try:
        if not facade.get_factory(PersistenceType.RELATIONAL).ping():
            print("Error: relational backend unreachable", file=sys.stderr)
            return 1
        result = verify_consistency(facade)
    except PersistenceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        facade.close()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"Verified records: {result.verified_count}")
        for label, report in (
            ("Missing in CSV", result.missing_in_file),
            ("Extra in CSV", result.extra_in_file),
            ("Mismatched", result.mismatched),
        ):
            for family, keys in report.items():
                if keys:
                    print(f"  {label} [{family}]: {', '.join(keys)}")
        for error in result.errors:
            print(f"  Error: {error}")
        print("Consistent" if result.is_consistent else "Resync needed")

    return 1 if result.needs_resync else 0


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--persistence", choices=[p.value for p in PersistenceType],
        default=PersistenceType.RELATIONAL.value,
        help="Backend to start on (default: relational)"
    )
    parser.add_argument("--csv-dir", default="data/csv", help="CSV directory (default: data/csv)")
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy database URL (default: SQLite file beside the CSV directory)"
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="hoophub_sync",
        description="HoopHub Sync - Keep the database and the CSV files in step",
    )
    parser.add_argument(
        "--version", action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--log-file", help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Rebuild the CSV files from the database")
    _add_common_options(sync_parser)
    sync_parser.add_argument(
        "--force", action="store_true",
        help="Rebuild even if the startup sync was skipped"
    )

    # status command
    status_parser = subparsers.add_parser("status", help="Show backend status")
    _add_common_options(status_parser)

    # verify command
    verify_parser = subparsers.add_parser("verify", help="Compare database and CSV files")
    _add_common_options(verify_parser)

    return parser


def main(argv=None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    config = build_config(args)
    setup_logging(config)

    commands = {
        "sync": cmd_sync,
        "status": cmd_status,
        "verify": cmd_verify,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args, config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
