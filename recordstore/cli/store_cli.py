"""
Admin CLI for inspecting and maintaining a local record store.

Usage:
    python -m recordstore.cli.store_cli list [--limit <n>]
    python -m recordstore.cli.store_cli show --record-id <id>
    python -m recordstore.cli.store_cli delete --record-id <id>
    python -m recordstore.cli.store_cli export [--output <path>]
    python -m recordstore.cli.store_cli stats
    python -m recordstore.cli.store_cli migrate

Global options:
    --config <yaml>     YAML file with a ``store`` section
    --env-file <path>   .env file with RECORD_STORE_* overrides
    --db-path <path>    Database file (overrides config and environment)
"""

import argparse
import json
import sys
from collections import Counter
from datetime import datetime
from typing import Any, TextIO

from recordstore.config import StoreConfig, load_config
from recordstore.core.errors import StoreReadFailed, StoreUnavailable
from recordstore.core.models import LookupStatus, RecordSummary
from recordstore.observability.logger import configure_logging, get_logger, log_operation
from recordstore.storage.record_store import RecordStore
from recordstore.storage.schema_mgmt import LATEST_VERSION, SchemaManager
from recordstore.utils.validation import ValidationError, validate_limit, validate_record_id

logger = get_logger(__name__)


def format_timestamp(ts: datetime | None) -> str:
    """Format timestamp for display."""
    return ts.strftime("%Y-%m-%d %H:%M:%S %Z").strip() if ts else "N/A"


def build_config(args) -> StoreConfig:
    """Resolve the effective configuration from files, environment and flags."""
    config = load_config(args.config, args.env_file)
    if args.db_path:
        config = config.model_copy(update={"db_path": args.db_path, "in_memory": False})
    configure_logging(config.log_level, config.log_format)
    return config


def summary_to_dict(summary: RecordSummary) -> dict[str, Any]:
    """Flatten a summary into a JSON-ready dict for export."""
    constants = summary.constants.model_dump(mode="json") if summary.constants else None
    return {
        "id": summary.id,
        "schema_version": summary.schema_version,
        "entered_at": summary.entered_at.isoformat() if summary.entered_at else None,
        "updated_at": summary.updated_at.isoformat() if summary.updated_at else None,
        "constants": constants,
        "data": summary.data,
        "errors": [str(e) for e in summary.enum_errors] + ([str(summary.error)] if summary.error else []),
    }


def list_command(store: RecordStore, args, out: TextIO) -> int:
    """
    List records newest first.

    Args:
        store: Open record store
        args: Command line arguments
        out: Output stream
    """
    limit = validate_limit(args.limit)

    print(f"{'ID':>6}  {'Entered':<26} {'Updated':<26} {'Schema':<38} {'Weather':<14} Light", file=out)
    print(f"{'-' * 120}", file=out)

    shown = 0
    for summary in store.list_all():
        if shown >= limit:
            break
        constants = summary.constants
        weather = constants.weather.to_token() if constants and constants.weather else "-"
        light = constants.light.to_token() if constants and constants.light else "-"
        flag = "  [corrupt]" if summary.error else ""
        print(
            f"{summary.id:>6}  {format_timestamp(summary.entered_at):<26} "
            f"{format_timestamp(summary.updated_at):<26} {summary.schema_version:<38} "
            f"{weather:<14} {light}{flag}",
            file=out,
        )
        shown += 1

    print(f"\n{shown} record(s) shown", file=out)
    return 0


def show_command(store: RecordStore, args, out: TextIO) -> int:
    """Print one record with its constants and body."""
    record_id = validate_record_id(args.record_id)
    lookup = store.get_by_id(record_id)

    if lookup.status == LookupStatus.NOT_FOUND:
        print(f"\nNo record found with ID: {record_id}", file=out)
        return 1

    if lookup.status == LookupStatus.READ_FAILED:
        print(f"\nError: {lookup.error}", file=out)
        return 2

    print(f"\n{'=' * 60}", file=out)
    print(f"RECORD {record_id} ({lookup.status.value})", file=out)
    print(f"{'=' * 60}\n", file=out)

    record = lookup.record
    if record is not None:
        constants = record.constants
        print(f"  Schema version: {record.schema_version}", file=out)
        print(f"  Entered:        {format_timestamp(record.entered_at)}", file=out)
        print(f"  Updated:        {format_timestamp(record.updated_at)}", file=out)
        print(f"  Occurred:       {format_timestamp(constants.occurred_from)}", file=out)
        if constants.location is not None:
            print(f"  Location:       {constants.location.latitude}, {constants.location.longitude}", file=out)
        else:
            print("  Location:       N/A", file=out)
        print(f"  Weather:        {constants.weather.to_token() if constants.weather else 'N/A'}", file=out)
        print(f"  Light:          {constants.light.to_token() if constants.light else 'N/A'}", file=out)

    for unknown in lookup.enum_errors:
        print(f"  Warning: {unknown}", file=out)

    if lookup.error is not None:
        print(f"\n  Error: {lookup.error}", file=out)
        raw = store.get_serialized_record(record_id)
        print(f"  Raw data: {raw!r}", file=out)
        return 2

    print("\nBody:", file=out)
    print(json.dumps(record.body, indent=2, sort_keys=True, ensure_ascii=False), file=out)
    return 0


def delete_command(store: RecordStore, args, out: TextIO) -> int:
    """Delete one record."""
    record_id = validate_record_id(args.record_id)
    result = store.delete(record_id)

    if result.success:
        print(f"Deleted record {record_id}", file=out)
        return 0
    if result.not_found:
        print(f"No record found with ID: {record_id}", file=out)
        return 1
    print(f"Delete failed for record {record_id}: {result.error}", file=out)
    return 2


def export_command(store: RecordStore, args, out: TextIO) -> int:
    """Write all records as JSON lines, newest first."""
    target = open(args.output, "w", encoding="utf-8") if args.output else out
    exported = 0
    try:
        with log_operation("Exporting records", logger=logger, db_path=store.name):
            for summary in store.list_all():
                target.write(json.dumps(summary_to_dict(summary), ensure_ascii=False) + "\n")
                exported += 1
    finally:
        if args.output:
            target.close()

    if args.output:
        print(f"Exported {exported} record(s) to {args.output}", file=out)
    return 0


def stats_command(store: RecordStore, args, out: TextIO) -> int:
    """Display record counts and data-integrity problems."""
    schema_counts: Counter = Counter()
    corrupt_rows = 0
    unknown_tokens = 0
    total = 0

    for summary in store.list_all():
        total += 1
        schema_counts[summary.schema_version] += 1
        if summary.error:
            corrupt_rows += 1
        unknown_tokens += len(summary.enum_errors)

    print(f"\n{'=' * 60}", file=out)
    print("RECORD STORE STATISTICS", file=out)
    print(f"Database: {store.name}", file=out)
    print(f"{'=' * 60}\n", file=out)

    print(f"  Total records:        {total}", file=out)
    print(f"  Corrupt rows:         {corrupt_rows}", file=out)
    print(f"  Unknown enum tokens:  {unknown_tokens}\n", file=out)

    if schema_counts:
        print("Records by Schema Version:", file=out)
        for schema_version, count in schema_counts.most_common():
            print(f"  {schema_version:<40} {count:>8}", file=out)
    return 0


def migrate_command(store: RecordStore, args, out: TextIO) -> int:
    """Report the schema version (opening the store already applied pending migrations)."""
    version = SchemaManager(store.connection).current_version()
    print(f"Schema version {version} (latest {LATEST_VERSION})", file=out)
    return 0


COMMANDS = {
    "list": list_command,
    "show": show_command,
    "delete": delete_command,
    "export": export_command,
    "stats": stats_command,
    "migrate": migrate_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Record store administration CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="YAML configuration file (optional)")
    parser.add_argument("--env-file", help=".env file with RECORD_STORE_* overrides (optional)")
    parser.add_argument("--db-path", help="Database file (overrides configuration)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    list_parser = subparsers.add_parser("list", help="List records, newest first")
    list_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of records to display (default: 50)"
    )

    show_parser = subparsers.add_parser("show", help="Show one record")
    show_parser.add_argument("--record-id", type=int, required=True, help="Record ID to show")

    delete_parser = subparsers.add_parser("delete", help="Delete one record")
    delete_parser.add_argument("--record-id", type=int, required=True, help="Record ID to delete")

    export_parser = subparsers.add_parser("export", help="Export all records as JSON lines")
    export_parser.add_argument("--output", help="Output file (default: stdout)")

    subparsers.add_parser("stats", help="Display record store statistics")
    subparsers.add_parser("migrate", help="Apply pending migrations on open and report the schema version")

    return parser


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    out = out or sys.stdout

    if not args.command:
        parser.print_help(file=out)
        return 1

    try:
        config = build_config(args)
        store = RecordStore.from_config(config)
    except StoreUnavailable as e:
        print(f"\nError: {e}", file=out)
        return 3
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"\nError: {e}", file=out)
        return 1

    try:
        return COMMANDS[args.command](store, args, out)
    except ValidationError as e:
        print(f"\nError: {e}", file=out)
        return 1
    except StoreReadFailed as e:
        print(f"\nError: {e}", file=out)
        return 2
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=out)
        return 130
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
