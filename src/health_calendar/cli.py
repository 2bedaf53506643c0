"""CLI for statistics, charts and calendar sync."""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta
from pathlib import Path

from .config import Settings, get_settings
from .errors import HealthCalendarError
from .export_source import ExportFileSampleSource
from .http_sink import HttpRecordSink
from .logging import setup_logging
from .service import HealthCalendarService
from .store import SQLiteKeyValueStore
from .tracing import setup_tracing


def parse_date(date_str: str) -> date:
    """Parse date string in YYYY-MM-DD format."""
    return datetime.strptime(date_str, "%Y-%m-%d").date()


def build_service(
    settings: Settings, export_path: Path | None, sink: HttpRecordSink | None = None
) -> HealthCalendarService:
    path = export_path or settings.source.export_path
    if not path:
        raise HealthCalendarError("No export file given (use --export or SOURCE_EXPORT_PATH)")
    tz = settings.app.tzinfo
    source = ExportFileSampleSource(path, tz=tz)
    store = SQLiteKeyValueStore(settings.ledger.db_path)
    return HealthCalendarService(
        source, store, sink, tz=tz, ledger_key=settings.ledger.blob_key
    )


async def _stats(service: HealthCalendarService, args: argparse.Namespace) -> None:
    # --end is inclusive on the command line
    end = args.end + timedelta(days=1)
    if args.category:
        stats = {}
        for name in args.category:
            result = await service.get_period_stats(name, args.start, end)
            if result is not None:
                stats[name] = result
    else:
        stats = await service.get_all_period_stats(args.start, end)

    if args.format_json:
        output = {
            name: {
                "total": s.total_value,
                "average": s.average_value,
                "units_with_data": s.units_with_data,
                "unit": s.unit_name,
            }
            for name, s in stats.items()
        }
        print(json.dumps(output, indent=2))
        return

    if not stats:
        print("No data recorded")
        return

    for name, s in stats.items():
        emoji = service.registry.get(name).emoji
        line = f"{emoji} {name}: {s.formatted_total} {s.unit_name}"
        if s.formatted_average:
            line += f" (avg {s.formatted_average}, {s.units_with_data} days)"
        print(line)


async def _chart(service: HealthCalendarService, args: argparse.Namespace) -> None:
    end = args.end + timedelta(days=1) if args.end else None
    if args.start is not None and end is None:
        end = args.start + timedelta(days=1)
    hourly = True if args.hourly else None
    points = await service.get_chart_data(args.category, args.start, end, hourly=hourly)
    for point in points:
        print(f"{point.label:>6}  {point.value:g}")


async def _preview(service: HealthCalendarService, args: argparse.Namespace) -> None:
    previews = await service.preview(args.start, args.end, args.category)
    if not previews:
        print("No records would be created")
        return
    for p in previews:
        when = f"{p.start_time:%Y-%m-%d}" if p.is_all_day else f"{p.start_time:%Y-%m-%d %H:%M}"
        print(f"{when}  {p.title}: {p.details}")
    print(f"\n{len(previews)} records would be created")


async def _sync(service: HealthCalendarService, args: argparse.Namespace) -> None:
    outcome = await service.sync(args.start, args.end, args.category)
    print(outcome.message)
    if outcome.source_failures:
        print(f"Warning: {outcome.source_failures} categories could not be read", file=sys.stderr)


async def _history(service: HealthCalendarService, args: argparse.Namespace) -> None:
    entries = service.history()
    if args.format_json:
        print(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return
    if not entries:
        print("No synced ranges")
        return
    for entry in entries:
        print(f"ID: {entry.id}")
        print(f"  Range:   {entry.start_date:%Y-%m-%d} to {entry.end_date:%Y-%m-%d}")
        print(f"  Synced:  {entry.synced_at:%Y-%m-%d %H:%M}")
        print(f"  Records: {entry.record_count}")
        if not entry.complete:
            print("  Status:  incomplete, delete and sync again to finish")
        print()
    print(f"Total records: {service.total_record_count}")


async def _delete(service: HealthCalendarService, args: argparse.Namespace) -> None:
    outcome = await service.delete_range(args.range_id)
    print(outcome.message)


async def _delete_all(service: HealthCalendarService, args: argparse.Namespace) -> None:
    outcome = await service.delete_all()
    print(outcome.message)


async def _days(service: HealthCalendarService, args: argparse.Namespace) -> None:
    end = args.end + timedelta(days=1)
    days = await service.get_days_with_data_and_emojis(args.start, end)
    synced = service.get_synced_days()
    for day, emojis in days.items():
        marker = " [synced]" if day in synced else ""
        print(f"{day:%Y-%m-%d}  {''.join(emojis)}{marker}")


Command = Callable[[HealthCalendarService, argparse.Namespace], Awaitable[None]]

COMMANDS: dict[str, Command] = {
    "stats": _stats,
    "chart": _chart,
    "preview": _preview,
    "sync": _sync,
    "history": _history,
    "delete": _delete,
    "delete-all": _delete_all,
    "days": _days,
}

# Commands that talk to the calendar API
SINK_COMMANDS = {"sync", "delete", "delete-all"}


async def _run(args: argparse.Namespace) -> None:
    settings = get_settings()
    setup_logging(settings.app)
    setup_tracing(settings.tracing)

    sink = HttpRecordSink(settings.calendar) if args.command in SINK_COMMANDS else None
    try:
        service = build_service(settings, args.export, sink)
        await service.start()
        await COMMANDS[args.command](service, args)
    finally:
        if sink is not None:
            await sink.aclose()


def _add_range_args(parser: argparse.ArgumentParser, required: bool = True) -> None:
    parser.add_argument(
        "--start", type=parse_date, required=required, help="Start date (YYYY-MM-DD)"
    )
    parser.add_argument(
        "--end", type=parse_date, required=required, help="End date, inclusive (YYYY-MM-DD)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="health-calendar",
        description="Health statistics and idempotent calendar sync",
    )
    parser.add_argument(
        "--export",
        type=Path,
        default=None,
        help="Health Auto Export JSON file (default: $SOURCE_EXPORT_PATH)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    stats = subparsers.add_parser("stats", help="Per-category totals and averages")
    _add_range_args(stats)
    stats.add_argument("--category", action="append", help="Category name (repeatable)")
    stats.add_argument("--json", action="store_true", dest="format_json", help="Output as JSON")

    chart = subparsers.add_parser("chart", help="Hourly or daily series for one category")
    chart.add_argument("category", help="Category name")
    _add_range_args(chart, required=False)
    chart.add_argument("--hourly", action="store_true", help="24 hourly points for --start")

    for name, help_text in (
        ("preview", "Show the records a sync would create"),
        ("sync", "Create calendar records for a date range"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        _add_range_args(sub)
        sub.add_argument("--category", action="append", help="Category name (repeatable)")

    history = subparsers.add_parser("history", help="List synced ranges")
    history.add_argument(
        "--json", action="store_true", dest="format_json", help="Output as JSON"
    )

    delete = subparsers.add_parser("delete", help="Delete the records of one synced range")
    delete.add_argument("range_id", help="Synced range ID from history")

    subparsers.add_parser("delete-all", help="Delete every synced record")

    days = subparsers.add_parser("days", help="Days with data and their category emoji")
    _add_range_args(days)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Usage:
        health-calendar --export export.json sync --start 2024-01-01 --end 2024-01-07
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    start = getattr(args, "start", None)
    end = getattr(args, "end", None)
    if start is not None and end is not None and start > end:
        print("Error: start date must be before or equal to end date", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(_run(args))
    except HealthCalendarError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
