"""CLI entry point for the calendar scheduler."""

import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from .auth.base import StaticTokenAuth
from .config import config, view_config
from .conflicts.checker import busy_from_events, find_conflicts
from .interchange.ics import ImportResult, export_ics, parse_ics
from .layout.packer import layout_day
from .models.event import Event
from .readers.api_reader import ApiCalendarReader
from .recurrence.rules import expand_all, validate_recurrence_rule
from .utils.date_utils import day_bounds, ensure_utc, get_timezone, get_view_window
from .utils.exceptions import CalendarSchedulerError, ValidationError
from .utils.logging import setup_logging
from .writers.api_writer import ApiCalendarWriter

logger = logging.getLogger("calendar_scheduler")


def _parse_instant(value: str, tz: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = get_timezone(tz).localize(parsed)
    return ensure_utc(parsed)


def _events_from_file(path: Path) -> list[Event]:
    """Read an interchange file as events, for offline commands."""
    imported: ImportResult = parse_ics(path.read_text(encoding="utf-8"), "local")
    for skipped in imported.skipped:
        logger.warning(f"Skipped: {skipped}")
    return [
        Event(id=uid or f"import-{i}", **draft.model_dump())
        for i, (draft, uid) in enumerate(zip(imported.drafts, imported.uids))
    ]


def _print_layout(path: Path, day: date, tz: str) -> None:
    geometry = config.grid.geometry(tz)
    day_start, day_end = day_bounds(day, tz)
    events = expand_all(_events_from_file(path), day_start, day_end)
    by_key = {event.key: event for event in events}
    placements = layout_day(events, day, tz)

    print(f"\nLayout for {day.isoformat()} ({tz}), {len(placements)} event(s):")
    print("=" * 70)
    for placement in placements:
        event = by_key[placement.event_key]
        extent = geometry.block_extent(placement.start, placement.end, day)
        local_start = placement.start.astimezone(get_timezone(tz))
        local_end = placement.end.astimezone(get_timezone(tz))
        print(
            f"  lane {placement.lane + 1}/{placement.total_lanes}  "
            f"{local_start:%H:%M}-{local_end:%H:%M}  "
            f"top={extent.top:.0f}px height={extent.height:.0f}px  {event.title}"
        )


def _print_conflicts(path: Path, start: datetime, end: datetime) -> int:
    events = expand_all(_events_from_file(path), start, end)
    conflicts = find_conflicts((start, end), busy_from_events(events))
    titles = {event.id: event.title for event in events}
    print(f"\nProposed {start:%Y-%m-%d %H:%M} - {end:%H:%M} UTC")
    if not conflicts:
        print("  No conflicts")
        return 0
    print(f"  {len(conflicts)} conflict(s):")
    for busy in conflicts:
        print(f"  ! {busy.start:%Y-%m-%d %H:%M} - {busy.end:%H:%M}  {titles.get(busy.event_id, '')}")
    return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Calendar Scheduler - layout, conflicts and interchange for workspace calendars"
    )
    parser.add_argument(
        "--list-calendars",
        action="store_true",
        help="List available calendars",
    )
    parser.add_argument(
        "--export-ics",
        type=Path,
        metavar="FILE",
        help="Export events in the view window to an .ics file",
    )
    parser.add_argument(
        "--import-ics",
        type=Path,
        metavar="FILE",
        help="Import events from an .ics file (requires --calendar-id)",
    )
    parser.add_argument(
        "--calendar-id",
        type=str,
        help="Target calendar for --import-ics (default: from scheduler_config.yaml)",
    )
    parser.add_argument(
        "--layout",
        type=Path,
        metavar="FILE",
        help="Print the lane layout of an .ics file for --date (offline)",
    )
    parser.add_argument(
        "--conflicts",
        type=Path,
        metavar="FILE",
        help="Check --start/--end against the events of an .ics file (offline)",
    )
    parser.add_argument("--date", type=date.fromisoformat, help="Day for --layout (YYYY-MM-DD)")
    parser.add_argument("--start", type=str, help="Range or proposal start (ISO 8601)")
    parser.add_argument("--end", type=str, help="Range or proposal end (ISO 8601)")
    parser.add_argument("--timezone", type=str, help="Timezone for display and naive input")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be imported without writing",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--trace-gestures",
        action="store_true",
        help="Include per-move debug records from layout and drag code",
    )

    args = parser.parse_args()

    log_level = "DEBUG" if args.verbose else config.log_level
    try:
        setup_logging(log_level, config.log_file, trace_gestures=args.trace_gestures)
    except CalendarSchedulerError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    tz = args.timezone or view_config.timezone or config.default_timezone

    try:
        if args.layout:
            _print_layout(args.layout, args.date or date.today(), tz)
            return 0

        if args.conflicts:
            if not args.start or not args.end:
                logger.error("--conflicts requires --start and --end")
                return 1
            return _print_conflicts(
                args.conflicts, _parse_instant(args.start, tz), _parse_instant(args.end, tz)
            )

        if args.import_ics and args.dry_run:
            imported = parse_ics(args.import_ics.read_text(encoding="utf-8"), "dry-run")
            print(f"\nDry run - {args.import_ics}:")
            print(f"  Would create: {len(imported.drafts)}")
            print(f"  Skipped: {len(imported.skipped)}")
            for draft in imported.drafts:
                print(f"  + {draft.title}")
                print(f"    When: {draft.start_at} to {draft.end_at}")
            return 0

        auth = StaticTokenAuth(config.api.token)
        base_url = config.api.require_base_url()

        if args.list_calendars:
            reader = ApiCalendarReader(base_url, auth, config.api.timeout)
            calendars = reader.list_calendars()
            print(f"\nCalendars ({len(calendars)}):")
            print("=" * 70)
            for cal in calendars:
                flags = [
                    name
                    for name, on in (
                        ("primary", cal.is_primary),
                        ("system", cal.is_system),
                        ("locked", not cal.is_deletable),
                    )
                    if on
                ]
                print(f"  {cal.name} [{cal.context_type.value}]")
                print(f"    ID: {cal.id}")
                if flags:
                    print(f"    Flags: {', '.join(flags)}")
            return 0

        if args.export_ics:
            reader = ApiCalendarReader(base_url, auth, config.api.timeout)
            if args.start and args.end:
                start, end = _parse_instant(args.start, tz), _parse_instant(args.end, tz)
            else:
                start, end = get_view_window(view_config.lookback_days, view_config.lookahead_days)
            events = reader.list_events(
                start, end, view_config.contexts, view_config.calendar_ids or None
            )
            args.export_ics.write_text(export_ics(events), encoding="utf-8", newline="")
            print(f"Exported {len(events)} event(s) to {args.export_ics}")
            return 0

        if args.import_ics:
            calendar_id: Optional[str] = args.calendar_id or view_config.default_calendar_id
            if not calendar_id:
                logger.error("--import-ics requires --calendar-id")
                return 1
            writer = ApiCalendarWriter(base_url, auth, config.api.timeout)
            imported = parse_ics(args.import_ics.read_text(encoding="utf-8"), calendar_id)
            created = 0
            errors = []
            for draft in imported.drafts:
                try:
                    validate_recurrence_rule(draft.recurrence_rule, draft.start_at, draft.timezone)
                    writer.create_event(draft)
                    created += 1
                except (ValidationError, CalendarSchedulerError) as e:
                    error_msg = f"Failed to import '{draft.title}': {e}"
                    logger.error(error_msg)
                    errors.append(error_msg)

            print("\nImport Results:")
            print(f"  Events parsed: {len(imported.drafts)}")
            print(f"  Events created: {created}")
            print(f"  Blocks skipped: {len(imported.skipped)}")
            if errors:
                print(f"\nErrors ({len(errors)}):")
                for err in errors:
                    print(f"  - {err}")
                return 1
            return 0

        parser.print_help()
        return 0

    except CalendarSchedulerError as e:
        logger.error(f"Calendar scheduler error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
