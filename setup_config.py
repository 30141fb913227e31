#!/usr/bin/env python3
"""Interactive setup helper for Calendar Scheduler configuration."""

import sys
from pathlib import Path

import yaml


def ask(prompt: str, default: str = "") -> str:
    suffix = f" [{default}]" if default else ""
    answer = input(f"{prompt}{suffix}: ").strip()
    return answer or default


def main():
    print("\n" + "=" * 70)
    print("📅 Calendar Scheduler - Configuration Setup")
    print("=" * 70 + "\n")

    env_file = Path(".env")
    view_file = Path("scheduler_config.yaml")

    if env_file.exists():
        response = input("⚠️  .env file already exists. Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("Setup cancelled.")
            return

    # API Configuration
    print("─" * 70)
    print("Calendar API")
    print("─" * 70)

    api_url = ask("\nAPI base URL (e.g., https://workspace.example.com/api)")
    api_token = ask("API bearer token (optional, press Enter to skip)")

    # Grid Configuration
    print("\n" + "─" * 70)
    print("Day grid")
    print("─" * 70)

    window_start = ask("\nFirst visible hour", "8")
    window_hours = ask("Visible hours", "10")
    snap_minutes = ask("Snap granularity in minutes", "15")
    timezone = ask("Default timezone", "UTC")

    env_content = f"""# Calendar API Configuration
CALENDAR_API_URL={api_url}
CALENDAR_API_TOKEN={api_token}
CALENDAR_API_TIMEOUT=30

# Day Grid Configuration
GRID_WINDOW_START_HOUR={window_start}
GRID_WINDOW_HOURS={window_hours}
GRID_COLUMN_HEIGHT=600
GRID_SNAP_MINUTES={snap_minutes}
GRID_RESIZE_HANDLE_PX=8
SEARCH_DEBOUNCE_MS=300

# Logging Configuration
LOG_LEVEL=INFO
LOG_FILE=calendar_scheduler.log

DEFAULT_TIMEZONE={timezone}
"""

    with open(env_file, "w") as f:
        f.write(env_content)

    if not view_file.exists():
        view = {
            "view": {
                "calendars": [],
                "contexts": [],
                "timezone": timezone,
                "lookback_days": 0,
                "lookahead_days": 7,
                "default_calendar": None,
            }
        }
        with open(view_file, "w") as f:
            yaml.safe_dump(view, f, sort_keys=False)

    print("\n" + "=" * 70)
    print("✅ Configuration saved to .env")
    if view_file.exists():
        print(f"✅ View settings in {view_file}")
    print("=" * 70)

    print("\n📋 Next steps:")
    print("1. Run: calendar-scheduler --list-calendars")
    print(f"2. Copy the calendar IDs you want into {view_file} under view.calendars")
    print("3. Run: calendar-scheduler --export-ics week.ics")
    print()


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nSetup cancelled.")
        sys.exit(0)
