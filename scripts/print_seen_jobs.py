#!/usr/bin/env python3
"""
Print the most recently seen job postings from the job-alert store.

Usage:
    python scripts/print_seen_jobs.py [limit] [--db PATH]

The store path defaults to $JOB_ALERT_SQLITE_PATH, then local/state/job_alert.db
under the project root.
"""

import argparse
import os
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent  # ../scripts → project root
sys.path.insert(0, str(PROJECT_ROOT))

from modules.job_alert.lib.db import count_rows, latest  # noqa: E402

DEFAULT_DB = PROJECT_ROOT / "local" / "state" / "job_alert.db"


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    except ValueError:
        return iso_str


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid limit: {raw}") from e
    if value <= 0:
        raise argparse.ArgumentTypeError(f"Invalid limit: {raw}")
    return value


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Show the latest seen job postings.")
    parser.add_argument("limit", nargs="?", type=_positive_int, default=15)
    parser.add_argument("--db", default=os.getenv("JOB_ALERT_SQLITE_PATH") or str(DEFAULT_DB))
    args = parser.parse_args(argv)

    if not os.path.exists(args.db):
        print(f"Database not found: {args.db}", file=sys.stderr)
        return 1

    try:
        total = count_rows(args.db)
        entries = latest(args.db, args.limit)
    except sqlite3.Error as e:
        print(f"Error reading {args.db}: {e}", file=sys.stderr)
        return 1

    print("=" * 80)
    print(f"DATABASE: {os.path.basename(args.db)}")
    print(f"PATH: {args.db}")
    print(f"Showing {len(entries)} of {total} seen posting(s), newest first.")
    print("-" * 80)

    if not entries:
        print("  No entries found.")
        return 0

    for i, rec in enumerate(entries, 1):
        print(f"{i:2d}. [{format_timestamp(rec.first_seen_utc)}] {rec.place or '-'}")
        print(f"     Title: {rec.title}")
        print(f"     URL:   {rec.url}")
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
