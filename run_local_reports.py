#!/usr/bin/env python3
"""
Local Report Script
Runs every BI report against the configured database and prints the summaries.

Usage:
    python run_local_reports.py [range] [report-key ...]
"""

import asyncio
import json
import os
import sys
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from intelliservice.reports import REPORTS, resolve_date_range, run_report, to_dict
from intelliservice.services.supabase_client import get_supabase


async def run(range_preset: str, keys):
    db = get_supabase()
    date_range = resolve_date_range(range_preset)

    print(f"\nDate range: {date_range.start.date()} to {date_range.end.date()} ({range_preset})")

    for key in keys:
        definition = REPORTS[key]
        print("\n" + "-" * 40)
        print(f"{definition.title}")
        print("-" * 40)

        summary = await run_report(definition, db, date_range)
        print(json.dumps(to_dict(summary), indent=2, default=str))


def main():
    print("=" * 60)
    print("LOCAL REPORT SCRIPT")
    print("=" * 60)

    range_preset = sys.argv[1] if len(sys.argv) > 1 else os.getenv("REPORT_DEFAULT_RANGE", "last_30")
    keys = sys.argv[2:] or list(REPORTS)

    unknown = [k for k in keys if k not in REPORTS]
    if unknown:
        print(f"ERROR: unknown report(s): {', '.join(unknown)}")
        print(f"Available: {', '.join(REPORTS)}")
        return

    asyncio.run(run(range_preset, keys))

    print("\n" + "=" * 60)
    print("REPORTS COMPLETE!")
    print("=" * 60)


if __name__ == "__main__":
    main()
