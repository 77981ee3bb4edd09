#!/usr/bin/env python3
"""
Run preventive maintenance task generation once.

Run with: python scripts/generate_preventive_tasks.py [--date 2026-03-01]
"""

import argparse
from datetime import date

from sqlmodel import Session

from propertyops.db import engine
from propertyops.services.preventive_tasks import generate_preventive_tasks


def main():
    parser = argparse.ArgumentParser(description="Generate preventive maintenance tasks")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="Treat this day as today (YYYY-MM-DD)")
    args = parser.parse_args()

    with Session(engine) as session:
        summary = generate_preventive_tasks(session, today=args.date)

    print(f"Schedules processed: {summary.schedules_processed}")
    print(f"Tasks created:       {summary.tasks_created}")
    print(f"Tasks skipped:       {summary.tasks_skipped}")
    print(f"Tasks failed:        {summary.tasks_failed}")


if __name__ == "__main__":
    main()
