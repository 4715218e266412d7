#!/usr/bin/env python
"""
Run a scheduled budget job once.

Meant to be called from cron:

  0 0 1 * *  python scripts/run_budget_job.py close-periods
  0 7 * * *  python scripts/run_budget_job.py budget-alerts
  0 7 * * 1  python scripts/run_budget_job.py weekly-digest

Usage:
  python scripts/run_budget_job.py <job>
  python scripts/run_budget_job.py list
"""

import asyncio
import sys

from budget_planner.database import close_db
from budget_planner.logging_config import configure_logging
from budget_planner.scheduler import JOBS, run_job


def print_jobs():
    """Print the available jobs with their schedules."""
    print("Jobs:")
    for job in JOBS.values():
        print(f"  {job.name:<15} {job.cron:<12} {job.description}")


async def run(name: str):
    try:
        return await run_job(name)
    finally:
        await close_db()


def main():
    """Main entry point."""
    if len(sys.argv) < 2:
        print("Usage: python scripts/run_budget_job.py <job>")
        print()
        print_jobs()
        sys.exit(1)

    command = sys.argv[1].lower()

    if command == "list":
        print_jobs()
        return

    if command not in JOBS:
        print(f"Unknown job: {command}")
        print()
        print_jobs()
        sys.exit(1)

    configure_logging()
    result = asyncio.run(run(command))
    print(f"{command} completed: {result}")


if __name__ == "__main__":
    main()
