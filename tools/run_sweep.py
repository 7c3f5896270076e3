#!/usr/bin/env python
"""Run the attempt sweeper once, e.g. from cron when the API runs with SWEEP_INTERVAL_SECONDS=0."""

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import config  # noqa: E402
from container import build_services  # noqa: E402
from db import SessionLocal  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Expire, abandon and clean up quiz attempts.")
    parser.add_argument("--dry-run", action="store_true", help="List overdue attempts but do not write.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL)
    svc = build_services(SessionLocal)

    if args.dry_run:
        sweeper = svc.sweeper
        overdue = sweeper.find_overdue(sweeper.clock())
        for attempt_id in overdue:
            print(f"[DRY] Would expire attempt {attempt_id}")
        print(f"Overdue attempts: {len(overdue)}")
        return 0

    report = svc.sweeper.run_once()
    print(
        f"expired={report.expired} graded={report.graded} "
        f"abandoned={report.abandoned} deleted={report.deleted}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
