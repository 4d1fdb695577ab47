"""
Run a single scheduled job once and print its JSON payload.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reahub.config import get_settings
from reahub.dependencies import get_db_client, get_queue_client, get_storage_client
from reahub.jobs.broadcasts import BROADCAST_TYPES, run_daily_broadcast
from reahub.jobs.daily_reviews import REVIEW_TYPES, run_daily_review_reminders
from reahub.jobs.quotation_report import run_quotation_report
from reahub.worker import build_jobs

logger = logging.getLogger(__name__)

JOB_NAMES = (
    "escalate",
    "automation",
    "stale",
    "reminders",
    "reports",
    "efficiency",
    "sync",
    "broadcast",
    "daily-reviews",
    "quotation-report",
)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one task-service job")
    parser.add_argument("job", choices=JOB_NAMES, help="Job to run")
    parser.add_argument(
        "-t",
        "--broadcast-type",
        choices=BROADCAST_TYPES,
        default="morning",
        help="Broadcast to send when job is 'broadcast'",
    )
    parser.add_argument(
        "-r",
        "--review-type",
        choices=REVIEW_TYPES,
        default="morning",
        help="Review reminder to send when job is 'daily-reviews'",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    settings = get_settings()
    db = get_db_client()
    try:
        if args.job == "broadcast":
            result = run_daily_broadcast(
                db, args.broadcast_type, daily_goal=settings.estimation_daily_goal
            )
        elif args.job == "daily-reviews":
            result = run_daily_review_reminders(db, args.review_type)
        elif args.job == "quotation-report":
            result = run_quotation_report(db)
        else:
            jobs = build_jobs(db, get_storage_client(), get_queue_client(), settings)
            _, job = jobs[args.job]
            result = job(None)
    except Exception as exc:
        logger.exception("Job %s failed: %s", args.job, exc)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
