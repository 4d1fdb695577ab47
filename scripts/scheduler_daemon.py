"""
Daemon that runs the periodic task-service jobs.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from reahub.dependencies import get_db_client, get_queue_client, get_storage_client
from reahub.worker import run_due_jobs

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Task service scheduler daemon")
    parser.add_argument(
        "--poll-seconds",
        type=int,
        default=30,
        help="Seconds between scheduler ticks",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=5,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run every job once and exit",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    db = get_db_client()
    storage = get_storage_client()
    queue = get_queue_client()
    last_run: dict[str, float] = {}

    while True:
        try:
            results = run_due_jobs(
                db=db, storage=storage, queue=queue, last_run=last_run
            )
            if results:
                logger.info("Ran jobs: %s", ", ".join(sorted(results)))
        except Exception as exc:
            logger.exception("Scheduler tick failed: %s", exc)

        if args.once:
            return 0

        sleep_for = args.poll_seconds + random.uniform(0, args.jitter_seconds)
        time.sleep(sleep_for)


if __name__ == "__main__":
    raise SystemExit(main())
