"""
Scheduler loop that runs the periodic jobs and drains the offline sync queue.

Interval jobs run when their configured interval has elapsed since their
last run. Daily jobs (broadcasts, review reminders and the admin quotation
report) run at most once per UTC day, on the first tick inside their slot
window. Their last run time is kept in the database so a restarted
scheduler neither repeats a slot nor backfills one whose window has closed.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from reahub.config import Settings, get_settings
from reahub.db import DbClient
from reahub.dependencies import get_db_client, get_queue_client, get_storage_client
from reahub.jobs.automation import run_automation_rules
from reahub.jobs.broadcasts import run_daily_broadcast, start_of_day
from reahub.jobs.daily_reviews import run_daily_review_reminders
from reahub.jobs.efficiency import run_efficiency_scores
from reahub.jobs.escalation import run_escalation
from reahub.jobs.quotation_report import run_quotation_report
from reahub.jobs.reminders import run_estimation_reminders
from reahub.jobs.reports import run_report_generation
from reahub.jobs.stale import run_stale_detection
from reahub.queue import SyncQueue
from reahub.storage import StorageClient
from reahub.sync import replay_sync_queue

logger = logging.getLogger(__name__)

# Daily slots: marker name -> (UTC hour the window opens, hour it closes).
DAILY_SLOTS = {
    "review:morning": (8, 17),
    "broadcast:morning": (9, 14),
    "broadcast:progress": (14, 18),
    "review:evening": (17, 24),
    "broadcast:endofday": (18, 24),
    "quotation_report": (19, 24),
}


def build_jobs(
    db: DbClient,
    storage: StorageClient,
    queue: SyncQueue,
    settings: Settings,
) -> dict[str, tuple[int, Callable[[float], dict]]]:
    """Map job name to (interval seconds, callable taking ``now``)."""
    return {
        "escalate": (
            settings.escalation_interval_seconds,
            lambda now: run_escalation(db, now=now),
        ),
        "automation": (
            settings.automation_interval_seconds,
            lambda now: run_automation_rules(db, now=now),
        ),
        "stale": (
            settings.stale_interval_seconds,
            lambda now: run_stale_detection(
                db, now=now, threshold_hours=settings.stale_task_hours
            ),
        ),
        "reminders": (
            settings.reminder_interval_seconds,
            lambda now: run_estimation_reminders(db, now=now),
        ),
        "reports": (
            settings.report_interval_seconds,
            lambda now: run_report_generation(
                db, storage, now=now, period_days=settings.report_period_days
            ),
        ),
        "efficiency": (
            settings.efficiency_interval_seconds,
            lambda now: run_efficiency_scores(db, now=now),
        ),
        "sync": (
            settings.sync_interval_seconds,
            lambda now: replay_sync_queue(db, queue, now=now),
        ),
    }


def build_daily_jobs(
    db: DbClient, settings: Settings
) -> dict[str, Callable[[float], dict]]:
    """Map each daily slot name to a callable taking ``now``."""
    return {
        "review:morning": lambda now: run_daily_review_reminders(db, "morning", now=now),
        "broadcast:morning": lambda now: run_daily_broadcast(
            db, "morning", now=now, daily_goal=settings.estimation_daily_goal
        ),
        "broadcast:progress": lambda now: run_daily_broadcast(
            db, "progress", now=now, daily_goal=settings.estimation_daily_goal
        ),
        "review:evening": lambda now: run_daily_review_reminders(db, "evening", now=now),
        "broadcast:endofday": lambda now: run_daily_broadcast(
            db, "endofday", now=now, daily_goal=settings.estimation_daily_goal
        ),
        "quotation_report": lambda now: run_quotation_report(db, now=now),
    }


def due_daily_jobs(db: DbClient, now: float) -> list[str]:
    """Slots whose window is open now and which have not run today."""
    today = start_of_day(now)
    hour = datetime.fromtimestamp(now, tz=timezone.utc).hour
    due = []
    for name, (opens, closes) in DAILY_SLOTS.items():
        if not opens <= hour < closes:
            continue
        last = db.get_job_marker(name)
        if last is not None and last >= today:
            continue
        due.append(name)
    return due


def run_due_jobs(
    *,
    db: Optional[DbClient] = None,
    storage: Optional[StorageClient] = None,
    queue: Optional[SyncQueue] = None,
    last_run: dict[str, float],
    now: Optional[float] = None,
    settings: Optional[Settings] = None,
) -> dict[str, dict]:
    """
    Run every job whose interval has elapsed and record the run time in
    ``last_run``, then every daily slot that is due, recording it in the
    database. A failing job is logged; interval jobs retry on their next
    interval and daily slots on the next day.
    Returns the payload of each job that ran.
    """
    now = time.time() if now is None else now
    settings = settings or get_settings()
    db = db or get_db_client()
    storage = storage or get_storage_client()
    queue = queue or get_queue_client()

    results: dict[str, dict] = {}
    for name, (interval, job) in build_jobs(db, storage, queue, settings).items():
        last = last_run.get(name)
        if last is not None and now - last < interval:
            continue
        last_run[name] = now
        try:
            results[name] = job(now)
        except Exception:
            logger.exception("Job %s failed", name)

    daily_jobs = build_daily_jobs(db, settings)
    for name in due_daily_jobs(db, now):
        db.set_job_marker(name, now)
        try:
            results[name] = daily_jobs[name](now)
        except Exception:
            logger.exception("Daily job %s failed", name)
    return results


def run_loop(poll_interval_seconds: float = 30.0) -> None:
    """
    Simple polling loop. Intended to be run under systemd/supervisor.
    """
    db = get_db_client()
    storage = get_storage_client()
    queue = get_queue_client()
    last_run: dict[str, float] = {}
    while True:
        results = run_due_jobs(db=db, storage=storage, queue=queue, last_run=last_run)
        if results:
            logger.info("Ran jobs: %s", ", ".join(sorted(results)))
        time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_loop()
