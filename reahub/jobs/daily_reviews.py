"""
Morning and evening review reminders for everyone with open work.

Each user who owns or is assigned an open task gets a review row for the
UTC day and, until they complete it, a high-priority reminder listing how
many tasks are waiting on them.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from reahub.db import DbClient, NotificationRecord, TaskRecord
from reahub.jobs.broadcasts import utc_date
from reahub.types import NotificationPriority, TaskStatus

logger = logging.getLogger(__name__)

REVIEW_TYPES = ("morning", "evening")


def _owners(task: TaskRecord) -> set[str]:
    return {uid for uid in (task.assigned_to, task.created_by) if uid}


def compose_review_reminder(review_type: str, active_count: int) -> tuple[str, str]:
    if review_type == "morning":
        title, greeting = "Morning Task Review Required", "Good morning!"
    else:
        title, greeting = "Evening Task Review Required", "Good evening!"
    return title, (
        f"{greeting}\n\nYou have {active_count} active tasks.\n\n"
        "Please review your tasks:\n"
        "- Update status of any in-progress tasks\n"
        "- Mark completed tasks as done\n"
        "- Check for urgent items\n"
        "- Plan your priorities\n\n"
        "This review cannot be dismissed until completed."
    )


def run_daily_review_reminders(
    db: DbClient, review_type: str = "morning", now: Optional[float] = None
) -> dict:
    if review_type not in REVIEW_TYPES:
        raise ValueError(f"Unknown review type: {review_type}")
    now = time.time() if now is None else now
    logger.info("Scheduling %s daily reviews...", review_type)

    active_tasks = db.list_tasks(exclude_statuses=[TaskStatus.DONE])
    active_counts: dict[str, int] = {}
    for task in active_tasks:
        for user_id in _owners(task):
            active_counts[user_id] = active_counts.get(user_id, 0) + 1
    logger.info("Found %d active users", len(active_counts))

    today = utc_date(now)
    try:
        completed = {
            r.user_id
            for r in db.list_daily_reviews(review_date=today, completed_only=True)
        }
    except Exception:
        logger.exception("Error fetching completed reviews")
        completed = set()

    notifications = []
    for user_id in sorted(active_counts):
        if user_id in completed:
            continue
        db.ensure_daily_review(user_id, today, now=now)
        title, message = compose_review_reminder(review_type, active_counts[user_id])
        notifications.append(
            NotificationRecord(
                sender_id=user_id,
                recipient_id=user_id,
                title=title,
                message=message,
                priority=NotificationPriority.HIGH,
                created_at=now,
            )
        )

    if notifications:
        try:
            db.insert_notifications(notifications)
            logger.info("Sent %d daily review reminders", len(notifications))
        except Exception:
            logger.exception("Error creating review notifications")

    return {
        "success": True,
        "reminders_sent": len(notifications),
        "review_type": review_type,
    }
