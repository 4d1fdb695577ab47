"""
Hourly reminders for the estimation team.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Optional

from reahub.db import DbClient, ReminderRecord
from reahub.types import AppRole, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

# Statuses that no longer need the estimator's attention.
CLOSED_STATUSES = (
    TaskStatus.DONE,
    TaskStatus.PENDING_INVOICES,
    TaskStatus.QUOTATION_BILL,
)


def run_estimation_reminders(db: DbClient, now: Optional[float] = None) -> dict:
    now = time.time() if now is None else now
    logger.info("Starting hourly estimation team reminder check...")
    members = db.list_profiles(role=AppRole.ESTIMATION)
    logger.info("Found %d estimation team members", len(members))

    reminders_created = 0
    pending_by_user = {}
    for member in members:
        try:
            tasks = db.list_tasks(
                assigned_to=member.id, exclude_statuses=CLOSED_STATUSES
            )
        except Exception:
            logger.exception("Error fetching tasks for user %s", member.id)
            continue

        if not tasks:
            logger.info("User %s has no pending tasks", member.display_name)
            continue

        by_type = Counter(task.type.value for task in tasks)
        pending_by_user[member.id] = dict(by_type)
        logger.info(
            "User %s has %d pending tasks (%s)",
            member.display_name,
            len(tasks),
            ", ".join(f"{k}={v}" for k, v in sorted(by_type.items())),
        )

        for task in tasks:
            if task.priority != TaskPriority.HIGH:
                continue
            try:
                db.create_reminder(
                    ReminderRecord(
                        task_id=task.id, user_id=member.id, reminder_time=now + 3600
                    )
                )
                reminders_created += 1
            except Exception:
                logger.exception("Error creating reminder for task %s", task.id)

    return {
        "success": True,
        "message": "Hourly estimation reminders processed",
        "users_processed": len(members),
        "reminders_created": reminders_created,
        "pending_by_user": pending_by_user,
    }
