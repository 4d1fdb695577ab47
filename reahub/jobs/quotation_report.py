"""
Evening summary of the day's quotation work, sent to every admin.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from reahub.db import DbClient
from reahub.jobs.broadcasts import start_of_day
from reahub.notifications import notify_users
from reahub.types import (
    ACTIVE_QUOTATION_STATUSES,
    AppRole,
    NotificationPriority,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)

# Quotations past the RFQ stage but not yet done.
IN_PROGRESS_STATUSES = tuple(
    s for s in ACTIVE_QUOTATION_STATUSES if s != TaskStatus.TODO
)


def quotation_stats(db: DbClient, now: float) -> dict:
    midnight = start_of_day(now)
    quotations = db.list_tasks(task_type=TaskType.QUOTATION)
    completed = db.list_tasks(
        task_type=TaskType.QUOTATION,
        statuses=[TaskStatus.DONE],
        completed_since=midnight,
        include_deleted=True,
    )
    return {
        "completed": len(completed),
        "worked_upon": sum(1 for t in quotations if t.updated_at >= midnight),
        "in_progress": sum(1 for t in quotations if t.status in IN_PROGRESS_STATUSES),
    }


def run_quotation_report(db: DbClient, now: Optional[float] = None) -> dict:
    now = time.time() if now is None else now
    logger.info("Running admin quotation report...")

    admins = db.user_ids_with_roles([AppRole.ADMIN])
    if not admins:
        return {"message": "No admin users found", "admin_count": 0}

    stats = quotation_stats(db, now)
    notify_users(
        db,
        admins,
        sender_id=admins[0],
        title="Daily Quotation Report",
        message=(
            "Today's Quotation Activity:\n\n"
            f"Completed: {stats['completed']} quotations\n"
            f"Worked Upon: {stats['worked_upon']} quotations\n"
            f"In Progress: {stats['in_progress']} quotations\n\n"
            "Keep up the great work!"
        ),
        priority=NotificationPriority.MEDIUM,
        is_broadcast=True,
    )
    logger.info("Report sent to %d admin users", len(admins))
    return {
        "message": "Admin report completed",
        "admin_count": len(admins),
        "stats": stats,
    }
