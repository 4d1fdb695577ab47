"""
Detect tasks nobody has touched for a day or more.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from reahub.db import DbClient, NotificationRecord
from reahub.types import NotificationPriority, TaskStatus

logger = logging.getLogger(__name__)


def stale_severity(hours_stale: int) -> tuple[NotificationPriority, str]:
    if hours_stale >= 72:
        return NotificationPriority.URGENT, "CRITICAL: Task Abandoned for 3+ Days"
    if hours_stale >= 48:
        return NotificationPriority.HIGH, "HIGH: Task Inactive for 2+ Days"
    return NotificationPriority.MEDIUM, "Task Needs Attention"


def run_stale_detection(
    db: DbClient, now: Optional[float] = None, threshold_hours: float = 24.0
) -> dict:
    now = time.time() if now is None else now
    logger.info("Detecting stale tasks...")
    stale_tasks = db.list_tasks(
        exclude_statuses=[TaskStatus.DONE],
        inactive_before=now - threshold_hours * 3600,
    )
    logger.info("Found %d stale tasks", len(stale_tasks))

    notifications = []
    for task in stale_tasks:
        hours_stale = int(task.hours_idle(now))
        priority, title = stale_severity(hours_stale)
        recipient_id = task.assigned_to or task.created_by
        if not recipient_id:
            continue
        notifications.append(
            NotificationRecord(
                sender_id=task.created_by,
                recipient_id=recipient_id,
                title=title,
                message=(
                    f"Task: {task.title}\n\nStatus: {task.status.value}\n"
                    f"Last Activity: {hours_stale} hours ago\n\n"
                    "Please update this task immediately or explain any delays."
                ),
                priority=priority,
            )
        )

    if notifications:
        try:
            db.insert_notifications(notifications)
            logger.info("Created %d stale task notifications", len(notifications))
        except Exception:
            logger.exception("Error creating stale task notifications")
            notifications = []

    return {
        "success": True,
        "stale_tasks": len(stale_tasks),
        "notifications_created": len(notifications),
    }
