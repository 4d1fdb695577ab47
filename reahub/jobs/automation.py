"""
Apply admin-defined automation rules to inactive tasks.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from reahub.db import DbClient
from reahub.notifications import notify_users
from reahub.types import NotificationPriority

logger = logging.getLogger(__name__)


def run_automation_rules(db: DbClient, now: Optional[float] = None) -> dict:
    now = time.time() if now is None else now
    logger.info("Applying automation rules...")
    rules = db.list_rules(enabled_only=True)
    logger.info("Found %d active automation rules", len(rules))

    actions_applied = 0
    for rule in rules:
        threshold = now - rule.threshold_hours * 3600
        try:
            tasks = db.list_tasks(
                statuses=[rule.source_status], inactive_before=threshold
            )
            recipients = (
                db.user_ids_with_roles(rule.notify_roles) if rule.notify_roles else []
            )
        except Exception:
            logger.exception("Error fetching tasks for rule %s", rule.rule_name)
            continue
        logger.info('Rule "%s": found %d matching tasks', rule.rule_name, len(tasks))

        for task in tasks:
            original_status = task.status.value
            try:
                if rule.target_status and rule.target_status != task.status:
                    db.update_task(task.id, {"status": rule.target_status}, now=now)
                    logger.info(
                        'Auto-moved task "%s" from %s to %s',
                        task.title,
                        original_status,
                        rule.target_status.value,
                    )
                if recipients:
                    follow_up = (
                        f"Auto-moved to: {rule.target_status.value}"
                        if rule.target_status
                        else "Please review this task."
                    )
                    notify_users(
                        db,
                        recipients,
                        sender_id=task.created_by,
                        title="Automated Task Update",
                        message=(
                            f'Rule "{rule.rule_name}" triggered:\n\n'
                            f"Task: {task.title}\nStatus: {original_status}\n"
                            f"Inactive for: {rule.threshold_hours} hours\n\n{follow_up}"
                        ),
                        priority=NotificationPriority.MEDIUM,
                    )
            except Exception:
                logger.exception(
                    "Error applying rule %s to task %s", rule.rule_name, task.id
                )
                continue
            actions_applied += 1

    logger.info("Applied %d automation actions", actions_applied)
    return {
        "success": True,
        "rules_processed": len(rules),
        "actions_applied": actions_applied,
    }
