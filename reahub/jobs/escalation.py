"""
Escalation of quotation tasks stuck in an estimation stage.

A task is stuck when its idle time (hours since ``last_activity_at``)
reaches the time limit configured for its current stage. Each stuck task
receives only the highest rung of the ladder it has reached:

    >= 5h  reassign to the least busy estimation member
    >= 4h  alert the whole estimation team
    >= 3h  alert admins and technical heads
    >= 2h  urgent notification to the assignee
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from reahub.db import DbClient, TaskRecord
from reahub.notifications import notify_users
from reahub.types import (
    ACTIVE_QUOTATION_STATUSES,
    AppRole,
    NotificationPriority,
    TaskType,
)

logger = logging.getLogger(__name__)


@dataclass
class StuckTask:
    task: TaskRecord
    hours_idle: float
    time_limit: int
    assigned_user_name: str


@dataclass
class BusyMember:
    user_id: str
    full_name: str
    active_task_count: int


def find_stuck_tasks(db: DbClient, now: Optional[float] = None) -> list[StuckTask]:
    """Quotation tasks idle past their stage limit, most idle first."""
    now = time.time() if now is None else now
    limits = db.list_stage_limits()
    stuck = []
    for task in db.list_tasks(
        statuses=ACTIVE_QUOTATION_STATUSES, task_type=TaskType.QUOTATION
    ):
        limit = limits.get(task.status.value)
        if limit is None:
            continue
        hours_idle = task.hours_idle(now)
        if hours_idle < limit.time_limit_hours:
            continue
        profile = db.get_profile(task.assigned_to) if task.assigned_to else None
        stuck.append(
            StuckTask(
                task=task,
                hours_idle=hours_idle,
                time_limit=limit.time_limit_hours,
                assigned_user_name=profile.display_name if profile else "Unknown",
            )
        )
    stuck.sort(key=lambda s: s.hours_idle, reverse=True)
    return stuck


def least_busy_estimation_member(db: DbClient) -> Optional[BusyMember]:
    """Estimation user with the fewest active quotation tasks; ties by user id."""
    members = db.list_profiles(role=AppRole.ESTIMATION)
    if not members:
        return None
    counts = {member.id: 0 for member in members}
    for task in db.list_tasks(
        statuses=ACTIVE_QUOTATION_STATUSES, task_type=TaskType.QUOTATION
    ):
        if task.assigned_to in counts:
            counts[task.assigned_to] += 1
    chosen = min(members, key=lambda m: (counts[m.id], m.id))
    return BusyMember(
        user_id=chosen.id,
        full_name=chosen.display_name,
        active_task_count=counts[chosen.id],
    )


def _notify_assignee(db: DbClient, stuck: StuckTask, now: float) -> str:
    task = stuck.task
    if not task.assigned_to:
        logger.info("Task %s has no assignee; skipping urgent notification", task.id)
        return "none"
    logger.info("Sending urgent notification for task: %s", task.title)
    notify_users(
        db,
        [task.assigned_to],
        sender_id=task.assigned_to,
        title="URGENT: Quotation Task Stuck >2 Hours",
        message=(
            f"TASK: {task.title}\n\nSTATUS: {task.status.value}\n"
            f"IDLE TIME: {stuck.hours_idle:.1f} hours\nLIMIT: {stuck.time_limit} hours\n\n"
            "This task is approaching the time limit. Please take immediate action!"
        ),
        priority=NotificationPriority.URGENT,
    )
    return "notify_assignee"


def _alert_admins(db: DbClient, stuck: StuckTask, now: float) -> str:
    task = stuck.task
    logger.info("Sending admin alert for task: %s", task.title)
    admins = db.user_ids_with_roles([AppRole.ADMIN, AppRole.TECHNICAL_HEAD])
    notify_users(
        db,
        admins,
        sender_id=task.assigned_to or task.created_by,
        title="ADMIN ALERT: Quotation Task Stuck >3 Hours",
        message=(
            f"TASK: {task.title}\nASSIGNED TO: {stuck.assigned_user_name}\n\n"
            f"STATUS: {task.status.value}\nIDLE TIME: {stuck.hours_idle:.1f} hours\n"
            f"LIMIT: {stuck.time_limit} hours\n\n"
            "This task requires admin intervention. Consider reassigning or providing support."
        ),
        priority=NotificationPriority.HIGH,
    )
    return "notify_admins"


def _broadcast_team(db: DbClient, stuck: StuckTask, now: float) -> str:
    task = stuck.task
    logger.info("Broadcasting alert to estimation team for task: %s", task.title)
    team = db.user_ids_with_roles([AppRole.ESTIMATION])
    notify_users(
        db,
        team,
        sender_id=task.assigned_to or task.created_by,
        title="TEAM ALERT: Quotation Task Stuck >4 Hours",
        message=(
            f"TASK: {task.title}\nCURRENTLY WITH: {stuck.assigned_user_name}\n\n"
            f"STATUS: {task.status.value}\nIDLE TIME: {stuck.hours_idle:.1f} hours\n\n"
            "Can anyone help move this task forward? It's been stuck for over 4 hours."
        ),
        priority=NotificationPriority.URGENT,
        is_broadcast=True,
    )
    return "broadcast_team"


def _reassign(db: DbClient, stuck: StuckTask, now: float) -> str:
    task = stuck.task
    member = least_busy_estimation_member(db)
    if member is None or member.user_id == task.assigned_to:
        logger.info("No better assignee for task: %s", task.title)
        return "none"

    previous_assignee = task.assigned_to
    logger.info("Auto-reassigning task: %s", task.title)
    db.update_task(task.id, {"assigned_to": member.user_id}, now=now)

    if previous_assignee:
        notify_users(
            db,
            [previous_assignee],
            sender_id=member.user_id,
            title="Task Auto-Reassigned Due to Inactivity",
            message=(
                f"TASK: {task.title}\n\nThis task has been idle for "
                f"{stuck.hours_idle:.1f} hours and has been reassigned to "
                f"{member.full_name} to ensure timely completion."
            ),
            priority=NotificationPriority.HIGH,
        )
    notify_users(
        db,
        [member.user_id],
        sender_id=previous_assignee or task.created_by,
        title="New Quotation Task Auto-Assigned",
        message=(
            f"TASK: {task.title}\n\nSTATUS: {task.status.value}\n\n"
            f"This task was stuck with {stuck.assigned_user_name} for "
            f"{stuck.hours_idle:.1f} hours and needs immediate attention."
        ),
        priority=NotificationPriority.URGENT,
    )
    logger.info(
        "Task reassigned from %s to %s", stuck.assigned_user_name, member.full_name
    )
    return "reassign"


# Highest threshold first; the first rung reached wins.
ESCALATION_LADDER: list[tuple[float, Callable[[DbClient, StuckTask, float], str]]] = [
    (5.0, _reassign),
    (4.0, _broadcast_team),
    (3.0, _alert_admins),
    (2.0, _notify_assignee),
]


def escalate(db: DbClient, stuck: StuckTask, now: float) -> str:
    """Apply the ladder rung for one stuck task and return the action name."""
    for threshold, action in ESCALATION_LADDER:
        if stuck.hours_idle >= threshold:
            return action(db, stuck, now)
    return "none"


def run_escalation(db: DbClient, now: Optional[float] = None) -> dict:
    now = time.time() if now is None else now
    logger.info("Checking for stuck estimation quotation tasks...")
    stuck_tasks = find_stuck_tasks(db, now)
    if not stuck_tasks:
        logger.info("No stuck tasks found")
        return {"message": "No stuck tasks", "count": 0, "tasks_processed": 0, "tasks": []}

    logger.info("Found %d stuck quotation tasks", len(stuck_tasks))
    results = []
    for stuck in stuck_tasks:
        logger.info(
            "Processing task: %s (%.1fh idle)", stuck.task.title, stuck.hours_idle
        )
        try:
            action = escalate(db, stuck, now)
        except Exception:
            logger.exception("Failed to escalate task %s", stuck.task.id)
            action = "error"
        results.append(
            {
                "id": stuck.task.id,
                "title": stuck.task.title,
                "hours_idle": round(stuck.hours_idle, 2),
                "action": action,
            }
        )

    return {
        "message": "Escalation completed",
        "count": len(stuck_tasks),
        "tasks_processed": len(stuck_tasks),
        "tasks": results,
    }
