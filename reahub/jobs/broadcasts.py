"""
Scheduled morning, progress and end-of-day broadcasts to the estimation team.
"""

from __future__ import annotations

import logging
import math
import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from reahub.db import DbClient
from reahub.notifications import notify_users
from reahub.types import (
    ACTIVE_QUOTATION_STATUSES,
    AppRole,
    NotificationPriority,
    TaskStatus,
    TaskType,
)

logger = logging.getLogger(__name__)

BROADCAST_TYPES = ("morning", "progress", "endofday")


class UnknownBroadcastType(ValueError):
    pass


@dataclass
class DailyStats:
    daily_goal: int
    completed_today: int
    rfq_count: int
    in_progress_count: int
    stuck_count: int
    top_performer: Optional[tuple[str, int]]


def start_of_day(now: float) -> float:
    moment = datetime.fromtimestamp(now, tz=timezone.utc)
    return moment.replace(hour=0, minute=0, second=0, microsecond=0).timestamp()


def utc_date(now: float) -> str:
    return datetime.fromtimestamp(now, tz=timezone.utc).strftime("%Y-%m-%d")


def daily_stats(db: DbClient, now: float, daily_goal: int) -> DailyStats:
    quotations = db.list_tasks(task_type=TaskType.QUOTATION)
    midnight = start_of_day(now)
    completed = db.list_tasks(
        task_type=TaskType.QUOTATION,
        statuses=[TaskStatus.DONE],
        completed_since=midnight,
        include_deleted=True,
    )
    active = [t for t in quotations if t.status in ACTIVE_QUOTATION_STATUSES]

    top_performer = None
    per_user = Counter(t.assigned_to for t in completed if t.assigned_to)
    if per_user:
        user_id, count = per_user.most_common(1)[0]
        profile = db.get_profile(user_id)
        top_performer = (profile.display_name if profile else "Unknown", count)

    return DailyStats(
        daily_goal=daily_goal,
        completed_today=len(completed),
        rfq_count=sum(1 for t in active if t.status == TaskStatus.TODO),
        in_progress_count=sum(1 for t in active if t.status != TaskStatus.TODO),
        stuck_count=sum(1 for t in active if t.hours_idle(now) > 2),
        top_performer=top_performer,
    )


def compose_broadcast(
    broadcast_type: str, stats: DailyStats, team_size: int
) -> tuple[str, str]:
    if broadcast_type == "morning":
        quota = math.ceil(stats.daily_goal / max(team_size, 1))
        return (
            "GOOD MORNING ESTIMATION TEAM!",
            f"Today's Goal: {stats.daily_goal} quotations\n\n"
            f"Current Pipeline:\n- {stats.rfq_count} RFQs waiting\n"
            f"- {stats.in_progress_count} in progress\n"
            f"- {stats.completed_today} completed today\n\n"
            f"Your Daily Quota: {quota} quotations each\n\nLet's make it happen!",
        )
    if broadcast_type == "progress":
        percentage = round(stats.completed_today / stats.daily_goal * 100)
        message = (
            f"Team Progress: {stats.completed_today}/{stats.daily_goal} "
            f"quotations ({percentage}%)\n\n"
        )
        if stats.stuck_count > 0:
            message += f"{stats.stuck_count} tasks need attention (>2 hours idle)\n\n"
        return "PROGRESS UPDATE", message + "Keep pushing!"
    if broadcast_type == "endofday":
        goal_met = stats.completed_today >= stats.daily_goal
        title = "DAILY GOAL ACHIEVED!" if goal_met else "END OF DAY SUMMARY"
        message = (
            f"Today's Results: {stats.completed_today}/{stats.daily_goal} quotations\n\n"
        )
        if stats.top_performer:
            name, count = stats.top_performer
            message += f"Top Performer: {name} ({count} quotations)\n\n"
        if goal_met:
            message += "Outstanding work team!"
        else:
            message += f"Let's aim for {stats.daily_goal} tomorrow!"
        return title, message
    raise UnknownBroadcastType(broadcast_type)


def run_daily_broadcast(
    db: DbClient,
    broadcast_type: str,
    now: Optional[float] = None,
    daily_goal: int = 10,
) -> dict:
    if broadcast_type not in BROADCAST_TYPES:
        raise UnknownBroadcastType(broadcast_type)
    now = time.time() if now is None else now
    logger.info("Running %s broadcast...", broadcast_type)

    team = db.user_ids_with_roles([AppRole.ESTIMATION])
    if not team:
        return {"message": "No estimation users found", "type": broadcast_type, "recipient_count": 0}

    stats = daily_stats(db, now, daily_goal)
    title, message = compose_broadcast(broadcast_type, stats, len(team))
    notify_users(
        db,
        team,
        sender_id=team[0],
        title=title,
        message=message,
        priority=NotificationPriority.MEDIUM,
        is_broadcast=True,
    )
    logger.info("Broadcast sent to %d estimation users", len(team))
    return {
        "message": "Broadcast completed",
        "type": broadcast_type,
        "recipient_count": len(team),
    }
