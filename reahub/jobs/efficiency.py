"""
Weekly efficiency scores, activity streaks and achievements per user.

The score over the trailing seven days is::

    10 * tasks completed + 5 * reviews completed + 3 * activity entries
        - 15 * abandoned tasks (open and idle for 72 hours or more)

floored at zero. Running totals on the streak row only add what happened
since the previous calculation, so the job can run daily without double
counting.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Optional

from reahub.db import (
    AchievementRecord,
    ActivityStreakRecord,
    DbClient,
    ProfileRecord,
    TaskRecord,
)
from reahub.jobs.broadcasts import utc_date
from reahub.types import TaskStatus

logger = logging.getLogger(__name__)

DAY = 24 * 3600
WEEK = 7 * DAY
ABANDONED_AFTER_HOURS = 72
STREAK_ACHIEVEMENT_DAYS = 5
TASK_MASTER_COMPLETIONS = 10


def efficiency_score(completed: int, reviews: int, activity: int, abandoned: int) -> int:
    return max(0, completed * 10 + reviews * 5 + activity * 3 - abandoned * 15)


def _days_since(date_str: str, now: float) -> int:
    day = datetime.strptime(date_str, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return int((now - day.timestamp()) // DAY)


def advance_streak(
    streak: ActivityStreakRecord, active_today: bool, now: float
) -> ActivityStreakRecord:
    """Return the streak after today's check; ``streak`` is not modified."""
    today = utc_date(now)
    last = streak.last_activity_date
    current, longest = streak.current_streak, streak.longest_streak
    if active_today:
        if last != today:
            current = current + 1 if last == utc_date(now - DAY) else 1
            longest = max(longest, current)
        last = today
    elif last and _days_since(last, now) >= 2:
        current = 0
    return ActivityStreakRecord(
        user_id=streak.user_id,
        current_streak=current,
        longest_streak=longest,
        last_activity_date=last,
        total_tasks_completed=streak.total_tasks_completed,
        total_quick_responses=streak.total_quick_responses,
        efficiency_score=streak.efficiency_score,
        updated_at=streak.updated_at,
    )


def _owned_by(task: TaskRecord, user_id: str) -> bool:
    return user_id in (task.assigned_to, task.created_by)


def score_user(
    db: DbClient, profile: ProfileRecord, tasks: list[TaskRecord], now: float
) -> tuple[ActivityStreakRecord, list[AchievementRecord]]:
    week_ago = now - WEEK
    existing = db.get_activity_streak(profile.id) or ActivityStreakRecord(user_id=profile.id)
    counted_from = max(week_ago, existing.updated_at or 0.0)

    owned = [t for t in tasks if _owned_by(t, profile.id)]
    completed = [
        t
        for t in owned
        if t.status == TaskStatus.DONE
        and t.completed_at is not None
        and t.completed_at >= week_ago
    ]
    abandoned = [
        t
        for t in owned
        if t.status != TaskStatus.DONE
        and t.deleted_at is None
        and t.last_activity_at < now - ABANDONED_AFTER_HOURS * 3600
    ]
    reviews = db.list_daily_reviews(
        user_id=profile.id, since_date=utc_date(week_ago), completed_only=True
    )
    activity = db.list_user_activity(profile.id, since=week_ago)
    active_today = any(a.created_at >= now - DAY for a in activity)

    streak = advance_streak(existing, active_today, now)
    streak.efficiency_score = efficiency_score(
        len(completed), len(reviews), len(activity), len(abandoned)
    )
    streak.total_tasks_completed += sum(1 for t in completed if t.completed_at >= counted_from)
    streak.total_quick_responses += sum(1 for a in activity if a.created_at >= counted_from)
    streak.updated_at = now

    achievements = []
    if streak.current_streak >= STREAK_ACHIEVEMENT_DAYS:
        achievements.append(
            AchievementRecord(
                user_id=profile.id,
                achievement_type="5_day_streak",
                metadata={"streak": streak.current_streak},
                awarded_at=now,
            )
        )
    if len(completed) >= TASK_MASTER_COMPLETIONS:
        achievements.append(
            AchievementRecord(
                user_id=profile.id,
                achievement_type="task_master",
                metadata={"tasks": len(completed)},
                awarded_at=now,
            )
        )
    return streak, achievements


def run_efficiency_scores(db: DbClient, now: Optional[float] = None) -> dict:
    now = time.time() if now is None else now
    logger.info("Calculating efficiency scores...")
    profiles = db.list_profiles()
    tasks = db.list_tasks(include_deleted=True)

    users_processed = 0
    achievements_awarded = 0
    for profile in profiles:
        try:
            streak, achievements = score_user(db, profile, tasks, now)
            db.save_activity_streak(streak)
            for achievement in achievements:
                if db.award_achievement(achievement):
                    achievements_awarded += 1
        except Exception:
            logger.exception("Failed to score user %s", profile.id)
            continue
        users_processed += 1
        logger.info(
            "Updated score for user %s: %d points, %d day streak",
            profile.id,
            streak.efficiency_score,
            streak.current_streak,
        )

    return {
        "success": True,
        "users_processed": users_processed,
        "achievements_awarded": achievements_awarded,
    }
