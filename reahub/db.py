"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    or_,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from reahub.types import (
    DEFAULT_STAGE_LIMITS,
    AppRole,
    NotificationPriority,
    TaskPriority,
    TaskStatus,
    TaskType,
)


class NotFoundError(KeyError):
    """Raised when a row addressed by id does not exist."""


class DuplicateError(ValueError):
    """Raised when a unique column would be violated."""


# Columns a caller may change through update_task.
TASK_MUTABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "priority",
        "type",
        "client_name",
        "supplier_name",
        "assigned_to",
        "assigned_by",
        "due_date",
        "position",
        "deleted_at",
    }
)

RULE_MUTABLE_FIELDS = frozenset(
    {
        "rule_name",
        "source_status",
        "threshold_hours",
        "target_status",
        "notify_roles",
        "enabled",
    }
)

PROFILE_MUTABLE_FIELDS = frozenset({"email", "full_name", "roles"})


class DbClient(Protocol):
    """Interface for database access."""

    def create_profile(
        self, email: str, full_name: Optional[str], roles: Sequence[AppRole]
    ) -> "ProfileRecord":
        ...

    def get_profile(self, user_id: str) -> Optional["ProfileRecord"]:
        ...

    def list_profiles(self, role: Optional[AppRole] = None) -> list["ProfileRecord"]:
        ...

    def user_ids_with_roles(self, roles: Iterable[AppRole]) -> list[str]:
        ...

    def create_task(self, task: "TaskRecord") -> "TaskRecord":
        ...

    def get_task(self, task_id: str) -> Optional["TaskRecord"]:
        ...

    def list_tasks(
        self,
        *,
        statuses: Optional[Iterable[TaskStatus]] = None,
        exclude_statuses: Optional[Iterable[TaskStatus]] = None,
        assigned_to: Optional[str] = None,
        task_type: Optional[TaskType] = None,
        include_deleted: bool = False,
        inactive_before: Optional[float] = None,
        completed_since: Optional[float] = None,
    ) -> list["TaskRecord"]:
        ...

    def update_task(
        self, task_id: str, changes: dict, now: Optional[float] = None
    ) -> "TaskRecord":
        ...

    def delete_task(self, task_id: str) -> None:
        ...

    def add_activity(self, activity: "ActivityRecord") -> None:
        ...

    def list_activity(self, task_id: str) -> list["ActivityRecord"]:
        ...

    def insert_notifications(
        self, notifications: Sequence["NotificationRecord"]
    ) -> None:
        ...

    def list_notifications(
        self, recipient_id: str, *, unacknowledged_only: bool = False
    ) -> list["NotificationRecord"]:
        ...

    def acknowledge_notification(
        self, notification_id: str, now: Optional[float] = None
    ) -> "NotificationRecord":
        ...

    def upsert_presence(
        self,
        user_id: str,
        *,
        status: str,
        custom_message: Optional[str],
        now: Optional[float] = None,
    ) -> "PresenceRecord":
        ...

    def get_presence(self, user_id: str) -> Optional["PresenceRecord"]:
        ...

    def list_presence(self) -> list["PresenceRecord"]:
        ...

    def create_rule(self, rule: "AutomationRuleRecord") -> "AutomationRuleRecord":
        ...

    def get_rule(self, rule_id: str) -> Optional["AutomationRuleRecord"]:
        ...

    def list_rules(self, *, enabled_only: bool = False) -> list["AutomationRuleRecord"]:
        ...

    def update_rule(self, rule_id: str, changes: dict) -> "AutomationRuleRecord":
        ...

    def delete_rule(self, rule_id: str) -> None:
        ...

    def list_stage_limits(self) -> dict[str, "StageLimitRecord"]:
        ...

    def set_stage_limit(self, limit: "StageLimitRecord") -> None:
        ...

    def create_reminder(self, reminder: "ReminderRecord") -> None:
        ...

    def list_reminders(self, user_id: str) -> list["ReminderRecord"]:
        ...

    def save_message(self, message: "MessageRecord") -> "MessageRecord":
        ...

    def list_conversation(self, user_a: str, user_b: str) -> list["MessageRecord"]:
        ...

    def mark_messages_read(self, recipient_id: str, sender_id: str) -> int:
        ...

    def count_unread(self, recipient_id: str) -> int:
        ...

    def update_profile(self, user_id: str, changes: dict) -> "ProfileRecord":
        ...

    def list_user_activity(self, user_id: str, since: float) -> list["ActivityRecord"]:
        ...

    def ensure_daily_review(
        self, user_id: str, review_date: str, now: Optional[float] = None
    ) -> "DailyReviewRecord":
        ...

    def complete_daily_review(
        self,
        user_id: str,
        review_date: str,
        tasks_reviewed: int,
        now: Optional[float] = None,
    ) -> "DailyReviewRecord":
        ...

    def list_daily_reviews(
        self,
        *,
        user_id: Optional[str] = None,
        review_date: Optional[str] = None,
        since_date: Optional[str] = None,
        completed_only: bool = False,
    ) -> list["DailyReviewRecord"]:
        ...

    def get_activity_streak(self, user_id: str) -> Optional["ActivityStreakRecord"]:
        ...

    def save_activity_streak(self, streak: "ActivityStreakRecord") -> None:
        ...

    def award_achievement(self, achievement: "AchievementRecord") -> bool:
        ...

    def list_achievements(self, user_id: str) -> list["AchievementRecord"]:
        ...

    def get_job_marker(self, name: str) -> Optional[float]:
        ...

    def set_job_marker(self, name: str, ran_at: float) -> None:
        ...


def _new_id() -> str:
    return uuid.uuid4().hex


def _enum_value(value):
    return value.value if isinstance(value, Enum) else value


@dataclass
class ProfileRecord:
    id: str
    email: str
    full_name: Optional[str]
    roles: list[AppRole] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Unknown"

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "roles": [role.value for role in self.roles],
            "created_at": self.created_at,
        }


@dataclass
class TaskRecord:
    title: str
    created_by: str
    id: str = field(default_factory=_new_id)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    previous_status: Optional[TaskStatus] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    type: TaskType = TaskType.GENERAL
    client_name: Optional[str] = None
    supplier_name: Optional[str] = None
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    due_date: Optional[float] = None
    position: int = 0
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())
    status_changed_at: Optional[float] = None
    last_activity_at: float = field(default_factory=lambda: time.time())
    completed_at: Optional[float] = None
    deleted_at: Optional[float] = None

    def hours_idle(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return (now - self.last_activity_at) / 3600

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "previous_status": (
                self.previous_status.value if self.previous_status else None
            ),
            "priority": self.priority.value,
            "type": self.type.value,
            "client_name": self.client_name,
            "supplier_name": self.supplier_name,
            "created_by": self.created_by,
            "assigned_to": self.assigned_to,
            "assigned_by": self.assigned_by,
            "due_date": self.due_date,
            "position": self.position,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "status_changed_at": self.status_changed_at,
            "last_activity_at": self.last_activity_at,
            "completed_at": self.completed_at,
            "deleted_at": self.deleted_at,
        }


@dataclass
class ActivityRecord:
    task_id: str
    user_id: str
    action: str
    details: dict = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "action": self.action,
            "details": self.details,
            "created_at": self.created_at,
        }


@dataclass
class NotificationRecord:
    sender_id: str
    recipient_id: Optional[str]
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.HIGH
    is_broadcast: bool = False
    is_acknowledged: bool = False
    acknowledged_at: Optional[float] = None
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "title": self.title,
            "message": self.message,
            "priority": self.priority.value,
            "is_broadcast": self.is_broadcast,
            "is_acknowledged": self.is_acknowledged,
            "acknowledged_at": self.acknowledged_at,
            "created_at": self.created_at,
        }


@dataclass
class PresenceRecord:
    user_id: str
    status: str = "available"
    custom_message: Optional[str] = None
    last_active: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())


@dataclass
class AutomationRuleRecord:
    rule_name: str
    source_status: TaskStatus
    threshold_hours: int
    target_status: Optional[TaskStatus] = None
    notify_roles: list[AppRole] = field(default_factory=list)
    enabled: bool = True
    created_by: Optional[str] = None
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_name": self.rule_name,
            "source_status": self.source_status.value,
            "threshold_hours": self.threshold_hours,
            "target_status": (
                self.target_status.value if self.target_status else None
            ),
            "notify_roles": [role.value for role in self.notify_roles],
            "enabled": self.enabled,
            "created_by": self.created_by,
        }


@dataclass
class StageLimitRecord:
    stage_status: str
    time_limit_hours: int
    warning_threshold_hours: int


@dataclass
class ReminderRecord:
    task_id: str
    user_id: str
    reminder_time: float
    is_snoozed: bool = False
    is_dismissed: bool = False
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())


@dataclass
class MessageRecord:
    sender_id: str
    recipient_id: str
    message: str
    is_read: bool = False
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "recipient_id": self.recipient_id,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": self.created_at,
        }


@dataclass
class DailyReviewRecord:
    """One user's review for one UTC day; ``review_date`` is ``YYYY-MM-DD``."""

    user_id: str
    review_date: str
    completed: bool = False
    tasks_reviewed: int = 0
    completed_at: Optional[float] = None
    id: str = field(default_factory=_new_id)
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "review_date": self.review_date,
            "completed": self.completed,
            "tasks_reviewed": self.tasks_reviewed,
            "completed_at": self.completed_at,
            "created_at": self.created_at,
        }


@dataclass
class ActivityStreakRecord:
    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: Optional[str] = None
    total_tasks_completed: int = 0
    total_quick_responses: int = 0
    efficiency_score: int = 0
    updated_at: Optional[float] = None

    def as_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_activity_date": self.last_activity_date,
            "total_tasks_completed": self.total_tasks_completed,
            "total_quick_responses": self.total_quick_responses,
            "efficiency_score": self.efficiency_score,
            "updated_at": self.updated_at,
        }


@dataclass
class AchievementRecord:
    user_id: str
    achievement_type: str
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    awarded_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "achievement_type": self.achievement_type,
            "metadata": dict(self.metadata),
            "awarded_at": self.awarded_at,
        }


def apply_task_changes(task, changes: dict, now: float) -> None:
    """
    Apply a partial update to a task record or row.

    Every update counts as activity. A status change keeps the previous
    status and maintains completed_at around the ``done`` stage.
    """
    unknown = set(changes) - TASK_MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")

    for key, value in changes.items():
        if key != "status":
            setattr(task, key, value)

    new_status = changes.get("status")
    if new_status is not None and new_status != task.status:
        task.previous_status = task.status
        task.status = new_status
        task.status_changed_at = now
        if new_status == TaskStatus.DONE:
            task.completed_at = now
        elif task.previous_status == TaskStatus.DONE:
            task.completed_at = None

    task.last_activity_at = now
    task.updated_at = now


_TASK_ENUM_FIELDS = {
    "status": TaskStatus,
    "priority": TaskPriority,
    "type": TaskType,
}


def coerce_task_changes(changes: dict) -> dict:
    """Turn raw enum strings (e.g. from a replayed offline write) into enums."""
    coerced = {}
    for key, value in changes.items():
        enum_cls = _TASK_ENUM_FIELDS.get(key)
        if enum_cls is not None and value is not None:
            value = enum_cls(value)
        coerced[key] = value
    return coerced


def _task_matches(
    task: TaskRecord,
    *,
    statuses: Optional[set] = None,
    exclude_statuses: Optional[set] = None,
    assigned_to: Optional[str] = None,
    task_type: Optional[TaskType] = None,
    include_deleted: bool = False,
    inactive_before: Optional[float] = None,
    completed_since: Optional[float] = None,
) -> bool:
    if not include_deleted and task.deleted_at is not None:
        return False
    if statuses is not None and task.status not in statuses:
        return False
    if exclude_statuses and task.status in exclude_statuses:
        return False
    if assigned_to is not None and task.assigned_to != assigned_to:
        return False
    if task_type is not None and task.type != task_type:
        return False
    if inactive_before is not None and task.last_activity_at >= inactive_before:
        return False
    if completed_since is not None and (
        task.completed_at is None or task.completed_at < completed_since
    ):
        return False
    return True


def _default_stage_limits() -> dict[str, StageLimitRecord]:
    return {
        status.value: StageLimitRecord(status.value, limit, warning)
        for status, (limit, warning) in DEFAULT_STAGE_LIMITS.items()
    }


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.profiles: Dict[str, ProfileRecord] = {}
        self.tasks: Dict[str, TaskRecord] = {}
        self.activity: List[ActivityRecord] = []
        self.notifications: Dict[str, NotificationRecord] = {}
        self.presence: Dict[str, PresenceRecord] = {}
        self.rules: Dict[str, AutomationRuleRecord] = {}
        self.stage_limits: Dict[str, StageLimitRecord] = _default_stage_limits()
        self.reminders: List[ReminderRecord] = []
        self.messages: List[MessageRecord] = []
        self.daily_reviews: Dict[tuple, DailyReviewRecord] = {}
        self.streaks: Dict[str, ActivityStreakRecord] = {}
        self.achievements: List[AchievementRecord] = []
        self.job_markers: Dict[str, float] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.profiles.clear()
        self.tasks.clear()
        self.activity.clear()
        self.notifications.clear()
        self.presence.clear()
        self.rules.clear()
        self.stage_limits = _default_stage_limits()
        self.reminders.clear()
        self.messages.clear()
        self.daily_reviews.clear()
        self.streaks.clear()
        self.achievements.clear()
        self.job_markers.clear()

    def create_profile(
        self, email: str, full_name: Optional[str], roles: Sequence[AppRole]
    ) -> ProfileRecord:
        if any(p.email == email for p in self.profiles.values()):
            raise DuplicateError(f"Email already registered: {email}")
        record = ProfileRecord(
            id=_new_id(), email=email, full_name=full_name, roles=list(roles)
        )
        self.profiles[record.id] = record
        return record

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        return self.profiles.get(user_id)

    def list_profiles(self, role: Optional[AppRole] = None) -> list[ProfileRecord]:
        profiles = sorted(self.profiles.values(), key=lambda p: p.created_at)
        if role is None:
            return profiles
        return [p for p in profiles if role in p.roles]

    def user_ids_with_roles(self, roles: Iterable[AppRole]) -> list[str]:
        wanted = set(roles)
        return sorted(
            p.id for p in self.profiles.values() if wanted.intersection(p.roles)
        )

    def create_task(self, task: TaskRecord) -> TaskRecord:
        self.tasks[task.id] = task
        return task

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        return self.tasks.get(task_id)

    def list_tasks(
        self,
        *,
        statuses: Optional[Iterable[TaskStatus]] = None,
        exclude_statuses: Optional[Iterable[TaskStatus]] = None,
        assigned_to: Optional[str] = None,
        task_type: Optional[TaskType] = None,
        include_deleted: bool = False,
        inactive_before: Optional[float] = None,
        completed_since: Optional[float] = None,
    ) -> list[TaskRecord]:
        status_set = set(statuses) if statuses is not None else None
        excluded = set(exclude_statuses) if exclude_statuses else None
        matches = [
            task
            for task in self.tasks.values()
            if _task_matches(
                task,
                statuses=status_set,
                exclude_statuses=excluded,
                assigned_to=assigned_to,
                task_type=task_type,
                include_deleted=include_deleted,
                inactive_before=inactive_before,
                completed_since=completed_since,
            )
        ]
        return sorted(matches, key=lambda t: (t.position, t.created_at))

    def update_task(
        self, task_id: str, changes: dict, now: Optional[float] = None
    ) -> TaskRecord:
        task = self.tasks.get(task_id)
        if not task:
            raise NotFoundError(task_id)
        apply_task_changes(
            task, coerce_task_changes(changes), time.time() if now is None else now
        )
        return task

    def delete_task(self, task_id: str) -> None:
        if self.tasks.pop(task_id, None) is None:
            raise NotFoundError(task_id)
        self.activity = [a for a in self.activity if a.task_id != task_id]

    def add_activity(self, activity: ActivityRecord) -> None:
        self.activity.append(activity)

    def list_activity(self, task_id: str) -> list[ActivityRecord]:
        items = [a for a in self.activity if a.task_id == task_id]
        return sorted(items, key=lambda a: a.created_at, reverse=True)

    def insert_notifications(self, notifications: Sequence[NotificationRecord]) -> None:
        for notification in notifications:
            self.notifications[notification.id] = notification

    def list_notifications(
        self, recipient_id: str, *, unacknowledged_only: bool = False
    ) -> list[NotificationRecord]:
        items = [
            n
            for n in self.notifications.values()
            if n.recipient_id == recipient_id
            and not (unacknowledged_only and n.is_acknowledged)
        ]
        return sorted(items, key=lambda n: n.created_at, reverse=True)

    def acknowledge_notification(
        self, notification_id: str, now: Optional[float] = None
    ) -> NotificationRecord:
        notification = self.notifications.get(notification_id)
        if not notification:
            raise NotFoundError(notification_id)
        if not notification.is_acknowledged:
            notification.is_acknowledged = True
            notification.acknowledged_at = time.time() if now is None else now
        return notification

    def upsert_presence(
        self,
        user_id: str,
        *,
        status: str,
        custom_message: Optional[str],
        now: Optional[float] = None,
    ) -> PresenceRecord:
        now = time.time() if now is None else now
        presence = self.presence.get(user_id)
        if presence is None:
            presence = PresenceRecord(user_id=user_id)
            self.presence[user_id] = presence
        presence.status = status
        presence.custom_message = custom_message
        presence.last_active = now
        presence.updated_at = now
        return presence

    def get_presence(self, user_id: str) -> Optional[PresenceRecord]:
        return self.presence.get(user_id)

    def list_presence(self) -> list[PresenceRecord]:
        return sorted(self.presence.values(), key=lambda p: p.user_id)

    def create_rule(self, rule: AutomationRuleRecord) -> AutomationRuleRecord:
        if any(r.rule_name == rule.rule_name for r in self.rules.values()):
            raise DuplicateError(f"Rule already exists: {rule.rule_name}")
        self.rules[rule.id] = rule
        return rule

    def get_rule(self, rule_id: str) -> Optional[AutomationRuleRecord]:
        return self.rules.get(rule_id)

    def list_rules(self, *, enabled_only: bool = False) -> list[AutomationRuleRecord]:
        rules = sorted(self.rules.values(), key=lambda r: r.created_at)
        if enabled_only:
            return [r for r in rules if r.enabled]
        return rules

    def update_rule(self, rule_id: str, changes: dict) -> AutomationRuleRecord:
        rule = self.rules.get(rule_id)
        if not rule:
            raise NotFoundError(rule_id)
        unknown = set(changes) - RULE_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown rule fields: {', '.join(sorted(unknown))}")
        new_name = changes.get("rule_name")
        if new_name and any(
            r.rule_name == new_name and r.id != rule_id for r in self.rules.values()
        ):
            raise DuplicateError(f"Rule already exists: {new_name}")
        for key, value in changes.items():
            setattr(rule, key, value)
        rule.updated_at = time.time()
        return rule

    def delete_rule(self, rule_id: str) -> None:
        if self.rules.pop(rule_id, None) is None:
            raise NotFoundError(rule_id)

    def list_stage_limits(self) -> dict[str, StageLimitRecord]:
        return dict(self.stage_limits)

    def set_stage_limit(self, limit: StageLimitRecord) -> None:
        self.stage_limits[limit.stage_status] = limit

    def create_reminder(self, reminder: ReminderRecord) -> None:
        self.reminders.append(reminder)

    def list_reminders(self, user_id: str) -> list[ReminderRecord]:
        items = [r for r in self.reminders if r.user_id == user_id]
        return sorted(items, key=lambda r: r.reminder_time)

    def save_message(self, message: MessageRecord) -> MessageRecord:
        self.messages.append(message)
        return message

    def list_conversation(self, user_a: str, user_b: str) -> list[MessageRecord]:
        pair = {user_a, user_b}
        items = [
            m for m in self.messages if {m.sender_id, m.recipient_id} == pair
        ]
        return sorted(items, key=lambda m: m.created_at)

    def mark_messages_read(self, recipient_id: str, sender_id: str) -> int:
        updated = 0
        for message in self.messages:
            if (
                message.recipient_id == recipient_id
                and message.sender_id == sender_id
                and not message.is_read
            ):
                message.is_read = True
                updated += 1
        return updated

    def count_unread(self, recipient_id: str) -> int:
        return sum(
            1
            for m in self.messages
            if m.recipient_id == recipient_id and not m.is_read
        )

    def update_profile(self, user_id: str, changes: dict) -> ProfileRecord:
        profile = self.profiles.get(user_id)
        if not profile:
            raise NotFoundError(user_id)
        unknown = set(changes) - PROFILE_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        new_email = changes.get("email")
        if new_email and any(
            p.email == new_email and p.id != user_id for p in self.profiles.values()
        ):
            raise DuplicateError(f"Email already registered: {new_email}")
        for key, value in changes.items():
            if key == "roles":
                value = sorted(set(value), key=lambda r: r.value)
            setattr(profile, key, value)
        return profile

    def list_user_activity(self, user_id: str, since: float) -> list[ActivityRecord]:
        items = [
            a for a in self.activity if a.user_id == user_id and a.created_at >= since
        ]
        return sorted(items, key=lambda a: a.created_at)

    def ensure_daily_review(
        self, user_id: str, review_date: str, now: Optional[float] = None
    ) -> DailyReviewRecord:
        key = (user_id, review_date)
        if key not in self.daily_reviews:
            self.daily_reviews[key] = DailyReviewRecord(
                user_id=user_id,
                review_date=review_date,
                created_at=time.time() if now is None else now,
            )
        return self.daily_reviews[key]

    def complete_daily_review(
        self,
        user_id: str,
        review_date: str,
        tasks_reviewed: int,
        now: Optional[float] = None,
    ) -> DailyReviewRecord:
        now = time.time() if now is None else now
        review = self.ensure_daily_review(user_id, review_date, now=now)
        review.completed = True
        review.tasks_reviewed = tasks_reviewed
        review.completed_at = now
        return review

    def list_daily_reviews(
        self,
        *,
        user_id: Optional[str] = None,
        review_date: Optional[str] = None,
        since_date: Optional[str] = None,
        completed_only: bool = False,
    ) -> list[DailyReviewRecord]:
        items = []
        for review in self.daily_reviews.values():
            if user_id is not None and review.user_id != user_id:
                continue
            if review_date is not None and review.review_date != review_date:
                continue
            if since_date is not None and review.review_date < since_date:
                continue
            if completed_only and not review.completed:
                continue
            items.append(review)
        return sorted(items, key=lambda r: (r.review_date, r.user_id))

    def get_activity_streak(self, user_id: str) -> Optional[ActivityStreakRecord]:
        return self.streaks.get(user_id)

    def save_activity_streak(self, streak: ActivityStreakRecord) -> None:
        self.streaks[streak.user_id] = streak

    def award_achievement(self, achievement: AchievementRecord) -> bool:
        if any(
            a.user_id == achievement.user_id
            and a.achievement_type == achievement.achievement_type
            for a in self.achievements
        ):
            return False
        self.achievements.append(achievement)
        return True

    def list_achievements(self, user_id: str) -> list[AchievementRecord]:
        items = [a for a in self.achievements if a.user_id == user_id]
        return sorted(items, key=lambda a: a.awarded_at)

    def get_job_marker(self, name: str) -> Optional[float]:
        return self.job_markers.get(name)

    def set_job_marker(self, name: str, ran_at: float) -> None:
        self.job_markers[name] = ran_at


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        self._seed_stage_limits()

    def _seed_stage_limits(self) -> None:
        with self.Session() as session:
            for limit in _default_stage_limits().values():
                if session.get(StageLimitRow, limit.stage_status) is None:
                    session.add(
                        StageLimitRow(
                            stage_status=limit.stage_status,
                            time_limit_hours=limit.time_limit_hours,
                            warning_threshold_hours=limit.warning_threshold_hours,
                        )
                    )
            session.commit()

    def _roles_for(self, session: Session, user_id: str) -> list[AppRole]:
        rows = session.execute(
            select(UserRoleRow.role).where(UserRoleRow.user_id == user_id)
        ).scalars()
        return sorted((AppRole(role) for role in rows), key=lambda r: r.value)

    def _to_profile_record(self, session: Session, row: "ProfileRow") -> ProfileRecord:
        return ProfileRecord(
            id=row.id,
            email=row.email,
            full_name=row.full_name,
            roles=self._roles_for(session, row.id),
            created_at=row.created_at,
        )

    def _to_task_record(self, row: "TaskRow") -> TaskRecord:
        return TaskRecord(
            id=row.id,
            title=row.title,
            description=row.description,
            status=TaskStatus(row.status),
            previous_status=(
                TaskStatus(row.previous_status) if row.previous_status else None
            ),
            priority=TaskPriority(row.priority),
            type=TaskType(row.type),
            client_name=row.client_name,
            supplier_name=row.supplier_name,
            created_by=row.created_by,
            assigned_to=row.assigned_to,
            assigned_by=row.assigned_by,
            due_date=row.due_date,
            position=row.position,
            created_at=row.created_at,
            updated_at=row.updated_at,
            status_changed_at=row.status_changed_at,
            last_activity_at=row.last_activity_at,
            completed_at=row.completed_at,
            deleted_at=row.deleted_at,
        )

    def _to_notification_record(self, row: "NotificationRow") -> NotificationRecord:
        return NotificationRecord(
            id=row.id,
            sender_id=row.sender_id,
            recipient_id=row.recipient_id,
            title=row.title,
            message=row.message,
            priority=NotificationPriority(row.priority),
            is_broadcast=row.is_broadcast,
            is_acknowledged=row.is_acknowledged,
            acknowledged_at=row.acknowledged_at,
            created_at=row.created_at,
        )

    def _to_rule_record(self, row: "AutomationRuleRow") -> AutomationRuleRecord:
        return AutomationRuleRecord(
            id=row.id,
            rule_name=row.rule_name,
            source_status=TaskStatus(row.source_status),
            threshold_hours=row.threshold_hours,
            target_status=TaskStatus(row.target_status) if row.target_status else None,
            notify_roles=[AppRole(role) for role in row.notify_roles or []],
            enabled=row.enabled,
            created_by=row.created_by,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_presence_record(self, row: "PresenceRow") -> PresenceRecord:
        return PresenceRecord(
            user_id=row.user_id,
            status=row.status,
            custom_message=row.custom_message,
            last_active=row.last_active,
            updated_at=row.updated_at,
        )

    def _to_activity_record(self, row: "ActivityRow") -> ActivityRecord:
        return ActivityRecord(
            id=row.id,
            task_id=row.task_id,
            user_id=row.user_id,
            action=row.action,
            details=row.details or {},
            created_at=row.created_at,
        )

    def _to_message_record(self, row: "MessageRow") -> MessageRecord:
        return MessageRecord(
            id=row.id,
            sender_id=row.sender_id,
            recipient_id=row.recipient_id,
            message=row.message,
            is_read=row.is_read,
            created_at=row.created_at,
        )

    def create_profile(
        self, email: str, full_name: Optional[str], roles: Sequence[AppRole]
    ) -> ProfileRecord:
        with self.Session() as session:
            existing = session.execute(
                select(ProfileRow).where(ProfileRow.email == email)
            ).scalar_one_or_none()
            if existing:
                raise DuplicateError(f"Email already registered: {email}")
            row = ProfileRow(
                id=_new_id(), email=email, full_name=full_name, created_at=time.time()
            )
            session.add(row)
            for role in set(roles):
                session.add(UserRoleRow(user_id=row.id, role=_enum_value(role)))
            session.commit()
            return self._to_profile_record(session, row)

    def get_profile(self, user_id: str) -> Optional[ProfileRecord]:
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if not row:
                return None
            return self._to_profile_record(session, row)

    def list_profiles(self, role: Optional[AppRole] = None) -> list[ProfileRecord]:
        with self.Session() as session:
            stmt = select(ProfileRow).order_by(ProfileRow.created_at.asc())
            if role is not None:
                stmt = stmt.join(
                    UserRoleRow, UserRoleRow.user_id == ProfileRow.id
                ).where(UserRoleRow.role == _enum_value(role))
            rows = session.execute(stmt).scalars().all()
            return [self._to_profile_record(session, row) for row in rows]

    def user_ids_with_roles(self, roles: Iterable[AppRole]) -> list[str]:
        values = [_enum_value(role) for role in roles]
        if not values:
            return []
        with self.Session() as session:
            rows = session.execute(
                select(UserRoleRow.user_id)
                .where(UserRoleRow.role.in_(values))
                .distinct()
            ).scalars()
            return sorted(rows)

    def create_task(self, task: TaskRecord) -> TaskRecord:
        with self.Session() as session:
            row = TaskRow(
                **{
                    key: _enum_value(value)
                    for key, value in task.as_dict().items()
                }
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_task_record(row)

    def get_task(self, task_id: str) -> Optional[TaskRecord]:
        with self.Session() as session:
            row = session.get(TaskRow, task_id)
            if not row:
                return None
            return self._to_task_record(row)

    def list_tasks(
        self,
        *,
        statuses: Optional[Iterable[TaskStatus]] = None,
        exclude_statuses: Optional[Iterable[TaskStatus]] = None,
        assigned_to: Optional[str] = None,
        task_type: Optional[TaskType] = None,
        include_deleted: bool = False,
        inactive_before: Optional[float] = None,
        completed_since: Optional[float] = None,
    ) -> list[TaskRecord]:
        stmt = select(TaskRow)
        if not include_deleted:
            stmt = stmt.where(TaskRow.deleted_at.is_(None))
        if statuses is not None:
            stmt = stmt.where(TaskRow.status.in_([_enum_value(s) for s in statuses]))
        if exclude_statuses:
            stmt = stmt.where(
                TaskRow.status.not_in([_enum_value(s) for s in exclude_statuses])
            )
        if assigned_to is not None:
            stmt = stmt.where(TaskRow.assigned_to == assigned_to)
        if task_type is not None:
            stmt = stmt.where(TaskRow.type == _enum_value(task_type))
        if inactive_before is not None:
            stmt = stmt.where(TaskRow.last_activity_at < inactive_before)
        if completed_since is not None:
            stmt = stmt.where(TaskRow.completed_at >= completed_since)
        stmt = stmt.order_by(TaskRow.position.asc(), TaskRow.created_at.asc())
        with self.Session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_task_record(row) for row in rows]

    def update_task(
        self, task_id: str, changes: dict, now: Optional[float] = None
    ) -> TaskRecord:
        with self.Session() as session:
            row = session.get(TaskRow, task_id)
            if not row:
                raise NotFoundError(task_id)
            apply_task_changes(
                row,
                {
                    key: _enum_value(value)
                    for key, value in coerce_task_changes(changes).items()
                },
                time.time() if now is None else now,
            )
            session.commit()
            session.refresh(row)
            return self._to_task_record(row)

    def delete_task(self, task_id: str) -> None:
        with self.Session() as session:
            row = session.get(TaskRow, task_id)
            if not row:
                raise NotFoundError(task_id)
            session.query(ActivityRow).filter(ActivityRow.task_id == task_id).delete(
                synchronize_session=False
            )
            session.delete(row)
            session.commit()

    def add_activity(self, activity: ActivityRecord) -> None:
        with self.Session() as session:
            session.add(
                ActivityRow(
                    id=activity.id,
                    task_id=activity.task_id,
                    user_id=activity.user_id,
                    action=activity.action,
                    details=activity.details,
                    created_at=activity.created_at,
                )
            )
            session.commit()

    def list_activity(self, task_id: str) -> list[ActivityRecord]:
        with self.Session() as session:
            rows = (
                session.query(ActivityRow)
                .filter(ActivityRow.task_id == task_id)
                .order_by(ActivityRow.created_at.desc())
                .all()
            )
            return [self._to_activity_record(row) for row in rows]

    def insert_notifications(self, notifications: Sequence[NotificationRecord]) -> None:
        if not notifications:
            return
        with self.Session() as session:
            for notification in notifications:
                session.add(
                    NotificationRow(
                        **{
                            key: _enum_value(value)
                            for key, value in notification.as_dict().items()
                        }
                    )
                )
            session.commit()

    def list_notifications(
        self, recipient_id: str, *, unacknowledged_only: bool = False
    ) -> list[NotificationRecord]:
        with self.Session() as session:
            query = session.query(NotificationRow).filter(
                NotificationRow.recipient_id == recipient_id
            )
            if unacknowledged_only:
                query = query.filter(NotificationRow.is_acknowledged.is_(False))
            rows = query.order_by(NotificationRow.created_at.desc()).all()
            return [self._to_notification_record(row) for row in rows]

    def acknowledge_notification(
        self, notification_id: str, now: Optional[float] = None
    ) -> NotificationRecord:
        with self.Session() as session:
            row = session.get(NotificationRow, notification_id)
            if not row:
                raise NotFoundError(notification_id)
            if not row.is_acknowledged:
                row.is_acknowledged = True
                row.acknowledged_at = time.time() if now is None else now
                session.commit()
            return self._to_notification_record(row)

    def upsert_presence(
        self,
        user_id: str,
        *,
        status: str,
        custom_message: Optional[str],
        now: Optional[float] = None,
    ) -> PresenceRecord:
        now = time.time() if now is None else now
        with self.Session() as session:
            row = session.get(PresenceRow, user_id)
            if row is None:
                row = PresenceRow(user_id=user_id)
                session.add(row)
            row.status = status
            row.custom_message = custom_message
            row.last_active = now
            row.updated_at = now
            session.commit()
            return self._to_presence_record(row)

    def get_presence(self, user_id: str) -> Optional[PresenceRecord]:
        with self.Session() as session:
            row = session.get(PresenceRow, user_id)
            return self._to_presence_record(row) if row else None

    def list_presence(self) -> list[PresenceRecord]:
        with self.Session() as session:
            rows = session.query(PresenceRow).order_by(PresenceRow.user_id).all()
            return [self._to_presence_record(row) for row in rows]

    def create_rule(self, rule: AutomationRuleRecord) -> AutomationRuleRecord:
        with self.Session() as session:
            existing = session.execute(
                select(AutomationRuleRow).where(
                    AutomationRuleRow.rule_name == rule.rule_name
                )
            ).scalar_one_or_none()
            if existing:
                raise DuplicateError(f"Rule already exists: {rule.rule_name}")
            row = AutomationRuleRow(
                id=rule.id,
                rule_name=rule.rule_name,
                source_status=_enum_value(rule.source_status),
                threshold_hours=rule.threshold_hours,
                target_status=_enum_value(rule.target_status),
                notify_roles=[_enum_value(role) for role in rule.notify_roles],
                enabled=rule.enabled,
                created_by=rule.created_by,
                created_at=rule.created_at,
                updated_at=rule.updated_at,
            )
            session.add(row)
            session.commit()
            return self._to_rule_record(row)

    def get_rule(self, rule_id: str) -> Optional[AutomationRuleRecord]:
        with self.Session() as session:
            row = session.get(AutomationRuleRow, rule_id)
            return self._to_rule_record(row) if row else None

    def list_rules(self, *, enabled_only: bool = False) -> list[AutomationRuleRecord]:
        with self.Session() as session:
            query = session.query(AutomationRuleRow)
            if enabled_only:
                query = query.filter(AutomationRuleRow.enabled.is_(True))
            rows = query.order_by(AutomationRuleRow.created_at.asc()).all()
            return [self._to_rule_record(row) for row in rows]

    def update_rule(self, rule_id: str, changes: dict) -> AutomationRuleRecord:
        unknown = set(changes) - RULE_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown rule fields: {', '.join(sorted(unknown))}")
        with self.Session() as session:
            row = session.get(AutomationRuleRow, rule_id)
            if not row:
                raise NotFoundError(rule_id)
            new_name = changes.get("rule_name")
            if new_name:
                clash = session.execute(
                    select(AutomationRuleRow).where(
                        AutomationRuleRow.rule_name == new_name,
                        AutomationRuleRow.id != rule_id,
                    )
                ).scalar_one_or_none()
                if clash:
                    raise DuplicateError(f"Rule already exists: {new_name}")
            for key, value in changes.items():
                if key == "notify_roles":
                    value = [_enum_value(role) for role in value]
                setattr(row, key, _enum_value(value))
            row.updated_at = time.time()
            session.commit()
            return self._to_rule_record(row)

    def delete_rule(self, rule_id: str) -> None:
        with self.Session() as session:
            row = session.get(AutomationRuleRow, rule_id)
            if not row:
                raise NotFoundError(rule_id)
            session.delete(row)
            session.commit()

    def list_stage_limits(self) -> dict[str, StageLimitRecord]:
        with self.Session() as session:
            rows = session.query(StageLimitRow).all()
            return {
                row.stage_status: StageLimitRecord(
                    stage_status=row.stage_status,
                    time_limit_hours=row.time_limit_hours,
                    warning_threshold_hours=row.warning_threshold_hours,
                )
                for row in rows
            }

    def set_stage_limit(self, limit: StageLimitRecord) -> None:
        with self.Session() as session:
            row = session.get(StageLimitRow, limit.stage_status)
            if row:
                row.time_limit_hours = limit.time_limit_hours
                row.warning_threshold_hours = limit.warning_threshold_hours
            else:
                session.add(
                    StageLimitRow(
                        stage_status=limit.stage_status,
                        time_limit_hours=limit.time_limit_hours,
                        warning_threshold_hours=limit.warning_threshold_hours,
                    )
                )
            session.commit()

    def create_reminder(self, reminder: ReminderRecord) -> None:
        with self.Session() as session:
            session.add(
                ReminderRow(
                    id=reminder.id,
                    task_id=reminder.task_id,
                    user_id=reminder.user_id,
                    reminder_time=reminder.reminder_time,
                    is_snoozed=reminder.is_snoozed,
                    is_dismissed=reminder.is_dismissed,
                    created_at=reminder.created_at,
                )
            )
            session.commit()

    def list_reminders(self, user_id: str) -> list[ReminderRecord]:
        with self.Session() as session:
            rows = (
                session.query(ReminderRow)
                .filter(ReminderRow.user_id == user_id)
                .order_by(ReminderRow.reminder_time.asc())
                .all()
            )
            return [
                ReminderRecord(
                    id=row.id,
                    task_id=row.task_id,
                    user_id=row.user_id,
                    reminder_time=row.reminder_time,
                    is_snoozed=row.is_snoozed,
                    is_dismissed=row.is_dismissed,
                    created_at=row.created_at,
                )
                for row in rows
            ]

    def save_message(self, message: MessageRecord) -> MessageRecord:
        with self.Session() as session:
            row = MessageRow(**message.as_dict())
            session.add(row)
            session.commit()
            return self._to_message_record(row)

    def list_conversation(self, user_a: str, user_b: str) -> list[MessageRecord]:
        with self.Session() as session:
            rows = (
                session.query(MessageRow)
                .filter(
                    or_(
                        (MessageRow.sender_id == user_a)
                        & (MessageRow.recipient_id == user_b),
                        (MessageRow.sender_id == user_b)
                        & (MessageRow.recipient_id == user_a),
                    )
                )
                .order_by(MessageRow.created_at.asc())
                .all()
            )
            return [self._to_message_record(row) for row in rows]

    def mark_messages_read(self, recipient_id: str, sender_id: str) -> int:
        with self.Session() as session:
            updated = (
                session.query(MessageRow)
                .filter(
                    MessageRow.recipient_id == recipient_id,
                    MessageRow.sender_id == sender_id,
                    MessageRow.is_read.is_(False),
                )
                .update({MessageRow.is_read: True}, synchronize_session=False)
            )
            session.commit()
            return updated or 0

    def count_unread(self, recipient_id: str) -> int:
        with self.Session() as session:
            return (
                session.query(MessageRow)
                .filter(
                    MessageRow.recipient_id == recipient_id,
                    MessageRow.is_read.is_(False),
                )
                .count()
            )

    def update_profile(self, user_id: str, changes: dict) -> ProfileRecord:
        unknown = set(changes) - PROFILE_MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown profile fields: {', '.join(sorted(unknown))}")
        with self.Session() as session:
            row = session.get(ProfileRow, user_id)
            if not row:
                raise NotFoundError(user_id)
            new_email = changes.get("email")
            if new_email:
                clash = session.execute(
                    select(ProfileRow).where(
                        ProfileRow.email == new_email, ProfileRow.id != user_id
                    )
                ).scalar_one_or_none()
                if clash:
                    raise DuplicateError(f"Email already registered: {new_email}")
                row.email = new_email
            if "full_name" in changes:
                row.full_name = changes["full_name"]
            if "roles" in changes:
                session.query(UserRoleRow).filter(UserRoleRow.user_id == user_id).delete(
                    synchronize_session=False
                )
                for role in set(changes["roles"]):
                    session.add(UserRoleRow(user_id=user_id, role=_enum_value(role)))
            session.commit()
            return self._to_profile_record(session, row)

    def list_user_activity(self, user_id: str, since: float) -> list[ActivityRecord]:
        with self.Session() as session:
            rows = (
                session.query(ActivityRow)
                .filter(ActivityRow.user_id == user_id, ActivityRow.created_at >= since)
                .order_by(ActivityRow.created_at.asc())
                .all()
            )
            return [self._to_activity_record(row) for row in rows]

    def _to_review_record(self, row: "DailyReviewRow") -> DailyReviewRecord:
        return DailyReviewRecord(
            id=row.id,
            user_id=row.user_id,
            review_date=row.review_date,
            completed=row.completed,
            tasks_reviewed=row.tasks_reviewed,
            completed_at=row.completed_at,
            created_at=row.created_at,
        )

    def _review_row(
        self, session: Session, user_id: str, review_date: str, now: float
    ) -> "DailyReviewRow":
        row = session.execute(
            select(DailyReviewRow).where(
                DailyReviewRow.user_id == user_id,
                DailyReviewRow.review_date == review_date,
            )
        ).scalar_one_or_none()
        if row is None:
            row = DailyReviewRow(
                id=_new_id(),
                user_id=user_id,
                review_date=review_date,
                completed=False,
                tasks_reviewed=0,
                created_at=now,
            )
            session.add(row)
        return row

    def ensure_daily_review(
        self, user_id: str, review_date: str, now: Optional[float] = None
    ) -> DailyReviewRecord:
        now = time.time() if now is None else now
        with self.Session() as session:
            row = self._review_row(session, user_id, review_date, now)
            session.commit()
            return self._to_review_record(row)

    def complete_daily_review(
        self,
        user_id: str,
        review_date: str,
        tasks_reviewed: int,
        now: Optional[float] = None,
    ) -> DailyReviewRecord:
        now = time.time() if now is None else now
        with self.Session() as session:
            row = self._review_row(session, user_id, review_date, now)
            row.completed = True
            row.tasks_reviewed = tasks_reviewed
            row.completed_at = now
            session.commit()
            return self._to_review_record(row)

    def list_daily_reviews(
        self,
        *,
        user_id: Optional[str] = None,
        review_date: Optional[str] = None,
        since_date: Optional[str] = None,
        completed_only: bool = False,
    ) -> list[DailyReviewRecord]:
        with self.Session() as session:
            query = session.query(DailyReviewRow)
            if user_id is not None:
                query = query.filter(DailyReviewRow.user_id == user_id)
            if review_date is not None:
                query = query.filter(DailyReviewRow.review_date == review_date)
            if since_date is not None:
                query = query.filter(DailyReviewRow.review_date >= since_date)
            if completed_only:
                query = query.filter(DailyReviewRow.completed.is_(True))
            rows = query.order_by(
                DailyReviewRow.review_date.asc(), DailyReviewRow.user_id.asc()
            ).all()
            return [self._to_review_record(row) for row in rows]

    def get_activity_streak(self, user_id: str) -> Optional[ActivityStreakRecord]:
        with self.Session() as session:
            row = session.get(ActivityStreakRow, user_id)
            if not row:
                return None
            return ActivityStreakRecord(
                user_id=row.user_id,
                current_streak=row.current_streak,
                longest_streak=row.longest_streak,
                last_activity_date=row.last_activity_date,
                total_tasks_completed=row.total_tasks_completed,
                total_quick_responses=row.total_quick_responses,
                efficiency_score=row.efficiency_score,
                updated_at=row.updated_at,
            )

    def save_activity_streak(self, streak: ActivityStreakRecord) -> None:
        with self.Session() as session:
            session.merge(ActivityStreakRow(**streak.as_dict()))
            session.commit()

    def award_achievement(self, achievement: AchievementRecord) -> bool:
        with self.Session() as session:
            existing = session.execute(
                select(AchievementRow.id).where(
                    AchievementRow.user_id == achievement.user_id,
                    AchievementRow.achievement_type == achievement.achievement_type,
                )
            ).scalar_one_or_none()
            if existing:
                return False
            session.add(
                AchievementRow(
                    id=achievement.id,
                    user_id=achievement.user_id,
                    achievement_type=achievement.achievement_type,
                    details=dict(achievement.metadata),
                    awarded_at=achievement.awarded_at,
                )
            )
            session.commit()
            return True

    def list_achievements(self, user_id: str) -> list[AchievementRecord]:
        with self.Session() as session:
            rows = (
                session.query(AchievementRow)
                .filter(AchievementRow.user_id == user_id)
                .order_by(AchievementRow.awarded_at.asc())
                .all()
            )
            return [
                AchievementRecord(
                    id=row.id,
                    user_id=row.user_id,
                    achievement_type=row.achievement_type,
                    metadata=row.details or {},
                    awarded_at=row.awarded_at,
                )
                for row in rows
            ]

    def get_job_marker(self, name: str) -> Optional[float]:
        with self.Session() as session:
            row = session.get(JobMarkerRow, name)
            return row.last_run_at if row else None

    def set_job_marker(self, name: str, ran_at: float) -> None:
        with self.Session() as session:
            session.merge(JobMarkerRow(name=name, last_run_at=ran_at))
            session.commit()


Base = declarative_base()


class ProfileRow(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)


class UserRoleRow(Base):
    __tablename__ = "user_roles"

    user_id = Column(String, primary_key=True)
    role = Column(String, primary_key=True, index=True)


class TaskRow(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, index=True, default="todo")
    previous_status = Column(String, nullable=True)
    priority = Column(String, nullable=False, default="medium")
    type = Column(String, nullable=False, default="general", index=True)
    client_name = Column(String, nullable=True)
    supplier_name = Column(String, nullable=True)
    created_by = Column(String, nullable=False)
    assigned_to = Column(String, nullable=True, index=True)
    assigned_by = Column(String, nullable=True)
    due_date = Column(Float, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)
    status_changed_at = Column(Float, nullable=True)
    last_activity_at = Column(Float, nullable=False, index=True)
    completed_at = Column(Float, nullable=True)
    deleted_at = Column(Float, nullable=True)


class ActivityRow(Base):
    __tablename__ = "task_activity_log"

    id = Column(String, primary_key=True)
    task_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(Float, nullable=False)


class NotificationRow(Base):
    __tablename__ = "urgent_notifications"

    id = Column(String, primary_key=True)
    sender_id = Column(String, nullable=False)
    recipient_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String, nullable=False, default="high")
    is_broadcast = Column(Boolean, nullable=False, default=False)
    is_acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)


class PresenceRow(Base):
    __tablename__ = "user_presence"

    user_id = Column(String, primary_key=True)
    status = Column(String, nullable=False, default="available")
    custom_message = Column(Text, nullable=True)
    last_active = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class AutomationRuleRow(Base):
    __tablename__ = "automation_rules"

    id = Column(String, primary_key=True)
    rule_name = Column(String, nullable=False, unique=True)
    source_status = Column(String, nullable=False)
    threshold_hours = Column(Integer, nullable=False)
    target_status = Column(String, nullable=True)
    notify_roles = Column(JSON, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    created_by = Column(String, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class StageLimitRow(Base):
    __tablename__ = "estimation_stage_limits"

    stage_status = Column(String, primary_key=True)
    time_limit_hours = Column(Integer, nullable=False)
    warning_threshold_hours = Column(Integer, nullable=False)


class ReminderRow(Base):
    __tablename__ = "task_reminders"

    id = Column(String, primary_key=True)
    task_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    reminder_time = Column(Float, nullable=False)
    is_snoozed = Column(Boolean, nullable=False, default=False)
    is_dismissed = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True)
    sender_id = Column(String, nullable=False, index=True)
    recipient_id = Column(String, nullable=False, index=True)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False)


class DailyReviewRow(Base):
    __tablename__ = "user_daily_reviews"
    __table_args__ = (UniqueConstraint("user_id", "review_date"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    review_date = Column(String(10), nullable=False, index=True)
    completed = Column(Boolean, nullable=False, default=False)
    tasks_reviewed = Column(Integer, nullable=False, default=0)
    completed_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)


class ActivityStreakRow(Base):
    __tablename__ = "user_activity_streaks"

    user_id = Column(String, primary_key=True)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(String(10), nullable=True)
    total_tasks_completed = Column(Integer, nullable=False, default=0)
    total_quick_responses = Column(Integer, nullable=False, default=0)
    efficiency_score = Column(Integer, nullable=False, default=0)
    updated_at = Column(Float, nullable=True)


class AchievementRow(Base):
    __tablename__ = "user_achievements"
    __table_args__ = (UniqueConstraint("user_id", "achievement_type"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    achievement_type = Column(String, nullable=False)
    # "metadata" is reserved on declarative classes.
    details = Column("metadata", JSON, nullable=True)
    awarded_at = Column(Float, nullable=False)


class JobMarkerRow(Base):
    __tablename__ = "scheduler_job_markers"

    name = Column(String, primary_key=True)
    last_run_at = Column(Float, nullable=False)
