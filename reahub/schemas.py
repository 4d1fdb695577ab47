"""
Pydantic schemas for the task service API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from reahub.types import (
    AppRole,
    NotificationPriority,
    SyncOperation,
    TaskPriority,
    TaskStatus,
    TaskType,
)


class CreateUserPayload(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    full_name: Optional[str] = Field(None, max_length=200)
    roles: list[AppRole] = Field(default_factory=list)


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    roles: list[AppRole]
    created_at: float


class UpdateUserPayload(BaseModel):
    requested_by: str
    email: Optional[str] = Field(None, min_length=3, max_length=320)
    full_name: Optional[str] = Field(None, max_length=200)
    roles: Optional[list[AppRole]] = None


class CompleteReviewPayload(BaseModel):
    tasks_reviewed: int = Field(0, ge=0)


class DailyReviewResponse(BaseModel):
    id: str
    user_id: str
    review_date: str
    completed: bool
    tasks_reviewed: int
    completed_at: Optional[float] = None
    created_at: float


class ActivityStreakResponse(BaseModel):
    user_id: str
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[str] = None
    total_tasks_completed: int
    total_quick_responses: int
    efficiency_score: int
    updated_at: Optional[float] = None


class AchievementResponse(BaseModel):
    id: str
    achievement_type: str
    metadata: dict
    awarded_at: float


class EfficiencyResponse(BaseModel):
    streak: Optional[ActivityStreakResponse] = None
    achievements: list[AchievementResponse]


class CreateTaskPayload(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    created_by: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    type: TaskType = TaskType.GENERAL
    client_name: Optional[str] = None
    supplier_name: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[float] = None
    position: int = 0


class UpdateTaskPayload(BaseModel):
    user_id: str
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    type: Optional[TaskType] = None
    client_name: Optional[str] = None
    supplier_name: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[float] = None
    position: Optional[int] = None


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    previous_status: Optional[TaskStatus] = None
    priority: TaskPriority
    type: TaskType
    client_name: Optional[str] = None
    supplier_name: Optional[str] = None
    created_by: str
    assigned_to: Optional[str] = None
    assigned_by: Optional[str] = None
    due_date: Optional[float] = None
    position: int
    created_at: float
    updated_at: float
    status_changed_at: Optional[float] = None
    last_activity_at: float
    completed_at: Optional[float] = None
    deleted_at: Optional[float] = None


class ListTasksResponse(BaseModel):
    tasks: list[TaskResponse]


class ActivityResponse(BaseModel):
    id: str
    task_id: str
    user_id: str
    action: str
    details: dict
    created_at: float


class ListActivityResponse(BaseModel):
    activity: list[ActivityResponse]


class SendNotificationPayload(BaseModel):
    sender_id: str
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=4000)
    priority: NotificationPriority = NotificationPriority.HIGH
    recipient_id: Optional[str] = None
    is_broadcast: bool = False
    broadcast_roles: list[AppRole] = Field(default_factory=list)


class NotificationResponse(BaseModel):
    id: str
    sender_id: str
    recipient_id: Optional[str] = None
    title: str
    message: str
    priority: NotificationPriority
    is_broadcast: bool
    is_acknowledged: bool
    acknowledged_at: Optional[float] = None
    created_at: float


class ListNotificationsResponse(BaseModel):
    notifications: list[NotificationResponse]


class AutomationRulePayload(BaseModel):
    rule_name: str = Field(..., min_length=1, max_length=200)
    source_status: TaskStatus
    threshold_hours: int = Field(..., ge=1)
    target_status: Optional[TaskStatus] = None
    notify_roles: list[AppRole] = Field(default_factory=list)
    enabled: bool = True
    created_by: Optional[str] = None


class UpdateAutomationRulePayload(BaseModel):
    rule_name: Optional[str] = Field(None, min_length=1, max_length=200)
    source_status: Optional[TaskStatus] = None
    threshold_hours: Optional[int] = Field(None, ge=1)
    target_status: Optional[TaskStatus] = None
    notify_roles: Optional[list[AppRole]] = None
    enabled: Optional[bool] = None


class AutomationRuleResponse(BaseModel):
    id: str
    rule_name: str
    source_status: TaskStatus
    threshold_hours: int
    target_status: Optional[TaskStatus] = None
    notify_roles: list[AppRole]
    enabled: bool
    created_by: Optional[str] = None


class ListAutomationRulesResponse(BaseModel):
    rules: list[AutomationRuleResponse]


class LocationUpdatePayload(BaseModel):
    user_id: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LocationUpdateResponse(BaseModel):
    accepted: bool


class PresenceStatusPayload(BaseModel):
    user_id: str
    status: Literal["available", "online", "busy", "away", "offline"]
    custom_message: Optional[str] = Field(None, max_length=500)


class PresenceResponse(BaseModel):
    user_id: str
    status: str
    custom_message: Optional[str] = None
    last_active: float


class LocationResponse(BaseModel):
    user_id: str
    lat: float
    lng: float
    updated_at: str
    status: str
    last_active: float


class ListLocationsResponse(BaseModel):
    locations: list[LocationResponse]


class SyncItemPayload(BaseModel):
    operation: SyncOperation
    table: str = "tasks"
    data: dict
    user_id: Optional[str] = None


class EnqueueSyncPayload(BaseModel):
    items: list[SyncItemPayload] = Field(..., min_length=1)


class EnqueueSyncResponse(BaseModel):
    queued: int


class SendMessagePayload(BaseModel):
    sender_id: str
    recipient_id: str
    message: str = Field(..., min_length=1, max_length=4000)


class MessageResponse(BaseModel):
    id: str
    sender_id: str
    recipient_id: str
    message: str
    is_read: bool
    created_at: float


class ListMessagesResponse(BaseModel):
    messages: list[MessageResponse]


class MarkReadPayload(BaseModel):
    recipient_id: str
    sender_id: str


class MarkReadResponse(BaseModel):
    updated: int


class UnreadCountResponse(BaseModel):
    unread: int


class BroadcastJobPayload(BaseModel):
    broadcast_type: Literal["morning", "progress", "endofday"]


class ReviewJobPayload(BaseModel):
    review_type: Literal["morning", "evening"] = "morning"


class SignUrlResponse(BaseModel):
    url: str
