"""
HTTP routes for the task service API.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from reahub import presence as presence_ops
from reahub import tasks as task_ops
from reahub.config import get_settings
from reahub.db import (
    AutomationRuleRecord,
    DbClient,
    DuplicateError,
    MessageRecord,
    NotFoundError,
    TaskRecord,
)
from reahub.dependencies import (
    get_db_client,
    get_location_throttle,
    get_queue_client,
    get_storage_client,
)
from reahub.jobs.automation import run_automation_rules
from reahub.jobs.broadcasts import run_daily_broadcast, utc_date
from reahub.jobs.daily_reviews import run_daily_review_reminders
from reahub.jobs.efficiency import run_efficiency_scores
from reahub.jobs.escalation import run_escalation
from reahub.jobs.quotation_report import run_quotation_report
from reahub.jobs.reminders import run_estimation_reminders
from reahub.jobs.reports import export_tasks_csv, run_report_generation
from reahub.jobs.stale import run_stale_detection
from reahub.notifications import send_notification as send_notification_op
from reahub.presence import LocationThrottle
from reahub.queue import SyncQueue, make_sync_item
from reahub.schemas import (
    AchievementResponse,
    ActivityResponse,
    ActivityStreakResponse,
    AutomationRulePayload,
    AutomationRuleResponse,
    BroadcastJobPayload,
    CompleteReviewPayload,
    CreateTaskPayload,
    CreateUserPayload,
    DailyReviewResponse,
    EfficiencyResponse,
    EnqueueSyncPayload,
    EnqueueSyncResponse,
    ListActivityResponse,
    ListAutomationRulesResponse,
    ListLocationsResponse,
    ListMessagesResponse,
    ListNotificationsResponse,
    ListTasksResponse,
    LocationResponse,
    LocationUpdatePayload,
    LocationUpdateResponse,
    MarkReadPayload,
    MarkReadResponse,
    MessageResponse,
    NotificationResponse,
    PresenceResponse,
    PresenceStatusPayload,
    ReviewJobPayload,
    SendMessagePayload,
    SendNotificationPayload,
    SignUrlResponse,
    TaskResponse,
    UnreadCountResponse,
    UpdateAutomationRulePayload,
    UpdateTaskPayload,
    UpdateUserPayload,
    UserResponse,
)
from reahub.storage import StorageClient
from reahub.sync import replay_sync_queue
from reahub.types import AppRole, TaskStatus, TaskType

logger = logging.getLogger(__name__)

router = APIRouter()


def _task_response(task: TaskRecord) -> TaskResponse:
    return TaskResponse(**task.as_dict())


def _get_task_or_404(db: DbClient, task_id: str) -> TaskRecord:
    task = db.get_task(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


# Users


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(payload: CreateUserPayload, db: DbClient = Depends(get_db_client)):
    try:
        profile = db.create_profile(payload.email, payload.full_name, payload.roles)
    except DuplicateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return UserResponse(**profile.as_dict())


@router.get("/users", response_model=list[UserResponse])
def list_users(
    role: Optional[AppRole] = Query(None),
    db: DbClient = Depends(get_db_client),
):
    return [UserResponse(**p.as_dict()) for p in db.list_profiles(role=role)]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: str, db: DbClient = Depends(get_db_client)):
    profile = db.get_profile(user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse(**profile.as_dict())


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: str, payload: UpdateUserPayload, db: DbClient = Depends(get_db_client)
):
    requester = db.get_profile(payload.requested_by)
    if not requester or AppRole.ADMIN not in requester.roles:
        raise HTTPException(status_code=403, detail="Admin access required")
    changes = payload.model_dump(exclude_unset=True, exclude={"requested_by"})
    for required in ("email", "roles"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be null")
    if not changes:
        raise HTTPException(status_code=400, detail="No changes supplied")
    try:
        profile = db.update_profile(user_id, changes)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    except DuplicateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    logger.info("User %s updated by %s: %s", user_id, requester.id, sorted(changes))
    return UserResponse(**profile.as_dict())


@router.post("/users/{user_id}/daily-review", response_model=DailyReviewResponse)
def complete_daily_review(
    user_id: str,
    payload: CompleteReviewPayload,
    db: DbClient = Depends(get_db_client),
):
    if not db.get_profile(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    review = db.complete_daily_review(
        user_id, utc_date(time.time()), payload.tasks_reviewed
    )
    return DailyReviewResponse(**review.as_dict())


@router.get("/users/{user_id}/efficiency", response_model=EfficiencyResponse)
def user_efficiency(user_id: str, db: DbClient = Depends(get_db_client)):
    if not db.get_profile(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    streak = db.get_activity_streak(user_id)
    return EfficiencyResponse(
        streak=ActivityStreakResponse(**streak.as_dict()) if streak else None,
        achievements=[
            AchievementResponse(**a.as_dict()) for a in db.list_achievements(user_id)
        ],
    )


# Tasks


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(payload: CreateTaskPayload, db: DbClient = Depends(get_db_client)):
    task = task_ops.create_task(db, TaskRecord(**payload.model_dump()))
    return _task_response(task)


@router.get("/tasks", response_model=ListTasksResponse)
def list_tasks(
    status: Optional[list[TaskStatus]] = Query(None),
    assigned_to: Optional[str] = Query(None),
    type: Optional[TaskType] = Query(None),
    include_deleted: bool = Query(False),
    db: DbClient = Depends(get_db_client),
):
    tasks = db.list_tasks(
        statuses=status or None,
        assigned_to=assigned_to,
        task_type=type,
        include_deleted=include_deleted,
    )
    return ListTasksResponse(tasks=[_task_response(t) for t in tasks])


@router.get("/tasks/export.csv")
def export_tasks(
    status: Optional[list[TaskStatus]] = Query(None),
    assigned_to: Optional[str] = Query(None),
    type: Optional[TaskType] = Query(None),
    db: DbClient = Depends(get_db_client),
):
    tasks = db.list_tasks(
        statuses=status or None, assigned_to=assigned_to, task_type=type
    )
    return Response(
        content=export_tasks_csv(db, tasks),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="tasks.csv"'},
    )


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(task_id: str, db: DbClient = Depends(get_db_client)):
    return _task_response(_get_task_or_404(db, task_id))


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str, payload: UpdateTaskPayload, db: DbClient = Depends(get_db_client)
):
    changes = payload.model_dump(exclude_unset=True, exclude={"user_id"})
    for required in ("title", "status", "priority", "type", "position"):
        if required in changes and changes[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be null")
    if not changes:
        raise HTTPException(status_code=400, detail="No changes supplied")
    try:
        task = task_ops.update_task(db, task_id, changes, user_id=payload.user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    return _task_response(task)


@router.delete("/tasks/{task_id}", response_model=TaskResponse)
def delete_task(
    task_id: str,
    user_id: str = Query(...),
    db: DbClient = Depends(get_db_client),
):
    _get_task_or_404(db, task_id)
    task = task_ops.soft_delete_task(db, task_id, user_id=user_id)
    return _task_response(task)


@router.post("/tasks/{task_id}/restore", response_model=TaskResponse)
def restore_task(
    task_id: str,
    user_id: str = Query(...),
    db: DbClient = Depends(get_db_client),
):
    task = _get_task_or_404(db, task_id)
    if task.deleted_at is None:
        raise HTTPException(status_code=400, detail="Task is not deleted")
    return _task_response(task_ops.restore_task(db, task_id, user_id=user_id))


@router.get("/tasks/{task_id}/activity", response_model=ListActivityResponse)
def task_activity(task_id: str, db: DbClient = Depends(get_db_client)):
    _get_task_or_404(db, task_id)
    return ListActivityResponse(
        activity=[ActivityResponse(**a.as_dict()) for a in db.list_activity(task_id)]
    )


# Urgent notifications


@router.post(
    "/notifications", response_model=ListNotificationsResponse, status_code=201
)
def send_notification(
    payload: SendNotificationPayload, db: DbClient = Depends(get_db_client)
):
    if payload.is_broadcast == (payload.recipient_id is not None):
        raise HTTPException(
            status_code=400,
            detail="Provide either recipient_id or is_broadcast, not both",
        )
    sent = send_notification_op(
        db,
        sender_id=payload.sender_id,
        title=payload.title,
        message=payload.message,
        priority=payload.priority,
        recipient_id=payload.recipient_id,
        broadcast_roles=payload.broadcast_roles,
    )
    return ListNotificationsResponse(
        notifications=[NotificationResponse(**n.as_dict()) for n in sent]
    )


@router.get("/notifications", response_model=ListNotificationsResponse)
def list_notifications(
    user_id: str = Query(...),
    unacknowledged_only: bool = Query(False),
    db: DbClient = Depends(get_db_client),
):
    notifications = db.list_notifications(
        user_id, unacknowledged_only=unacknowledged_only
    )
    return ListNotificationsResponse(
        notifications=[NotificationResponse(**n.as_dict()) for n in notifications]
    )


@router.post(
    "/notifications/{notification_id}/acknowledge",
    response_model=NotificationResponse,
)
def acknowledge_notification(
    notification_id: str, db: DbClient = Depends(get_db_client)
):
    try:
        notification = db.acknowledge_notification(notification_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
    return NotificationResponse(**notification.as_dict())


# Automation rules


@router.post(
    "/automation-rules", response_model=AutomationRuleResponse, status_code=201
)
def create_rule(payload: AutomationRulePayload, db: DbClient = Depends(get_db_client)):
    try:
        rule = db.create_rule(AutomationRuleRecord(**payload.model_dump()))
    except DuplicateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return AutomationRuleResponse(**rule.as_dict())


@router.get("/automation-rules", response_model=ListAutomationRulesResponse)
def list_rules(
    enabled_only: bool = Query(False), db: DbClient = Depends(get_db_client)
):
    rules = db.list_rules(enabled_only=enabled_only)
    return ListAutomationRulesResponse(
        rules=[AutomationRuleResponse(**r.as_dict()) for r in rules]
    )


@router.patch("/automation-rules/{rule_id}", response_model=AutomationRuleResponse)
def update_rule(
    rule_id: str,
    payload: UpdateAutomationRulePayload,
    db: DbClient = Depends(get_db_client),
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        rule = db.update_rule(rule_id, changes)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Rule not found")
    except DuplicateError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return AutomationRuleResponse(**rule.as_dict())


@router.delete("/automation-rules/{rule_id}", status_code=204)
def delete_rule(rule_id: str, db: DbClient = Depends(get_db_client)):
    try:
        db.delete_rule(rule_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Rule not found")
    return Response(status_code=204)


# Presence and location


@router.post("/presence/location", response_model=LocationUpdateResponse)
def update_location(
    payload: LocationUpdatePayload,
    db: DbClient = Depends(get_db_client),
    throttle: LocationThrottle = Depends(get_location_throttle),
):
    accepted = presence_ops.update_location(
        db, throttle, payload.user_id, payload.lat, payload.lng
    )
    return LocationUpdateResponse(accepted=accepted)


@router.post("/presence/status", response_model=PresenceResponse)
def set_presence_status(
    payload: PresenceStatusPayload, db: DbClient = Depends(get_db_client)
):
    record = db.upsert_presence(
        payload.user_id, status=payload.status, custom_message=payload.custom_message
    )
    return PresenceResponse(
        user_id=record.user_id,
        status=record.status,
        custom_message=record.custom_message,
        last_active=record.last_active,
    )


@router.get("/presence/locations", response_model=ListLocationsResponse)
def list_locations(
    role: Optional[AppRole] = Query(AppRole.OPERATIONS),
    db: DbClient = Depends(get_db_client),
):
    locations = presence_ops.list_locations(db, role=role)
    return ListLocationsResponse(
        locations=[LocationResponse(**vars(loc)) for loc in locations]
    )


# Offline sync


@router.post("/sync/queue", response_model=EnqueueSyncResponse, status_code=202)
def enqueue_sync(
    payload: EnqueueSyncPayload, queue: SyncQueue = Depends(get_queue_client)
):
    for item in payload.items:
        queue.enqueue(
            make_sync_item(item.operation.value, item.table, item.data, item.user_id)
        )
    return EnqueueSyncResponse(queued=len(payload.items))


# Chat


@router.post("/messages", response_model=MessageResponse, status_code=201)
def send_message(payload: SendMessagePayload, db: DbClient = Depends(get_db_client)):
    if payload.sender_id == payload.recipient_id:
        raise HTTPException(status_code=400, detail="Cannot message yourself")
    message = db.save_message(
        MessageRecord(
            sender_id=payload.sender_id,
            recipient_id=payload.recipient_id,
            message=payload.message,
        )
    )
    return MessageResponse(**message.as_dict())


@router.get("/messages", response_model=ListMessagesResponse)
def list_conversation(
    user_id: str = Query(...),
    other_id: str = Query(...),
    db: DbClient = Depends(get_db_client),
):
    messages = db.list_conversation(user_id, other_id)
    return ListMessagesResponse(
        messages=[MessageResponse(**m.as_dict()) for m in messages]
    )


@router.post("/messages/read", response_model=MarkReadResponse)
def mark_read(payload: MarkReadPayload, db: DbClient = Depends(get_db_client)):
    updated = db.mark_messages_read(payload.recipient_id, payload.sender_id)
    return MarkReadResponse(updated=updated)


@router.get("/messages/unread-count", response_model=UnreadCountResponse)
def unread_count(user_id: str = Query(...), db: DbClient = Depends(get_db_client)):
    return UnreadCountResponse(unread=db.count_unread(user_id))


# Reports


@router.get("/reports/sign-url", response_model=SignUrlResponse)
def sign_report_url(
    path: str = Query(..., description="Object path in storage"),
    expires_in: int = Query(3600, ge=60, le=86400),
    storage: StorageClient = Depends(get_storage_client),
):
    if not path.startswith("reports/"):
        raise HTTPException(status_code=400, detail="Only report files can be signed")
    return SignUrlResponse(url=storage.presign_get(path, expires_in=expires_in))


# Scheduled jobs over HTTP


def _run_job(name: str, job: Callable[[], dict]):
    try:
        return job()
    except Exception as exc:
        logger.exception("Error in %s", name)
        return JSONResponse(status_code=500, content={"error": str(exc)})


@router.post("/jobs/escalate")
def escalate_job(db: DbClient = Depends(get_db_client)):
    return _run_job("auto-escalate", lambda: run_escalation(db))


@router.post("/jobs/automation")
def automation_job(db: DbClient = Depends(get_db_client)):
    return _run_job("apply-automation-rules", lambda: run_automation_rules(db))


@router.post("/jobs/stale")
def stale_job(db: DbClient = Depends(get_db_client)):
    settings = get_settings()
    return _run_job(
        "detect-stale-tasks",
        lambda: run_stale_detection(db, threshold_hours=settings.stale_task_hours),
    )


@router.post("/jobs/reminders")
def reminders_job(db: DbClient = Depends(get_db_client)):
    return _run_job("hourly-estimation-reminder", lambda: run_estimation_reminders(db))


@router.post("/jobs/broadcast")
def broadcast_job(payload: BroadcastJobPayload, db: DbClient = Depends(get_db_client)):
    settings = get_settings()
    return _run_job(
        "estimation-daily-broadcasts",
        lambda: run_daily_broadcast(
            db, payload.broadcast_type, daily_goal=settings.estimation_daily_goal
        ),
    )


@router.post("/jobs/daily-reviews")
def daily_reviews_job(
    payload: Optional[ReviewJobPayload] = None, db: DbClient = Depends(get_db_client)
):
    review_type = payload.review_type if payload else "morning"
    return _run_job(
        "schedule-daily-reviews",
        lambda: run_daily_review_reminders(db, review_type),
    )


@router.post("/jobs/quotation-report")
def quotation_report_job(db: DbClient = Depends(get_db_client)):
    return _run_job("admin-quotation-report", lambda: run_quotation_report(db))


@router.post("/jobs/efficiency")
def efficiency_job(db: DbClient = Depends(get_db_client)):
    return _run_job("calculate-efficiency-scores", lambda: run_efficiency_scores(db))


@router.post("/jobs/reports")
def reports_job(
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    settings = get_settings()
    return _run_job(
        "generate-reports",
        lambda: run_report_generation(
            db, storage, period_days=settings.report_period_days
        ),
    )


@router.post("/jobs/sync")
def sync_job(
    db: DbClient = Depends(get_db_client),
    queue: SyncQueue = Depends(get_queue_client),
):
    return _run_job("offline-sync", lambda: replay_sync_queue(db, queue))
