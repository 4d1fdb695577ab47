"""
Task board operations shared by the HTTP routes and the offline replay.

Each mutation writes a row to the task activity log.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Optional

from reahub.db import ActivityRecord, DbClient, NotFoundError, TaskRecord


def _log(db: DbClient, task_id: str, user_id: str, action: str, details: dict, now: float) -> None:
    db.add_activity(
        ActivityRecord(
            task_id=task_id,
            user_id=user_id,
            action=action,
            details=details,
            created_at=now,
        )
    )


def create_task(db: DbClient, task: TaskRecord, now: Optional[float] = None) -> TaskRecord:
    now = time.time() if now is None else now
    task.created_at = task.updated_at = task.last_activity_at = now
    if task.assigned_to and not task.assigned_by:
        task.assigned_by = task.created_by
    created = db.create_task(task)
    _log(db, created.id, created.created_by, "created", {"title": created.title}, now)
    return created


def update_task(
    db: DbClient,
    task_id: str,
    changes: dict,
    *,
    user_id: str,
    now: Optional[float] = None,
) -> TaskRecord:
    now = time.time() if now is None else now
    before = db.get_task(task_id)
    if before is None:
        raise NotFoundError(task_id)
    # In-memory clients hand out the live record.
    before = replace(before)
    if "assigned_to" in changes and changes["assigned_to"] != before.assigned_to:
        changes = {**changes, "assigned_by": user_id}

    after = db.update_task(task_id, changes, now=now)

    if after.status != before.status:
        _log(
            db,
            task_id,
            user_id,
            "status_changed",
            {"from": before.status.value, "to": after.status.value},
            now,
        )
    if after.assigned_to != before.assigned_to:
        _log(
            db,
            task_id,
            user_id,
            "assigned",
            {"from": before.assigned_to, "to": after.assigned_to},
            now,
        )
    edited = sorted(
        key for key in changes if key not in ("status", "assigned_to", "assigned_by")
    )
    if edited:
        _log(db, task_id, user_id, "edited", {"fields": edited}, now)
    return after


def soft_delete_task(
    db: DbClient, task_id: str, *, user_id: str, now: Optional[float] = None
) -> TaskRecord:
    now = time.time() if now is None else now
    task = db.update_task(task_id, {"deleted_at": now}, now=now)
    _log(db, task_id, user_id, "soft_deleted", {"deleted_at": now}, now)
    return task


def restore_task(
    db: DbClient, task_id: str, *, user_id: str, now: Optional[float] = None
) -> TaskRecord:
    now = time.time() if now is None else now
    task = db.update_task(task_id, {"deleted_at": None}, now=now)
    _log(db, task_id, user_id, "restored", {}, now)
    return task
