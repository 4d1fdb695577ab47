"""
Replay of writes made while a client was offline.

Items are applied in FIFO order. A failing item is logged, counted and put
back at the end of the queue; later items still run.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Optional

from reahub import tasks as task_ops
from reahub.db import TASK_MUTABLE_FIELDS, DbClient, TaskRecord, coerce_task_changes
from reahub.queue import SyncQueue
from reahub.types import SyncOperation

logger = logging.getLogger(__name__)

SYNCABLE_TABLES = ("tasks",)
OFFLINE_USER = "offline-sync"

_TASK_FIELDS = {f.name for f in dataclasses.fields(TaskRecord)}


def _task_from_payload(data: dict) -> TaskRecord:
    fields = {key: value for key, value in data.items() if key in _TASK_FIELDS}
    if not fields.get("title") or not fields.get("created_by"):
        raise ValueError("Offline insert requires title and created_by")
    return TaskRecord(**coerce_task_changes(fields))


def apply_sync_item(db: DbClient, item: dict, now: Optional[float] = None) -> None:
    now = time.time() if now is None else now
    table = item.get("table")
    if table not in SYNCABLE_TABLES:
        raise ValueError(f"Unsupported table for offline sync: {table}")
    operation = SyncOperation(item.get("operation"))
    data = dict(item.get("data") or {})
    user_id = item.get("user_id") or data.get("created_by") or OFFLINE_USER

    if operation == SyncOperation.INSERT:
        task = _task_from_payload(data)
        if db.get_task(task.id) is not None:
            logger.info("Task %s already synced; skipping insert", task.id)
            return
        task_ops.create_task(db, task, now=now)
        return

    task_id = data.pop("id", None)
    if not task_id:
        raise ValueError(f"Offline {operation.value} requires an id")
    if db.get_task(task_id) is None:
        # Deleted on the server (or by an earlier queued item); nothing left to apply.
        logger.info("Task %s no longer exists; skipping offline %s", task_id, operation.value)
        return

    if operation == SyncOperation.UPDATE:
        changes = {key: value for key, value in data.items() if key in TASK_MUTABLE_FIELDS}
        dropped = sorted(set(data) - set(changes))
        if dropped:
            logger.info("Ignoring read-only fields in offline update of %s: %s", task_id, dropped)
        if changes:
            task_ops.update_task(db, task_id, changes, user_id=user_id, now=now)
    elif operation == SyncOperation.SOFT_DELETE:
        task_ops.soft_delete_task(db, task_id, user_id=user_id, now=now)
    elif operation == SyncOperation.DELETE:
        db.delete_task(task_id)


def replay_sync_queue(
    db: DbClient, queue: SyncQueue, now: Optional[float] = None
) -> dict:
    pending = queue.size()
    if pending == 0:
        logger.info("No offline changes to sync")
        return {"synced": 0, "failed": 0, "remaining": 0}

    logger.info("Syncing %d offline changes...", pending)
    synced = failed = 0
    # Only the items present now; re-queued failures wait for the next pass.
    for _ in range(pending):
        item = queue.dequeue(block=False)
        if item is None:
            break
        try:
            apply_sync_item(db, item, now=now)
            synced += 1
        except Exception:
            logger.exception(
                "Failed to sync item %s (%s on %s)",
                item.get("id"),
                item.get("operation"),
                item.get("table"),
            )
            queue.enqueue(item)
            failed += 1

    logger.info("Offline sync finished: %d synced, %d failed", synced, failed)
    return {"synced": synced, "failed": failed, "remaining": queue.size()}
