"""
Helpers for creating urgent notifications.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from reahub.db import DbClient, NotificationRecord
from reahub.types import AppRole, NotificationPriority

logger = logging.getLogger(__name__)


def notify_users(
    db: DbClient,
    recipient_ids: Iterable[str],
    *,
    sender_id: str,
    title: str,
    message: str,
    priority: NotificationPriority,
    is_broadcast: bool = False,
) -> list[NotificationRecord]:
    """Insert one notification row per recipient. Returns the rows written."""
    notifications = [
        NotificationRecord(
            sender_id=sender_id,
            recipient_id=recipient_id,
            title=title,
            message=message,
            priority=priority,
            is_broadcast=is_broadcast,
        )
        for recipient_id in recipient_ids
    ]
    if notifications:
        db.insert_notifications(notifications)
    return notifications


def send_notification(
    db: DbClient,
    *,
    sender_id: str,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.HIGH,
    recipient_id: Optional[str] = None,
    broadcast_roles: Optional[Iterable[AppRole]] = None,
) -> list[NotificationRecord]:
    """
    Send either a direct notification (``recipient_id``) or a broadcast to
    every user holding one of ``broadcast_roles`` (all roles when empty).
    The sender never receives their own broadcast.
    """
    if recipient_id is not None:
        return notify_users(
            db,
            [recipient_id],
            sender_id=sender_id,
            title=title,
            message=message,
            priority=priority,
        )

    roles = list(broadcast_roles or []) or list(AppRole)
    recipients = [uid for uid in db.user_ids_with_roles(roles) if uid != sender_id]
    logger.info("Broadcasting '%s' to %d users", title, len(recipients))
    return notify_users(
        db,
        recipients,
        sender_id=sender_id,
        title=title,
        message=message,
        priority=priority,
        is_broadcast=True,
    )
