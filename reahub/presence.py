"""
Presence and field-staff location tracking.

Coordinates are stored as a JSON string inside the presence row's
``custom_message`` column, e.g. ``{"lat": 25.2, "lng": 55.3, "updated_at": "..."}``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from reahub.db import DbClient, PresenceRecord
from reahub.types import AppRole

logger = logging.getLogger(__name__)


@dataclass
class Location:
    user_id: str
    lat: float
    lng: float
    updated_at: str
    status: str
    last_active: float


def encode_location(lat: float, lng: float, now: Optional[float] = None) -> str:
    if not -90.0 <= lat <= 90.0:
        raise ValueError(f"Latitude out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise ValueError(f"Longitude out of range: {lng}")
    moment = datetime.fromtimestamp(
        time.time() if now is None else now, tz=timezone.utc
    )
    return json.dumps({"lat": lat, "lng": lng, "updated_at": moment.isoformat()})


def decode_location(presence: PresenceRecord) -> Optional[Location]:
    """Return the location held by a presence row, or None if it has none."""
    if not presence.custom_message:
        return None
    try:
        payload = json.loads(presence.custom_message)
        lat = float(payload["lat"])
        lng = float(payload["lng"])
    except (ValueError, TypeError, KeyError):
        # Free-text status messages share the column.
        return None
    return Location(
        user_id=presence.user_id,
        lat=lat,
        lng=lng,
        updated_at=str(payload.get("updated_at", "")),
        status=presence.status,
        last_active=presence.last_active,
    )


@dataclass
class LocationThrottle:
    """Accepts at most one position per user per interval."""

    interval_seconds: float = 10.0
    _last_update: dict[str, float] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def allow(self, user_id: str, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            last = self._last_update.get(user_id)
            if last is not None and now - last < self.interval_seconds:
                return False
            self._last_update[user_id] = now
            return True

    def reset(self) -> None:
        with self._lock:
            self._last_update.clear()


def update_location(
    db: DbClient,
    throttle: LocationThrottle,
    user_id: str,
    lat: float,
    lng: float,
    now: Optional[float] = None,
) -> bool:
    """
    Record a position for ``user_id``. Returns False when the update was
    dropped by the throttle.
    """
    now = time.time() if now is None else now
    custom_message = encode_location(lat, lng, now)
    if not throttle.allow(user_id, now):
        return False
    db.upsert_presence(
        user_id, status="online", custom_message=custom_message, now=now
    )
    logger.debug("Stored location for %s", user_id)
    return True


def list_locations(
    db: DbClient, role: Optional[AppRole] = AppRole.OPERATIONS
) -> list[Location]:
    """Known positions, optionally restricted to holders of ``role``."""
    allowed = set(db.user_ids_with_roles([role])) if role is not None else None
    locations = []
    for presence in db.list_presence():
        if allowed is not None and presence.user_id not in allowed:
            continue
        location = decode_location(presence)
        if location is not None:
            locations.append(location)
    return locations
