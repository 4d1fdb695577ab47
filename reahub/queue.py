"""
Queue abstraction for offline writes waiting to be replayed.

Supports an in-memory fallback for tests/local runs and a Redis-backed
implementation for production. Items are JSON-serializable dicts of the
form
``{"id", "operation", "table", "data", "user_id", "timestamp"}``.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


def make_sync_item(
    operation: str, table: str, data: dict, user_id: Optional[str] = None
) -> dict:
    return {
        "id": uuid.uuid4().hex,
        "operation": operation,
        "table": table,
        "data": data,
        "user_id": user_id,
        "timestamp": time.time(),
    }


class SyncQueue(Protocol):
    """Minimal FIFO interface for queued offline operations."""

    def enqueue(self, item: dict) -> None:
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[dict]:
        ...

    def size(self) -> int:
        ...

    def peek_all(self) -> list[dict]:
        ...


@dataclass
class InMemorySyncQueue:
    """Simple FIFO queue for testing/dev."""

    items: list[dict] = field(default_factory=list)

    def enqueue(self, item: dict) -> None:
        self.items.append(item)

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[dict]:
        if not self.items:
            return None
        return self.items.pop(0)

    def size(self) -> int:
        return len(self.items)

    def peek_all(self) -> list[dict]:
        return list(self.items)


@dataclass
class RedisSyncQueue:
    """Redis-backed queue using list push/pop operations."""

    url: str
    queue_key: str = "reahub:sync"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def _reconnect(self) -> None:
        self.client = redis.Redis.from_url(self.url)

    def enqueue(self, item: dict) -> None:
        self.client.rpush(self.queue_key, json.dumps(item))

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[dict]:
        try:
            if block:
                result = self.client.blpop(self.queue_key, timeout=timeout or 0)
                if result is None:
                    return None
                _, raw = result
            else:
                raw = self.client.lpop(self.queue_key)
                if raw is None:
                    return None
        except redis_exceptions.ConnectionError:
            # Managed Redis drops idle connections; treat as empty and let the
            # caller retry on its next pass.
            logger.warning("Redis connection lost while dequeuing; reconnecting")
            self._reconnect()
            return None
        return json.loads(raw)

    def size(self) -> int:
        try:
            return int(self.client.llen(self.queue_key))
        except redis_exceptions.ConnectionError:
            self._reconnect()
            return 0

    def peek_all(self) -> list[dict]:
        return [json.loads(raw) for raw in self.client.lrange(self.queue_key, 0, -1)]
