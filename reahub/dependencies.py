"""
Dependency wiring for the FastAPI app and the scheduler.
"""

from __future__ import annotations

from reahub.config import get_settings
from reahub.db import DbClient, InMemoryDbClient, PostgresDbClient
from reahub.presence import LocationThrottle
from reahub.queue import InMemorySyncQueue, RedisSyncQueue, SyncQueue
from reahub.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: SyncQueue | None = None
_location_throttle: LocationThrottle | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.s3_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_queue_client() -> SyncQueue:
    """
    Return a singleton queue holding offline writes awaiting replay.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _queue_client = RedisSyncQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemorySyncQueue()
    return _queue_client


def get_location_throttle() -> LocationThrottle:
    global _location_throttle
    if _location_throttle:
        return _location_throttle
    settings = get_settings()
    _location_throttle = LocationThrottle(
        interval_seconds=settings.location_update_interval_seconds
    )
    return _location_throttle
