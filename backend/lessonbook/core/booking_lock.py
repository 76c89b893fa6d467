"""
Per-teacher booking mutex backed by Redis ``SET NX EX``.

Held for the duration of a booking transaction. When Redis is unreachable the
lock degrades to "acquired" and the storage-level unique indexes remain the
last line of defence.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Iterator, Optional
import uuid

from redis import Redis
from redis.exceptions import RedisError

from lessonbook.core.config import settings
from lessonbook.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()

# Compare-and-delete so a lock that expired and was re-taken is not released
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


def _lock_key(teacher_id: str) -> str:
    return f"{settings.booking_lock_namespace}:lock:teacher:{teacher_id}:booking"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
            client.ping()
        except RedisError as exc:
            logger.warning("teacher_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def acquire_teacher_lock(
    teacher_id: str, ttl_s: Optional[int] = None, wait_s: float = 2.0
) -> Optional[str]:
    """
    Try to take the teacher's booking lock, polling for up to ``wait_s``.

    Returns the lock token on success, ``""`` when Redis is unavailable
    (degraded allow), or ``None`` when another booking holds the lock.
    """
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_booking_lock("acquire", "redis_unavailable")
        return ""

    ttl = ttl_s or settings.booking_lock_ttl_seconds
    token = uuid.uuid4().hex
    deadline = time.monotonic() + wait_s
    try:
        while True:
            if client.set(_lock_key(teacher_id), token, nx=True, ex=ttl):
                prometheus_metrics.record_booking_lock("acquire", "success")
                return token
            if time.monotonic() >= deadline:
                prometheus_metrics.record_booking_lock("acquire", "blocked")
                return None
            time.sleep(0.05)
    except RedisError as exc:
        prometheus_metrics.record_booking_lock("acquire", "error")
        logger.warning(
            "teacher_lock_acquire_failed",
            extra={"teacher_id": teacher_id, "error": str(exc), "error_type": type(exc).__name__},
        )
        return ""


def release_teacher_lock(teacher_id: str, token: str) -> None:
    if not token:
        return
    client = _get_sync_redis()
    if client is None:
        return
    try:
        released = client.eval(_RELEASE_SCRIPT, 1, _lock_key(teacher_id), token)
        prometheus_metrics.record_booking_lock("release", "success" if released else "not_found")
    except RedisError as exc:
        prometheus_metrics.record_booking_lock("release", "error")
        logger.warning(
            "teacher_lock_release_failed",
            extra={"teacher_id": teacher_id, "error": str(exc), "error_type": type(exc).__name__},
        )


@contextmanager
def teacher_booking_lock(teacher_id: str, ttl_s: Optional[int] = None) -> Iterator[bool]:
    """Yield True when the caller may proceed with a booking for ``teacher_id``."""
    token = acquire_teacher_lock(teacher_id, ttl_s=ttl_s)
    try:
        yield token is not None
    finally:
        if token:
            release_teacher_lock(teacher_id, token)
