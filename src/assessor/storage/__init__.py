"""Key-value persistence."""

from __future__ import annotations

from assessor.config import Settings
from assessor.storage.base import Collection, KeyValueStore, MemoryStore
from assessor.storage.redis_store import RedisStore
from assessor.storage.repository import AssessmentRepository


def create_store(settings: Settings) -> KeyValueStore:
    """Redis when enabled, otherwise a process-local memory store."""

    if settings.redis_enabled:
        return RedisStore(redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix)
    return MemoryStore()


__all__ = [
    "AssessmentRepository",
    "Collection",
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "create_store",
]
