"""Store protocol and the in-memory implementation."""

from __future__ import annotations

import copy
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

Document = dict[str, Any]


class Collection(str, Enum):
    """Named collections in the store."""

    MODELS = "model"
    CRITERIA = "security_item"
    ASSESSMENTS = "assessment"
    ASSESSMENT_ITEMS = "assessment_item"
    AUDIT_LOGS = "audit"
    PROGRESS = "progress"


class KeyValueStore(Protocol):
    """Document store addressed by (collection, id).

    Each ``put`` replaces the whole document atomically; there is no partial update.
    """

    async def get(self, collection: Collection, doc_id: str) -> Document | None:
        """Return a document or ``None``."""

    async def put(
        self,
        collection: Collection,
        doc_id: str,
        doc: Document,
        *,
        ttl_seconds: int | None = None,
    ) -> None:
        """Create or replace a document."""

    async def list(self, collection: Collection) -> list[Document]:
        """Return all live documents in a collection, in no particular order."""

    async def delete(self, collection: Collection, doc_id: str) -> bool:
        """Delete a document; return whether it existed."""

    async def close(self) -> None:
        """Release connections."""


class MemoryStore:
    """Process-local store. Documents are deep-copied on the way in and out."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, dict[str, tuple[Document, float | None]]] = {}

    async def get(self, collection: Collection, doc_id: str) -> Document | None:
        bucket = self._data.get(collection.value, {})
        entry = bucket.get(doc_id)
        if entry is None:
            return None
        if self._expired(entry):
            del bucket[doc_id]
            return None
        return copy.deepcopy(entry[0])

    async def put(
        self,
        collection: Collection,
        doc_id: str,
        doc: Document,
        *,
        ttl_seconds: int | None = None,
    ) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._data.setdefault(collection.value, {})[doc_id] = (copy.deepcopy(doc), expires_at)

    async def list(self, collection: Collection) -> list[Document]:
        bucket = self._data.get(collection.value, {})
        docs: list[Document] = []
        for doc_id, entry in list(bucket.items()):
            if self._expired(entry):
                del bucket[doc_id]
                continue
            docs.append(copy.deepcopy(entry[0]))
        return docs

    async def delete(self, collection: Collection, doc_id: str) -> bool:
        entry = self._data.get(collection.value, {}).pop(doc_id, None)
        return entry is not None and not self._expired(entry)

    async def close(self) -> None:
        return None

    def _expired(self, entry: tuple[Document, float | None]) -> bool:
        expires_at = entry[1]
        return expires_at is not None and self._clock() >= expires_at
