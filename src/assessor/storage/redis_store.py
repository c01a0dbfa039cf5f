"""Redis-backed store.

Each document is a JSON string at ``{prefix}:{collection}:{id}``; a set at
``{prefix}:{collection}:ids`` indexes the collection so listing never needs ``KEYS``.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as redis

from assessor.logging import get_logger
from assessor.storage.base import Collection, Document

logger = get_logger(__name__)


class RedisStore:
    """Store documents in Redis."""

    def __init__(self, *, redis_url: str, key_prefix: str, client: Any | None = None) -> None:
        self._client = client or redis.Redis.from_url(redis_url, decode_responses=True)
        self._prefix = key_prefix

    def _doc_key(self, collection: Collection, doc_id: str) -> str:
        return f"{self._prefix}:{collection.value}:{doc_id}"

    def _index_key(self, collection: Collection) -> str:
        return f"{self._prefix}:{collection.value}:ids"

    async def get(self, collection: Collection, doc_id: str) -> Document | None:
        raw = await self._client.get(self._doc_key(collection, doc_id))
        if raw is None:
            return None
        return json.loads(raw)

    async def put(
        self,
        collection: Collection,
        doc_id: str,
        doc: Document,
        *,
        ttl_seconds: int | None = None,
    ) -> None:
        line = json.dumps(doc, ensure_ascii=False)
        pipe = self._client.pipeline()
        pipe.set(self._doc_key(collection, doc_id), line, ex=ttl_seconds)
        pipe.sadd(self._index_key(collection), doc_id)
        await pipe.execute()

    async def list(self, collection: Collection) -> list[Document]:
        ids = sorted(await self._client.smembers(self._index_key(collection)))
        if not ids:
            return []
        raws = await self._client.mget([self._doc_key(collection, i) for i in ids])

        docs: list[Document] = []
        stale: list[str] = []
        for doc_id, raw in zip(ids, raws):
            if raw is None:
                stale.append(doc_id)
                continue
            docs.append(json.loads(raw))
        if stale:
            # expired documents leave their id behind in the index
            await self._client.srem(self._index_key(collection), *stale)
            logger.debug("Pruned %d stale ids from %s", len(stale), collection.value)
        return docs

    async def delete(self, collection: Collection, doc_id: str) -> bool:
        pipe = self._client.pipeline()
        pipe.delete(self._doc_key(collection, doc_id))
        pipe.srem(self._index_key(collection), doc_id)
        deleted, _ = await pipe.execute()
        return bool(deleted)

    async def close(self) -> None:
        await self._client.aclose()
