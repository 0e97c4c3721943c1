"""Domain-level cache facade."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..keys import (
    asset_list_key,
    canonical_json,
    image_embedding_key,
    search_results_key,
    text_embedding_key,
    user_key_prefixes,
    user_keys,
)
from ..types import CacheStats
from .backend import CacheBackend
from .memory import MemoryBackend

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 50


def _preview(text: str) -> str:
    return text[:_PREVIEW_CHARS]


class CacheService:
    """Cache for embeddings, search results and asset listings.

    Callers deal in texts, checksums and user queries; key hashing, namespace
    routing and the backend are hidden here. Nothing in this class raises on
    a backend failure: reads degrade to misses and writes are dropped, so a
    cache outage never fails the calling request.

    Keys are short non-cryptographic hashes, so two inputs can share a slot.
    Text and search entries carry the exact input they were computed from and
    a read for a different input is treated as a miss.
    """

    def __init__(self, backend: Optional[CacheBackend] = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self._stats = CacheStats()

    async def _lookup(self, key: str, context: dict[str, Any]) -> Any | None:
        try:
            return await self.backend.get(key)
        except Exception as e:
            logger.error("Cache lookup failed for %s: %s (%s)", key, e, context)
            return None

    async def _store(self, key: str, value: Any, context: dict[str, Any]) -> None:
        try:
            await self.backend.set(key, value)
        except Exception as e:
            logger.error("Cache write failed for %s: %s (%s)", key, e, context)

    def _count(self, found: bool) -> None:
        if found:
            self._stats.record_hit()
        else:
            self._stats.record_miss()

    # Text embeddings

    async def get_text_embedding(self, text: str) -> list[float] | None:
        key = text_embedding_key(text)
        entry = await self._lookup(key, {"text_preview": _preview(text)})

        embedding = None
        if isinstance(entry, dict):
            if entry.get("text") == text:
                embedding = entry.get("embedding")
            else:
                logger.debug(f"Key collision on {key}; treating as miss")

        self._count(embedding is not None)
        return embedding

    async def set_text_embedding(self, text: str, embedding: list[float]) -> None:
        await self._store(
            text_embedding_key(text),
            {"text": text, "embedding": list(embedding)},
            {"text_preview": _preview(text)},
        )

    # Image embeddings

    async def get_image_embedding(self, checksum: str) -> list[float] | None:
        embedding = await self._lookup(image_embedding_key(checksum), {"checksum": checksum})
        self._count(embedding is not None)
        return embedding

    async def set_image_embedding(self, checksum: str, embedding: list[float]) -> None:
        await self._store(image_embedding_key(checksum), list(embedding), {"checksum": checksum})

    # Search results

    async def get_search_results(
        self, user_id: str, query: str, filters: Optional[dict] = None
    ) -> list[Any] | None:
        key = search_results_key(user_id, query, filters)
        entry = await self._lookup(key, {"user_id": user_id, "query_preview": _preview(query)})

        results = None
        if isinstance(entry, dict):
            if entry.get("fingerprint") == canonical_json([user_id, query, filters or {}]):
                results = entry.get("results")
            else:
                logger.debug(f"Key collision on {key}; treating as miss")

        self._count(results is not None)
        return results

    async def set_search_results(
        self, user_id: str, query: str, filters: Optional[dict], results: list[Any]
    ) -> None:
        await self._store(
            search_results_key(user_id, query, filters),
            {
                "fingerprint": canonical_json([user_id, query, filters or {}]),
                "results": list(results),
            },
            {"user_id": user_id, "query_preview": _preview(query), "results": len(results)},
        )

    # Asset listings

    async def get_asset_list(self, user_id: str, params: Optional[dict] = None) -> list[Any] | None:
        key = asset_list_key(user_id, params)
        entry = await self._lookup(key, {"user_id": user_id})

        assets = None
        if isinstance(entry, dict) and entry.get("params") == canonical_json(params or {}):
            assets = entry.get("assets")

        self._count(assets is not None)
        return assets

    async def set_asset_list(self, user_id: str, params: Optional[dict], assets: list[Any]) -> None:
        await self._store(
            asset_list_key(user_id, params),
            {"params": canonical_json(params or {}), "assets": list(assets)},
            {"user_id": user_id},
        )

    # Management

    async def invalidate(self, key: str) -> None:
        try:
            await self.backend.delete(key)
        except Exception as e:
            logger.error("Cache invalidate failed for %s: %s", key, e)

    async def invalidate_user_data(self, user_id: str) -> int:
        """Drop every cached entry scoped to a user.

        Scans the cache for the user's prefixes, so cost grows with cache
        size.

        Returns:
            Number of entries removed
        """
        removed = 0
        for prefix in user_key_prefixes(user_id):
            try:
                removed += await self.backend.delete_prefix(prefix)
            except Exception as e:
                logger.error("Cache invalidation failed for prefix %s: %s", prefix, e)
        for key in user_keys(user_id):
            try:
                if await self.backend.delete(key):
                    removed += 1
            except Exception as e:
                logger.error("Cache invalidation failed for %s: %s", key, e)
        logger.debug(f"Invalidated {removed} cache entries for user {user_id}")
        return removed

    async def clear(self, namespace: Optional[str] = None) -> None:
        try:
            await self.backend.clear(namespace)
        except Exception as e:
            logger.error("Cache clear failed for %s: %s", namespace or "all", e)

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as e:
            logger.warning(f"Error closing cache backend: {e}")

    # Statistics

    def get_stats(self) -> CacheStats:
        return self._stats.snapshot()

    def reset_stats(self) -> None:
        self._stats.reset()
