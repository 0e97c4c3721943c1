"""In-process LRU cache backend."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Iterator

from .backend import NAMESPACES, CacheBackend, Namespace, namespace_for_key, resolve_namespace

logger = logging.getLogger(__name__)


class LRUStore:
    """Bounded LRU map with per-entry expiry.

    Entries are kept in recency order; the first entry is the least recently
    used one.
    """

    def __init__(self, max_entries: int, default_ttl: float, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self._clock = clock
        self._data: "OrderedDict[str, tuple[Any, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def keys(self) -> Iterator[str]:
        return iter(list(self._data.keys()))

    def _live_entry(self, key: str) -> tuple[Any, float] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._data[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        self._data.move_to_end(key)
        return entry[0]

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        if key in self._data:
            self._data[key] = (value, expires_at)
            self._data.move_to_end(key)
            return

        if len(self._data) >= self.max_entries:
            evicted, _ = self._data.popitem(last=False)
            logger.debug(f"Evicted LRU entry {evicted}")
        self._data[key] = (value, expires_at)

    def delete(self, key: str) -> bool:
        existed = self._live_entry(key) is not None
        self._data.pop(key, None)
        return existed

    def clear(self) -> None:
        self._data.clear()


class MemoryBackend(CacheBackend):
    """Memory-backed cache with one LRU store per namespace.

    Each namespace has its own size limit and default TTL, so a burst of
    search results can never push image embeddings out.

    Args:
        limits: Optional per-namespace capacity override, keyed by namespace
            name ("text", "image", "search", "assets")
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        limits: dict[str, int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        limits = limits or {}
        self._stores: dict[str, LRUStore] = {
            ns.name: LRUStore(limits.get(ns.name, ns.max_entries), ns.ttl, clock)
            for ns in NAMESPACES
        }

    def _store_for(self, namespace: Namespace) -> LRUStore:
        return self._stores[namespace.name]

    async def get(self, key: str) -> Any | None:
        return self._store_for(namespace_for_key(key)).get(key)

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._store_for(namespace_for_key(key)).set(key, value, ttl)

    async def delete(self, key: str) -> bool:
        return self._store_for(namespace_for_key(key)).delete(key)

    async def clear(self, namespace: str | None = None) -> None:
        if namespace is None:
            for store in self._stores.values():
                store.clear()
            return

        resolved = resolve_namespace(namespace)
        if resolved is None:
            logger.warning(f"Ignoring clear for unknown namespace {namespace!r}")
            return
        self._store_for(resolved).clear()

    async def delete_prefix(self, prefix: str) -> int:
        removed = 0
        for store in self._stores.values():
            for key in store.keys():
                if key.startswith(prefix) and store.delete(key):
                    removed += 1
        return removed

    def size(self, namespace: str | None = None) -> int:
        """Number of stored entries, optionally for a single namespace."""
        if namespace is None:
            return sum(len(store) for store in self._stores.values())
        resolved = resolve_namespace(namespace)
        if resolved is None:
            return 0
        return len(self._store_for(resolved))

    def capacity(self, namespace: str) -> int:
        resolved = resolve_namespace(namespace)
        if resolved is None:
            raise KeyError(namespace)
        return self._store_for(resolved).max_entries
