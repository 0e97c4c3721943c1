"""Redis cache backend."""

from __future__ import annotations

import logging
import re
from typing import Any

import msgpack
import redis.asyncio as redis

from .backend import NAMESPACES, CacheBackend, namespace_for_key, resolve_namespace

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(prefix: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", prefix)


class RedisBackend(CacheBackend):
    """Shared cache backend on Redis.

    Values are msgpack-encoded. Namespace TTLs are applied per key; the
    per-namespace entry limits are left to the server's maxmemory policy.
    Connection errors propagate so the caller can decide how to degrade.
    """

    def __init__(self, client: redis.Redis | None = None, url: str | None = None, scan_count: int = 500):
        if client is None:
            if not url:
                raise ValueError("RedisBackend needs a client or a url")
            client = redis.from_url(url)
        self._client = client
        self._scan_count = scan_count

    async def get(self, key: str) -> Any | None:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return msgpack.unpackb(raw, raw=False)

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        effective_ttl = namespace_for_key(key).ttl if ttl is None else ttl
        packed = msgpack.packb(value, use_bin_type=True)
        await self._client.set(key, packed, px=max(1, int(effective_ttl * 1000)))

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(key))

    async def _delete_matching(self, pattern: str) -> int:
        removed = 0
        batch: list[Any] = []
        async for key in self._client.scan_iter(match=pattern, count=self._scan_count):
            batch.append(key)
            if len(batch) >= self._scan_count:
                removed += await self._client.delete(*batch)
                batch = []
        if batch:
            removed += await self._client.delete(*batch)
        return removed

    async def clear(self, namespace: str | None = None) -> None:
        if namespace is None:
            for ns in NAMESPACES:
                await self._delete_matching(f"{_escape_glob(ns.prefix)}*")
            return

        resolved = resolve_namespace(namespace)
        if resolved is None:
            logger.warning(f"Ignoring clear for unknown namespace {namespace!r}")
            return
        removed = await self._delete_matching(f"{_escape_glob(resolved.prefix)}*")
        logger.debug(f"Cleared {removed} keys from namespace {resolved.name}")

    async def delete_prefix(self, prefix: str) -> int:
        return await self._delete_matching(f"{_escape_glob(prefix)}*")

    async def close(self) -> None:
        await self._client.aclose()
