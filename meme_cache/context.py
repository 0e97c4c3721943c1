"""Explicit construction of the application's shared services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import redis.asyncio as redis

from meme_cache.cache import CacheBackend, CacheService, MemoryBackend, RedisBackend
from meme_cache.client import ApiClient
from meme_cache.config import Settings, settings as default_settings
from meme_cache.http import build_headers
from meme_cache.perf import PerformanceTracker
from meme_cache.pool import ConnectionPool
from meme_cache.realtime import WebSocketManager
from meme_cache.registry import FileMetadataRegistry
from meme_cache.search import SearchService
from meme_cache.status_manager import EmbeddingStatusManager
from meme_cache.transport import Connector, sse_connector

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """One instance of every shared service, wired together.

    Created once per application (or per test) and passed to whatever needs
    it, instead of module-level singletons.
    """

    settings: Settings
    http_client: httpx.AsyncClient
    cache: CacheService
    pool: ConnectionPool
    api: ApiClient
    status: EmbeddingStatusManager
    realtime: WebSocketManager
    search: SearchService
    perf: PerformanceTracker
    files: FileMetadataRegistry
    _owns_http_client: bool = True

    async def aclose(self) -> None:
        self.search.cancel_all()
        self.status.clear_all()
        await self.realtime.aclose()
        await self.cache.close()
        await self.api.close()
        if self._owns_http_client:
            await self.http_client.aclose()


def build_cache_backend(config: Settings, redis_client: Optional[redis.Redis] = None) -> CacheBackend:
    config.validate_backend()
    if config.cache_backend == "redis":
        logger.info("Using Redis cache backend")
        return RedisBackend(client=redis_client, url=config.redis_url)
    return MemoryBackend(limits=config.cache_limits())


def create_context(
    config: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    redis_client: Optional[redis.Redis] = None,
    connector: Optional[Connector] = None,
) -> ServiceContext:
    """Build and wire every shared service.

    Args:
        config: Settings to use; defaults to the environment-derived settings.
        http_client: Shared httpx client; created (and later closed) here
            when omitted.
        redis_client: Client for the Redis backend, when selected.
        connector: Real-time connector; defaults to SSE over ``http_client``.
    """
    config = config or default_settings
    owns_http_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(
            timeout=config.request_timeout,
            headers=build_headers(config.api_key or None),
        )

    cache = CacheService(build_cache_backend(config, redis_client))
    pool = ConnectionPool(
        max_concurrent=config.pool_max_concurrent,
        request_timeout=config.pool_request_timeout,
    )
    api = ApiClient(base_url=config.api_base_url, retries=config.api_retries, http_client=http_client)
    status = EmbeddingStatusManager(
        api,
        pool=pool,
        batch_size=config.status_batch_size,
        batch_interval=config.status_batch_interval,
        max_retries=config.status_max_retries,
        retry_delay=config.status_retry_delay,
        failure_backoff=config.status_failure_backoff,
    )
    realtime = WebSocketManager(
        connector or sse_connector(http_client, config.url_for(config.realtime_control_path)),
        config.url_for(config.realtime_path),
        max_reconnect_attempts=config.realtime_max_reconnect_attempts,
        queue_size=config.realtime_queue_size,
        ping_interval=config.realtime_ping_interval,
    )
    status.bind_realtime(realtime)

    return ServiceContext(
        settings=config,
        http_client=http_client,
        cache=cache,
        pool=pool,
        api=api,
        status=status,
        realtime=realtime,
        search=SearchService(api, cache),
        perf=PerformanceTracker(),
        files=FileMetadataRegistry(),
        _owns_http_client=owns_http_client,
    )
