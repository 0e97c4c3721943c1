"""Client-side caching, status batching and real-time updates for the meme library."""

from meme_cache.backoff import reconnect_delay
from meme_cache.cache import CacheService, MemoryBackend, RedisBackend
from meme_cache.client import ApiClient
from meme_cache.context import ServiceContext, create_context
from meme_cache.errors import (
    AuthenticationError,
    MemeCacheError,
    NetworkError,
    NotFoundError,
    PoolTimeoutError,
    RateLimitError,
    RealtimeConnectionError,
    ServerError,
    ValidationError,
)
from meme_cache.pool import ConnectionPool
from meme_cache.realtime import WebSocketManager
from meme_cache.search import SearchService
from meme_cache.status_manager import EmbeddingStatusManager
from meme_cache.types import (
    CacheStats,
    ConnectionState,
    EmbeddingState,
    EmbeddingStatus,
    SearchResponse,
    SearchResult,
)

__version__ = "0.1.0"

__all__: list[str] = [
    "ApiClient",
    "CacheService",
    "MemoryBackend",
    "RedisBackend",
    "ConnectionPool",
    "EmbeddingStatusManager",
    "WebSocketManager",
    "SearchService",
    "ServiceContext",
    "create_context",
    "reconnect_delay",
    "CacheStats",
    "ConnectionState",
    "EmbeddingState",
    "EmbeddingStatus",
    "SearchResponse",
    "SearchResult",
    "MemeCacheError",
    "AuthenticationError",
    "NetworkError",
    "NotFoundError",
    "PoolTimeoutError",
    "RateLimitError",
    "RealtimeConnectionError",
    "ServerError",
    "ValidationError",
]
