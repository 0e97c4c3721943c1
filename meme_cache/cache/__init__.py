"""Namespaced caching with pluggable backends."""

from .backend import (
    ASSET_METADATA,
    IMAGE_EMBEDDINGS,
    NAMESPACES,
    SEARCH_RESULTS,
    TEXT_EMBEDDINGS,
    CacheBackend,
    Namespace,
)
from .memory import LRUStore, MemoryBackend
from .redis_backend import RedisBackend
from .service import CacheService

__all__ = [
    "CacheBackend",
    "CacheService",
    "LRUStore",
    "MemoryBackend",
    "RedisBackend",
    "Namespace",
    "NAMESPACES",
    "TEXT_EMBEDDINGS",
    "IMAGE_EMBEDDINGS",
    "SEARCH_RESULTS",
    "ASSET_METADATA",
]
