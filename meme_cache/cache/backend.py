"""Backend contract and namespace table shared by cache backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Namespace:
    """A key-prefix partition with its own capacity and TTL."""

    name: str
    prefix: str
    max_entries: int
    ttl: float  # seconds
    aliases: tuple[str, ...] = ()


TEXT_EMBEDDINGS = Namespace("text", "txt:", 100, 15 * 60, ("txt", "txt:", "text"))
IMAGE_EMBEDDINGS = Namespace("image", "img:", 500, 24 * 60 * 60, ("img", "img:", "image"))
SEARCH_RESULTS = Namespace("search", "search:", 50, 5 * 60, ("search", "search:"))
ASSET_METADATA = Namespace("assets", "assets:", 200, 30 * 60, ("assets", "assets:"))

NAMESPACES: tuple[Namespace, ...] = (
    TEXT_EMBEDDINGS,
    IMAGE_EMBEDDINGS,
    SEARCH_RESULTS,
    ASSET_METADATA,
)


def namespace_for_key(key: str) -> Namespace:
    """Route a key to its namespace; unknown prefixes land in search."""
    for namespace in NAMESPACES:
        if key.startswith(namespace.prefix):
            return namespace
    return SEARCH_RESULTS


def resolve_namespace(name: str) -> Namespace | None:
    """Look up a namespace by any of its accepted spellings."""
    for namespace in NAMESPACES:
        if name in namespace.aliases:
            return namespace
    return None


class CacheBackend(ABC):
    """Storage strategy behind CacheService.

    Backends may raise on infrastructure failures; CacheService turns those
    into misses.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value; ttl (seconds) overrides the namespace default."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key, returning whether it existed."""

    @abstractmethod
    async def clear(self, namespace: str | None = None) -> None:
        """Clear one namespace, or everything when namespace is None."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix, returning the count."""

    async def close(self) -> None:
        return None
