"""Shared value types for meme-cache."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EmbeddingState(str, Enum):
    """Lifecycle of an asset's embedding."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class ConnectionState(str, Enum):
    """State of the real-time connection."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


@dataclass(frozen=True)
class EmbeddingStatus:
    """Embedding status of a single asset."""

    has_embedding: bool
    status: EmbeddingState
    error: str | None = None
    retry_count: int | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> EmbeddingStatus:
        """Build a status from the API's camelCase JSON."""
        return cls(
            has_embedding=bool(data.get("hasEmbedding", False)),
            status=EmbeddingState(data.get("status", EmbeddingState.PENDING.value)),
            error=data.get("error"),
            retry_count=data.get("retryCount"),
        )

    def to_api(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "hasEmbedding": self.has_embedding,
            "status": self.status.value,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.retry_count is not None:
            data["retryCount"] = self.retry_count
        return data

    def differs_from(self, other: EmbeddingStatus | None) -> bool:
        """Whether subscribers should hear about this status.

        Only the state and the embedding flag count; error text and retry
        counts alone do not make a change.
        """
        if other is None:
            return True
        return self.status != other.status or self.has_embedding != other.has_embedding


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheStats:
    """Hit/miss counters for a cache service."""

    hits: int = 0
    misses: int = 0
    total_requests: int = 0
    last_reset: datetime = field(default_factory=_utcnow)

    @property
    def hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests

    def record_hit(self) -> None:
        self.total_requests += 1
        self.hits += 1

    def record_miss(self) -> None:
        self.total_requests += 1
        self.misses += 1

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.total_requests = 0
        self.last_reset = _utcnow()

    def snapshot(self) -> CacheStats:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "total_requests": self.total_requests,
            "hit_rate": self.hit_rate,
            "last_reset": self.last_reset.isoformat(),
        }


@dataclass(frozen=True)
class SearchResult:
    """Individual search result."""

    id: str
    score: float
    blob_url: str | None = None
    mime: str | None = None
    width: int | None = None
    height: int | None = None
    created_at: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SearchResult:
        return cls(
            id=data["id"],
            score=float(data.get("similarity", data.get("score", 0.0))),
            blob_url=data.get("blobUrl"),
            mime=data.get("mime"),
            width=data.get("width"),
            height=data.get("height"),
            created_at=data.get("createdAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "similarity": self.score,
            "blobUrl": self.blob_url,
            "mime": self.mime,
            "width": self.width,
            "height": self.height,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class SearchResponse:
    """Response from the search endpoint."""

    results: list[SearchResult]
    query: str
    total: int
    limit: int
    threshold: float
    cached: bool = False
