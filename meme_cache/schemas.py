"""Wire schemas for the meme library API."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from meme_cache.types import EmbeddingState, EmbeddingStatus, SearchResult

MAX_STATUS_BATCH = 50


class StatusPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    has_embedding: bool = Field(alias="hasEmbedding")
    status: EmbeddingState
    error: Optional[str] = None
    retry_count: Optional[int] = Field(default=None, alias="retryCount")

    def to_status(self) -> EmbeddingStatus:
        return EmbeddingStatus(
            has_embedding=self.has_embedding,
            status=self.status,
            error=self.error,
            retry_count=self.retry_count,
        )


class BatchStatusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    asset_ids: list[str] = Field(alias="assetIds", max_length=MAX_STATUS_BATCH)


class BatchStatusResponse(BaseModel):
    statuses: dict[str, StatusPayload] = {}


class GenerateEmbeddingResponse(BaseModel):
    success: bool
    error: Optional[str] = None


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=500)
    limit: int = 30
    threshold: float = 0.2


class SearchResponsePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    results: list[dict[str, Any]] = []
    query: str
    total: int = 0
    limit: int = 30
    threshold: float = 0.2

    def parsed_results(self) -> list[SearchResult]:
        return [SearchResult.from_api(item) for item in self.results]


class RealtimeEvent(BaseModel):
    """A status event as streamed by the real-time endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    asset_id: Optional[str] = Field(default=None, alias="assetId")
    status: Optional[EmbeddingState] = None
    error: Optional[str] = None
    has_embedding: Optional[bool] = Field(default=None, alias="hasEmbedding")

    def to_status(self) -> Optional[EmbeddingStatus]:
        if self.status is None:
            return None
        has_embedding = self.has_embedding
        if has_embedding is None:
            has_embedding = self.status == EmbeddingState.READY
        return EmbeddingStatus(has_embedding=has_embedding, status=self.status, error=self.error)
