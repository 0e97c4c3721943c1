"""Async client for the meme library REST API."""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType
from typing import Any

import httpx
from pydantic import ValidationError as SchemaError

from meme_cache.backoff import RETRY_CONFIG, calculate_delay
from meme_cache.errors import MemeCacheError, NetworkError, ServerError, ValidationError
from meme_cache.http import build_headers, map_status_to_error
from meme_cache.schemas import (
    MAX_STATUS_BATCH,
    BatchStatusRequest,
    BatchStatusResponse,
    GenerateEmbeddingResponse,
    SearchRequest,
    SearchResponsePayload,
)
from meme_cache.types import EmbeddingStatus, SearchResponse

logger = logging.getLogger(__name__)


class ApiClient:
    """Asynchronous client for the meme library API.

    Usage:
        async with ApiClient(base_url="https://memes.example.com") as client:
            statuses = await client.fetch_statuses(["a1", "a2"])

    Args:
        base_url: Base URL of the web application.
        api_key: Optional bearer token.
        timeout: Request timeout in seconds. Defaults to 30.0.
        retries: Number of retry attempts for retryable errors. Defaults to 0;
            the status manager schedules its own retries.
        http_client: Existing httpx.AsyncClient to use. It is not closed by
            this client.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:3000",
        api_key: str | None = None,
        timeout: float = 30.0,
        retries: int = 0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._retries = retries
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout,
            headers=build_headers(api_key),
        )

    async def __aenter__(self) -> ApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Make an HTTP request with retry logic.

        Raises:
            MemeCacheError: For API errors
            NetworkError: For connection/timeout errors
        """
        url = f"{self._base_url}{path}"
        last_error: MemeCacheError | None = None

        for attempt in range(self._retries + 1):
            try:
                response = await self._http_client.request(method, url, json=json)
            except httpx.TransportError as e:
                if isinstance(e, httpx.TimeoutException):
                    kind = "timeout"
                elif isinstance(e, httpx.ConnectError):
                    kind = "connection error"
                else:
                    kind = "transport error"
                last_error = NetworkError(
                    message=f"Request {kind}: {e}",
                    code="network_error",
                )
                if attempt < self._retries:
                    delay = calculate_delay(attempt)
                    logger.debug(
                        "Retrying after %s (attempt %d/%d)", kind, attempt + 1, self._retries
                    )
                    await asyncio.sleep(delay)
                    continue
                raise last_error from e

            if response.status_code >= 400:
                try:
                    body = response.json()
                except ValueError:
                    body = {"error": response.text or "Unknown error"}
                if not isinstance(body, dict):
                    body = {"error": str(body)}

                error = map_status_to_error(response.status_code, body, dict(response.headers))
                if response.status_code in RETRY_CONFIG["retryable_statuses"]:
                    last_error = error
                    if attempt < self._retries:
                        delay = calculate_delay(attempt)
                        logger.debug(
                            "Retrying request after %.2fs (attempt %d/%d): %s",
                            delay,
                            attempt + 1,
                            self._retries,
                            str(error),
                        )
                        await asyncio.sleep(delay)
                        continue
                raise error

            try:
                return response.json()
            except ValueError as e:
                raise ServerError(
                    f"Invalid JSON from {path}", code="invalid_response", status=response.status_code
                ) from e

        if last_error is not None:
            raise last_error
        raise RuntimeError("Unexpected state: no error but request did not succeed")

    async def fetch_statuses(self, asset_ids: list[str]) -> dict[str, EmbeddingStatus]:
        """Fetch embedding statuses for up to 50 assets in one request.

        Raises:
            ValidationError: If more than 50 ids are passed.
        """
        if len(asset_ids) > MAX_STATUS_BATCH:
            raise ValidationError(
                f"Batch size exceeds maximum of {MAX_STATUS_BATCH} assets",
                code="validation_error",
            )
        if not asset_ids:
            return {}

        request = BatchStatusRequest(asset_ids=asset_ids)
        data = await self._request(
            "POST",
            "/api/assets/batch/embedding-status",
            json=request.model_dump(by_alias=True),
        )
        try:
            payload = BatchStatusResponse.model_validate(data)
        except SchemaError as e:
            raise ServerError(
                f"Malformed batch status response: {e}", code="invalid_response"
            ) from e
        return {asset_id: item.to_status() for asset_id, item in payload.statuses.items()}

    async def generate_embedding(self, asset_id: str) -> bool:
        """Ask the server to (re)generate an asset's embedding.

        Raises:
            ServerError: If the server reports the generation did not succeed.
        """
        data = await self._request("POST", f"/api/assets/{asset_id}/generate-embedding")
        try:
            payload = GenerateEmbeddingResponse.model_validate(data)
        except SchemaError as e:
            raise ServerError(
                f"Malformed generate-embedding response: {e}", code="invalid_response"
            ) from e
        if not payload.success:
            raise ServerError(
                payload.error or "Failed to generate embedding", code="generation_failed"
            )
        return True

    async def search(self, query: str, *, limit: int = 30, threshold: float = 0.2) -> SearchResponse:
        """Run a semantic search."""
        try:
            request = SearchRequest(query=query, limit=limit, threshold=threshold)
        except SchemaError as e:
            raise ValidationError(str(e), code="validation_error") from e

        data = await self._request("POST", "/api/search", json=request.model_dump())
        try:
            payload = SearchResponsePayload.model_validate(data)
        except SchemaError as e:
            raise ServerError(f"Malformed search response: {e}", code="invalid_response") from e
        return SearchResponse(
            results=payload.parsed_results(),
            query=payload.query,
            total=payload.total,
            limit=payload.limit,
            threshold=payload.threshold,
        )
