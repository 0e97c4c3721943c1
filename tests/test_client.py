"""Tests for ApiClient."""

from __future__ import annotations

import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from meme_cache.client import ApiClient
from meme_cache.errors import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    ServerError,
    ValidationError,
)
from meme_cache.types import EmbeddingState, SearchResponse

BASE_URL = "http://memes.test"
STATUS_URL = f"{BASE_URL}/api/assets/batch/embedding-status"


@pytest.mark.asyncio
async def test_fetch_statuses_success(httpx_mock: HTTPXMock) -> None:
    """fetch_statuses() posts asset ids and parses each status."""
    httpx_mock.add_response(
        url=STATUS_URL,
        method="POST",
        json={
            "statuses": {
                "a1": {"hasEmbedding": True, "status": "ready"},
                "a2": {"hasEmbedding": False, "status": "failed", "error": "timeout", "retryCount": 2},
            }
        },
    )

    async with ApiClient(base_url=BASE_URL) as client:
        statuses = await client.fetch_statuses(["a1", "a2", "a3"])

    body = json.loads(httpx_mock.get_requests()[0].content)
    assert body == {"assetIds": ["a1", "a2", "a3"]}
    assert statuses["a1"].status == EmbeddingState.READY
    assert statuses["a1"].has_embedding is True
    assert statuses["a2"].error == "timeout"
    assert statuses["a2"].retry_count == 2
    assert "a3" not in statuses


@pytest.mark.asyncio
async def test_fetch_statuses_rejects_large_batch(httpx_mock: HTTPXMock) -> None:
    """More than 50 ids fails before any request is made."""
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(ValidationError):
            await client.fetch_statuses([f"a{i}" for i in range(51)])
    assert httpx_mock.get_requests() == []


@pytest.mark.asyncio
async def test_fetch_statuses_empty(httpx_mock: HTTPXMock) -> None:
    async with ApiClient(base_url=BASE_URL) as client:
        assert await client.fetch_statuses([]) == {}
    assert httpx_mock.get_requests() == []


@pytest.mark.asyncio
async def test_fetch_statuses_malformed_body(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=STATUS_URL,
        method="POST",
        json={"statuses": {"a1": {"status": "bogus"}}},
    )
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.fetch_statuses(["a1"])
    assert exc_info.value.code == "invalid_response"


@pytest.mark.asyncio
async def test_auth_error(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=STATUS_URL, method="POST", status_code=401, json={"error": "Unauthorized"})
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(AuthenticationError):
            await client.fetch_statuses(["a1"])


@pytest.mark.asyncio
async def test_rate_limit_error(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=STATUS_URL,
        method="POST",
        status_code=429,
        json={"error": "Slow down"},
        headers={"Retry-After": "12"},
    )
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(RateLimitError) as exc_info:
            await client.fetch_statuses(["a1"])
    assert exc_info.value.retry_after == 12


@pytest.mark.asyncio
async def test_server_error_with_text_body(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(url=STATUS_URL, method="POST", status_code=502, text="Bad Gateway")
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.fetch_statuses(["a1"])
    assert str(exc_info.value) == "Bad Gateway"
    assert exc_info.value.status == 502


@pytest.mark.asyncio
async def test_retries_retryable_status(httpx_mock: HTTPXMock, mocker) -> None:
    """A retryable status is retried when retries are enabled."""
    delay = mocker.patch("meme_cache.client.calculate_delay", return_value=0)
    httpx_mock.add_response(url=STATUS_URL, method="POST", status_code=503, json={"error": "busy"})
    httpx_mock.add_response(url=STATUS_URL, method="POST", json={"statuses": {}})

    async with ApiClient(base_url=BASE_URL, retries=1) as client:
        assert await client.fetch_statuses(["a1"]) == {}
    delay.assert_called_once_with(0)
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_connect_error_becomes_network_error(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("connection refused"))
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.fetch_statuses(["a1"])
    assert "connection error" in str(exc_info.value)


@pytest.mark.asyncio
async def test_timeout_becomes_network_error(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ReadTimeout("too slow"))
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.generate_embedding("a1")
    assert "timeout" in str(exc_info.value)


@pytest.mark.asyncio
async def test_read_error_becomes_network_error(httpx_mock: HTTPXMock) -> None:
    """Transport failures beyond connect and timeout still surface as NetworkError."""
    httpx_mock.add_exception(httpx.ReadError("connection reset by peer"))
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(NetworkError) as exc_info:
            await client.fetch_statuses(["a1"])
    assert "transport error" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, httpx.ReadError)


@pytest.mark.asyncio
async def test_transport_error_is_retried(httpx_mock: HTTPXMock, mocker) -> None:
    delay = mocker.patch("meme_cache.client.calculate_delay", return_value=0)
    httpx_mock.add_exception(httpx.RemoteProtocolError("peer closed connection"))
    httpx_mock.add_response(url=STATUS_URL, method="POST", json={"statuses": {}})

    async with ApiClient(base_url=BASE_URL, retries=1) as client:
        assert await client.fetch_statuses(["a1"]) == {}
    delay.assert_called_once_with(0)
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_generate_embedding_success(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=f"{BASE_URL}/api/assets/a1/generate-embedding",
        method="POST",
        json={"success": True},
    )
    async with ApiClient(base_url=BASE_URL) as client:
        assert await client.generate_embedding("a1") is True


@pytest.mark.asyncio
async def test_generate_embedding_unsuccessful(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=f"{BASE_URL}/api/assets/a1/generate-embedding",
        method="POST",
        json={"success": False, "error": "model offline"},
    )
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(ServerError) as exc_info:
            await client.generate_embedding("a1")
    assert exc_info.value.code == "generation_failed"
    assert str(exc_info.value) == "model offline"


@pytest.mark.asyncio
async def test_search_success(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(
        url=f"{BASE_URL}/api/search",
        method="POST",
        json={
            "results": [{"id": "m1", "similarity": 0.91, "blobUrl": "https://blob/m1.png", "mime": "image/png"}],
            "query": "cats",
            "total": 1,
            "limit": 10,
            "threshold": 0.3,
        },
    )
    async with ApiClient(base_url=BASE_URL) as client:
        response = await client.search("cats", limit=10, threshold=0.3)

    assert isinstance(response, SearchResponse)
    assert response.results[0].id == "m1"
    assert response.results[0].score == 0.91
    assert response.cached is False
    body = json.loads(httpx_mock.get_requests()[0].content)
    assert body == {"query": "cats", "limit": 10, "threshold": 0.3}


@pytest.mark.asyncio
async def test_search_rejects_empty_query(httpx_mock: HTTPXMock) -> None:
    async with ApiClient(base_url=BASE_URL) as client:
        with pytest.raises(ValidationError):
            await client.search("")


@pytest.mark.asyncio
async def test_shared_http_client_not_closed() -> None:
    http_client = httpx.AsyncClient()
    client = ApiClient(base_url=BASE_URL, http_client=http_client)
    await client.close()
    assert not http_client.is_closed
    await http_client.aclose()
