"""Tests for service wiring."""

import asyncio
import json

import httpx
import pytest

from meme_cache.cache import MemoryBackend, RedisBackend
from meme_cache.config import Settings
from meme_cache.context import build_cache_backend, create_context
from meme_cache.types import EmbeddingState


def test_build_memory_backend_with_limits():
    backend = build_cache_backend(Settings(_env_file=None, cache_search_max_entries=7))
    assert isinstance(backend, MemoryBackend)
    assert backend.capacity("search") == 7


def test_build_redis_backend(mocker):
    redis_client = mocker.AsyncMock()
    backend = build_cache_backend(
        Settings(_env_file=None, cache_backend="redis", redis_url="redis://localhost:6379/0"),
        redis_client=redis_client,
    )
    assert isinstance(backend, RedisBackend)


def test_build_backend_rejects_bad_config():
    with pytest.raises(ValueError):
        build_cache_backend(Settings(_env_file=None, cache_backend="redis"))


@pytest.mark.asyncio
async def test_realtime_updates_reach_status_manager(make_transport):
    """An update pushed over the real-time feed lands in the status manager."""
    transport = make_transport()

    async def connector(url):
        assert url == "http://memes.test/api/sse/embedding-updates"
        return transport

    settings = Settings(_env_file=None, api_base_url="http://memes.test", status_batch_interval=60)
    services = create_context(settings, connector=connector)
    received = []
    services.status.subscribe("a1", received.append)

    services.realtime.connect()
    for _ in range(20):
        await asyncio.sleep(0)
    transport.feed(json.dumps({"type": "embedding-update", "data": {"assetId": "a1", "status": "ready"}}))
    for _ in range(20):
        await asyncio.sleep(0)

    assert received[-1].status == EmbeddingState.READY
    assert services.status.get_stats()["pending_batch_size"] == 0

    await services.aclose()
    assert services.http_client.is_closed
    assert transport.closed


@pytest.mark.asyncio
async def test_shared_http_client_left_open():
    http_client = httpx.AsyncClient()
    services = create_context(Settings(_env_file=None), http_client=http_client)

    await services.aclose()

    assert not http_client.is_closed
    await http_client.aclose()


@pytest.mark.asyncio
async def test_api_retries_setting_reaches_client(httpx_mock, mocker):
    """MEME_CACHE_API_RETRIES turns on request retries for the wired client."""
    mocker.patch("meme_cache.client.calculate_delay", return_value=0)
    status_url = "http://memes.test/api/assets/batch/embedding-status"
    httpx_mock.add_response(url=status_url, method="POST", status_code=503, json={"error": "busy"})
    httpx_mock.add_response(url=status_url, method="POST", json={"statuses": {}})
    services = create_context(Settings(_env_file=None, api_base_url="http://memes.test", api_retries=1))

    assert await services.api.fetch_statuses(["a1"]) == {}
    assert len(httpx_mock.get_requests()) == 2

    await services.aclose()
