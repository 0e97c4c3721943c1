"""Tests for the Redis cache backend."""

from unittest.mock import AsyncMock, MagicMock

import msgpack
import pytest

from meme_cache.cache.redis_backend import RedisBackend


def _scan_result(keys):
    async def scan(*args, **kwargs):
        for key in keys:
            yield key
    return MagicMock(side_effect=scan)


def test_requires_client_or_url():
    with pytest.raises(ValueError):
        RedisBackend()


@pytest.mark.asyncio
async def test_get_decodes_msgpack():
    """Stored bytes are decoded back into Python values."""
    mock_redis = AsyncMock()
    mock_redis.get.return_value = msgpack.packb({"text": "cat", "embedding": [0.5]}, use_bin_type=True)

    backend = RedisBackend(client=mock_redis)
    assert await backend.get("txt:abc") == {"text": "cat", "embedding": [0.5]}
    mock_redis.get.assert_awaited_once_with("txt:abc")


@pytest.mark.asyncio
async def test_get_missing_returns_none():
    mock_redis = AsyncMock()
    mock_redis.get.return_value = None

    backend = RedisBackend(client=mock_redis)
    assert await backend.get("txt:abc") is None


@pytest.mark.asyncio
async def test_set_uses_namespace_ttl():
    """Writes carry the namespace TTL in milliseconds."""
    mock_redis = AsyncMock()
    backend = RedisBackend(client=mock_redis)

    await backend.set("search:usr_1:a:b", [1, 2])

    args, kwargs = mock_redis.set.call_args
    assert args[0] == "search:usr_1:a:b"
    assert msgpack.unpackb(args[1], raw=False) == [1, 2]
    assert kwargs["px"] == 300_000


@pytest.mark.asyncio
async def test_set_ttl_override():
    mock_redis = AsyncMock()
    backend = RedisBackend(client=mock_redis)

    await backend.set("img:abc", [0.1], ttl=2.5)
    assert mock_redis.set.call_args.kwargs["px"] == 2500


@pytest.mark.asyncio
async def test_delete_returns_bool():
    mock_redis = AsyncMock()
    mock_redis.delete.return_value = 0
    backend = RedisBackend(client=mock_redis)

    assert await backend.delete("txt:abc") is False


@pytest.mark.asyncio
async def test_delete_prefix_scans_and_batches():
    """Prefix deletion scans with an escaped pattern and deletes in batches."""
    keys = [f"search:usr_1:{i}" for i in range(5)]
    mock_redis = AsyncMock()
    mock_redis.scan_iter = _scan_result(keys)
    mock_redis.delete.side_effect = lambda *batch: len(batch)

    backend = RedisBackend(client=mock_redis, scan_count=2)
    removed = await backend.delete_prefix("search:usr_1:")

    assert removed == 5
    assert mock_redis.delete.await_count == 3
    mock_redis.scan_iter.assert_called_once_with(match="search:usr_1:*", count=2)


@pytest.mark.asyncio
async def test_delete_prefix_escapes_glob_characters():
    mock_redis = AsyncMock()
    mock_redis.scan_iter = _scan_result([])
    backend = RedisBackend(client=mock_redis)

    assert await backend.delete_prefix("search:a*b:") == 0
    assert mock_redis.scan_iter.call_args.kwargs["match"] == "search:a\\*b:*"
    mock_redis.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_namespace_by_alias():
    mock_redis = AsyncMock()
    mock_redis.scan_iter = _scan_result([])
    backend = RedisBackend(client=mock_redis)

    await backend.clear("text")
    assert mock_redis.scan_iter.call_args.kwargs["match"] == "txt:*"


@pytest.mark.asyncio
async def test_clear_all_namespaces():
    mock_redis = AsyncMock()
    mock_redis.scan_iter = _scan_result([])
    backend = RedisBackend(client=mock_redis)

    await backend.clear()
    patterns = [c.kwargs["match"] for c in mock_redis.scan_iter.call_args_list]
    assert patterns == ["txt:*", "img:*", "search:*", "assets:*"]


@pytest.mark.asyncio
async def test_clear_unknown_namespace_is_ignored():
    mock_redis = AsyncMock()
    mock_redis.scan_iter = _scan_result([])
    backend = RedisBackend(client=mock_redis)

    await backend.clear("bogus")
    mock_redis.scan_iter.assert_not_called()


@pytest.mark.asyncio
async def test_close():
    mock_redis = AsyncMock()
    backend = RedisBackend(client=mock_redis)
    await backend.close()
    mock_redis.aclose.assert_awaited_once()
