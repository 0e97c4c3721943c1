"""Pytest configuration and shared fixtures."""

import asyncio

import pytest

from meme_cache.errors import NetworkError, RealtimeConnectionError
from meme_cache.types import EmbeddingState, EmbeddingStatus


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeApiClient:
    """Stand-in for ApiClient that answers from a status table."""

    def __init__(self):
        self.statuses = {}
        self.batch_calls = []
        self.generate_calls = []
        self.fail_batches = False
        self.fail_generate = False

    async def fetch_statuses(self, asset_ids):
        self.batch_calls.append(list(asset_ids))
        await asyncio.sleep(0)
        if self.fail_batches:
            raise NetworkError("Request connection error: refused", code="network_error")
        return {
            asset_id: self.statuses[asset_id]
            for asset_id in asset_ids
            if asset_id in self.statuses
        }

    async def generate_embedding(self, asset_id):
        self.generate_calls.append(asset_id)
        if self.fail_generate:
            raise NetworkError("Request timeout: slow", code="network_error")
        return True


class FakeTransport:
    """In-memory transport; incoming frames are pushed with feed()."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self._incoming = asyncio.Queue()

    def feed(self, raw: str) -> None:
        self._incoming.put_nowait(raw)

    def drop(self) -> None:
        self._incoming.put_nowait(None)

    async def recv(self) -> str:
        raw = await self._incoming.get()
        if raw is None:
            raise RealtimeConnectionError("closed by peer", code="closed")
        return raw

    async def send(self, data: str) -> None:
        if self.closed:
            raise RealtimeConnectionError("send on closed transport", code="closed")
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)


def status(state: str, has_embedding: bool = False, error=None) -> EmbeddingStatus:
    return EmbeddingStatus(has_embedding=has_embedding, status=EmbeddingState(state), error=error)


@pytest.fixture
def make_status():
    return status


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_api():
    return FakeApiClient()
