"""Real-time transports.

The connection manager only needs something it can send text frames to and
read text frames from. ``SSETransport`` provides that over plain HTTP: events
arrive as a Server-Sent Events stream and outgoing control messages are
POSTed to a companion endpoint.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, Optional, Protocol

import httpx

from meme_cache.errors import RealtimeConnectionError

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, data: str) -> None: ...

    async def recv(self) -> str:
        """Next message; raises RealtimeConnectionError once the connection ends."""
        ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]


class SSETransport:
    """Server-Sent Events stream plus a POST control channel."""

    def __init__(self, http_client: httpx.AsyncClient, stream_url: str, control_url: str) -> None:
        self._http_client = http_client
        self.stream_url = stream_url
        self.control_url = control_url
        self._response: Optional[httpx.Response] = None
        self._lines: Optional[AsyncIterator[str]] = None

    async def open(self) -> None:
        request = self._http_client.build_request(
            "GET",
            self.stream_url,
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
        )
        try:
            response = await self._http_client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise RealtimeConnectionError(
                f"Could not open event stream: {e}", code="connect_failed"
            ) from e

        if response.status_code >= 400:
            await response.aclose()
            raise RealtimeConnectionError(
                f"Event stream rejected with status {response.status_code}",
                code="connect_failed",
                status=response.status_code,
            )

        self._response = response
        self._lines = response.aiter_lines()

    async def recv(self) -> str:
        if self._lines is None:
            raise RealtimeConnectionError("Event stream is not open", code="closed")

        data: list[str] = []
        while True:
            try:
                line = await self._lines.__anext__()
            except StopAsyncIteration:
                raise RealtimeConnectionError("Event stream closed", code="closed") from None
            except httpx.HTTPError as e:
                raise RealtimeConnectionError(f"Event stream failed: {e}", code="closed") from e

            if not line:
                if data:
                    return "\n".join(data)
                continue
            if line.startswith(":"):
                # comment / keep-alive
                continue

            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "data":
                data.append(value)

    async def send(self, data: str) -> None:
        try:
            response = await self._http_client.post(
                self.control_url,
                content=data,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise RealtimeConnectionError(f"Control message failed: {e}", code="send_failed") from e
        if response.status_code >= 400:
            raise RealtimeConnectionError(
                f"Control message rejected with status {response.status_code}",
                code="send_failed",
                status=response.status_code,
            )

    async def close(self) -> None:
        self._lines = None
        if self._response is not None:
            await self._response.aclose()
            self._response = None


def sse_connector(http_client: httpx.AsyncClient, control_url: str) -> Connector:
    """Connector that opens an SSETransport for the requested stream URL."""

    async def connect(url: str) -> Transport:
        transport = SSETransport(http_client, url, control_url)
        await transport.open()
        logger.debug(f"Opened event stream {url}")
        return transport

    return connect
