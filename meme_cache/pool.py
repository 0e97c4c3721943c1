"""Concurrency-limited request pool."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, TypeVar

from meme_cache.errors import PoolTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRIORITIES = ("high", "normal", "low")


class ConnectionPool:
    """Caps the number of concurrent API requests.

    Requests beyond ``max_concurrent`` wait in a queue ordered by priority:
    ``high`` goes to the front, ``low`` to the back and ``normal`` into the
    middle. A finished request hands its slot straight to the next waiter.

    Args:
        max_concurrent: Maximum requests in flight.
        request_timeout: Default per-request timeout in seconds.
    """

    def __init__(self, max_concurrent: int = 4, request_timeout: float = 30.0) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.request_timeout = request_timeout

        self._active = 0
        self._waiters: list[asyncio.Future[None]] = []

        self._total_processed = 0
        self._total_errors = 0
        self._wait_times: deque[float] = deque(maxlen=100)

    async def _acquire(self, priority: str) -> None:
        if self._active < self.max_concurrent and not self._waiters:
            self._active += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        if priority == "high":
            self._waiters.insert(0, waiter)
        elif priority == "low":
            self._waiters.append(waiter)
        else:
            self._waiters.insert(len(self._waiters) // 2, waiter)

        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # slot was handed over just before the cancellation landed
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.pop(0)
            if not waiter.done():
                waiter.set_result(None)
                return
        self._active -= 1

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        priority: str = "normal",
        timeout: float | None = None,
    ) -> T:
        """Run ``fn`` once a slot is free.

        Raises:
            ValueError: On an unknown priority.
            PoolTimeoutError: If ``fn`` does not finish within the timeout.
        """
        if priority not in PRIORITIES:
            raise ValueError(f"Unknown priority {priority!r}")

        loop = asyncio.get_running_loop()
        queued_at = loop.time()
        await self._acquire(priority)
        self._wait_times.append(loop.time() - queued_at)

        effective_timeout = self.request_timeout if timeout is None else timeout
        try:
            result = await asyncio.wait_for(fn(), timeout=effective_timeout)
            self._total_processed += 1
            return result
        except asyncio.TimeoutError as e:
            self._total_errors += 1
            raise PoolTimeoutError(
                f"Request timeout after {effective_timeout}s",
                code="pool_timeout",
            ) from e
        except Exception:
            self._total_errors += 1
            raise
        finally:
            self._release()

    def get_stats(self) -> dict:
        average_wait = sum(self._wait_times) / len(self._wait_times) if self._wait_times else 0.0
        return {
            "active_connections": self._active,
            "queued_requests": len(self._waiters),
            "total_processed": self._total_processed,
            "total_errors": self._total_errors,
            "average_wait_time": average_wait,
        }
