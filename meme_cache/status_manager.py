"""Batched embedding status polling.

Many independent views want to know when an asset's embedding is ready.
Polling per asset exhausts connections quickly, so every interested party
subscribes here instead and a single timer flushes the pending asset ids in
chunked batch requests.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Coroutine, Optional

from pydantic import ValidationError as SchemaError

from meme_cache.errors import MemeCacheError
from meme_cache.schemas import RealtimeEvent
from meme_cache.types import EmbeddingState, EmbeddingStatus

if TYPE_CHECKING:
    from meme_cache.client import ApiClient
    from meme_cache.pool import ConnectionPool
    from meme_cache.realtime import WebSocketManager

logger = logging.getLogger(__name__)

StatusCallback = Callable[[EmbeddingStatus], None]
Unsubscribe = Callable[[], None]

EMBEDDING_UPDATES_TOPIC = "embedding-updates"


class EmbeddingStatusManager:
    """Coalesces per-asset status checks into periodic batch requests.

    Must be used from within a running event loop. Statuses live only in
    memory.

    Args:
        client: API client used for batch status and generation requests.
        pool: Optional connection pool the requests are routed through.
        batch_size: Maximum asset ids per request.
        batch_interval: Seconds between batch flushes.
        max_retries: Automatic generation retries per failed asset.
        retry_delay: Seconds before an automatic retry.
        failure_backoff: Extra pause before rescheduling after a batch in
            which every request failed.
    """

    def __init__(
        self,
        client: "ApiClient",
        *,
        pool: Optional["ConnectionPool"] = None,
        batch_size: int = 50,
        batch_interval: float = 5.0,
        max_retries: int = 10,
        retry_delay: float = 10.0,
        failure_backoff: float = 5.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.client = client
        self.pool = pool
        self.batch_size = batch_size
        self.batch_interval = batch_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.failure_backoff = failure_backoff

        self._subscribers: dict[str, dict[StatusCallback, None]] = {}
        self._statuses: dict[str, EmbeddingStatus] = {}
        self._pending: dict[str, None] = {}

        self._batch_lock = asyncio.Lock()
        self._batch_timer: asyncio.TimerHandle | None = None
        self._backoff_timer: asyncio.TimerHandle | None = None
        self._retry_timers: dict[str, asyncio.TimerHandle] = {}
        self._retry_counts: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()

    # Subscriptions

    def subscribe(self, asset_id: str, callback: StatusCallback) -> Unsubscribe:
        """Register for status changes of one asset.

        A known status is delivered on the next loop iteration, never from
        inside this call.

        Returns:
            Function that removes this callback again.
        """
        if not asset_id:
            return lambda: None

        self._subscribers.setdefault(asset_id, {})[callback] = None
        self._pending[asset_id] = None
        self._schedule_batch()

        cached = self._statuses.get(asset_id)
        if cached is not None:
            asyncio.get_running_loop().call_soon(self._deliver, asset_id, callback, cached)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(asset_id)
            if callbacks is None:
                return
            callbacks.pop(callback, None)
            if not callbacks:
                del self._subscribers[asset_id]
                self._pending.pop(asset_id, None)

        return unsubscribe

    def get_status(self, asset_id: str) -> EmbeddingStatus | None:
        return self._statuses.get(asset_id)

    def _deliver(self, asset_id: str, callback: StatusCallback, status: EmbeddingStatus) -> None:
        if callback not in self._subscribers.get(asset_id, {}):
            return
        try:
            callback(status)
        except Exception:
            logger.exception(f"Error in status callback for asset {asset_id}")

    def _update_status(self, asset_id: str, status: EmbeddingStatus) -> None:
        previous = self._statuses.get(asset_id)
        self._statuses[asset_id] = status

        if not status.differs_from(previous):
            return
        for callback in list(self._subscribers.get(asset_id, {})):
            try:
                callback(status)
            except Exception:
                logger.exception(f"Error in status callback for asset {asset_id}")

    def apply_update(self, asset_id: str, status: EmbeddingStatus) -> None:
        """Feed a status received from a push source (SSE/WebSocket)."""
        self._update_status(asset_id, status)
        if status.has_embedding:
            self._pending.pop(asset_id, None)
        elif status.status == EmbeddingState.FAILED:
            self._schedule_retry(asset_id)

    def bind_realtime(self, manager: "WebSocketManager") -> Unsubscribe:
        """Route real-time embedding updates through this manager."""
        return manager.subscribe(EMBEDDING_UPDATES_TOPIC, self._on_realtime_update)

    def _on_realtime_update(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed embedding update: {data!r}")
            return
        try:
            event = RealtimeEvent.model_validate({"type": "embedding-update", **data})
        except SchemaError as e:
            logger.warning(f"Ignoring malformed embedding update: {e}")
            return
        status = event.to_status()
        if event.asset_id and status is not None:
            self.apply_update(event.asset_id, status)

    # Batching

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background status task failed", exc_info=task.exception())

    def _schedule_batch(self) -> None:
        if self._batch_timer is not None or self._backoff_timer is not None or not self._pending:
            return
        self._batch_timer = asyncio.get_running_loop().call_later(
            self.batch_interval, self._on_batch_timer
        )

    def _on_batch_timer(self) -> None:
        self._batch_timer = None
        self._spawn(self._process_batch())

    def _on_backoff_elapsed(self) -> None:
        self._backoff_timer = None
        self._schedule_batch()

    async def flush(self) -> None:
        """Run a batch now instead of waiting for the timer."""
        if self._batch_timer is not None:
            self._batch_timer.cancel()
            self._batch_timer = None
        await self._process_batch()

    def _needs_check(self, asset_id: str) -> bool:
        status = self._statuses.get(asset_id)
        return not (status is not None and status.has_embedding) and asset_id in self._subscribers

    async def _run(self, fn: Callable[[], Awaitable[Any]], priority: str) -> Any:
        if self.pool is not None:
            return await self.pool.execute(fn, priority=priority)
        return await fn()

    async def _fetch_chunk(self, chunk: list[str]) -> dict[str, EmbeddingStatus]:
        return await self._run(lambda: self.client.fetch_statuses(chunk), "low")

    async def _process_batch(self) -> None:
        async with self._batch_lock:
            if not self._pending:
                return

            to_check = [asset_id for asset_id in self._pending if self._needs_check(asset_id)]
            self._pending.clear()
            if not to_check:
                return

            chunks = [to_check[i:i + self.batch_size] for i in range(0, len(to_check), self.batch_size)]
            logger.debug(f"Checking {len(to_check)} assets in {len(chunks)} batch requests")
            results = await asyncio.gather(
                *(self._fetch_chunk(chunk) for chunk in chunks),
                return_exceptions=True,
            )

            failed = 0
            for chunk, result in zip(chunks, results):
                if isinstance(result, BaseException):
                    failed += 1
                    logger.error(f"Batch status check failed for {len(chunk)} assets: {result}")

            if failed == len(chunks):
                logger.error(
                    f"Fatal error in batch processing; retrying {len(to_check)} assets "
                    f"in {self.failure_backoff}s"
                )
                for asset_id in to_check:
                    self._pending[asset_id] = None
                self._backoff_timer = asyncio.get_running_loop().call_later(
                    self.failure_backoff, self._on_backoff_elapsed
                )
                return

            for result in results:
                if isinstance(result, BaseException):
                    continue
                for asset_id, status in result.items():
                    self._update_status(asset_id, status)
                    if status.status == EmbeddingState.FAILED and not status.has_embedding:
                        self._schedule_retry(asset_id)

            for asset_id in to_check:
                if self._needs_check(asset_id):
                    self._pending[asset_id] = None

        self._schedule_batch()

    # Retries

    def _schedule_retry(self, asset_id: str) -> None:
        if asset_id in self._retry_timers:
            return

        retry_count = self._retry_counts.get(asset_id, 0)
        if retry_count >= self.max_retries:
            logger.info(f"Max retries ({self.max_retries}) reached for asset {asset_id}")
            return

        self._retry_timers[asset_id] = asyncio.get_running_loop().call_later(
            self.retry_delay, self._on_retry_timer, asset_id, retry_count
        )

    def _on_retry_timer(self, asset_id: str, retry_count: int) -> None:
        self._retry_timers.pop(asset_id, None)
        self._spawn(self._auto_retry(asset_id, retry_count))

    async def _auto_retry(self, asset_id: str, retry_count: int) -> None:
        logger.info(
            f"Retrying embedding generation for asset {asset_id} "
            f"(attempt {retry_count + 1}/{self.max_retries})"
        )
        self._retry_counts[asset_id] = retry_count + 1

        try:
            await self._run(lambda: self.client.generate_embedding(asset_id), "low")
        except MemeCacheError as e:
            logger.error(f"Failed to retry embedding for asset {asset_id}: {e}")
        else:
            self._update_status(
                asset_id, EmbeddingStatus(has_embedding=False, status=EmbeddingState.PROCESSING)
            )

        self._pending[asset_id] = None
        self._schedule_batch()

    async def trigger_retry(self, asset_id: str) -> None:
        """Manually regenerate an asset's embedding.

        Resets the automatic retry budget and marks the asset as processing
        right away; the next batch picks up the real outcome.
        """
        self._retry_counts[asset_id] = 0
        timer = self._retry_timers.pop(asset_id, None)
        if timer is not None:
            timer.cancel()

        self._update_status(
            asset_id, EmbeddingStatus(has_embedding=False, status=EmbeddingState.PROCESSING)
        )

        try:
            await self._run(lambda: self.client.generate_embedding(asset_id), "high")
        except MemeCacheError as e:
            logger.error(f"Manual retry failed for asset {asset_id}: {e}")
            self._update_status(
                asset_id,
                EmbeddingStatus(has_embedding=False, status=EmbeddingState.FAILED, error=str(e)),
            )
            return

        self._pending[asset_id] = None
        self._schedule_batch()

    # Lifecycle

    def clear_all(self) -> None:
        """Cancel every timer and drop all state."""
        for handle in (self._batch_timer, self._backoff_timer, *self._retry_timers.values()):
            if handle is not None:
                handle.cancel()
        self._batch_timer = None
        self._backoff_timer = None
        self._retry_timers.clear()

        for task in list(self._tasks):
            task.cancel()

        self._subscribers.clear()
        self._statuses.clear()
        self._pending.clear()
        self._retry_counts.clear()

    def get_stats(self) -> dict[str, int]:
        return {
            "subscriber_count": len(self._subscribers),
            "status_cache_size": len(self._statuses),
            "pending_batch_size": len(self._pending),
            "retry_queue_size": len(self._retry_timers),
        }
