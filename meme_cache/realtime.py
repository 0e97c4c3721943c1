"""Application-wide real-time connection with automatic reconnection.

One ``WebSocketManager`` owns the single push connection of the application
and multiplexes topic subscriptions over it. Connection loss is hidden from
subscribers: outgoing messages are queued while offline, subscriptions are
re-sent after every reconnect, and after the reconnect budget is spent the
manager hands over to a polling fallback.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Coroutine, Optional

from meme_cache.backoff import reconnect_delay
from meme_cache.transport import Connector, Transport
from meme_cache.types import ConnectionState

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], None]
StateListener = Callable[[ConnectionState], None]
Unsubscribe = Callable[[], None]

EMBEDDING_UPDATES_TOPIC = "embedding-updates"
ASSETS_TOPIC_PREFIX = "assets:"


def _timestamp() -> int:
    return int(time.time() * 1000)


class WebSocketManager:
    """Single real-time connection with a reconnect state machine.

    Args:
        connector: Opens a transport for a URL.
        url: Endpoint to connect to.
        max_reconnect_attempts: Reconnects tried before giving up.
        queue_size: Offline message queue capacity; oldest dropped first.
        ping_interval: Seconds between heartbeat pings while connected.
        delay_fn: Maps a 1-based reconnect attempt to a delay in seconds.
        sleep: Coroutine used to wait out reconnect delays.
    """

    def __init__(
        self,
        connector: Connector,
        url: str,
        *,
        max_reconnect_attempts: int = 5,
        queue_size: int = 100,
        ping_interval: float = 30.0,
        delay_fn: Callable[[int], float] = reconnect_delay,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._connector = connector
        self.url = url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.ping_interval = ping_interval
        self._delay_fn = delay_fn
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._transport: Optional[Transport] = None
        self._subscriptions: dict[str, dict[MessageHandler, None]] = {}
        self._queue: deque[dict] = deque(maxlen=queue_size)
        self._outbox: Optional[asyncio.Queue] = None
        self._reconnect_attempts = 0
        self._visible = True

        self._state_listeners: dict[StateListener, None] = {}
        self._polling_fallback: Optional[Callable[[], None]] = None

        self._connect_task: Optional[asyncio.Task] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    # Public state

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def queued_messages(self) -> int:
        return len(self._queue)

    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._transport is not None

    def on_state_change(self, listener: StateListener) -> Unsubscribe:
        self._state_listeners[listener] = None
        return lambda: self._state_listeners.pop(listener, None)

    def set_polling_fallback(self, fallback: Callable[[], None]) -> None:
        self._polling_fallback = fallback

    # Connection lifecycle

    def connect(self) -> None:
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            logger.debug("Already connected or connecting")
            return

        self._set_state(ConnectionState.CONNECTING)
        self._connect_task = self._spawn(self._open())

    def disconnect(self) -> None:
        """Close the connection and stop reconnecting."""
        for task in (self._connect_task, self._reconnect_task, self._reader_task):
            self._cancel(task)
        self._connect_task = None
        self._reconnect_task = None
        self._reader_task = None

        self._teardown_connection()
        self._set_state(ConnectionState.DISCONNECTED)
        self._reconnect_attempts = 0

    async def aclose(self) -> None:
        self.disconnect()
        pending = [task for task in self._tasks if task is not asyncio.current_task()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def notify_online(self) -> None:
        """Network came back: retry from scratch if we had given up."""
        logger.info("Network online")
        if self._state in (ConnectionState.FAILED, ConnectionState.DISCONNECTED):
            self._reconnect_attempts = 0
            self.connect()

    def notify_offline(self) -> None:
        logger.info("Network offline")
        self.disconnect()

    def set_visible(self, visible: bool) -> None:
        """Pause the heartbeat while the application is in the background."""
        self._visible = visible
        if not visible:
            self._cancel(self._ping_task)
            self._ping_task = None
        else:
            self._start_ping()

    async def _open(self) -> None:
        logger.info(f"Connecting to {self.url}")
        try:
            transport = await self._connector(self.url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            self._connect_task = None
            self._schedule_reconnect()
            return

        self._connect_task = None
        if self._state != ConnectionState.CONNECTING:
            # disconnect() won the race
            await self._close_transport(transport)
            return

        logger.info("Connected")
        self._transport = transport
        self._outbox = asyncio.Queue()
        self._writer_task = self._spawn(self._write_loop(transport, self._outbox))
        self._reconnect_attempts = 0
        self._set_state(ConnectionState.CONNECTED)

        self._flush_queue()
        self._resubscribe_all()
        self._start_ping()
        self._reader_task = self._spawn(self._read_loop(transport))

    async def _read_loop(self, transport: Transport) -> None:
        try:
            while True:
                raw = await transport.recv()
                self._handle_raw(raw)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.info(f"Disconnected: {e}")

        if self._reader_task is asyncio.current_task():
            self._reader_task = None
        self._connection_lost(transport)

    async def _write_loop(self, transport: Transport, outbox: asyncio.Queue) -> None:
        while True:
            message = await outbox.get()
            try:
                await transport.send(json.dumps(message))
            except asyncio.CancelledError:
                self._queue.appendleft(message)
                raise
            except Exception as e:
                logger.error(f"Failed to send message: {e}")
                self._queue_message(message)

    def _connection_lost(self, transport: Transport) -> None:
        if self._transport is not transport:
            return
        self._teardown_connection()
        if self._state != ConnectionState.DISCONNECTED:
            self._schedule_reconnect()

    def _teardown_connection(self) -> None:
        self._cancel(self._ping_task)
        self._ping_task = None
        self._cancel(self._writer_task)
        self._writer_task = None

        if self._outbox is not None:
            while not self._outbox.empty():
                self._queue_message(self._outbox.get_nowait())
            self._outbox = None

        transport, self._transport = self._transport, None
        if transport is not None:
            self._spawn(self._close_transport(transport))

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await transport.close()
        except Exception as e:
            logger.debug(f"Error closing transport: {e}")

    def _schedule_reconnect(self) -> None:
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            logger.error("Max reconnection attempts reached")
            self._set_state(ConnectionState.FAILED)
            self._enable_polling_fallback()
            return

        attempt = self._reconnect_attempts + 1
        delay = self._delay_fn(attempt)
        logger.info(f"Reconnecting in {delay}s (attempt {attempt}/{self.max_reconnect_attempts})")
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = self._spawn(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        self._reconnect_attempts += 1
        self.connect()

    def _enable_polling_fallback(self) -> None:
        logger.info("Enabling polling fallback")
        if self._polling_fallback is None:
            return
        try:
            self._polling_fallback()
        except Exception:
            logger.exception("Polling fallback raised")

    # Subscriptions

    def subscribe(self, topic: str, handler: MessageHandler) -> Unsubscribe:
        self._subscriptions.setdefault(topic, {})[handler] = None
        if self.is_connected():
            self.send({"type": "subscribe", "topic": topic, "timestamp": _timestamp()})
        return lambda: self._unsubscribe(topic, handler)

    def subscribe_to_assets(self, asset_ids: list[str], handler: MessageHandler) -> Unsubscribe:
        """Receive embedding updates for a fixed set of assets."""
        topic = ASSETS_TOPIC_PREFIX + ",".join(asset_ids)
        self._subscriptions.setdefault(topic, {})[handler] = None
        if self.is_connected():
            self.send({"type": "subscribe", "assetIds": list(asset_ids), "timestamp": _timestamp()})
        return lambda: self._unsubscribe(topic, handler)

    def _unsubscribe(self, topic: str, handler: MessageHandler) -> None:
        handlers = self._subscriptions.get(topic)
        if handlers is None:
            return
        handlers.pop(handler, None)
        if handlers:
            return

        del self._subscriptions[topic]
        if self.is_connected():
            self.send({"type": "unsubscribe", "topic": topic, "timestamp": _timestamp()})

    def _resubscribe_all(self) -> None:
        logger.debug(f"Resubscribing to {len(self._subscriptions)} topics")
        for topic in self._subscriptions:
            if topic.startswith(ASSETS_TOPIC_PREFIX):
                asset_ids = topic[len(ASSETS_TOPIC_PREFIX):].split(",")
                self.send({"type": "subscribe", "assetIds": asset_ids, "timestamp": _timestamp()})
            else:
                self.send({"type": "subscribe", "topic": topic, "timestamp": _timestamp()})

    # Messages

    def send(self, message: dict) -> None:
        """Send now when connected, otherwise queue for the next connection."""
        if self.is_connected() and self._outbox is not None:
            self._outbox.put_nowait(message)
        else:
            self._queue_message(message)

    def _queue_message(self, message: dict) -> None:
        if self._queue.maxlen is not None and len(self._queue) >= self._queue.maxlen:
            logger.warning("Message queue full; dropping oldest message")
        self._queue.append(message)

    def _flush_queue(self) -> None:
        if not self.is_connected() or self._outbox is None:
            return
        logger.debug(f"Flushing {len(self._queue)} queued messages")
        while self._queue:
            self._outbox.put_nowait(self._queue.popleft())

    def _handle_raw(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError as e:
            logger.error(f"Failed to parse message: {e}")
            return
        if not isinstance(message, dict):
            logger.warning(f"Ignoring non-object message: {message!r}")
            return
        self._handle_message(message)

    def _handle_message(self, message: dict) -> None:
        message_type = message.get("type")

        if message_type == "ping":
            self.send({"type": "pong", "timestamp": _timestamp()})
            return
        if message_type == "pong":
            return

        if message_type == "embedding-update":
            update = message.get("data")
            if not isinstance(update, dict):
                update = {k: v for k, v in message.items() if k != "type"}
            asset_id = update.get("assetId")
            if asset_id:
                self._dispatch(f"asset:{asset_id}", update)
                for topic in list(self._subscriptions):
                    if topic.startswith(ASSETS_TOPIC_PREFIX) and asset_id in topic[len(ASSETS_TOPIC_PREFIX):].split(","):
                        self._dispatch(topic, update)
            self._dispatch(EMBEDDING_UPDATES_TOPIC, update)

        topic = message.get("topic")
        if topic:
            self._dispatch(topic, message.get("data"))

    def _dispatch(self, topic: str, payload: Any) -> None:
        for handler in list(self._subscriptions.get(topic, {})):
            try:
                handler(payload)
            except Exception:
                logger.exception(f"Handler for topic {topic} raised")

    # Heartbeat

    def _start_ping(self) -> None:
        if not self._visible or self._ping_task is not None or not self.is_connected():
            return
        self._ping_task = self._spawn(self._ping_loop())

    async def _ping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            if self.is_connected():
                self.send({"type": "ping", "timestamp": _timestamp()})

    # Helpers

    def _set_state(self, state: ConnectionState) -> None:
        if self._state == state:
            return
        logger.debug(f"Connection state {self._state.value} -> {state.value}")
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener raised")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
