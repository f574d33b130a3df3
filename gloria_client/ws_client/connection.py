"""
Gloria Feed Connection Manager

Owns the single feed socket: open/close lifecycle, heartbeat, backoff
reconnection, topic subscription bookkeeping and inbound dispatch.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence, Union
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidStatus

from gloria_client.config import ClientConfig
from gloria_client.core.types import (
    AuthenticationError,
    ConnectionState,
    NotConnectedError,
    ReconnectExhaustedError,
    ReconnectionState,
    TransportError,
    ValidationError,
)
from gloria_client.models.messages import FeedMessage
from gloria_client.models.validators import parse_frame, validate_message
from gloria_client.ws_client.dispatcher import MessageDispatcher
from gloria_client.ws_client.subscriptions import TopicSubscriptionSet

logger = logging.getLogger(__name__)

# Type aliases for callbacks
ErrorCallback = Callable[[Exception], Union[Awaitable[None], None]]
ReconnectCallback = Callable[[], Union[Awaitable[None], None]]
GiveUpCallback = Callable[[ReconnectExhaustedError], Union[Awaitable[None], None]]
TopicsProvider = Callable[[], Sequence[str]]


def _cancel(task: Optional[asyncio.Task[Any]]) -> Optional[asyncio.Task[Any]]:
    """Cancel ``task`` unless it is the caller; return it if it needs awaiting."""
    if task is None or task.done() or task is asyncio.current_task():
        return None
    task.cancel()
    return task


def _cancel_requested() -> bool:
    """True if the current task itself has a pending cancellation request."""
    task = asyncio.current_task()
    cancelling = getattr(task, "cancelling", None)
    return bool(cancelling is not None and cancelling())


class ConnectionManager:
    """
    Feed socket owner and lifecycle state machine.

    Disconnected -> Connecting -> Open -> (Closing) -> Disconnected.
    Every timer (heartbeat, receive loop, pending reconnect) is owned
    here and cancelled when its state ends.
    """

    def __init__(
        self,
        config: ClientConfig,
        topics_provider: TopicsProvider,
        *,
        close_timeout: float = 5.0,
    ) -> None:
        """
        Initialize the manager.

        Args:
            config: Client configuration (URL, token, heartbeat, backoff)
            topics_provider: Returns the topics to auto-subscribe on each open
            close_timeout: Timeout for the close handshake (seconds)
        """
        self._config = config
        self._topics_provider = topics_provider
        self._close_timeout = close_timeout

        # Connection state
        self._ws: Optional[ClientConnection] = None
        self._state = ConnectionState.DISCONNECTED
        self._intentional_close = False
        self._reconnection = ReconnectionState(
            base_delay_seconds=config.reconnect_base_delay,
            max_attempts=config.max_reconnect_attempts,
        )
        self._subscriptions = TopicSubscriptionSet()
        self._dispatcher = MessageDispatcher(self._send_pong)

        # Callbacks
        self._on_error: Optional[ErrorCallback] = None
        self._on_reconnect: Optional[ReconnectCallback] = None
        self._on_give_up: Optional[GiveUpCallback] = None

        # Stats
        self._messages_received = 0
        self._messages_dropped = 0
        self._last_message_time: Optional[datetime] = None
        self._connection_start_time: Optional[datetime] = None

        # Task management
        self._pending_open: Optional[asyncio.Task[None]] = None
        self._receive_task: Optional[asyncio.Task[None]] = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._reconnect_timer: Optional[asyncio.TimerHandle] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        """Check if the socket is open."""
        return self._state is ConnectionState.OPEN and self._ws is not None

    @property
    def dispatcher(self) -> MessageDispatcher:
        return self._dispatcher

    @property
    def subscriptions(self) -> TopicSubscriptionSet:
        return self._subscriptions

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnection.attempt_count

    @property
    def reconnect_pending(self) -> bool:
        """True while a reconnect timer or attempt is outstanding."""
        return self._reconnect_timer is not None or (
            self._reconnect_task is not None and not self._reconnect_task.done()
        )

    def on_error(self, callback: ErrorCallback) -> None:
        """Register callback for steady-state transport errors."""
        self._on_error = callback

    def on_reconnect(self, callback: ReconnectCallback) -> None:
        """Register callback for successful reconnections."""
        self._on_reconnect = callback

    def on_give_up(self, callback: GiveUpCallback) -> None:
        """Register callback for when reconnect attempts are exhausted."""
        self._on_give_up = callback

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def connect(self, auto_subscribe: bool = True) -> None:
        """
        Open the feed socket.

        Resolves immediately when already open; joins the in-flight attempt
        when one is connecting.

        Raises:
            AuthenticationError: If the token is rejected
            TransportError: If the socket cannot be opened
        """
        if self._state is ConnectionState.OPEN:
            return

        if self._state is ConnectionState.CONNECTING and self._pending_open is not None:
            await self._await_open(self._pending_open)
            return

        self._intentional_close = False
        self._cancel_reconnect_timer()
        self._state = ConnectionState.CONNECTING

        task = asyncio.create_task(self._open(auto_subscribe))
        self._pending_open = task
        try:
            await self._await_open(task)
        finally:
            if self._pending_open is task:
                self._pending_open = None

    async def _await_open(self, task: asyncio.Task[None]) -> None:
        """Await an open attempt; an attempt cut short by disconnect() is a TransportError."""
        try:
            await task
        except asyncio.CancelledError:
            if _cancel_requested() or not self._intentional_close:
                raise
            raise TransportError(
                "Connection aborted by disconnect()",
                retry_count=self._reconnection.attempt_count,
            ) from None

    async def _open(self, auto_subscribe: bool) -> None:
        """Single connection attempt: Connecting -> Open or Disconnected."""
        url = self._build_url()
        attempt = self._reconnection.attempt_count

        logger.info(
            "Connecting to Gloria feed",
            extra={"url": self._config.safe_ws_url, "attempt": attempt},
        )

        try:
            ws = await ws_connect(
                url,
                ping_interval=None,
                open_timeout=self._config.request_timeout,
                close_timeout=self._close_timeout,
            )

        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise

        except InvalidStatus as e:
            self._state = ConnectionState.DISCONNECTED
            status = e.response.status_code
            if status in (401, 403):
                raise AuthenticationError(
                    "Invalid Gloria API token",
                    retry_count=attempt,
                    context={"status": status},
                ) from e
            raise TransportError(
                f"Connection failed with status {status}",
                retry_count=attempt,
            ) from e

        except Exception as e:
            self._state = ConnectionState.DISCONNECTED
            raise TransportError(
                f"Failed to connect: {e}",
                retry_count=attempt,
            ) from e

        self._ws = ws
        self._state = ConnectionState.OPEN
        self._connection_start_time = datetime.now(timezone.utc)
        self._reconnection.reset()

        logger.info("Connected to Gloria WebSocket", extra={"url": self._config.safe_ws_url})

        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        self._receive_task = asyncio.create_task(self._receive_loop(ws))

        if auto_subscribe:
            await self._subscribe_all()

        if attempt > 0:
            await self._notify(self._on_reconnect)

    async def disconnect(self) -> None:
        """
        Close the socket on purpose.

        Cancels any pending reconnect so nothing fires after teardown.
        """
        logger.info("Disconnecting from Gloria feed")

        self._intentional_close = True
        self._cancel_reconnect_timer()

        for task in (_cancel(self._reconnect_task), _cancel(self._pending_open)):
            if task is not None:
                try:
                    await task
                except (asyncio.CancelledError, TransportError):
                    pass
        self._reconnect_task = None

        self._stop_heartbeat()

        ws = self._ws
        if ws is not None:
            self._state = ConnectionState.CLOSING
            try:
                await ws.close()
            except Exception as e:
                logger.warning(
                    "Error closing WebSocket",
                    extra={"error": str(e)},
                )

        receive_task = _cancel(self._receive_task)
        if receive_task is not None:
            try:
                await receive_task
            except asyncio.CancelledError:
                pass
        self._receive_task = None

        self._ws = None
        self._subscriptions.clear()
        self._state = ConnectionState.DISCONNECTED

        logger.info(
            "Disconnected from Gloria feed",
            extra={"messages_received": self._messages_received},
        )

    # ── Subscriptions ─────────────────────────────────────────────────────────

    async def subscribe(self, topic: str) -> None:
        """
        Send a subscribe message and record the topic.

        Raises:
            NotConnectedError: If the socket is not open
            TransportError: If the send fails
        """
        await self.send(FeedMessage.subscribe(topic), operation="subscribe")
        self._subscriptions.add(topic)

    async def unsubscribe(self, topic: str) -> None:
        """
        Send an unsubscribe message and drop the topic.

        Raises:
            NotConnectedError: If the socket is not open
            TransportError: If the send fails
        """
        await self.send(FeedMessage.unsubscribe(topic), operation="unsubscribe")
        self._subscriptions.discard(topic)

    async def _subscribe_all(self) -> None:
        for topic in self._topics_provider():
            try:
                await self.subscribe(topic)
            except (NotConnectedError, TransportError) as e:
                logger.warning(
                    "Auto-subscribe interrupted",
                    extra={"topic": topic, "error": str(e)},
                )
                return

    async def send(self, message: FeedMessage, operation: str = "send") -> None:
        """
        Encode and send one message on the open socket.

        Raises:
            NotConnectedError: If the socket is not open
            TransportError: If the socket breaks during the send
        """
        ws = self._ws
        if self._state is not ConnectionState.OPEN or ws is None:
            raise NotConnectedError(operation, self._state)

        try:
            await ws.send(json.dumps(message.to_dict()))
        except ConnectionClosed as e:
            raise TransportError(
                f"Send failed: {e}",
                context={"type": message.type.value},
            ) from e

    async def _send_pong(self, message: FeedMessage) -> None:
        if not self.connected:
            return
        try:
            await self.send(message, operation="pong")
        except TransportError as e:
            logger.warning("Failed to answer ping", extra={"error": str(e)})

    # ── Heartbeat ─────────────────────────────────────────────────────────────

    async def _heartbeat_loop(self) -> None:
        """Send a timestamped ping every heartbeat interval while open."""
        while self._state is ConnectionState.OPEN:
            await asyncio.sleep(self._config.heartbeat_interval)
            if not self.connected:
                return
            try:
                await self.send(FeedMessage.ping(int(time.time() * 1000)), operation="ping")
            except TransportError as e:
                logger.warning("Heartbeat ping failed", extra={"error": str(e)})
                return

    def _stop_heartbeat(self) -> None:
        _cancel(self._heartbeat_task)
        self._heartbeat_task = None

    # ── Receive path ──────────────────────────────────────────────────────────

    async def _receive_loop(self, ws: ClientConnection) -> None:
        """Main receive loop for feed messages."""
        try:
            async for frame in ws:
                await self._handle_frame(frame)

        except ConnectionClosedError as e:
            logger.warning("Connection lost", extra={"error": str(e)})
            await self._notify(
                self._on_error,
                TransportError(f"Connection lost: {e}", retry_count=self._reconnection.attempt_count),
            )
        except ConnectionClosed as e:
            logger.info("Connection closed", extra={"reason": str(e)})
        except Exception as e:
            logger.error(
                "Unexpected error in receive loop",
                extra={"error": str(e)},
                exc_info=True,
            )

        await self._handle_close(ws)

    async def _handle_frame(self, frame: str | bytes) -> None:
        """Validate one frame and hand it to the dispatcher, or drop it."""
        self._messages_received += 1
        self._last_message_time = datetime.now(timezone.utc)

        try:
            message = validate_message(parse_frame(frame))
        except ValidationError as e:
            self._messages_dropped += 1
            logger.warning(
                "Dropping invalid feed message",
                extra={
                    "error": str(e),
                    "field": e.field,
                    "message_preview": str(frame)[:200],
                },
            )
            return

        await self._dispatcher.dispatch(message)

    async def _handle_close(self, ws: ClientConnection) -> None:
        """Open -> Disconnected; schedule a reconnect unless closed on purpose."""
        if ws is not self._ws:
            return

        logger.info(
            "WebSocket connection closed",
            extra={
                "code": getattr(ws, "close_code", None),
                "reason": getattr(ws, "close_reason", None),
            },
        )

        self._ws = None
        self._stop_heartbeat()
        self._subscriptions.clear()
        self._state = ConnectionState.DISCONNECTED

        if self._intentional_close:
            return
        await self._schedule_reconnect()

    # ── Reconnection ──────────────────────────────────────────────────────────

    async def _schedule_reconnect(self) -> None:
        """Arm the reconnect timer with the next backoff delay, or give up."""
        delay = self._reconnection.next_delay()
        if delay is None:
            error = ReconnectExhaustedError(self._reconnection.attempt_count)
            logger.error(
                "Max reconnection attempts reached",
                extra={"attempts": error.attempts},
            )
            await self._notify(self._on_give_up, error)
            return

        logger.info(
            "Scheduling reconnect",
            extra={
                "delay_seconds": delay,
                "attempt": self._reconnection.attempt_count,
                "max_attempts": self._reconnection.max_attempts,
            },
        )
        loop = asyncio.get_running_loop()
        self._reconnect_timer = loop.call_later(delay, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        if self._intentional_close:
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self.connect(auto_subscribe=True)
        except AuthenticationError as e:
            # Don't retry on auth errors
            logger.error("Reconnect rejected", extra={"error": str(e)})
            await self._notify(self._on_error, e)
        except TransportError as e:
            logger.warning(
                "Reconnect attempt failed",
                extra={"attempt": self._reconnection.attempt_count, "error": str(e)},
            )
            await self._notify(self._on_error, e)
            if not self._intentional_close and self._state is ConnectionState.DISCONNECTED:
                await self._schedule_reconnect()

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _build_url(self) -> str:
        separator = "&" if "?" in self._config.ws_url else "?"
        return f"{self._config.ws_url}{separator}{urlencode({'token': self._config.api_key})}"

    async def _notify(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        """Invoke a lifecycle callback, logging instead of propagating its failure."""
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Lifecycle callback failed",
                extra={"error": str(e)},
                exc_info=True,
            )

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        uptime_seconds = None
        if self._connection_start_time and self.connected:
            uptime_seconds = (
                datetime.now(timezone.utc) - self._connection_start_time
            ).total_seconds()

        return {
            "state": self._state.value,
            "messages_received": self._messages_received,
            "messages_dropped": self._messages_dropped,
            "messages_dispatched": self._dispatcher.messages_dispatched,
            "last_message_time": (
                self._last_message_time.isoformat()
                if self._last_message_time
                else None
            ),
            "uptime_seconds": uptime_seconds,
            "reconnect_attempts": self._reconnection.attempt_count,
            "subscribed_topics": sorted(self._subscriptions.snapshot()),
        }
