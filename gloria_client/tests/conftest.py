"""
Shared fixtures for gloria_client tests.

The feed socket is replaced with FakeSocket and websockets' connect()
with an AsyncMock. No live network required.
"""
import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from gloria_client.config import ClientConfig

_CLOSED = object()
_LOST = object()


class FakeSocket:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code = None
        self.close_reason = ""
        self._inbox: asyncio.Queue = asyncio.Queue()

    # ── Server side ───────────────────────────────────────────────────────────

    def feed(self, message: dict[str, Any] | str) -> None:
        """Queue an inbound frame."""
        self._inbox.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def server_close(self) -> None:
        """Clean close initiated by the server."""
        self.close_code = 1000
        self.closed = True
        self._inbox.put_nowait(_CLOSED)

    def drop(self) -> None:
        """Abnormal closure (network failure)."""
        self.close_code = 1006
        self.closed = True
        self._inbox.put_nowait(_LOST)

    def sent_of(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == message_type]

    # ── ClientConnection surface ──────────────────────────────────────────────

    async def send(self, data: str) -> None:
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(data))

    async def close(self) -> None:
        if not self.closed:
            self.close_code = 1000
            self.closed = True
            self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _LOST:
            raise ConnectionClosedError(None, None)
        return item


async def settle(rounds: int = 10) -> None:
    """Let pending callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        api_key="test-key",
        ws_url="wss://feed.test/ws/feed",
        base_url="https://feed.test",
        topics=("crypto", "macro"),
    )


@pytest.fixture
def sockets():
    """
    Patch ws_connect so every connection attempt yields a new FakeSocket.
    Yields the list of sockets created so far.
    """
    created: list[FakeSocket] = []

    async def _connect(url: str, **kwargs: Any) -> FakeSocket:
        ws = FakeSocket(url)
        created.append(ws)
        return ws

    with patch(
        "gloria_client.ws_client.connection.ws_connect",
        new=AsyncMock(side_effect=_connect),
    ):
        yield created


@pytest.fixture
async def scheduled(monkeypatch):
    """
    Record reconnect timers armed through loop.call_later() instead of
    arming them. Other timers (asyncio.sleep) pass through untouched.
    Returns the list of recorded delays.
    """
    delays: list[float] = []
    loop = asyncio.get_running_loop()
    original = loop.call_later

    def _call_later(delay, callback, *args, **kwargs):
        if getattr(callback, "__name__", "") == "_fire_reconnect":
            delays.append(delay)
            return MagicMock()
        return original(delay, callback, *args, **kwargs)

    monkeypatch.setattr(loop, "call_later", _call_later)
    return delays
