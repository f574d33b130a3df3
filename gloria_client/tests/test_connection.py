"""
Tests for gloria_client.ws_client.connection

The socket is a FakeSocket (see conftest). No live network required.
"""
import asyncio
import logging
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from websockets.exceptions import InvalidStatus

from conftest import settle
from gloria_client.core.types import (
    AuthenticationError,
    ConnectionState,
    NotConnectedError,
    TransportError,
)
from gloria_client.models.messages import MessageType
from gloria_client.ws_client.connection import ConnectionManager


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
async def manager(config, sockets):
    """A ConnectionManager auto-subscribing to the configured topics."""
    mgr = ConnectionManager(config, lambda: list(config.topics))
    yield mgr
    await mgr.disconnect()


def _fast(config, **changes):
    return replace(config, reconnect_base_delay=0.001, **changes)


# ── connect() ─────────────────────────────────────────────────────────────────

async def test_connect_opens_socket_with_token(manager, sockets):
    await manager.connect(auto_subscribe=False)

    assert manager.state is ConnectionState.OPEN
    assert manager.connected
    assert len(sockets) == 1
    assert sockets[0].url == "wss://feed.test/ws/feed?token=test-key"
    assert sockets[0].sent == []


async def test_connect_auto_subscribes_in_configured_order(manager, sockets):
    await manager.connect()

    assert sockets[0].sent == [
        {"type": "subscribe", "feed_category": "crypto"},
        {"type": "subscribe", "feed_category": "macro"},
    ]
    assert manager.subscriptions.snapshot() == {"crypto", "macro"}


async def test_connect_is_idempotent_when_open(manager, sockets):
    await manager.connect()
    await manager.connect()

    assert len(sockets) == 1
    assert len(sockets[0].sent_of("subscribe")) == 2


async def test_concurrent_connects_share_one_socket(manager, sockets):
    await asyncio.gather(manager.connect(), manager.connect())

    assert len(sockets) == 1
    assert manager.state is ConnectionState.OPEN


async def test_connect_failure_raises_transport_error(config):
    manager = ConnectionManager(config, lambda: [])
    with patch(
        "gloria_client.ws_client.connection.ws_connect",
        new=AsyncMock(side_effect=OSError("connection refused")),
    ):
        with pytest.raises(TransportError, match="Failed to connect"):
            await manager.connect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.reconnect_pending


async def test_connect_rejected_token_raises_authentication_error(config):
    manager = ConnectionManager(config, lambda: [])
    rejected = InvalidStatus(MagicMock(status_code=401))
    with patch(
        "gloria_client.ws_client.connection.ws_connect",
        new=AsyncMock(side_effect=rejected),
    ):
        with pytest.raises(AuthenticationError):
            await manager.connect()

    assert manager.state is ConnectionState.DISCONNECTED


async def test_successful_open_resets_attempt_counter(manager):
    manager._reconnection.attempt_count = 3
    reconnected = MagicMock()
    manager.on_reconnect(reconnected)

    await manager.connect()

    assert manager.reconnect_attempts == 0
    reconnected.assert_called_once_with()


async def test_disconnect_during_connect_raises_transport_error(config):
    manager = ConnectionManager(config, lambda: [])
    handshake = asyncio.Event()

    async def stalled_handshake(*args, **kwargs):
        await handshake.wait()

    with patch("gloria_client.ws_client.connection.ws_connect", new=stalled_handshake):
        first = asyncio.create_task(manager.connect())
        joined = asyncio.create_task(manager.connect())
        await settle()
        assert manager.state is ConnectionState.CONNECTING

        await manager.disconnect()

        for pending in (first, joined):
            with pytest.raises(TransportError, match="aborted by disconnect"):
                await pending
            assert not pending.cancelled()

    assert manager.state is ConnectionState.DISCONNECTED
    assert not manager.reconnect_pending


async def test_cancelled_connect_caller_still_sees_cancellation(config):
    manager = ConnectionManager(config, lambda: [])
    handshake = asyncio.Event()

    async def stalled_handshake(*args, **kwargs):
        await handshake.wait()

    with patch("gloria_client.ws_client.connection.ws_connect", new=stalled_handshake):
        pending = asyncio.create_task(manager.connect())
        await settle()

        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

    assert manager.state is ConnectionState.DISCONNECTED


# ── subscribe() / unsubscribe() ───────────────────────────────────────────────

async def test_subscribe_while_disconnected_raises(manager):
    with pytest.raises(NotConnectedError):
        await manager.subscribe("crypto")
    assert manager.subscriptions.snapshot() == set()


async def test_unsubscribe_while_disconnected_raises(manager):
    with pytest.raises(NotConnectedError):
        await manager.unsubscribe("crypto")
    assert manager.subscriptions.snapshot() == set()


async def test_subscribe_and_unsubscribe_update_set(manager, sockets):
    await manager.connect(auto_subscribe=False)

    await manager.subscribe("tech")
    assert manager.subscriptions.snapshot() == {"tech"}

    await manager.unsubscribe("tech")
    assert manager.subscriptions.snapshot() == set()
    assert sockets[0].sent == [
        {"type": "subscribe", "feed_category": "tech"},
        {"type": "unsubscribe", "feed_category": "tech"},
    ]


# ── Heartbeat ─────────────────────────────────────────────────────────────────

async def test_heartbeat_sends_timestamped_pings_until_disconnect(config, sockets):
    manager = ConnectionManager(replace(config, heartbeat_interval=0.01), lambda: [])
    await manager.connect()

    await asyncio.sleep(0.05)
    pings = sockets[0].sent_of("ping")
    assert pings
    assert isinstance(pings[0]["timestamp"], int)

    await manager.disconnect()
    count = len(sockets[0].sent_of("ping"))
    await asyncio.sleep(0.05)

    assert len(sockets[0].sent_of("ping")) == count
    assert manager._heartbeat_task is None


async def test_inbound_ping_answered_with_single_pong(manager, sockets):
    await manager.connect(auto_subscribe=False)
    ws = sockets[0]

    ws.feed({"type": "ping", "timestamp": 1700000000123})
    for tag in ("data", "error", "connected", "subscribed", "pong"):
        ws.feed({"type": tag})
    await settle()

    assert ws.sent == [{"type": "pong", "timestamp": 1700000000123}]


# ── Inbound dispatch ──────────────────────────────────────────────────────────

async def test_invalid_message_is_dropped_and_logged(manager, sockets, caplog):
    handler = MagicMock()
    for tag in MessageType:
        manager.dispatcher.register(tag, handler)
    await manager.connect(auto_subscribe=False)

    with caplog.at_level(logging.WARNING, logger="gloria_client.ws_client.connection"):
        sockets[0].feed({"type": "invalid-type", "feed_category": "crypto"})
        await settle()

    handler.assert_not_called()
    drops = [r for r in caplog.records if r.getMessage() == "Dropping invalid feed message"]
    assert len(drops) == 1
    assert manager.get_stats()["messages_dropped"] == 1


async def test_non_json_frame_is_dropped(manager, sockets):
    handler = MagicMock()
    manager.dispatcher.register("data", handler)
    await manager.connect(auto_subscribe=False)

    sockets[0].feed("not json {{")
    sockets[0].feed({"type": "data", "content": {"signal": "ok"}})
    await settle()

    handler.assert_called_once()
    assert handler.call_args.args[0].content == {"signal": "ok"}


async def test_replaced_handler_applies_to_later_messages(manager, sockets):
    first, second = MagicMock(), MagicMock()
    manager.dispatcher.register("data", first)
    await manager.connect(auto_subscribe=False)

    sockets[0].feed({"type": "data", "feed_category": "crypto"})
    await settle()
    manager.dispatcher.register("data", second)
    sockets[0].feed({"type": "data", "feed_category": "macro"})
    await settle()

    assert first.call_args.args[0].feed_category == "crypto"
    assert second.call_args.args[0].feed_category == "macro"
    first.assert_called_once()
    second.assert_called_once()


async def test_failing_handler_does_not_stop_message_flow(manager, sockets):
    seen = []

    def flaky(message):
        seen.append(message.content)
        if message.content == 1:
            raise RuntimeError("boom")

    manager.dispatcher.register("data", flaky)
    await manager.connect(auto_subscribe=False)

    sockets[0].feed({"type": "data", "content": 1})
    sockets[0].feed({"type": "data", "content": 2})
    await settle()

    assert seen == [1, 2]
    assert manager.connected


# ── Closure and reconnection ──────────────────────────────────────────────────

async def test_server_close_clears_topics_and_schedules_reconnect(manager, sockets, scheduled):
    await manager.connect()

    sockets[0].server_close()
    await settle()

    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.subscriptions.snapshot() == set()
    assert manager._heartbeat_task is None
    assert scheduled == [1.0]
    assert manager.reconnect_attempts == 1


async def test_dropped_connection_is_logged_and_reported(manager, sockets, scheduled, caplog):
    errors = []
    manager.on_error(errors.append)
    await manager.connect()

    with caplog.at_level(logging.INFO, logger="gloria_client.ws_client.connection"):
        sockets[0].drop()
        await settle()

    lost = [r for r in caplog.records if r.getMessage() == "Connection lost"]
    assert len(lost) == 1
    assert lost[0].error
    assert len(errors) == 1
    assert isinstance(errors[0], TransportError)

    retry = [r for r in caplog.records if r.getMessage() == "Scheduling reconnect"]
    assert retry[0].delay_seconds == 1.0
    assert retry[0].attempt == 1


async def test_backoff_sequence_then_give_up(manager, scheduled):
    give_up = AsyncMock()
    manager.on_give_up(give_up)

    for _ in range(6):
        await manager._schedule_reconnect()

    assert scheduled == [1.0, 2.0, 4.0, 8.0, 16.0]
    give_up.assert_awaited_once()
    assert give_up.await_args.args[0].attempts == 5


async def test_reconnect_reopens_and_resubscribes_configured_topics(config, sockets):
    topics = ["crypto", "macro"]
    manager = ConnectionManager(_fast(config), lambda: list(topics))
    reconnected = asyncio.Event()
    manager.on_reconnect(reconnected.set)
    await manager.connect()

    topics.append("tech")
    sockets[0].drop()
    await asyncio.wait_for(reconnected.wait(), timeout=2.0)

    assert len(sockets) == 2
    assert [m["feed_category"] for m in sockets[1].sent_of("subscribe")] == [
        "crypto",
        "macro",
        "tech",
    ]
    assert manager.subscriptions.snapshot() == {"crypto", "macro", "tech"}
    assert manager.reconnect_attempts == 0
    await manager.disconnect()


async def test_failed_reconnects_exhaust_and_give_up(config, sockets):
    manager = ConnectionManager(_fast(config), lambda: [])
    gave_up = asyncio.Event()
    errors = []
    manager.on_give_up(lambda error: gave_up.set())
    manager.on_error(errors.append)
    await manager.connect()

    failing = AsyncMock(side_effect=OSError("connection refused"))
    with patch("gloria_client.ws_client.connection.ws_connect", new=failing):
        sockets[0].drop()
        await asyncio.wait_for(gave_up.wait(), timeout=2.0)
        await settle()

    assert failing.await_count == 5
    assert manager.reconnect_attempts == 5
    assert not manager.reconnect_pending
    assert all(isinstance(e, TransportError) for e in errors)
    assert len(errors) == 6  # the drop itself plus five failed attempts


async def test_intentional_disconnect_does_not_reconnect(manager, sockets):
    await manager.connect()

    await manager.disconnect()
    await settle()

    assert sockets[0].closed
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.subscriptions.snapshot() == set()
    assert not manager.reconnect_pending
    assert len(sockets) == 1


async def test_disconnect_cancels_pending_reconnect(config, sockets):
    manager = ConnectionManager(replace(config, reconnect_base_delay=0.05), lambda: [])
    await manager.connect()

    sockets[0].drop()
    await settle()
    assert manager.reconnect_pending

    await manager.disconnect()
    assert not manager.reconnect_pending

    await asyncio.sleep(0.1)
    assert len(sockets) == 1
    assert manager.state is ConnectionState.DISCONNECTED


async def test_get_stats(manager, sockets):
    await manager.connect()
    sockets[0].feed({"type": "connected"})
    await settle()

    stats = manager.get_stats()

    assert stats["state"] == "open"
    assert stats["messages_received"] == 1
    assert stats["messages_dispatched"] == 1
    assert stats["subscribed_topics"] == ["crypto", "macro"]
    assert stats["last_message_time"] is not None
