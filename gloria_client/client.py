"""
Gloria Client

Public facade over the feed connection and the REST endpoints.

Usage:
    async with GloriaClient(topics=["crypto", "macro"]) as client:
        client.on_message("data", handle_data)
        await client.connect()
        ...
        await client.set_topics(["macro", "tech"])
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Iterable, Optional, Sequence

import aiohttp

from gloria_client.config import ClientConfig, load_config
from gloria_client.core.types import ConnectionState
from gloria_client.models.messages import MessageType, NewsItem
from gloria_client.models.validators import validate_config
from gloria_client.rest_client.client import NewsRestClient
from gloria_client.ws_client.connection import (
    ConnectionManager,
    ErrorCallback,
    GiveUpCallback,
    ReconnectCallback,
)
from gloria_client.ws_client.dispatcher import MessageHandler

logger = logging.getLogger(__name__)


class GloriaClient:
    """
    Real-time feed and news hub client.

    Configuration is fixed at construction except for the topic list,
    which set_topics() replaces and reconciles against the live socket.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        **overrides: Any,
    ) -> None:
        """
        Args:
            config: Complete configuration; built from environment when omitted
            session: Optional aiohttp session shared with the caller
            **overrides: Individual ClientConfig fields (api_key, topics, ...)

        Raises:
            ConfigurationError: If no API key is available
            ValidationError: If an override is unknown or mistyped
        """
        if config is None:
            config = load_config(**overrides)
        elif overrides:
            validate_config(overrides)
            if "topics" in overrides:
                overrides["topics"] = tuple(overrides["topics"])
            config = dataclasses.replace(config, **overrides)

        self._config = config
        self._topics: list[str] = list(config.topics)
        self._connection = ConnectionManager(config, self.get_topics)
        self._rest = NewsRestClient(config, self.get_topics, session=session)

    async def __aenter__(self) -> GloriaClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def connected(self) -> bool:
        return self._connection.connected

    # ── Feed ──────────────────────────────────────────────────────────────────

    async def connect(self, auto_subscribe: bool = True) -> None:
        """Open the feed socket, optionally subscribing to every configured topic."""
        await self._connection.connect(auto_subscribe=auto_subscribe)

    async def disconnect(self) -> None:
        """Close the feed socket; no reconnect follows."""
        await self._connection.disconnect()

    async def close(self) -> None:
        """Disconnect and release the HTTP session."""
        await self._connection.disconnect()
        await self._rest.close()

    async def subscribe(self, topic: str) -> None:
        await self._connection.subscribe(topic)

    async def unsubscribe(self, topic: str) -> None:
        await self._connection.unsubscribe(topic)

    def on_message(self, message_type: MessageType | str, handler: MessageHandler) -> None:
        """
        Register the handler for one message type.

        A later registration for the same type replaces this one and
        applies from the next inbound message.
        """
        self._connection.dispatcher.register(message_type, handler)

    def on_error(self, callback: ErrorCallback) -> None:
        self._connection.on_error(callback)

    def on_reconnect(self, callback: ReconnectCallback) -> None:
        self._connection.on_reconnect(callback)

    def on_give_up(self, callback: GiveUpCallback) -> None:
        """Register callback for when reconnection has been abandoned."""
        self._connection.on_give_up(callback)

    def get_subscribed_topics(self) -> set[str]:
        return self._connection.subscriptions.snapshot()

    def get_topics(self) -> list[str]:
        return list(self._topics)

    async def set_topics(self, topics: Iterable[str]) -> None:
        """
        Replace the configured topics.

        While connected, unsubscribes topics no longer wanted and subscribes
        new ones; topics in both lists are left alone. Otherwise the list
        takes effect on the next connect().
        """
        new_topics = list(topics)
        validate_config({"topics": new_topics})
        self._topics = new_topics

        if not self._connection.connected:
            return

        to_unsubscribe, to_subscribe = self._connection.subscriptions.diff(new_topics)
        if to_unsubscribe or to_subscribe:
            logger.info(
                "Reconciling topic subscriptions",
                extra={"unsubscribe": to_unsubscribe, "subscribe": to_subscribe},
            )
        for topic in to_unsubscribe:
            await self._connection.unsubscribe(topic)
        for topic in to_subscribe:
            await self._connection.subscribe(topic)

    def get_stats(self) -> dict[str, Any]:
        return self._connection.get_stats()

    # ── REST ──────────────────────────────────────────────────────────────────

    async def fetch_news(
        self,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        from_date: Optional[str] = None,
        to_date: Optional[str] = None,
        topics: Optional[Sequence[str]] = None,
    ) -> list[NewsItem]:
        return await self._rest.fetch_news(
            page=page,
            limit=limit,
            from_date=from_date,
            to_date=to_date,
            topics=topics,
        )

    async def fetch_recap(
        self,
        category: Optional[str] = None,
        timeframe: Optional[str] = None,
    ) -> dict[str, Any]:
        return await self._rest.fetch_recap(category, timeframe)

    async def fetch_all_recaps(self, timeframe: Optional[str] = None) -> dict[str, dict[str, Any]]:
        return await self._rest.fetch_all_recaps(timeframe)


__all__ = ["GloriaClient"]
