"""
Feed Data Models

Wire messages exchanged over the feed socket and records returned by the
REST endpoints. All models use frozen dataclasses with __post_init__ validation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class MessageType(str, Enum):
    """Closed set of wire message tags."""

    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    PING = "ping"
    PONG = "pong"
    DATA = "data"
    ERROR = "error"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"

    @classmethod
    def from_string(cls, value: str) -> Optional["MessageType"]:
        """Convert a wire tag to MessageType, returning None if unknown."""
        for member in cls:
            if member.value == value:
                return member
        return None


@dataclass(frozen=True)
class FeedMessage:
    """
    One message on the feed socket, inbound or outbound.

    Known fields are typed; anything else the server sends is kept
    verbatim in ``extras`` so newer payloads still round-trip.
    """

    type: MessageType
    feed_category: Optional[str] = None
    content: Any = None
    action: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None
    timestamp: Optional[float] = None
    extras: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.type, MessageType):
            raise ValueError(f"type must be a MessageType, got {self.type!r}")

    def to_dict(self) -> dict[str, Any]:
        """Wire representation: unset optional fields are omitted."""
        d: dict[str, Any] = dict(self.extras)
        d["type"] = self.type.value
        for name in ("feed_category", "content", "action", "error", "details", "timestamp"):
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        return d

    @classmethod
    def subscribe(cls, feed_category: str) -> FeedMessage:
        return cls(type=MessageType.SUBSCRIBE, feed_category=feed_category)

    @classmethod
    def unsubscribe(cls, feed_category: str) -> FeedMessage:
        return cls(type=MessageType.UNSUBSCRIBE, feed_category=feed_category)

    @classmethod
    def ping(cls, timestamp: float) -> FeedMessage:
        return cls(type=MessageType.PING, timestamp=timestamp)

    @classmethod
    def pong(cls, timestamp: Optional[float]) -> FeedMessage:
        return cls(type=MessageType.PONG, timestamp=timestamp)


@dataclass(frozen=True)
class NewsItem:
    """A single entry from the paginated /news listing."""

    timestamp: float
    signal: str
    feed_category: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.signal, str):
            raise ValueError(f"signal must be a string, got {self.signal!r}")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = dict(self.extras)
        d["timestamp"] = self.timestamp
        d["signal"] = self.signal
        if self.feed_category is not None:
            d["feed_category"] = self.feed_category
        return d
