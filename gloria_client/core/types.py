"""
Core Type Definitions and Exceptions

Client-wide exceptions, connection state and reconnection bookkeeping.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class GloriaError(Exception):
    """Base exception for all Gloria client errors."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(GloriaError):
    """Raised when required configuration is missing or invalid."""


class ValidationError(GloriaError):
    """Raised when a config object or wire message fails structural checks."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        if field:
            ctx["field"] = field
        if value is not None:
            ctx["value"] = repr(value)[:100]  # Truncate long values
        super().__init__(message, ctx)
        self.field = field
        self.value = value


class NotConnectedError(GloriaError):
    """Raised when a socket operation is attempted outside the Open state."""

    def __init__(self, operation: str, state: "ConnectionState") -> None:
        super().__init__(
            "WebSocket is not connected. Call connect() first",
            {"operation": operation, "state": state.value},
        )
        self.operation = operation
        self.state = state


class TransportError(GloriaError):
    """Raised when the socket fails to open or breaks."""

    def __init__(
        self,
        message: str,
        service: str = "gloria-ws",
        retry_count: int = 0,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        ctx = context or {}
        ctx["service"] = service
        ctx["retry_count"] = retry_count
        super().__init__(message, ctx)
        self.service = service
        self.retry_count = retry_count


class AuthenticationError(TransportError):
    """Raised when the server rejects the API token during the handshake."""


class ReconnectExhaustedError(GloriaError):
    """Reported when the reconnect attempt counter has reached its maximum."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            "Max reconnection attempts reached",
            {"attempts": attempts},
        )
        self.attempts = attempts


class HttpError(GloriaError):
    """Raised when a REST endpoint answers with a non-2xx status."""

    def __init__(self, status: int, url: str, detail: str = "") -> None:
        message = f"HTTP error! Status: {status}"
        if detail:
            message = f"{message} for {detail}"
        super().__init__(message, {"url": url})
        self.status = status
        self.url = url


class ConnectionState(str, Enum):
    """Lifecycle state of the single feed socket."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


@dataclass
class ReconnectionState:
    """
    Tracks reconnection attempts for exponential backoff.

    Delay for attempt n (1-based) is base_delay_seconds * 2 ** (n - 1).
    Once attempt_count reaches max_attempts, next_delay() returns None.
    """

    base_delay_seconds: float = 1.0
    max_attempts: int = 5
    attempt_count: int = field(default=0, init=False)

    @property
    def exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts

    def next_delay(self) -> Optional[float]:
        """Consume one attempt and return its delay, or None when exhausted."""
        if self.exhausted:
            return None
        self.attempt_count += 1
        return self.base_delay_seconds * (2 ** (self.attempt_count - 1))

    def reset(self) -> None:
        """Reset state after successful connection."""
        self.attempt_count = 0
