"""
Gloria Client Core

Exceptions, connection state and backoff bookkeeping.
"""
from gloria_client.core.types import (
    AuthenticationError,
    ConfigurationError,
    ConnectionState,
    GloriaError,
    HttpError,
    NotConnectedError,
    ReconnectExhaustedError,
    ReconnectionState,
    TransportError,
    ValidationError,
)

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "ConnectionState",
    "GloriaError",
    "HttpError",
    "NotConnectedError",
    "ReconnectExhaustedError",
    "ReconnectionState",
    "TransportError",
    "ValidationError",
]
