"""
Gloria Client

Real-time news feed client for the Gloria AI news hub.
Keeps one streaming socket alive across transient failures, tracks topic
subscriptions and dispatches validated messages to per-type handlers.

Architecture:
    GloriaClient -> ws_client.ConnectionManager -> validators -> MessageDispatcher -> handlers
                 -> rest_client.NewsRestClient (news listing, recaps)

Components:
    - config: ClientConfig and environment loading
    - core: exceptions, connection state, backoff bookkeeping
    - models: wire messages, news records and their validators
    - ws_client: connection lifecycle, subscriptions, dispatch
    - rest_client: HTTP request helpers
"""
from gloria_client.client import GloriaClient
from gloria_client.config import ClientConfig, load_config
from gloria_client.core.types import (
    AuthenticationError,
    ConfigurationError,
    ConnectionState,
    GloriaError,
    HttpError,
    NotConnectedError,
    ReconnectExhaustedError,
    TransportError,
    ValidationError,
)
from gloria_client.models.messages import FeedMessage, MessageType, NewsItem

__all__ = [
    "AuthenticationError",
    "ClientConfig",
    "ConfigurationError",
    "ConnectionState",
    "FeedMessage",
    "GloriaClient",
    "GloriaError",
    "HttpError",
    "MessageType",
    "NewsItem",
    "NotConnectedError",
    "ReconnectExhaustedError",
    "TransportError",
    "ValidationError",
    "load_config",
]
