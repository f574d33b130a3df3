"""
Gloria Client Configuration

Centralized configuration. All environment variables MUST be read here.
No os.getenv() calls allowed elsewhere.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any

from gloria_client.core.types import ConfigurationError
from gloria_client.models.validators import validate_config

DEFAULT_BASE_URL = "https://ai-hub.cryptobriefing.com"
DEFAULT_WS_URL = "wss://ai-hub.cryptobriefing.com/ws/feed"
DEFAULT_TOPICS = ("crypto", "ai_agents", "macro", "rwa", "tech")


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}")


def _optional_env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Get an optional comma-separated environment variable."""
    value = os.environ.get(name)
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class ClientConfig:
    """Connection, REST and resilience settings for one client."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    ws_url: str = DEFAULT_WS_URL
    topics: tuple[str, ...] = field(default=DEFAULT_TOPICS)
    default_limit: int = 40
    default_timeframe: str = "12h"
    heartbeat_interval: float = 30.0
    reconnect_base_delay: float = 1.0
    max_reconnect_attempts: int = 5
    request_timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "API key is required. Set GLORIA_AI_API_KEY env variable or pass it in config"
            )
        if self.heartbeat_interval <= 0:
            raise ConfigurationError("heartbeat_interval must be positive")
        if self.max_reconnect_attempts < 0:
            raise ConfigurationError("max_reconnect_attempts must be non-negative")

    @property
    def safe_ws_url(self) -> str:
        """WebSocket URL for logging; never carries the token."""
        separator = "&" if "?" in self.ws_url else "?"
        return f"{self.ws_url}{separator}token=***"


def load_config(**overrides: Any) -> ClientConfig:
    """
    Build a ClientConfig from explicit overrides, then environment, then defaults.

    Overrides set to None are treated as absent.

    Raises:
        ValidationError: If an override has the wrong type or name
        ConfigurationError: If no API key is available or an env value is malformed
    """
    supplied = {k: v for k, v in overrides.items() if v is not None}
    validate_config(supplied)

    values: dict[str, Any] = {
        "api_key": _optional_env("GLORIA_AI_API_KEY"),
        "base_url": _optional_env("GLORIA_BASE_URL", DEFAULT_BASE_URL),
        "ws_url": _optional_env("GLORIA_WS_URL", DEFAULT_WS_URL),
        "topics": _optional_env_list("GLORIA_TOPICS", DEFAULT_TOPICS),
        "default_limit": _optional_env_int("GLORIA_DEFAULT_LIMIT", 40),
        "default_timeframe": _optional_env("GLORIA_DEFAULT_TIMEFRAME", "12h"),
    }
    values.update(supplied)
    values["topics"] = tuple(values["topics"])

    known = {f.name for f in fields(ClientConfig)}
    return ClientConfig(**{k: v for k, v in values.items() if k in known})


__all__ = [
    "ClientConfig",
    "ConfigurationError",
    "DEFAULT_BASE_URL",
    "DEFAULT_TOPICS",
    "DEFAULT_WS_URL",
    "load_config",
]
