"""
Schema Validators

Structural checks for client configuration, inbound socket frames and REST
records. Validators never coerce values: a field is either the documented
type or the whole object is rejected with ValidationError.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from gloria_client.core.types import ValidationError
from gloria_client.models.messages import FeedMessage, MessageType, NewsItem

logger = logging.getLogger(__name__)

# Optional configuration keys and their accepted types
CONFIG_FIELDS: dict[str, tuple[type, ...]] = {
    "api_key": (str,),
    "base_url": (str,),
    "ws_url": (str,),
    "topics": (list, tuple),
    "default_limit": (int,),
    "default_timeframe": (str,),
    "heartbeat_interval": (int, float),
    "reconnect_base_delay": (int, float),
    "max_reconnect_attempts": (int,),
    "request_timeout": (int, float),
}

_MESSAGE_STR_FIELDS = ("feed_category", "action", "error", "details")


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid number on the wire
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(raw: Mapping[str, Any]) -> dict[str, Any]:
    """
    Check a configuration mapping.

    Every key is optional; present keys must have the documented type.

    Raises:
        ValidationError: On unknown keys or mistyped values
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("Configuration must be a mapping", value=raw)

    for key, value in raw.items():
        expected = CONFIG_FIELDS.get(key)
        if expected is None:
            raise ValidationError(f"Unknown configuration key: {key}", field=key)
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ValidationError(
                f"Invalid type for {key}: expected {'/'.join(t.__name__ for t in expected)}",
                field=key,
                value=value,
            )

    topics = raw.get("topics")
    if topics is not None:
        for topic in topics:
            if not isinstance(topic, str) or not topic:
                raise ValidationError(
                    "topics must contain non-empty strings",
                    field="topics",
                    value=topic,
                )

    limit = raw.get("default_limit")
    if limit is not None and limit <= 0:
        raise ValidationError("default_limit must be positive", field="default_limit", value=limit)

    return dict(raw)


def parse_frame(raw: str | bytes) -> dict[str, Any]:
    """
    Decode one socket frame into a JSON object.

    Raises:
        ValidationError: If the frame is not UTF-8 JSON or not an object
    """
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(
            f"Frame is not valid JSON: {e}",
            value=str(raw)[:200],
        ) from e

    if not isinstance(data, dict):
        raise ValidationError("Frame must be a JSON object", value=data)
    return data


def validate_message(raw: Mapping[str, Any]) -> FeedMessage:
    """
    Validate a decoded wire message and build a FeedMessage.

    Args:
        raw: Decoded JSON object

    Returns:
        FeedMessage with unknown keys collected into ``extras``

    Raises:
        ValidationError: If ``type`` is missing or outside the closed set,
            or a known optional field has the wrong type
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("Message must be a JSON object", value=raw)

    tag = raw.get("type")
    if not isinstance(tag, str):
        raise ValidationError("Message type is missing", field="type", value=tag)

    message_type = MessageType.from_string(tag)
    if message_type is None:
        raise ValidationError(f"Unknown message type: {tag}", field="type", value=tag)

    for name in _MESSAGE_STR_FIELDS:
        value = raw.get(name)
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{name} must be a string", field=name, value=value)

    timestamp = raw.get("timestamp")
    if timestamp is not None and not _is_number(timestamp):
        raise ValidationError("timestamp must be a number", field="timestamp", value=timestamp)

    known = {"type", "content", "timestamp", *_MESSAGE_STR_FIELDS}
    return FeedMessage(
        type=message_type,
        feed_category=raw.get("feed_category"),
        content=raw.get("content"),
        action=raw.get("action"),
        error=raw.get("error"),
        details=raw.get("details"),
        timestamp=timestamp,
        extras={k: v for k, v in raw.items() if k not in known},
    )


def validate_news_item(raw: Mapping[str, Any]) -> NewsItem:
    """
    Validate one /news record.

    ``timestamp`` (number) and ``signal`` (string) are required,
    ``feed_category`` is optional, everything else is kept in ``extras``.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("News item must be a JSON object", value=raw)

    timestamp = raw.get("timestamp")
    if not _is_number(timestamp):
        raise ValidationError("timestamp is required and must be a number", field="timestamp", value=timestamp)

    signal = raw.get("signal")
    if not isinstance(signal, str):
        raise ValidationError("signal is required and must be a string", field="signal", value=signal)

    category = raw.get("feed_category")
    if category is not None and not isinstance(category, str):
        raise ValidationError("feed_category must be a string", field="feed_category", value=category)

    return NewsItem(
        timestamp=timestamp,
        signal=signal,
        feed_category=category,
        extras={k: v for k, v in raw.items() if k not in ("timestamp", "signal", "feed_category")},
    )


def validate_recap(raw: Any) -> dict[str, Any]:
    """Recaps are free-form; the only requirement is a JSON object."""
    if not isinstance(raw, dict):
        raise ValidationError("Recap must be a JSON object", value=raw)
    return raw
