"""
Gloria Client Data Models

Frozen dataclasses for wire messages and REST records, plus the
structural validators that build them.
"""
from gloria_client.models.messages import (
    FeedMessage,
    MessageType,
    NewsItem,
)
from gloria_client.models.validators import (
    parse_frame,
    validate_config,
    validate_message,
    validate_news_item,
    validate_recap,
)

__all__ = [
    "FeedMessage",
    "MessageType",
    "NewsItem",
    "parse_frame",
    "validate_config",
    "validate_message",
    "validate_news_item",
    "validate_recap",
]
