"""
Message Dispatcher

Routes validated inbound messages to built-in handling and then to the
handler registered for the message type.
"""
from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from gloria_client.core.types import ValidationError
from gloria_client.models.messages import FeedMessage, MessageType

logger = logging.getLogger(__name__)

# Type aliases for callbacks
MessageHandler = Callable[[FeedMessage], Union[Awaitable[None], None]]
ReplyCallback = Callable[[FeedMessage], Awaitable[None]]


def _as_type(message_type: MessageType | str) -> MessageType:
    if isinstance(message_type, MessageType):
        return message_type
    tag = MessageType.from_string(message_type)
    if tag is None:
        raise ValidationError(
            f"Unknown message type: {message_type}",
            field="type",
            value=message_type,
        )
    return tag


class MessageDispatcher:
    """
    Per-client handler table keyed by message type.

    Registering a handler for a type replaces the previous one
    (last write wins). Built-in handling always runs before the
    registered handler; both run for every message.
    """

    def __init__(self, reply: ReplyCallback) -> None:
        """
        Args:
            reply: Coroutine used to answer server pings on the live socket
        """
        self._reply = reply
        self._handlers: dict[MessageType, MessageHandler] = {}
        self._messages_dispatched = 0

    @property
    def messages_dispatched(self) -> int:
        return self._messages_dispatched

    def register(self, message_type: MessageType | str, handler: MessageHandler) -> None:
        """Set the handler for ``message_type``, replacing any existing one."""
        tag = _as_type(message_type)
        if tag in self._handlers:
            logger.debug("Replacing message handler", extra={"type": tag.value})
        self._handlers[tag] = handler

    def unregister(self, message_type: MessageType | str) -> None:
        self._handlers.pop(_as_type(message_type), None)

    def handler_for(self, message_type: MessageType | str) -> Optional[MessageHandler]:
        return self._handlers.get(_as_type(message_type))

    async def dispatch(self, message: FeedMessage) -> None:
        """Run built-in handling, then the registered handler for the type."""
        self._messages_dispatched += 1
        await self._handle_builtin(message)

        handler = self._handlers.get(message.type)
        if handler is None:
            return

        try:
            result = handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "Message handler failed",
                extra={"type": message.type.value, "error": str(e)},
                exc_info=True,
            )

    async def _handle_builtin(self, message: FeedMessage) -> None:
        if message.type is MessageType.CONNECTED:
            logger.info("Feed confirmed connection", extra={"details": message.details})

        elif message.type is MessageType.SUBSCRIBED or (
            message.type is MessageType.DATA and message.action == "subscribed"
        ):
            logger.info("Subscription confirmed", extra={"topic": message.feed_category})

        elif message.type is MessageType.ERROR:
            logger.error(
                "Feed reported an error",
                extra={"error": message.error, "details": message.details},
            )

        elif message.type is MessageType.PING:
            await self._reply(FeedMessage.pong(message.timestamp))
