"""
Gloria Feed Client Module

Connection lifecycle, subscription bookkeeping and inbound dispatch
for the real-time feed socket.
"""
from gloria_client.ws_client.connection import ConnectionManager
from gloria_client.ws_client.dispatcher import MessageDispatcher, MessageHandler
from gloria_client.ws_client.subscriptions import TopicSubscriptionSet

__all__ = [
    "ConnectionManager",
    "MessageDispatcher",
    "MessageHandler",
    "TopicSubscriptionSet",
]
