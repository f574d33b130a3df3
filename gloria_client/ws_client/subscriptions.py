"""
Topic Subscription Set

Optimistic record of the topics subscribed on the live socket. Membership
follows successful sends, not server acknowledgements.
"""
from __future__ import annotations

from typing import Iterable, Iterator


class TopicSubscriptionSet:
    """Ordered set of subscribed topic names, in subscription order."""

    def __init__(self) -> None:
        self._topics: dict[str, None] = {}

    def __contains__(self, topic: object) -> bool:
        return topic in self._topics

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._topics))

    def __len__(self) -> int:
        return len(self._topics)

    def add(self, topic: str) -> None:
        self._topics[topic] = None

    def discard(self, topic: str) -> None:
        self._topics.pop(topic, None)

    def clear(self) -> None:
        self._topics.clear()

    def snapshot(self) -> set[str]:
        """Copy of the current membership."""
        return set(self._topics)

    def diff(self, desired: Iterable[str]) -> tuple[list[str], list[str]]:
        """
        Compute the moves from the current set to ``desired``.

        Returns:
            (to_unsubscribe, to_subscribe), each in a stable order: current
            subscription order for removals, ``desired`` order for additions.
        """
        wanted = list(dict.fromkeys(desired))
        wanted_set = set(wanted)
        to_unsubscribe = [t for t in self._topics if t not in wanted_set]
        to_subscribe = [t for t in wanted if t not in self._topics]
        return to_unsubscribe, to_subscribe
