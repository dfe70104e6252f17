"""In-process publish/subscribe bus connecting the dungeon generation stages."""

from __future__ import annotations

from collections import defaultdict
import logging
from typing import Any, Callable, Dict, Mapping, MutableMapping

from core.events.topics import EventTopic

__all__ = ["EventBus", "Subscriber", "Topic"]

logger = logging.getLogger(__name__)

Topic = str | EventTopic
Subscriber = Callable[..., None]


class EventBus:
    """Synchronous event dispatcher.

    Topics may be given as :class:`~core.events.topics.EventTopic` members or
    as their string values.  Payloads are passed to subscribers as keyword
    arguments; a mapping argument and keyword arguments can be combined, the
    keywords winning on conflicts.  Delivery happens in subscription order on
    the caller's stack, which is what the incremental handshake relies on: a
    reply published from inside a handler is processed before ``publish``
    returns.  ``peak_depth`` records how deeply such nested deliveries went.
    """

    def __init__(self) -> None:
        self._subscribers: MutableMapping[str, list[Subscriber]] = defaultdict(list)
        self.depth = 0
        self.peak_depth = 0

    @staticmethod
    def _normalise_topic(topic: Topic) -> str:
        return topic.value if isinstance(topic, EventTopic) else str(topic)

    def subscribe(self, topic: Topic, callback: Subscriber) -> None:
        """Register ``callback`` for ``topic``; duplicates are ignored."""

        key = self._normalise_topic(topic)
        if callback not in self._subscribers[key]:
            self._subscribers[key].append(callback)

    def publish(
        self,
        topic: Topic,
        payload: Mapping[str, Any] | None = None,
        /,
        **kwargs: Any,
    ) -> None:
        """Deliver ``topic`` with the merged payload to every subscriber."""

        key = self._normalise_topic(topic)
        merged_payload: Dict[str, Any] = dict(payload or {})
        if kwargs:
            merged_payload.update(kwargs)

        callbacks = list(self._subscribers.get(key, ()))
        if not callbacks:
            logger.debug("No subscribers for %s", key)
            return
        self.depth += 1
        self.peak_depth = max(self.peak_depth, self.depth)
        try:
            for callback in callbacks:
                callback(**merged_payload)
        finally:
            self.depth -= 1
