"""
Core Module - Event Channel.

============================================================
RESPONSIBILITY
============================================================
Topic-keyed publish/subscribe between otherwise unaware components.

- Exact-topic, one-shot and wildcard subscriptions
- Handler errors are logged and isolated per callback
- Fully synchronous; publish may re-enter subscribe/publish

============================================================
DELIVERY RULES
============================================================
publish(topic, payload):
1. Exact subscribers of ``topic`` receive ``payload``
2. Wildcard subscribers receive ``ChannelEvent(topic, payload)``

Subscribers registered while a publish is running are not
invoked by that publish. Subscribers removed while it is running
are not invoked after their removal.

============================================================
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import logging

from .constants import WILDCARD
from .exceptions import InvalidTopicError, SubscriptionError
from .subscription import Subscription, Unsubscribe


EventCallback = Callable[[Any], Any]


@dataclass(frozen=True)
class ChannelEvent:
    """Envelope delivered to wildcard subscribers."""

    topic: str
    payload: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "payload": self.payload}


class EventChannel:
    """
    Publish/subscribe channel.

    One instance is created by the composition root and injected
    into the store, the orchestrator and every module.
    """

    def __init__(self):
        self._topics: Dict[str, Dict[int, Subscription]] = {}
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Subscription
    # --------------------------------------------------------

    def subscribe(self, topic: str, callback: EventCallback) -> Unsubscribe:
        """
        Register ``callback`` under ``topic``.

        Args:
            topic: Non-empty topic string, or ``"*"`` for every publish
            callback: Called with the payload (or a ChannelEvent for "*")

        Returns:
            Function removing exactly this registration

        Raises:
            InvalidTopicError: If topic is not a non-empty string
            SubscriptionError: If callback is not callable
        """
        return self._add(topic, callback, once=False)

    def subscribe_once(self, topic: str, callback: EventCallback) -> Unsubscribe:
        """Register ``callback`` for the first matching publish only."""
        return self._add(topic, callback, once=True)

    def unsubscribe_topic(self, topic: Optional[str] = None) -> None:
        """Remove every registration on ``topic``, or on all topics if omitted."""
        if topic is None:
            for subs in self._topics.values():
                for sub in subs.values():
                    sub.active = False
            self._topics.clear()
            self._logger.debug("Cleared all event subscriptions")
            return

        subs = self._topics.pop(topic, None)
        if subs:
            for sub in subs.values():
                sub.active = False
            self._logger.debug(f"Cleared event subscriptions | topic={topic} | count={len(subs)}")

    def listener_count(self, topic: str) -> int:
        """Number of live registrations on ``topic``."""
        return len(self._topics.get(topic, {}))

    def topics(self) -> List[str]:
        """Topics that currently have at least one registration."""
        return [topic for topic, subs in self._topics.items() if subs]

    # --------------------------------------------------------
    # Publishing
    # --------------------------------------------------------

    def publish(self, topic: str, payload: Any = None) -> int:
        """
        Deliver ``payload`` to subscribers of ``topic`` then to wildcard subscribers.

        Returns:
            Number of callbacks invoked
        """
        if not isinstance(topic, str) or not topic:
            raise InvalidTopicError(topic)
        if topic == WILDCARD:
            raise InvalidTopicError(topic, "the wildcard topic cannot be published to")

        exact = list(self._topics.get(topic, {}).values())
        wildcard = list(self._topics.get(WILDCARD, {}).values())

        invoked = 0
        for sub in exact:
            if self._deliver(sub, topic, payload):
                invoked += 1

        if wildcard:
            envelope = ChannelEvent(topic=topic, payload=payload)
            for sub in wildcard:
                if self._deliver(sub, topic, envelope):
                    invoked += 1

        return invoked

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _add(self, topic: str, callback: EventCallback, once: bool) -> Unsubscribe:
        if not isinstance(topic, str) or not topic:
            raise InvalidTopicError(topic)
        if not callable(callback):
            raise SubscriptionError(
                message=f"Callback for topic {topic!r} is not callable",
                context={"topic": topic, "callback_type": type(callback).__name__},
            )

        sub = Subscription(key=topic, callback=callback, once=once)
        self._topics.setdefault(topic, {})[sub.subscription_id] = sub

        def unsubscribe() -> bool:
            return self._remove(sub)

        return unsubscribe

    def _remove(self, sub: Subscription) -> bool:
        if not sub.active:
            return False
        sub.active = False
        subs = self._topics.get(sub.key)
        if subs is not None:
            subs.pop(sub.subscription_id, None)
            if not subs:
                del self._topics[sub.key]
        return True

    def _deliver(self, sub: Subscription, topic: str, argument: Any) -> bool:
        if not sub.active:
            return False
        if sub.once:
            self._remove(sub)
        try:
            sub.callback(argument)
        except Exception as e:
            self._logger.error(
                f"Event handler error | topic={topic} | key={sub.key} | handler={sub.name}: {e}",
                exc_info=True,
            )
        return True


__all__ = [
    "ChannelEvent",
    "EventCallback",
    "EventChannel",
]
