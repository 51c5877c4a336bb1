"""
In-process change feed.

The backend's realtime channel pushes row-change events into this hub; the
coordination layer treats them purely as invalidation signals.
"""

import inspect
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from shared.logging import get_logger


ChangeHandler = Callable[[Dict[str, Any]], Union[None, Awaitable[None]]]


@dataclass
class ChangeSubscription:
    """Subscription data."""
    subscription_id: str
    topic: str
    handler: ChangeHandler
    created_at: datetime = field(default_factory=datetime.now)
    last_event_at: Optional[datetime] = None
    event_count: int = 0


class ChangeFeed:
    """Topic-based fan-out of backend change events."""

    def __init__(self):
        self.logger = get_logger("feed.change_feed")
        self.subscriptions: Dict[str, ChangeSubscription] = {}
        self.topic_subscriptions: Dict[str, Dict[str, None]] = {}  # topic -> ordered subscription ids

    def subscribe_to_changes(self, topic: str, on_event: ChangeHandler) -> Callable[[], bool]:
        """Register ``on_event`` for ``topic``; returns an unsubscribe callable."""
        subscription_id = str(uuid.uuid4())
        self.subscriptions[subscription_id] = ChangeSubscription(
            subscription_id=subscription_id,
            topic=topic,
            handler=on_event,
        )
        self.topic_subscriptions.setdefault(topic, {})[subscription_id] = None

        self.logger.info("Subscription created", subscription_id=subscription_id, topic=topic)

        def unsubscribe() -> bool:
            return self._remove_subscription(subscription_id)

        return unsubscribe

    async def publish(self, topic: str, event: Dict[str, Any]) -> int:
        """Deliver ``event`` to every subscriber of ``topic``.

        Handler failures are logged and do not stop delivery to the others.
        Returns the number of handlers that completed.
        """
        delivered = 0
        for subscription_id in list(self.topic_subscriptions.get(topic, {})):
            subscription = self.subscriptions.get(subscription_id)
            if subscription is None:
                continue
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.logger.error(
                    "Change handler failed",
                    subscription_id=subscription_id,
                    topic=topic,
                    error=str(e),
                )
                continue

            subscription.event_count += 1
            subscription.last_event_at = datetime.now()
            delivered += 1

        self.logger.debug("Change event published", topic=topic, delivered=delivered)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self.topic_subscriptions.get(topic, {}))

    def _remove_subscription(self, subscription_id: str) -> bool:
        subscription = self.subscriptions.pop(subscription_id, None)
        if subscription is None:
            return False

        topic_ids = self.topic_subscriptions.get(subscription.topic)
        if topic_ids is not None:
            topic_ids.pop(subscription_id, None)
            if not topic_ids:
                del self.topic_subscriptions[subscription.topic]

        self.logger.info("Subscription removed", subscription_id=subscription_id, topic=subscription.topic)
        return True
