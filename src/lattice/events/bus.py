"""In-process publish/subscribe event bus.

Topics fan out to every current subscriber. Each subscription owns an
unbounded ``asyncio.Queue``, so publishing never blocks and never waits for
slow consumers; messages reach each subscriber in publish order.

Topics:
- artifacts: ArtifactRegistered
- prs: PRRegistered, PRUpdated
- intents: IntentTransitioned
- governance: GovernanceReply, GovernanceLabelApplied

Example:
    >>> bus = EventBus()
    >>> subscription = bus.subscribe(Topic.PRS)
    >>> bus.publish(Topic.PRS, event)
    1
    >>> async for message in subscription:
    ...     handle(message)
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Union


logger = logging.getLogger(__name__)


class Topic(str, Enum):
    """Well-known bus topics."""

    ARTIFACTS = "artifacts"
    PRS = "prs"
    INTENTS = "intents"
    GOVERNANCE = "governance"


TopicLike = Union[Topic, str]

_CLOSED = object()


def _topic_name(topic: TopicLike) -> str:
    if isinstance(topic, Topic):
        return topic.value
    if not isinstance(topic, str) or not topic:
        raise ValueError(f"Invalid topic: {topic!r}")
    return topic


class Subscription:
    """A subscriber's view of one topic.

    Iterate with ``async for`` or pull with ``get``/``get_nowait``.
    Iteration ends once the subscription is closed and its queue drained.

    Attributes:
        topic: The subscribed topic name.
    """

    def __init__(self, bus: "EventBus", topic: str):
        self.topic = topic
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        """Number of messages waiting."""
        size = self._queue.qsize()
        return size - 1 if self._closed and size else size

    async def get(self) -> Optional[Any]:
        """Wait for the next message.

        Returns:
            The next message, or None once the subscription is closed and
            every message delivered before closing has been read.
        """
        message = await self._queue.get()
        if message is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return message

    def get_nowait(self) -> Any:
        """Return the next message without waiting.

        Raises:
            asyncio.QueueEmpty: If no message is waiting.
        """
        message = self._queue.get_nowait()
        if message is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise asyncio.QueueEmpty
        return message

    def close(self) -> None:
        """Stop receiving messages. Already queued messages stay readable."""
        self._bus.unsubscribe(self)

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def _deliver(self, message: Any) -> None:
        self._queue.put_nowait(message)

    def _mark_closed(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)


class EventBus:
    """Topic-based fan-out to in-process subscribers."""

    def __init__(self):
        self._subscribers: Dict[str, List[Subscription]] = {}

    def subscribe(self, topic: TopicLike) -> Subscription:
        """Subscribe to a topic. Only messages published afterwards are seen.

        Raises:
            ValueError: If the topic is empty or not a string.
        """
        name = _topic_name(topic)
        subscription = Subscription(self, name)
        self._subscribers.setdefault(name, []).append(subscription)

        logger.debug(
            "Subscribed to topic",
            extra={"topic": name, "subscribers": len(self._subscribers[name])},
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription. Unknown or closed subscriptions are ignored."""
        subscribers = self._subscribers.get(subscription.topic, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        subscription._mark_closed()

    def publish(self, topic: TopicLike, message: Any) -> int:
        """Deliver a message to every current subscriber of a topic.

        Args:
            topic: The topic to publish on.
            message: The message. Must not be None.

        Returns:
            The number of subscribers the message was delivered to.

        Raises:
            ValueError: If the topic is invalid or the message is None.
        """
        name = _topic_name(topic)
        if message is None:
            raise ValueError("Cannot publish None")

        subscribers = list(self._subscribers.get(name, ()))
        for subscription in subscribers:
            subscription._deliver(message)

        logger.debug(
            "Published message",
            extra={
                "topic": name,
                "message_type": type(message).__name__,
                "delivered": len(subscribers),
            },
        )
        return len(subscribers)

    def subscriber_count(self, topic: TopicLike) -> int:
        return len(self._subscribers.get(_topic_name(topic), ()))


# Process-wide bus used when no bus is passed explicitly
_default_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Get or create the process-wide event bus."""
    global _default_bus

    if _default_bus is None:
        _default_bus = EventBus()

    return _default_bus
