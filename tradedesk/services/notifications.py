"""Per-user pub/sub for pushing trade events to live sessions.

The settlement engine only sees ``Publisher.publish(user_id, event)``. The
in-process ``MessageBroker`` keeps one bounded queue per subscription, and the
WebSocket endpoint drains a subscription into its socket. Delivery is
best-effort: clients re-query trade state on reconnect.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Protocol

from tradedesk.errors import NotificationDeliveryFailed
from tradedesk.schemas.events import Event

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(self, user_id: int, event: Event) -> None: ...


class Subscription:
    """One live session's view of a user's event stream."""

    def __init__(self, broker: "MessageBroker", user_id: int, maxsize: int):
        self.broker = broker
        self.user_id = user_id
        self.queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=maxsize)

    async def get(self) -> dict:
        return await self.queue.get()

    def close(self):
        self.broker.unsubscribe(self)


class MessageBroker:
    """In-process publisher fanning each event out to every subscription of its user."""

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscriptions: dict[int, set[Subscription]] = defaultdict(set)

    def subscribe(self, user_id: int) -> Subscription:
        sub = Subscription(self, user_id, self.queue_size)
        self._subscriptions[user_id].add(sub)
        logger.info(f"User {user_id} subscribed ({len(self._subscriptions[user_id])} sessions)")
        return sub

    def unsubscribe(self, sub: Subscription):
        subs = self._subscriptions.get(sub.user_id)
        if not subs:
            return
        subs.discard(sub)
        if not subs:
            del self._subscriptions[sub.user_id]
        logger.info(f"User {sub.user_id} unsubscribed")

    def subscriber_count(self, user_id: int | None = None) -> int:
        if user_id is not None:
            return len(self._subscriptions.get(user_id, ()))
        return sum(len(s) for s in self._subscriptions.values())

    async def publish(self, user_id: int, event: Event) -> None:
        message = event.to_message()
        dropped = 0
        for sub in list(self._subscriptions.get(user_id, ())):
            try:
                sub.queue.put_nowait(message)
            except asyncio.QueueFull:
                dropped += 1
        if dropped:
            raise NotificationDeliveryFailed(
                f"{dropped} session(s) of user {user_id} missed {message['type']}"
            )


class NotificationFanout:
    """Best-effort delivery of settlement events; never raises to the caller."""

    def __init__(self, publisher: Publisher):
        self.publisher = publisher

    async def notify(self, user_id: int, event: Event) -> bool:
        try:
            await self.publisher.publish(user_id, event)
            return True
        except NotificationDeliveryFailed as e:
            logger.warning(f"Notification dropped: {e}")
        except Exception as e:
            logger.warning(f"Notification to user {user_id} failed: {e}", exc_info=True)
        return False
