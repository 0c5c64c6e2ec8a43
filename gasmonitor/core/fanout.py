import asyncio
import logging
from typing import Optional

from gasmonitor.models.events import FanoutEvent

logger = logging.getLogger(__name__)


class Subscription:
    """One observer's view of the channel.

    Events are queued per subscriber, so one slow observer cannot reorder or
    delay delivery to the others. When the queue is full new events are
    dropped for this subscriber only.
    """

    def __init__(self, channel: "FanoutChannel", device_id: Optional[str], max_size: int):
        self.channel = channel
        self.device_id = device_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_size)
        self.closed = False
        self.dropped = 0

    def focus(self, device_id: Optional[str]) -> None:
        self.device_id = device_id

    def matches(self, event: FanoutEvent) -> bool:
        if self.device_id is None or event.device_id is None:
            return True
        return event.device_id == self.device_id

    def deliver(self, event: FanoutEvent) -> bool:
        if self.closed or not self.matches(event):
            return False
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Subscriber queue full, dropping {event.kind.value} event")
            return False
        return True

    async def get(self) -> Optional[FanoutEvent]:
        """Wait for the next event; None once the subscription is closed."""
        if self.closed and self.queue.empty():
            return None
        return await self.queue.get()

    def drain(self) -> list[FanoutEvent]:
        events = []
        while not self.queue.empty():
            event = self.queue.get_nowait()
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.channel.unsubscribe(self)
        # Wake a pending get() so its reader can stop.
        if self.queue.full():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> FanoutEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class FanoutChannel:
    def __init__(self, queue_max_size: int = 1000):
        self.queue_max_size = queue_max_size
        self.subscribers: list[Subscription] = []

    def subscribe(self, device_id: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, device_id, self.queue_max_size)
        self.subscribers.append(subscription)
        logger.info(f"Subscriber added ({len(self.subscribers)} connected)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self.subscribers:
            self.subscribers.remove(subscription)
            logger.info(f"Subscriber removed ({len(self.subscribers)} connected)")

    def publish(self, event: FanoutEvent) -> int:
        """Hand the event to every current subscriber, returning how many took it.

        Publishing never awaits, so events published in sequence reach each
        subscriber queue in that same sequence.
        """
        delivered = 0
        for subscription in list(self.subscribers):
            if subscription.deliver(event):
                delivered += 1
        return delivered

    def subscriber_count(self) -> int:
        return len(self.subscribers)
