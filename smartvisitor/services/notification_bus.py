# =======================================================================================
# smartvisitor/services/notification_bus.py - Real-time Notification Fan-out
# =======================================================================================
import asyncio
import logging
import time
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from ..config import config
from ..models.enums import EVENT_KINDS
from ..models.events import NotificationEvent, Heartbeat, Shutdown
from ..utils.clock import utcnow

log = logging.getLogger("smartvisitor.bus")

Message = Dict[str, Any]


def _new_client_id() -> str:
    return f"client_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class Subscriber:
    """
    One observer of the bus (usually a WebSocket connection).

    Messages wait in a bounded queue until the transport drains them with
    next_message(). None from next_message() means the subscriber was
    unregistered and the transport should close.
    """

    def __init__(self, client_id: Optional[str] = None, queue_size: Optional[int] = None,
                 events: Optional[Iterable[str]] = None):
        self.client_id = client_id or _new_client_id()
        self.queue: "asyncio.Queue[Optional[Message]]" = asyncio.Queue(
            maxsize=queue_size or config.SUBSCRIBER_QUEUE_SIZE
        )
        self.subscriptions: Optional[Set[str]] = None
        self.alive = True
        self.closed = False
        self.dropped = 0
        if events:
            self.subscribe(events)

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------
    def subscribe(self, events: Iterable[str]) -> List[str]:
        """Opt into the given event kinds. Returns the kinds that were unknown."""
        requested = {str(e) for e in events}
        unknown = sorted(requested - EVENT_KINDS)
        if self.subscriptions is None:
            self.subscriptions = set()
        self.subscriptions |= requested & EVENT_KINDS
        return unknown

    def accepts(self, event_type: str) -> bool:
        """Unfiltered subscribers accept every kind."""
        return self.subscriptions is None or event_type in self.subscriptions

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------
    def offer(self, message: Message) -> bool:
        """Enqueue without waiting. Returns False if the message was dropped."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                log.warning(
                    "Subscriber %s queue full; dropped %s (%d dropped so far)",
                    self.client_id, message.get("type"), self.dropped,
                )
            return False

    async def next_message(self) -> Optional[Message]:
        return await self.queue.get()

    def mark_alive(self) -> None:
        self.alive = True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            # make room for the close marker
            self.queue.get_nowait()
            self.queue.put_nowait(None)


class NotificationBus:
    """Registry of live subscribers and the fan-out over them."""

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or config.SUBSCRIBER_QUEUE_SIZE
        self._subscribers: Dict[str, Subscriber] = {}

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, subscriber: Subscriber) -> bool:
        return self._subscribers.get(subscriber.client_id) is subscriber

    @property
    def subscribers(self) -> List[Subscriber]:
        return list(self._subscribers.values())

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def create_subscriber(self, events: Optional[Iterable[str]] = None) -> Subscriber:
        subscriber = Subscriber(queue_size=self.queue_size, events=events)
        self.register(subscriber)
        return subscriber

    def register(self, subscriber: Subscriber) -> None:
        subscriber.mark_alive()
        self._subscribers[subscriber.client_id] = subscriber
        log.info("Subscriber connected: %s (%d live)", subscriber.client_id, len(self._subscribers))

    def unregister(self, subscriber: Subscriber) -> bool:
        if self._subscribers.get(subscriber.client_id) is not subscriber:
            return False
        del self._subscribers[subscriber.client_id]
        subscriber.close()
        log.info("Subscriber disconnected: %s (%d live)", subscriber.client_id, len(self._subscribers))
        return True

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------
    def publish(self, event: Union[NotificationEvent, Message]) -> int:
        """Deliver to every registered subscriber. Returns how many accepted it."""
        message = self._to_message(event)
        return sum(1 for s in self.subscribers if s.offer(message))

    def publish_filtered(self, event_type: str, event: Union[NotificationEvent, Message]) -> int:
        """Deliver only to subscribers that accept `event_type`."""
        message = dict(self._to_message(event))
        message["type"] = event_type
        delivered = sum(1 for s in self.subscribers if s.accepts(event_type) and s.offer(message))
        log.debug("Published %s to %d subscriber(s)", event_type, delivered)
        return delivered

    # ------------------------------------------------------------------
    # Liveness
    # ------------------------------------------------------------------
    def check_liveness(self) -> List[Subscriber]:
        """
        Drop subscribers that did not answer the previous heartbeat, then send
        a new one to the rest. Call once per heartbeat interval.
        """
        removed = []
        heartbeat = Heartbeat(timestamp=utcnow()).to_message()
        for subscriber in self.subscribers:
            if not subscriber.alive:
                log.warning("Subscriber %s missed its heartbeat; removing", subscriber.client_id)
                self.unregister(subscriber)
                removed.append(subscriber)
                continue
            subscriber.alive = False
            subscriber.offer(heartbeat)
        return removed

    def close(self) -> None:
        """Tell every subscriber the server is going away and clear the registry."""
        shutdown = Shutdown().to_message()
        for subscriber in self.subscribers:
            subscriber.offer(shutdown)
            self.unregister(subscriber)

    @staticmethod
    def _to_message(event: Union[NotificationEvent, Message]) -> Message:
        if isinstance(event, NotificationEvent):
            return event.to_message()
        return event
