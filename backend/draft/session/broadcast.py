"""In-process fan-out of draft events to push subscribers and listeners."""

import asyncio
from collections.abc import Callable

import structlog

from draft.logic.events import DraftEvent

logger = structlog.get_logger()

EventListener = Callable[[DraftEvent], None]

DEFAULT_SUBSCRIBER_QUEUE_SIZE = 256


class DraftEventBus:
    """Deliver committed draft events to per-session subscriber queues.

    Subscribers are WebSocket feeds; each gets its own bounded queue so a slow
    consumer cannot stall the engine. When a queue is full the event is dropped
    for that subscriber only. Listeners are synchronous callbacks that see
    every event of every session (used by the expiry driver).
    """

    def __init__(self, max_queue_size: int = DEFAULT_SUBSCRIBER_QUEUE_SIZE) -> None:
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, set[asyncio.Queue[DraftEvent]]] = {}
        self._listeners: list[EventListener] = []

    def subscribe(self, session_id: str) -> asyncio.Queue[DraftEvent]:
        queue: asyncio.Queue[DraftEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(session_id, set()).add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue[DraftEvent]) -> None:
        queues = self._subscribers.get(session_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event: DraftEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("event listener failed", event_type=event.type)
        # snapshot: a subscriber may unsubscribe while we iterate
        for queue in list(self._subscribers.get(event.session_id, ())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("subscriber queue full, dropping event", event_type=event.type)
