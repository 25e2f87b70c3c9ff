"""
In-process event bus for queue notifications.

The live-updates transport subscribes here; delivery and fan-out are its
concern. A failing handler is logged and never retried.
"""

import logging
from typing import Awaitable, Callable, List

from ..models.events import EventType, QueueEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[QueueEvent], Awaitable[None]]


class EventBus:
    """Fans queue events out to subscribed handlers."""

    def __init__(self):
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> EventHandler:
        self._handlers.append(handler)
        return handler

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event_type: EventType, **payload) -> QueueEvent:
        event = QueueEvent(type=event_type, payload=payload)
        logger.debug("Emitting %s", event_type.value)

        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event_type.value)

        return event


# Singleton instance
event_bus = EventBus()
