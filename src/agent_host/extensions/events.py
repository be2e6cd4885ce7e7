"""In-process event bus for extension lifecycle notifications."""

from typing import Any, Awaitable, Callable, Optional

from loguru import logger

from ..hooks import call_maybe_async

EventHandler = Callable[[Any], Optional[Awaitable[None]]]

EXTENSION_REGISTERED = "extension:registered"
EXTENSION_UNREGISTERED = "extension:unregistered"
EXTENSION_ACTIVATED = "extension:activated"
EXTENSION_DEACTIVATED = "extension:deactivated"


class EventBus:
    """
    Named events with sync or async subscribers.

    Subscriber failures are logged and never reach the emitter.
    """

    def __init__(self):
        self._subscribers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Subscribe to an event. Returns an unsubscribe callable."""
        self._subscribers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(event, handler)

        return unsubscribe

    def unsubscribe(self, event: str, handler: EventHandler) -> bool:
        handlers = self._subscribers.get(event)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del self._subscribers[event]
        return True

    async def emit(self, event: str, data: Any = None) -> None:
        """Deliver an event to every subscriber in subscription order."""
        for handler in list(self._subscribers.get(event, [])):
            try:
                await call_maybe_async(handler, data)
            except Exception as e:
                logger.error(f"Event subscriber for {event} failed: {e}")

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
