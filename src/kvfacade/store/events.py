"""In-process subscription to facade operation events."""

from __future__ import annotations

from collections.abc import Callable

from kvfacade.models import StoreEvent
from kvfacade.observability import get_logger

logger = get_logger(__name__)

EventCallback = Callable[[StoreEvent], None]


class EventEmitter:
    """Fan out StoreEvents to subscribed callbacks.

    Callbacks run synchronously on the emitting task, so they should be
    cheap. A failing callback is logged and skipped; it never changes the
    result of the operation that produced the event.
    """

    def __init__(self) -> None:
        self._subscribers: list[EventCallback] = []

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subscribers)

    def emit(self, event: StoreEvent) -> None:
        # Copy so a callback may unsubscribe itself while we iterate
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.warning(
                    "Event subscriber failed",
                    operation=event.operation,
                    subscriber=getattr(callback, "__qualname__", repr(callback)),
                    error=str(e),
                )
