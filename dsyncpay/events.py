"""
Event dispatch for host callbacks.

Handlers are registered per EventType. A handler that raises is logged and
skipped; it never affects sibling handlers or the operation that emitted
the event.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any, Dict, List, Optional, Union

from .models import EventRecord, EventType

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventRecord], Any]


class EventDispatcher:
    """
    Registry of optional handlers keyed by lifecycle event.

    Handlers can be passed as keyword arguments named after the event
    (on_payment_completed=..., on_error=...) or registered later with
    register().
    """

    def __init__(self, **callbacks: Optional[EventHandler]):
        self._handlers: Dict[EventType, List[EventHandler]] = {event: [] for event in EventType}
        self._lock = threading.Lock()

        by_callback_name = {event.callback_name: event for event in EventType}
        for name, handler in callbacks.items():
            if name not in by_callback_name:
                raise TypeError(
                    f"Unknown callback {name!r}. Expected one of: {', '.join(sorted(by_callback_name))}"
                )
            if handler is not None:
                self.register(by_callback_name[name], handler)

    def register(self, event: Union[EventType, str], handler: EventHandler) -> None:
        """Add a handler for an event."""
        if not callable(handler):
            raise TypeError(f"Handler for {event} must be callable")
        event = EventType(event)
        with self._lock:
            self._handlers[event].append(handler)
        logger.debug("Registered handler %s for %s", getattr(handler, "__name__", handler), event.value)

    def unregister(self, event: Union[EventType, str], handler: EventHandler) -> bool:
        """Remove a handler. Returns False when it was not registered."""
        event = EventType(event)
        with self._lock:
            try:
                self._handlers[event].remove(handler)
            except ValueError:
                return False
        return True

    def handlers(self, event: Union[EventType, str]) -> List[EventHandler]:
        with self._lock:
            return list(self._handlers[EventType(event)])

    def dispatch(self, event: Union[EventType, str], record: EventRecord) -> int:
        """
        Invoke every handler registered for event with record.

        Returns:
            Number of handlers that completed without raising
        """
        event = EventType(event)
        handlers = self.handlers(event)
        if not handlers:
            logger.debug("No handler registered for %s", event.value)
            return 0

        succeeded = 0
        for handler in handlers:
            try:
                handler(record)
                succeeded += 1
            except Exception:
                logger.exception(
                    "Handler %s for %s failed (provider=%s, transaction=%s)",
                    getattr(handler, "__name__", repr(handler)),
                    event.value,
                    record.provider,
                    record.transaction_id,
                )
        return succeeded
