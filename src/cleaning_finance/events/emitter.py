"""Event emitter for publishing domain events.

Handlers run in-process and are isolated: a failing handler is logged and
never breaks the operation that published the event or other handlers.
Events published inside a batch are held until the batch exits cleanly and
dropped if it raises, so nothing is announced for work that rolled back.
Batch state lives in a context variable, so concurrent requests sharing one
emitter each hold their own events.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from cleaning_finance.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)

EventHandler = Callable[[DomainEvent], None]


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: EventHandler
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories


@dataclass
class _BatchState:
    """Events held by the batch open in the current context."""

    depth: int = 0
    events: list[DomainEvent] = field(default_factory=list)


class EventEmitter:
    """Synchronous, fire-and-forget event emitter.

    Usage:
        emitter = EventEmitter()
        emitter.on(CashPendingApproval, notify_admins)
        emitter.on_category(EventCategory.BILLING, log_billing)

        with emitter.batch():
            emitter.emit(event1)
            emitter.emit(event2)
        # Both dispatched when the block exits without error
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        self._batch_state: ContextVar[_BatchState | None] = ContextVar(
            f"event_batch_{id(self)}", default=None
        )

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: EventHandler,
    ) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}
        self._handlers.append(HandlerRegistration(handler, types, None))

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        """Register handler for event category(ies)."""
        if isinstance(category, list):
            cats = set(category)
        else:
            cats = {category}
        self._handlers.append(HandlerRegistration(handler, None, cats))

    def on_all(self, handler: EventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(HandlerRegistration(handler, None, None))

    def off(self, handler: EventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns the exceptions raised by handlers.
        """
        state = self._batch_state.get()
        if state is not None and state.depth:
            state.events.append(event)
            return []
        return self._dispatch(event)

    def _dispatch(self, event: DomainEvent) -> list[Exception]:
        errors: list[Exception] = []
        event_type = event.event_type
        event_category = event.category

        for reg in self._handlers:
            if reg.event_types and event_type not in reg.event_types:
                continue
            if reg.categories and event_category not in reg.categories:
                continue
            try:
                reg.handler(event)
            except Exception as e:
                logger.exception(
                    "Handler %s failed for event %s",
                    reg.handler,
                    event_type,
                )
                errors.append(e)

        return errors

    def batch(self) -> EventBatch:
        """Hold events until the context exits."""
        return EventBatch(self)

    @property
    def batching(self) -> bool:
        """True while a batch is open in the current context."""
        state = self._batch_state.get()
        return state is not None and state.depth > 0

    def _start_batch(self) -> None:
        state = self._batch_state.get()
        if state is None or not state.depth:
            state = _BatchState()
            self._batch_state.set(state)
        state.depth += 1

    def _end_batch(self, discard: bool) -> list[Exception]:
        state = self._batch_state.get()
        if state is None or not state.depth:
            return []
        state.depth -= 1
        if state.depth:
            # Outer batch decides
            if discard:
                state.events.clear()
            return []
        events = state.events
        self._batch_state.set(None)
        if discard:
            return []
        errors: list[Exception] = []
        for event in events:
            errors.extend(self._dispatch(event))
        return errors


class EventBatch:
    """Context manager for batching events."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._start_batch()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._errors = self._emitter._end_batch(discard=exc_type is not None)

    def add(self, event: DomainEvent) -> None:
        """Add event to batch."""
        self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after context exits)."""
        return self._errors


def log_event(event: DomainEvent) -> None:
    """Default handler: write the event to the log."""
    logger.info("event %s tenant=%s %s", event.event_type, event.metadata.tenant_id, event.to_json())


_default_emitter: EventEmitter | None = None


def get_emitter() -> EventEmitter:
    """Process-wide emitter with the logging handler attached."""
    global _default_emitter
    if _default_emitter is None:
        _default_emitter = EventEmitter()
        _default_emitter.on_all(log_event)
    return _default_emitter
