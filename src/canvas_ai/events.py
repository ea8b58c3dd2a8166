"""Structured events emitted by the canvas AI core.

The core never shows UI itself. Anything a user should notice (a rejected
prompt, an edge that could not be drawn, a request that failed) is emitted
as a CanvasEvent, and the host-facing layer decides how to surface it.

Usage:
    events = EventEmitter()
    unsubscribe = events.subscribe(lambda event: show_notice(event.message))
    ...
    unsubscribe()
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable
import logging

logger = logging.getLogger(__name__)


class CanvasEventKind(str, Enum):
    """Kinds of events the core emits."""

    NOTICE = "notice"                    # Something the user should see
    REQUEST_STARTED = "request_started"
    REQUEST_STREAMING = "request_streaming"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILED = "request_failed"
    REQUEST_CANCELLED = "request_cancelled"


@dataclass
class CanvasEvent:
    """A single event."""

    kind: CanvasEventKind
    message: str = ""
    request_id: str | None = None
    node_id: str | None = None
    error: Exception | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        error = self.error
        return {
            "kind": self.kind.value,
            "message": self.message,
            "request_id": self.request_id,
            "node_id": self.node_id,
            "error": error.to_dict() if hasattr(error, "to_dict") else (str(error) if error else None),
            "created_at": self.created_at.isoformat(),
        }


EventHandler = Callable[[CanvasEvent], None]


class EventEmitter:
    """Synchronous pub/sub for CanvasEvents.

    Handlers run in subscription order. A failing handler is logged and
    skipped; it never affects the emitter or other handlers.
    """

    def __init__(self, max_history: int = 200):
        self._handlers: list[EventHandler] = []
        self._history: list[CanvasEvent] = []
        self._max_history = max_history

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register a handler.

        Returns:
            A callable that removes the handler again
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def emit(self, event: CanvasEvent) -> None:
        """Deliver an event to every handler."""
        logger.debug(f"Event {event.kind.value}: {event.message}")

        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history // 2:]

        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in canvas event handler: {e}")

    @property
    def history(self) -> list[CanvasEvent]:
        """Recently emitted events, oldest first."""
        return list(self._history)

    def clear(self) -> None:
        """Drop all handlers and history."""
        self._handlers.clear()
        self._history.clear()
