"""Event bus infrastructure shared by the document and conversation services.

Services publish typed events here instead of calling UI code directly, so any
number of listeners (a chat panel, an editor view, a test) can observe state
changes without the core knowing about them.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    TypeVar,
    TYPE_CHECKING,
)
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]
Unsubscribe = Callable[[], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Subclasses are plain ``@dataclass(slots=True)`` records::

        @dataclass(slots=True)
        class DocumentSaved(Event):
            path: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Document Events
# =============================================================================


@dataclass(slots=True)
class DocumentLoaded(Event):
    """Emitted after a file becomes the active document.

    Attributes:
        path: Workspace path of the loaded file.
        length: Number of characters loaded.
        from_cache: Whether the body came from the content cache.
    """

    path: str
    length: int
    from_cache: bool = False


@dataclass(slots=True)
class ContentChanged(Event):
    """Emitted after every mutation or revert of the active document.

    Attributes:
        path: Workspace path of the active document.
        length: Content length after the change.
        snapshot_id: Snapshot recorded for this change.
        trigger: Snapshot trigger (``tool_execution`` or ``manual_save``).
    """

    path: str
    length: int
    snapshot_id: str
    trigger: str


@dataclass(slots=True)
class DocumentSaved(Event):
    """Emitted once the active document has been persisted.

    Attributes:
        path: Workspace path written to.
        trigger: ``manual_save`` or ``auto_save``.
    """

    path: str
    trigger: str = "manual_save"


@dataclass(slots=True)
class DocumentFailed(Event):
    """Emitted whenever a document operation raises.

    Attributes:
        code: Machine-readable error code.
        message: Human-readable message, including suggestions.
        recoverable: Whether the caller can retry or continue.
    """

    code: str
    message: str
    recoverable: bool = True


# =============================================================================
# Conversation Events
# =============================================================================


@dataclass(slots=True)
class MessageAdded(Event):
    """Emitted when a message is appended to a session."""

    session_id: str
    message: Any


@dataclass(slots=True)
class MessageUpdated(Event):
    """Emitted when an existing message changes (final content, settled tool calls)."""

    session_id: str
    message: Any


@dataclass(slots=True)
class StreamingChunk(Event):
    """Emitted for each text delta received while an assistant reply streams.

    Attributes:
        session_id: Session receiving the reply.
        message_id: Placeholder assistant message being filled.
        content: The text delta.
    """

    session_id: str
    message_id: str
    content: str


_QUIET_EVENT_TYPES.add(StreamingChunk)


@dataclass(slots=True)
class SessionUpdated(Event):
    """Emitted when session metadata or its message list changes as a whole."""

    session_id: str


@dataclass(slots=True)
class SessionStateChanged(Event):
    """Emitted on each conversation state machine transition.

    Attributes:
        session_id: The session that transitioned.
        previous: Previous state value.
        current: New state value.
    """

    session_id: str
    previous: str
    current: str


@dataclass(slots=True)
class ConversationFailed(Event):
    """Emitted when an assistant turn is rolled back or a session lookup fails.

    Attributes:
        session_id: The affected session.
        message: Human-readable error text.
        error_type: Exception class name for diagnostics.
    """

    session_id: str
    message: str
    error_type: str = ""


# =============================================================================
# Event Bus
# =============================================================================


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers are stored as weak references where possible (bound methods)
    so that listeners can be garbage collected without unsubscribing.

    Example::

        bus = EventBus()
        unsubscribe = bus.subscribe(DocumentSaved, lambda event: print(event.path))
        bus.publish(DocumentSaved(path="notes.md"))
        unsubscribe()

    The bus is not thread-safe; publish from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> Unsubscribe:
        """Register ``handler`` for ``event_type`` and return an unsubscribe handle.

        Subscribing the same handler twice results in two invocations per
        publish. The returned callable is safe to call more than once.
        """
        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

        def _unsubscribe() -> None:
            handlers = self._handlers.get(event_type)
            if handlers and handler_ref in handlers:
                handlers.remove(handler_ref)

        return _unsubscribe

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler`` for ``event_type``.

        Safe to call for handlers that were never subscribed.
        """
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Invoke every handler registered for the event's exact type.

        Handlers run synchronously in registration order. A handler that
        raises is logged and the remaining handlers still run.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if not handlers:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead: list[_HandlerRef] = []
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(handler_ref)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for handler_ref in dead:
            if handler_ref in handlers:
                handlers.remove(handler_ref)

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Return the number of handlers for ``event_type``, or across all types."""
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "Unsubscribe",
    # Document events
    "DocumentLoaded",
    "ContentChanged",
    "DocumentSaved",
    "DocumentFailed",
    # Conversation events
    "MessageAdded",
    "MessageUpdated",
    "StreamingChunk",
    "SessionUpdated",
    "SessionStateChanged",
    "ConversationFailed",
]
