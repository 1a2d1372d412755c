"""Event bus and the events published by the chat session.

Domain managers publish through an :class:`EventBus` handed to them at
construction, so a host UI can observe turns, threads and the dialogue
without the managers knowing about it.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, DefaultDict, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all session events.

    Subclasses are ``@dataclass(slots=True)`` records::

        @dataclass(slots=True)
        class ThreadChanged(Event):
            thread_id: str | None
            reason: str
    """

    pass


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Turn Events
# =============================================================================


@dataclass(slots=True)
class PhaseChanged(Event):
    """Emitted when the session moves between idle, sending and streaming.

    Attributes:
        phase: The new phase value (``"idle"``, ``"sending"``, ``"streaming"``).
    """

    phase: str


@dataclass(slots=True)
class TurnStarted(Event):
    """Emitted when a user message is dispatched.

    Attributes:
        turn_id: Identifier of the turn (e.g. ``"turn-1a2b3c4d"``).
        prompt: Text sent to the agent.
        display: Text shown in the transcript for the user message.
    """

    turn_id: str
    prompt: str
    display: str


@dataclass(slots=True)
class StreamChunkReceived(Event):
    """Emitted for each answer fragment merged into the streaming message."""

    turn_id: str
    content: str


@dataclass(slots=True)
class ThinkingChanged(Event):
    """Emitted when the transient thinking indicator changes.

    Attributes:
        turn_id: The turn the indicator belongs to.
        text: Indicator text, or ``None`` once answer text starts arriving.
    """

    turn_id: str
    text: str | None


_QUIET_EVENT_TYPES.update({StreamChunkReceived, ThinkingChanged})


@dataclass(slots=True)
class StreamErrorRaised(Event):
    """Emitted when the agent reports an error mid-stream.

    The partially accumulated reply stays in the transcript; hosts show
    ``message`` as a dismissible banner.
    """

    turn_id: str
    message: str


@dataclass(slots=True)
class TurnCompleted(Event):
    """Emitted when a turn settles successfully.

    Attributes:
        turn_id: Identifier of the turn.
        product_ids: Products referenced by the reply.
        thread_id: Thread id reported by the server, if any.
        synthesized: True when the stream closed without a ``done`` event.
        meta: Purchase references (order, invoice, payment) as wire keys.
    """

    turn_id: str
    product_ids: list[str] = field(default_factory=list)
    thread_id: str | None = None
    synthesized: bool = False
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TurnFailed(Event):
    """Emitted when a turn fails at the transport level."""

    turn_id: str
    error: str


@dataclass(slots=True)
class TurnCanceled(Event):
    """Emitted when an in-flight turn is aborted."""

    turn_id: str


# =============================================================================
# Thread & Dialogue Events
# =============================================================================


@dataclass(slots=True)
class ThreadChanged(Event):
    """Emitted when the active thread changes.

    Attributes:
        thread_id: The active thread id, or ``None`` for a fresh chat.
        reason: ``"new"``, ``"switch"``, ``"restore"``, ``"assigned"`` or ``"deleted"``.
    """

    thread_id: str | None
    reason: str


@dataclass(slots=True)
class ThreadsRefreshed(Event):
    """Emitted after the thread roster is reloaded."""

    thread_ids: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AddressesRefreshed(Event):
    """Emitted after the saved address list is reloaded."""

    count: int


@dataclass(slots=True)
class SlotsReset(Event):
    """Emitted when pending address/payment selections are cleared."""

    reason: str


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus.

    Handlers are invoked synchronously in subscription order. Bound
    methods are held weakly so a discarded view does not keep receiving
    events. Not thread-safe: publish from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for events of exactly ``event_type``."""
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers is None:
            return
        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                return

    def publish(self, event: E) -> None:
        """Deliver ``event`` to its handlers.

        A handler that raises is logged and does not stop delivery to the
        remaining handlers.
        """
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if not handlers:
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_indices: list[int] = []
        for i, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead_indices.append(i)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for i in reversed(dead_indices):
            handlers.pop(i)

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for plain callables."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: Any, is_weak: bool) -> None:
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
            return self._ref
        return self._ref()

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "PhaseChanged",
    "TurnStarted",
    "StreamChunkReceived",
    "ThinkingChanged",
    "StreamErrorRaised",
    "TurnCompleted",
    "TurnFailed",
    "TurnCanceled",
    "ThreadChanged",
    "ThreadsRefreshed",
    "AddressesRefreshed",
    "SlotsReset",
]
