"""Typed publish/subscribe bus used to decouple the subsystems from the host.

The catalog, dispatcher and synchronizer never call into the hosting surface
directly for status reporting; they publish events here and the host decides
how to render them (status text, toasts, indicators).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar
from weakref import WeakMethod

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events published on the bus."""


# ---------------------------------------------------------------------------
# Generator events
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class GeneratorSelected(Event):
    """The active generator for a category changed."""

    category: str
    descriptor_id: str
    name: str


@dataclass(slots=True)
class GenerationStarted(Event):
    """A generation request was dispatched."""

    descriptor_id: str
    document_id: str | None = None


@dataclass(slots=True)
class GenerationFinished(Event):
    """A generation request completed with the given outcome."""

    descriptor_id: str
    outcome: str
    document_id: str | None = None


@dataclass(slots=True)
class CodeGenerated(Event):
    """Generated code (or an inline diagnostic) is ready for the buffer."""

    text: str
    document_id: str | None = None


@dataclass(slots=True)
class NotificationRaised(Event):
    """A user-facing notification (rendered as a toast by the host)."""

    level: str
    message: str


# ---------------------------------------------------------------------------
# Document events
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class DocumentOpened(Event):
    """A different document became active."""

    document_id: str
    content_mode: str


@dataclass(slots=True)
class DocumentClosed(Event):
    """The active document was closed; no document is open now."""

    document_id: str


@dataclass(slots=True)
class DocumentSaved(Event):
    """A write to the remote store succeeded."""

    document_id: str
    length: int


@dataclass(slots=True)
class DocumentSaveFailed(Event):
    """A write to the remote store failed; the buffer stays dirty."""

    document_id: str
    error: str


class EventBus(Generic[E]):
    """Synchronous publish/subscribe bus keyed by exact event type.

    Bound methods are held weakly so subscribers can be garbage collected
    without unsubscribing; plain functions and lambdas are held strongly.
    A handler that raises is logged and does not stop delivery to the
    remaining handlers. Not thread-safe: use from the event loop thread.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: defaultdict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, entry in enumerate(handlers):
            if entry.matches(handler):
                del handlers[index]
                return

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))
        dead: list[_HandlerRef] = []
        for entry in list(handlers):
            handler = entry.resolve()
            if handler is None:
                dead.append(entry)
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception(
                    "Handler %s raised while handling %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
        if dead:
            # Entries added during delivery stay registered.
            self._handlers[event_type] = [
                entry for entry in self._handlers[event_type] if not any(entry is gone for gone in dead)
            ]

    def clear(self) -> None:
        self._handlers.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, ()))
        return sum(len(entries) for entries in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_target", "_weak")

    def __init__(self, target: Any, weak: bool) -> None:
        self._target = target
        self._weak = weak

    @classmethod
    def create(cls, handler: Callable[..., Any]) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), weak=True)
            except TypeError:
                pass
        return cls(handler, weak=False)

    def resolve(self) -> Callable[..., Any] | None:
        if self._weak:
            return self._target()
        return self._target

    def matches(self, handler: Callable[..., Any]) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "GeneratorSelected",
    "GenerationStarted",
    "GenerationFinished",
    "CodeGenerated",
    "NotificationRaised",
    "DocumentOpened",
    "DocumentClosed",
    "DocumentSaved",
    "DocumentSaveFailed",
]
