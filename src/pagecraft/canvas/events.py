"""In-process event bus and the domain events published by the canvas editor.

Components subscribe to event classes instead of calling each other, so the
board store, the drag coordinator and observers such as autosave or a renderer
stay decoupled. Delivery is synchronous and in publish order.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, TypeVar, TYPE_CHECKING
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

    from ..editor.results import MutationError

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for every event published on the bus."""


# High-frequency events that are not logged on publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Container events
# =============================================================================


@dataclass(slots=True)
class ContainerAdded(Event):
    """A layout container was inserted at ``index`` (top level)."""

    document_id: str
    container_id: str
    kind: str
    index: int


@dataclass(slots=True)
class ContainerDeleted(Event):
    """A top-level container was removed along with everything it owned.

    Attributes:
        removed_block_ids: Every block that disappeared with the container.
    """

    document_id: str
    container_id: str
    removed_block_ids: tuple[str, ...] = ()


@dataclass(slots=True)
class ContainerMoved(Event):
    document_id: str
    container_id: str
    from_index: int
    to_index: int


@dataclass(slots=True)
class ContainerSplit(Event):
    """A leaf container became a split parent with two children."""

    document_id: str
    container_id: str
    child_ids: tuple[str, str]
    viewport: str


@dataclass(slots=True)
class ContainersMerged(Event):
    """Two sibling children were folded back into ``parent_id``."""

    document_id: str
    parent_id: str
    merged_ids: tuple[str, str]


@dataclass(slots=True)
class ContainersPruned(Event):
    document_id: str
    container_ids: tuple[str, ...]


# =============================================================================
# Block events
# =============================================================================


@dataclass(slots=True)
class BlockAdded(Event):
    document_id: str
    block_id: str
    container_id: str
    zone_id: str
    index: int


@dataclass(slots=True)
class BlockDeleted(Event):
    document_id: str
    block_id: str
    container_id: str
    zone_id: str


@dataclass(slots=True)
class BlockMoved(Event):
    """A block changed position, possibly across zones and containers.

    Attributes:
        source_container_id: Container the block came from.
        source_zone_id: Zone the block came from.
        container_id: Container the block now lives in.
        zone_id: Zone the block now lives in.
        index: Final index inside the target zone.
    """

    document_id: str
    block_id: str
    source_container_id: str
    source_zone_id: str
    container_id: str
    zone_id: str
    index: int


@dataclass(slots=True)
class BlocksReordered(Event):
    document_id: str
    container_id: str
    zone_id: str
    order: tuple[str, ...]


@dataclass(slots=True)
class BlockPayloadUpdated(Event):
    document_id: str
    block_id: str
    fields: tuple[str, ...]


# =============================================================================
# Document and selection events
# =============================================================================


@dataclass(slots=True)
class DocumentRetitled(Event):
    document_id: str
    title: str


@dataclass(slots=True)
class DocumentChanged(Event):
    """Emitted after every accepted mutation, following the specific event.

    Attributes:
        document_id: Identifier of the board.
        version_id: Version after the mutation.
        operation: Engine operation that produced the change.
    """

    document_id: str
    version_id: int
    operation: str


@dataclass(slots=True)
class DocumentLoaded(Event):
    document_id: str
    version_id: int
    container_count: int


@dataclass(slots=True)
class SelectionChanged(Event):
    block_id: str | None


@dataclass(slots=True)
class SelectionCleared(Event):
    """The selected block was deleted (directly or with its container)."""

    block_id: str


@dataclass(slots=True)
class MutationRejected(Event):
    operation: str
    error: "MutationError"


# =============================================================================
# Drag events
# =============================================================================


@dataclass(slots=True)
class DragStarted(Event):
    session_id: str
    item: Any


@dataclass(slots=True)
class DragTargetChanged(Event):
    """The armed drop target changed while hovering (``None`` disarms)."""

    session_id: str
    target: Any | None


_QUIET_EVENT_TYPES.add(DragTargetChanged)


@dataclass(slots=True)
class DragEnded(Event):
    session_id: str
    outcome: Any


# =============================================================================
# Event bus
# =============================================================================


class EventBus:
    """Synchronous publish/subscribe bus keyed by event class.

    Bound methods are held through :class:`weakref.WeakMethod`, so a subscriber
    that goes away is dropped on the next publish instead of being kept alive.
    A failing handler is logged and the remaining handlers still run.

    Example::

        bus = EventBus()
        bus.subscribe(BlockMoved, lambda event: print(event.block_id))
        bus.publish(BlockMoved(...))

    The bus is not thread-safe; publish from the thread that owns the editor.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register ``handler`` for exact instances of ``event_type``.

        Subscribing the same handler twice delivers each event twice.
        """
        self._handlers[event_type].append(_HandlerRef.create(handler))
        LOGGER.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if not handlers:
            return
        for index, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(index)
                LOGGER.debug("Unsubscribed %s from %s", _handler_name(handler), event_type.__name__)
                return

    def publish(self, event: Event) -> None:
        """Deliver ``event`` to every live handler in registration order."""
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        quiet = event_type in _QUIET_EVENT_TYPES

        if not handlers:
            if not quiet:
                LOGGER.debug("No handlers for %s", event_type.__name__)
            return
        if not quiet:
            LOGGER.debug("Publishing %s to %d handler(s)", event_type.__name__, len(handlers))

        dead: list[_HandlerRef] = []
        # Iterate over a copy so handlers may (un)subscribe while being called.
        for handler_ref in list(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(handler_ref)
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception("Handler %s failed for %s", _handler_name(handler), event_type.__name__)

        for handler_ref in dead:
            if handler_ref in handlers:
                handlers.remove(handler_ref)

    def clear(self) -> None:
        self._handlers.clear()
        LOGGER.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[Event] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, target: Any, is_weak: bool) -> None:
        self._ref = target
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if self._is_weak:
            return self._ref()
        return self._ref

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        return resolved is not None and resolved == handler


def _handler_name(handler: Any) -> str:
    owner = getattr(handler, "__self__", None)
    name = getattr(handler, "__qualname__", None) or getattr(handler, "__name__", None) or repr(handler)
    if owner is not None and "." not in name:
        return f"{type(owner).__name__}.{name}"
    return name


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "ContainerAdded",
    "ContainerDeleted",
    "ContainerMoved",
    "ContainerSplit",
    "ContainersMerged",
    "ContainersPruned",
    "BlockAdded",
    "BlockDeleted",
    "BlockMoved",
    "BlocksReordered",
    "BlockPayloadUpdated",
    "DocumentRetitled",
    "DocumentChanged",
    "DocumentLoaded",
    "SelectionChanged",
    "SelectionCleared",
    "MutationRejected",
    "DragStarted",
    "DragTargetChanged",
    "DragEnded",
]
