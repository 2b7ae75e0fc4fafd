"""Drag-and-drop coordination for the canvas.

The coordinator turns pointer gestures into at most one committed engine
operation per drag. It owns the ephemeral :class:`DragSession`, computes the
single armed drop target from a :class:`HoverFrame`, and arbitrates nested drop
handlers through a :class:`DropClaim` token so only the innermost one commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Union

from ...editor.document_model import BlockPayload, ContainerKind, IdFactory, generate_id
from ...editor.geometry import ContainerGeometry, HoverFrame, HoverThresholds, Point
from ...editor.hover import (
    canvas_insertion_index,
    gap_insertion_index,
    hover_index,
    innermost_zone_at,
    merge_edge_hit,
)
from ...editor.mutations import BlockDestination, ZoneAddress
from ...editor.results import ErrorCode, MutationResult
from ..events import DragEnded, DragStarted, DragTargetChanged, EventBus
from .board_store import BoardStore

LOGGER = logging.getLogger(__name__)


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


class DropStatus(str, Enum):
    """How a gesture ended.

    ``STALE`` means the armed target (or the dragged block) disappeared before
    the drop; it is handled like a cancellation. ``IGNORED`` is returned to a
    handler that lost the claim or called in without an active session.
    """

    DROPPED = "dropped"
    CANCELLED = "cancelled"
    STALE = "stale"
    IGNORED = "ignored"


# ---------------------------------------------------------------------------
# Drag items and drop targets
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ExistingBlockItem:
    block_id: str


@dataclass(slots=True, frozen=True)
class NewBlockItem:
    payload: BlockPayload


@dataclass(slots=True, frozen=True)
class ExistingContainerItem:
    container_id: str


@dataclass(slots=True, frozen=True)
class NewContainerItem:
    kind: ContainerKind


DragItem = Union[ExistingBlockItem, NewBlockItem, ExistingContainerItem, NewContainerItem]


@dataclass(slots=True, frozen=True)
class ZoneDropTarget:
    container_id: str
    zone_id: str
    index: int


@dataclass(slots=True, frozen=True)
class GapDropTarget:
    """Drop between two adjacent top-level containers.

    Creates a new container at ``index``. The neighbours are recorded so a drop
    after either one moved or vanished is reported as stale.
    """

    index: int
    upper_id: str
    lower_id: str


@dataclass(slots=True, frozen=True)
class CanvasDropTarget:
    index: int


DropTarget = Union[ZoneDropTarget, GapDropTarget, CanvasDropTarget]


@dataclass(slots=True, frozen=True)
class MergeAffordance:
    """Two sibling leaf children whose shared edge is under the pointer."""

    parent_id: str
    first_id: str
    second_id: str


@dataclass(slots=True)
class DragContext:
    """Session-scoped callbacks handed to :meth:`DragCoordinator.begin_drag`.

    Attributes:
        on_target_changed: Called whenever the armed target changes (``None`` disarms).
        on_finished: Called once with the final :class:`DropOutcome`.
    """

    on_target_changed: Callable[[DropTarget | None], None] | None = None
    on_finished: Callable[["DropOutcome"], None] | None = None


@dataclass(slots=True)
class DragSession:
    session_id: str
    item: DragItem
    origin_container_id: str | None = None
    origin_zone_id: str | None = None
    origin_index: int | None = None
    current_hover_target: DropTarget | None = None
    context: DragContext = field(default_factory=DragContext)


@dataclass(slots=True)
class DropClaim:
    """Token passed from the innermost drop handler outwards.

    The first handler to :meth:`claim` it performs the drop; the rest see
    ``claimed`` and do nothing.
    """

    claimed_by: str | None = None

    @property
    def claimed(self) -> bool:
        return self.claimed_by is not None

    def claim(self, handler_id: str) -> bool:
        if self.claimed_by is not None:
            return False
        self.claimed_by = handler_id
        return True


@dataclass(slots=True)
class DropOutcome:
    status: DropStatus
    target: DropTarget | None = None
    result: MutationResult | None = None

    @property
    def committed(self) -> bool:
        return self.status is DropStatus.DROPPED and self.result is not None and self.result.ok


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class DragCoordinator:
    """Single-session drag state machine bound to a :class:`BoardStore`.

    ``IDLE -> DRAGGING -> (DROPPED | CANCELLED) -> IDLE``. The terminal state is
    reported through :attr:`last_outcome`; the coordinator is immediately ready
    for the next gesture.

    Events Emitted:
        - DragStarted: when a session begins
        - DragTargetChanged: when the armed target changes (quiet)
        - DragEnded: once per session, with the outcome
    """

    def __init__(
        self,
        store: BoardStore,
        event_bus: EventBus,
        *,
        thresholds: HoverThresholds | None = None,
        id_factory: IdFactory = generate_id,
    ) -> None:
        self._store = store
        self._bus = event_bus
        self._thresholds = thresholds or HoverThresholds()
        self._id_factory = id_factory
        self._session: DragSession | None = None
        self._state = DragState.IDLE
        self.last_outcome: DropOutcome | None = None

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def session(self) -> DragSession | None:
        return self._session

    @property
    def thresholds(self) -> HoverThresholds:
        return self._thresholds

    @thresholds.setter
    def thresholds(self, value: HoverThresholds) -> None:
        self._thresholds = value

    # ------------------------------------------------------------------
    # Starting a drag
    # ------------------------------------------------------------------

    def begin_drag(
        self,
        block_id: str,
        origin: ZoneAddress,
        *,
        from_handle: bool = True,
        context: DragContext | None = None,
    ) -> DragSession | None:
        """Start dragging an existing block.

        Only a pointer-down on the drag handle starts a drag, and ``origin``
        must be where the block actually is; otherwise nothing happens.
        """
        if not from_handle:
            LOGGER.debug("DragCoordinator.begin_drag: ignored, pointer-down outside the handle")
            return None
        location = self._store.locate_block(block_id)
        if location is None or (location.container_id, location.zone_id) != (origin.container_id, origin.zone_id):
            LOGGER.debug("DragCoordinator.begin_drag: block %s is not at %s", block_id, origin)
            return None
        return self._start(
            ExistingBlockItem(block_id),
            context,
            origin_container_id=location.container_id,
            origin_zone_id=location.zone_id,
            origin_index=location.index,
        )

    def begin_palette_drag(self, payload: BlockPayload, *, context: DragContext | None = None) -> DragSession | None:
        return self._start(NewBlockItem(payload), context)

    def begin_container_drag(self, container_id: str, *, context: DragContext | None = None) -> DragSession | None:
        index = self._store.top_level_index(container_id)
        if index is None:
            LOGGER.debug("DragCoordinator.begin_container_drag: %s is not a top-level container", container_id)
            return None
        return self._start(ExistingContainerItem(container_id), context, origin_index=index)

    def begin_layout_drag(
        self,
        kind: ContainerKind | str,
        *,
        context: DragContext | None = None,
    ) -> DragSession | None:
        try:
            container_kind = ContainerKind(kind)
        except ValueError:
            LOGGER.warning("DragCoordinator.begin_layout_drag: unknown container kind %r", kind)
            return None
        return self._start(NewContainerItem(container_kind), context)

    def _start(self, item: DragItem, context: DragContext | None, **origin: Any) -> DragSession | None:
        if self._session is not None:
            LOGGER.warning(
                "DragCoordinator: drag already active (session %s); ignoring new drag",
                self._session.session_id,
            )
            return None
        session = DragSession(
            session_id=self._id_factory(),
            item=item,
            context=context or DragContext(),
            **origin,
        )
        self._session = session
        self._state = DragState.DRAGGING
        LOGGER.debug("DragCoordinator: session %s started for %r", session.session_id, item)
        self._bus.publish(DragStarted(session_id=session.session_id, item=item))
        return session

    # ------------------------------------------------------------------
    # Hover
    # ------------------------------------------------------------------

    def update_drag_hover(self, pointer: Point, frame: HoverFrame) -> DropTarget | None:
        """Recompute the armed target for ``pointer``.

        Repeated calls with the same pointer and frame return the same target
        and do not re-notify listeners.
        """
        session = self._session
        if session is None:
            return None

        if isinstance(session.item, (ExistingContainerItem, NewContainerItem)):
            target = self._container_target(pointer, frame)
        else:
            target = self._block_target(pointer, frame)

        if target != session.current_hover_target:
            session.current_hover_target = target
            self._bus.publish(DragTargetChanged(session_id=session.session_id, target=target))
            if session.context.on_target_changed is not None:
                session.context.on_target_changed(target)
        return target

    def _block_target(self, pointer: Point, frame: HoverFrame) -> DropTarget | None:
        gap = gap_insertion_index(pointer, frame.containers, self._thresholds.gap_px)
        if gap is not None:
            above = frame.containers[gap - 1]
            below = frame.containers[gap]
            if not self._store.is_container_empty(above.container_id) and not self._store.is_container_empty(
                below.container_id
            ):
                index = self._store.top_level_index(below.container_id)
                if index is not None:
                    return GapDropTarget(index, above.container_id, below.container_id)

        hit = innermost_zone_at(pointer, frame.containers)
        if hit is None:
            return None
        container, zone = hit
        return ZoneDropTarget(container.container_id, zone.zone_id, hover_index(pointer.y, zone.midpoints()))

    def _container_target(self, pointer: Point, frame: HoverFrame) -> DropTarget | None:
        index = canvas_insertion_index(pointer, frame.containers, self._thresholds.gap_px, frame.canvas_rect)
        return CanvasDropTarget(index) if index is not None else None

    def hover_merge(self, pointer: Point, frame: HoverFrame) -> MergeAffordance | None:
        """Merge affordance under ``pointer``; offered only while no drag is active."""
        if self._session is not None:
            return None
        return self._merge_at(pointer, frame.containers)

    def _merge_at(self, pointer: Point, containers: tuple[ContainerGeometry, ...]) -> MergeAffordance | None:
        for geometry in containers:
            if len(geometry.children) != 2:
                continue
            nested = self._merge_at(pointer, geometry.children)
            if nested is not None:
                return nested
            first, second = geometry.children
            if not merge_edge_hit(pointer, first.rect, second.rect, self._thresholds.merge_px):
                continue
            if self._store.can_merge(first.container_id, second.container_id):
                return MergeAffordance(geometry.container_id, first.container_id, second.container_id)
        return None

    def commit_merge(self, affordance: MergeAffordance) -> MutationResult:
        return self._store.merge_containers(affordance.first_id, affordance.second_id)

    # ------------------------------------------------------------------
    # Finishing a drag
    # ------------------------------------------------------------------

    def commit_drag(self, claim: DropClaim | None = None, *, handler_id: str = "canvas") -> DropOutcome:
        """Drop the dragged item on the armed target.

        Args:
            claim: Token shared by nested drop handlers for the same gesture.
            handler_id: Name of the handler attempting the drop.

        Returns:
            The outcome. Only a successful engine operation yields ``DROPPED``.
        """
        if claim is not None and claim.claimed:
            LOGGER.debug("DragCoordinator.commit_drag: %s skipped, claimed by %s", handler_id, claim.claimed_by)
            return DropOutcome(DropStatus.IGNORED)
        session = self._session
        if session is None:
            return DropOutcome(DropStatus.IGNORED)
        if claim is not None:
            claim.claim(handler_id)

        target = session.current_hover_target
        if target is None:
            LOGGER.debug("DragCoordinator: session %s dropped with no armed target", session.session_id)
            return self._finish(DropOutcome(DropStatus.CANCELLED))

        outcome = self._apply_drop(session, target)
        return self._finish(outcome)

    def cancel_drag(self) -> DropOutcome:
        if self._session is None:
            return DropOutcome(DropStatus.IGNORED)
        return self._finish(DropOutcome(DropStatus.CANCELLED, self._session.current_hover_target))

    def _apply_drop(self, session: DragSession, target: DropTarget) -> DropOutcome:
        item = session.item
        store = self._store

        if isinstance(item, (ExistingBlockItem, NewBlockItem)):
            if isinstance(target, ZoneDropTarget):
                container = store.find_container(target.container_id)
                if container is None or container.is_split or store.find_zone(target.container_id, target.zone_id) is None:
                    return self._stale(session, target)
            elif isinstance(target, GapDropTarget):
                upper = store.top_level_index(target.upper_id)
                lower = store.top_level_index(target.lower_id)
                if upper is None or lower != upper + 1:
                    return self._stale(session, target)
                target = replace(target, index=lower)
            else:
                return DropOutcome(DropStatus.CANCELLED, target)

        if isinstance(item, ExistingBlockItem):
            location = store.locate_block(item.block_id)
            if location is None:
                return self._stale(session, target)
            source = ZoneAddress(location.container_id, location.zone_id)
            if isinstance(target, GapDropTarget):
                return self._outcome(target, store.move_block_to_new_container(item.block_id, source, target.index))
            index = target.index
            if (target.container_id, target.zone_id) == (location.container_id, location.zone_id):
                if index > location.index:
                    index -= 1
                if index == location.index:
                    LOGGER.debug("DragCoordinator: block %s dropped in place", item.block_id)
                    return DropOutcome(DropStatus.CANCELLED, target)
            destination = BlockDestination(target.container_id, target.zone_id, index)
            return self._outcome(target, store.move_block(item.block_id, source, destination))

        if isinstance(item, NewBlockItem):
            if isinstance(target, GapDropTarget):
                return self._outcome(target, store.add_block_in_new_container(item.payload, target.index))
            return self._outcome(target, store.add_block(item.payload, target.container_id, target.zone_id, target.index))

        if not isinstance(target, CanvasDropTarget):
            return DropOutcome(DropStatus.CANCELLED, target)
        if target.index > len(store.document.containers):
            return self._stale(session, target)

        if isinstance(item, NewContainerItem):
            return self._outcome(target, store.add_container(item.kind, target.index))

        from_index = store.top_level_index(item.container_id)
        if from_index is None:
            return self._stale(session, target)
        if target.index in (from_index, from_index + 1):
            return DropOutcome(DropStatus.CANCELLED, target)
        return self._outcome(target, store.move_container(from_index, target.index))

    def _outcome(self, target: DropTarget, result: MutationResult) -> DropOutcome:
        if result.ok:
            return DropOutcome(DropStatus.DROPPED, target, result)
        status = DropStatus.STALE if result.code == ErrorCode.NOT_FOUND else DropStatus.CANCELLED
        return DropOutcome(status, target, result)

    def _stale(self, session: DragSession, target: DropTarget) -> DropOutcome:
        LOGGER.debug("DragCoordinator: session %s target %r is stale", session.session_id, target)
        return DropOutcome(DropStatus.STALE, target)

    def _finish(self, outcome: DropOutcome) -> DropOutcome:
        session = self._session
        self._state = DragState.DROPPED if outcome.status is DropStatus.DROPPED else DragState.CANCELLED
        self._session = None
        self.last_outcome = outcome
        if session is not None:
            LOGGER.debug("DragCoordinator: session %s ended (%s)", session.session_id, outcome.status.value)
            self._bus.publish(DragEnded(session_id=session.session_id, outcome=outcome))
            if session.context.on_finished is not None:
                session.context.on_finished(outcome)
        self._state = DragState.IDLE
        return outcome


__all__ = [
    "CanvasDropTarget",
    "DragContext",
    "DragCoordinator",
    "DragItem",
    "DragSession",
    "DragState",
    "DropClaim",
    "DropOutcome",
    "DropStatus",
    "DropTarget",
    "ExistingBlockItem",
    "ExistingContainerItem",
    "GapDropTarget",
    "MergeAffordance",
    "NewBlockItem",
    "NewContainerItem",
    "ZoneDropTarget",
]
