"""Board store domain manager.

Owns the single current :class:`Document`, the selection and the viewport. All
structural edits go through this class so that each accepted change is applied
as one value swap, published on the event bus and forwarded to the change
listener (autosave) in a fixed order.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Callable, Mapping, Protocol, Sequence

from ...editor import mutations
from ...editor.document_model import (
    BlockKind,
    BlockPayload,
    ContainerKind,
    ContentBlock,
    Document,
    IdFactory,
    LayoutContainer,
    Viewport,
    Zone,
    generate_id,
    new_document,
    payload_from_mapping,
    validate_document,
)
from ...editor.mutations import BlockDestination, ZoneAddress
from ...editor.results import MutationError, MutationRejected, MutationResult, TreeIntegrityError
from ...editor.serialization import SnapshotFormatError, document_to_snapshot
from ...editor.tree_queries import (
    BlockLocation,
    find_block,
    find_container,
    find_parent,
    find_zone,
    is_container_empty,
    locate_block,
    non_empty_containers,
    top_level_index,
)
from ..events import (
    BlockAdded,
    BlockDeleted,
    BlockMoved,
    BlockPayloadUpdated,
    BlocksReordered,
    ContainerAdded,
    ContainerDeleted,
    ContainerMoved,
    ContainerSplit,
    ContainersMerged,
    ContainersPruned,
    DocumentChanged,
    DocumentLoaded,
    DocumentRetitled,
    Event,
    EventBus,
    MutationRejected as MutationRejectedEvent,
    SelectionChanged,
    SelectionCleared,
)

LOGGER = logging.getLogger(__name__)

# A transform returns the new document, the operation value and the events to publish.
_Transform = Callable[[Document], "tuple[Document, Any, list[Event]]"]


class ChangeListener(Protocol):
    def notify_changed(self, document: Document) -> None:
        ...


class SelectionListener(Protocol):
    def notify_selection_cleared(self, block_id: str) -> None:
        ...


class BoardStore:
    """Domain manager for the board tree.

    Every mutating method returns a :class:`MutationResult`; expected failures
    never raise. For an accepted mutation the order of side effects is:

    1. the new document replaces the old one,
    2. the specific event, then :class:`DocumentChanged`, are published,
    3. a selection pointing at a removed block is cleared
       (:class:`SelectionCleared` plus ``notify_selection_cleared``),
    4. the change listener is notified.

    Events Emitted:
        - ContainerAdded / ContainerDeleted / ContainerMoved
        - ContainerSplit / ContainersMerged / ContainersPruned
        - BlockAdded / BlockDeleted / BlockMoved / BlocksReordered / BlockPayloadUpdated
        - DocumentRetitled / DocumentChanged / DocumentLoaded
        - SelectionChanged / SelectionCleared
        - MutationRejected: when an operation is refused
    """

    def __init__(
        self,
        event_bus: EventBus,
        *,
        document: Document | None = None,
        viewport: Viewport | str = Viewport.DESKTOP,
        change_listener: ChangeListener | None = None,
        selection_listener: SelectionListener | None = None,
        id_factory: IdFactory = generate_id,
    ) -> None:
        """Initialize the store.

        Args:
            event_bus: Bus that receives every domain event.
            document: Initial document; a new empty board when omitted.
            viewport: Viewport that bounds split depth.
            change_listener: Receives ``notify_changed`` after each accepted mutation.
            selection_listener: Receives ``notify_selection_cleared`` when a
                deletion removes the selected block.
            id_factory: Source of fresh node ids.
        """
        initial = document if document is not None else new_document()
        self._check(initial)
        self._document = initial
        self._bus = event_bus
        self._viewport = Viewport(viewport)
        self._selection: str | None = None
        self._change_listener = change_listener
        self._selection_listener = selection_listener
        self._id_factory = id_factory

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def document(self) -> Document:
        return self._document

    @property
    def selection(self) -> str | None:
        return self._selection

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    def set_viewport(self, viewport: Viewport | str) -> None:
        self._viewport = Viewport(viewport)
        LOGGER.debug("BoardStore.set_viewport: %s", self._viewport.value)

    def set_change_listener(self, listener: ChangeListener | None) -> None:
        self._change_listener = listener

    def set_selection_listener(self, listener: SelectionListener | None) -> None:
        self._selection_listener = listener

    def load(self, document: Document) -> None:
        """Replace the whole tree (e.g. after opening a board).

        Loading is not an edit, so the change listener is not notified.

        Raises:
            SnapshotFormatError: If ``document`` violates a tree invariant.
        """
        self._check(document)
        self._document = document
        LOGGER.debug("BoardStore.load: document_id=%s, version=%s", document.id, document.version_id)
        self._bus.publish(
            DocumentLoaded(
                document_id=document.id,
                version_id=document.version_id,
                container_count=len(document.containers),
            )
        )
        if self._selection is not None:
            self._selection = None
            self._bus.publish(SelectionChanged(block_id=None))

    def snapshot(self) -> dict[str, Any]:
        return document_to_snapshot(self._document)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_block(self, block_id: str) -> bool:
        """Select ``block_id``; returns ``False`` if no such block exists."""
        if locate_block(self._document, block_id) is None:
            LOGGER.debug("BoardStore.select_block: unknown block_id=%s", block_id)
            return False
        if self._selection != block_id:
            self._selection = block_id
            self._bus.publish(SelectionChanged(block_id=block_id))
        return True

    def clear_selection(self) -> None:
        if self._selection is None:
            return
        self._selection = None
        self._bus.publish(SelectionChanged(block_id=None))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_container(self, container_id: str) -> LayoutContainer | None:
        return find_container(self._document, container_id)

    def find_zone(self, container_id: str, zone_id: str) -> Zone | None:
        return find_zone(self._document, container_id, zone_id)

    def find_block(self, container_id: str, zone_id: str, block_id: str) -> ContentBlock | None:
        return find_block(self._document, container_id, zone_id, block_id)

    def locate_block(self, block_id: str) -> BlockLocation | None:
        return locate_block(self._document, block_id)

    def find_parent(self, container_id: str) -> LayoutContainer | None:
        return find_parent(self._document, container_id)

    def top_level_index(self, container_id: str) -> int | None:
        return top_level_index(self._document, container_id)

    def is_container_empty(self, container_id: str) -> bool:
        container = find_container(self._document, container_id)
        return container is None or is_container_empty(container)

    def non_empty_containers(self) -> tuple[LayoutContainer, ...]:
        return non_empty_containers(self._document)

    def can_split(self, container_id: str, viewport: Viewport | str | None = None) -> bool:
        target = viewport if viewport is not None else self._viewport
        try:
            mutations.split_container(self._document, container_id, target)
        except MutationRejected:
            return False
        return True

    def can_merge(self, container_id: str, sibling_id: str) -> bool:
        try:
            mutations.merge_containers(self._document, container_id, sibling_id)
        except MutationRejected:
            return False
        return True

    # ------------------------------------------------------------------
    # Container operations
    # ------------------------------------------------------------------

    def add_container(self, kind: ContainerKind | str, at_index: int | None = None) -> MutationResult[str]:
        def transform(document: Document):
            updated, container_id = mutations.add_container(document, kind, at_index, id_factory=self._id_factory)
            index = top_level_index(updated, container_id)
            event = ContainerAdded(document.id, container_id, ContainerKind(kind).value, index)
            return updated, container_id, [event]

        return self._commit("add_container", transform)

    def delete_container(self, container_id: str) -> MutationResult[str]:
        def transform(document: Document):
            container = find_container(document, container_id)
            updated = mutations.delete_container(document, container_id)
            removed = _subtree_block_ids(container) if container is not None else ()
            return updated, container_id, [ContainerDeleted(document.id, container_id, removed)]

        return self._commit("delete_container", transform)

    def move_container(self, from_index: int, to_index: int) -> MutationResult[int]:
        def transform(document: Document):
            updated = mutations.move_container(document, from_index, to_index)
            moved = document.containers[from_index]
            final_index = top_level_index(updated, moved.id)
            return updated, final_index, [ContainerMoved(document.id, moved.id, from_index, final_index)]

        return self._commit("move_container", transform)

    def split_container(
        self,
        container_id: str,
        viewport: Viewport | str | None = None,
    ) -> MutationResult[tuple[str, str]]:
        target = viewport if viewport is not None else self._viewport

        def transform(document: Document):
            updated, child_ids = mutations.split_container(
                document,
                container_id,
                target,
                id_factory=self._id_factory,
            )
            return updated, child_ids, [ContainerSplit(document.id, container_id, child_ids, Viewport(target).value)]

        return self._commit("split_container", transform)

    def merge_containers(self, container_id: str, sibling_id: str) -> MutationResult[str]:
        def transform(document: Document):
            updated, parent_id = mutations.merge_containers(document, container_id, sibling_id)
            return updated, parent_id, [ContainersMerged(document.id, parent_id, (container_id, sibling_id))]

        return self._commit("merge_containers", transform)

    def prune_empty_containers(self) -> MutationResult[tuple[str, ...]]:
        def transform(document: Document):
            updated, removed = mutations.prune_empty_containers(document)
            return updated, removed, [ContainersPruned(document.id, removed)]

        return self._commit("prune_empty_containers", transform)

    # ------------------------------------------------------------------
    # Block operations
    # ------------------------------------------------------------------

    def add_block(
        self,
        payload: BlockPayload | BlockKind | str,
        container_id: str,
        zone_id: str,
        at_index: int | None = None,
        *,
        data: Mapping[str, Any] | None = None,
    ) -> MutationResult[str]:
        """Insert a new block; ``payload`` may be a payload instance or a kind plus ``data``."""

        def transform(document: Document):
            block_payload = _coerce_payload(payload, data)
            updated, block_id = mutations.add_block(
                document,
                block_payload,
                container_id,
                zone_id,
                at_index,
                id_factory=self._id_factory,
            )
            index = locate_block(updated, block_id).index
            return updated, block_id, [BlockAdded(document.id, block_id, container_id, zone_id, index)]

        return self._commit("add_block", transform)

    def delete_block(self, block_id: str, container_id: str, zone_id: str) -> MutationResult[str]:
        def transform(document: Document):
            updated = mutations.delete_block(document, block_id, container_id, zone_id)
            return updated, block_id, [BlockDeleted(document.id, block_id, container_id, zone_id)]

        return self._commit("delete_block", transform)

    def move_block(
        self,
        block_id: str,
        source: ZoneAddress,
        target: BlockDestination,
    ) -> MutationResult[BlockLocation]:
        def transform(document: Document):
            updated = mutations.move_block(document, block_id, source, target)
            location = locate_block(updated, block_id)
            event = BlockMoved(
                document.id,
                block_id,
                source.container_id,
                source.zone_id,
                location.container_id,
                location.zone_id,
                location.index,
            )
            return updated, location, [event]

        return self._commit("move_block", transform)

    def reorder_blocks(self, container_id: str, zone_id: str, new_order: Sequence[str]) -> MutationResult[None]:
        def transform(document: Document):
            updated = mutations.reorder_blocks(document, container_id, zone_id, new_order)
            return updated, None, [BlocksReordered(document.id, container_id, zone_id, tuple(new_order))]

        return self._commit("reorder_blocks", transform)

    def update_block_payload(
        self,
        block_id: str,
        container_id: str,
        zone_id: str,
        changes: Mapping[str, Any] | BlockPayload,
    ) -> MutationResult[None]:
        def transform(document: Document):
            updated = mutations.update_block_payload(document, block_id, container_id, zone_id, changes)
            if isinstance(changes, Mapping):
                changed = tuple(sorted(changes))
            else:
                changed = tuple(item.name for item in fields(changes))
            return updated, None, [BlockPayloadUpdated(document.id, block_id, changed)]

        return self._commit("update_block_payload", transform)

    def move_block_to_new_container(
        self,
        block_id: str,
        source: ZoneAddress,
        at_index: int | None,
        kind: ContainerKind | str = ContainerKind.SINGLE_COLUMN,
    ) -> MutationResult[str]:
        def transform(document: Document):
            updated, container_id = mutations.move_block_to_new_container(
                document,
                block_id,
                source,
                at_index,
                kind,
                id_factory=self._id_factory,
            )
            created = find_container(updated, container_id)
            index = top_level_index(updated, container_id)
            zone_id = created.zones[0].id
            events: list[Event] = [
                ContainerAdded(document.id, container_id, created.kind.value, index),
                BlockMoved(document.id, block_id, source.container_id, source.zone_id, container_id, zone_id, 0),
            ]
            return updated, container_id, events

        return self._commit("move_block_to_new_container", transform)

    def add_block_in_new_container(
        self,
        payload: BlockPayload | BlockKind | str,
        at_index: int | None,
        kind: ContainerKind | str = ContainerKind.SINGLE_COLUMN,
        *,
        data: Mapping[str, Any] | None = None,
    ) -> MutationResult[tuple[str, str]]:
        def transform(document: Document):
            updated, container_id, block_id = mutations.add_block_in_new_container(
                document,
                _coerce_payload(payload, data),
                at_index,
                kind,
                id_factory=self._id_factory,
            )
            created = find_container(updated, container_id)
            index = top_level_index(updated, container_id)
            events: list[Event] = [
                ContainerAdded(document.id, container_id, created.kind.value, index),
                BlockAdded(document.id, block_id, container_id, created.zones[0].id, 0),
            ]
            return updated, (container_id, block_id), events

        return self._commit("add_block_in_new_container", transform)

    def set_title(self, title: str) -> MutationResult[str]:
        def transform(document: Document):
            updated = mutations.set_title(document, title)
            return updated, updated.metadata.title, [DocumentRetitled(document.id, updated.metadata.title)]

        return self._commit("set_title", transform)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(self, operation: str, transform: _Transform) -> MutationResult:
        before = self._document
        try:
            updated, value, events = transform(before)
        except MutationRejected as exc:
            return self._reject(operation, exc.error)
        except TreeIntegrityError as exc:
            LOGGER.exception("BoardStore.%s: tree integrity failure", operation)
            return self._reject(operation, MutationError.invariant(str(exc)))

        if updated is before:
            LOGGER.debug("BoardStore.%s: no change", operation)
            return MutationResult.success(operation, before, value)

        updated = updated.touch()
        self._document = updated
        LOGGER.debug(
            "BoardStore.%s: document_id=%s, version=%s, value=%r",
            operation,
            updated.id,
            updated.version_id,
            value,
        )

        for event in events:
            self._bus.publish(event)
        self._bus.publish(DocumentChanged(updated.id, updated.version_id, operation))

        if self._selection is not None and locate_block(updated, self._selection) is None:
            self._clear_removed_selection()

        if self._change_listener is not None:
            self._change_listener.notify_changed(updated)

        return MutationResult.success(operation, updated, value)

    def _reject(self, operation: str, error: MutationError) -> MutationResult:
        LOGGER.debug("BoardStore.%s rejected: %s %s", operation, error, error.details)
        self._bus.publish(MutationRejectedEvent(operation=operation, error=error))
        return MutationResult.failure(operation, self._document, error)

    def _clear_removed_selection(self) -> None:
        block_id = self._selection
        self._selection = None
        LOGGER.debug("BoardStore: selected block %s was removed", block_id)
        self._bus.publish(SelectionCleared(block_id=block_id))
        if self._selection_listener is not None:
            self._selection_listener.notify_selection_cleared(block_id)

    @staticmethod
    def _check(document: Document) -> None:
        problems = validate_document(document)
        if problems:
            raise SnapshotFormatError("Document violates tree invariants", problems)


def _coerce_payload(payload: BlockPayload | BlockKind | str, data: Mapping[str, Any] | None) -> BlockPayload:
    if isinstance(payload, (BlockKind, str)):
        try:
            return payload_from_mapping(payload, data)
        except ValueError as exc:
            raise MutationRejected(MutationError.invariant(str(exc), kind=str(payload))) from exc
    if data:
        raise MutationRejected(MutationError.invariant("Pass either a payload instance or a kind with data"))
    return payload


def _subtree_block_ids(container: LayoutContainer) -> tuple[str, ...]:
    ids: list[str] = []
    for zone in container.zones:
        ids.extend(zone.block_ids())
    for child in container.children:
        ids.extend(_subtree_block_ids(child))
    return tuple(ids)


__all__ = ["BoardStore", "ChangeListener", "SelectionListener"]
