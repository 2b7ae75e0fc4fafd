"""Pure structural transforms over the board tree.

Every function takes a :class:`Document` and returns a new one; inputs are never
modified. A transform that cannot be applied raises :class:`MutationRejected`
before building anything, so callers either publish the complete new value or
keep the old one. Positional inputs from drag gestures are clamped; structural
inputs (permutations, split/merge preconditions) are validated strictly.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Iterable, Mapping, Sequence

from .document_model import (
    BlockPayload,
    ContainerKind,
    ContentBlock,
    Document,
    IdFactory,
    LayoutContainer,
    Viewport,
    Zone,
    generate_id,
    new_container,
)
from .results import MutationError, MutationRejected, TreeIntegrityError
from .tree_queries import (
    find_container,
    find_parent,
    find_zone,
    is_container_empty,
    iter_containers,
    top_level_index,
)

__all__ = [
    "ZoneAddress",
    "BlockDestination",
    "add_container",
    "delete_container",
    "move_container",
    "add_block",
    "delete_block",
    "move_block",
    "reorder_blocks",
    "update_block_payload",
    "split_container",
    "merge_containers",
    "move_block_to_new_container",
    "add_block_in_new_container",
    "set_title",
    "prune_empty_containers",
]


@dataclass(slots=True, frozen=True)
class ZoneAddress:
    """A zone identified through its owning container."""

    container_id: str
    zone_id: str


@dataclass(slots=True, frozen=True)
class BlockDestination:
    """Insertion point for a block: a zone plus a (clamped) index."""

    container_id: str
    zone_id: str
    index: int | None = None

    @property
    def zone(self) -> ZoneAddress:
        return ZoneAddress(self.container_id, self.zone_id)


# ---------------------------------------------------------------------------
# Container operations
# ---------------------------------------------------------------------------


def add_container(
    document: Document,
    kind: ContainerKind | str,
    at_index: int | None = None,
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[Document, str]:
    """Insert a new container with empty zones at ``at_index`` (clamped)."""

    try:
        container_kind = ContainerKind(kind)
    except ValueError:
        raise MutationRejected(MutationError.invariant(f"Unknown container kind {kind!r}", kind=str(kind))) from None
    container = new_container(container_kind, id_factory=id_factory)
    _ensure_fresh_ids(document, _container_ids(container))
    insert_at = _clamp(at_index, len(document.containers))
    containers = document.containers[:insert_at] + (container,) + document.containers[insert_at:]
    return replace(document, containers=containers), container.id


def delete_container(document: Document, container_id: str) -> Document:
    """Remove a top-level container together with its zones, blocks and children."""

    index = top_level_index(document, container_id)
    if index is None:
        if find_container(document, container_id) is not None:
            raise MutationRejected(
                MutationError.invariant(
                    "Split children cannot be deleted individually; merge them instead",
                    container_id=container_id,
                )
            )
        raise MutationRejected(MutationError.not_found(f"Container {container_id} not found", container_id=container_id))
    containers = document.containers[:index] + document.containers[index + 1 :]
    return replace(document, containers=containers)


def move_container(document: Document, from_index: int, to_index: int) -> Document:
    """Move the container at ``from_index`` so it lands before ``to_index``.

    ``to_index`` addresses the list before removal (``len`` appends), hence the
    shift when moving downwards.
    """

    count = len(document.containers)
    if not 0 <= from_index < count or not 0 <= to_index <= count:
        raise MutationRejected(
            MutationError.out_of_range(
                "Invalid indices for move_container",
                from_index=from_index,
                to_index=to_index,
                length=count,
            )
        )
    remaining = list(document.containers)
    moved = remaining.pop(from_index)
    target = to_index - 1 if from_index < to_index else to_index
    target = max(0, min(target, len(remaining)))
    remaining.insert(target, moved)
    return replace(document, containers=tuple(remaining))


# ---------------------------------------------------------------------------
# Block operations
# ---------------------------------------------------------------------------


def add_block(
    document: Document,
    payload: BlockPayload,
    container_id: str,
    zone_id: str,
    at_index: int | None = None,
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[Document, str]:
    zone = _require_leaf_zone(document, ZoneAddress(container_id, zone_id))
    block = ContentBlock(id=id_factory(), payload=payload)
    _ensure_fresh_ids(document, (block.id,))
    insert_at = _clamp(at_index, len(zone.blocks))
    blocks = zone.blocks[:insert_at] + (block,) + zone.blocks[insert_at:]
    return _with_zones(document, {zone.id: blocks}), block.id


def delete_block(document: Document, block_id: str, container_id: str, zone_id: str) -> Document:
    zone = _require_zone(document, ZoneAddress(container_id, zone_id))
    index = zone.index_of(block_id)
    if index is None:
        raise MutationRejected(
            MutationError.not_found(
                f"Block {block_id} not found in zone {zone_id}",
                block_id=block_id,
                container_id=container_id,
                zone_id=zone_id,
            )
        )
    return _with_zones(document, {zone.id: zone.blocks[:index] + zone.blocks[index + 1 :]})


def move_block(document: Document, block_id: str, source: ZoneAddress, target: BlockDestination) -> Document:
    """Move a block between (or within) zones in a single transition.

    ``target.index`` addresses the target zone after the block was removed from
    its source, and is clamped to that zone's bounds.
    """

    source_zone = _require_zone(document, source)
    index = source_zone.index_of(block_id)
    if index is None:
        raise MutationRejected(
            MutationError.not_found(
                f"Block {block_id} not found in zone {source.zone_id}",
                block_id=block_id,
                container_id=source.container_id,
                zone_id=source.zone_id,
            )
        )
    target_zone = _require_leaf_zone(document, target.zone)

    block = source_zone.blocks[index]
    remaining = source_zone.blocks[:index] + source_zone.blocks[index + 1 :]
    destination = remaining if target_zone.id == source_zone.id else target_zone.blocks
    insert_at = _clamp(target.index, len(destination))
    placed = destination[:insert_at] + (block,) + destination[insert_at:]

    if target_zone.id == source_zone.id:
        updates = {source_zone.id: placed}
    else:
        updates = {source_zone.id: remaining, target_zone.id: placed}
    return _with_zones(document, updates)


def reorder_blocks(document: Document, container_id: str, zone_id: str, new_order: Sequence[str]) -> Document:
    """Replace a zone's order with ``new_order``, which must be a permutation."""

    zone = _require_zone(document, ZoneAddress(container_id, zone_id))
    current = zone.block_ids()
    requested = tuple(new_order)
    if len(requested) != len(current) or set(requested) != set(current) or len(set(requested)) != len(requested):
        missing = sorted(set(current) - set(requested))
        extra = sorted(set(requested) - set(current))
        duplicates = sorted({item for item in requested if requested.count(item) > 1})
        raise MutationRejected(
            MutationError.invariant(
                "Reorder list is not a permutation of the zone's blocks",
                zone_id=zone_id,
                missing=missing,
                extra=extra,
                duplicates=duplicates,
            )
        )
    by_id = {block.id: block for block in zone.blocks}
    return _with_zones(document, {zone.id: tuple(by_id[block_id] for block_id in requested)})


def update_block_payload(
    document: Document,
    block_id: str,
    container_id: str,
    zone_id: str,
    changes: Mapping[str, Any] | BlockPayload,
) -> Document:
    """Merge ``changes`` into a block's payload.

    A mapping is a partial update of the payload's fields; a payload instance
    replaces it whole but must keep the block's kind.
    """

    zone = _require_zone(document, ZoneAddress(container_id, zone_id))
    index = zone.index_of(block_id)
    if index is None:
        raise MutationRejected(
            MutationError.not_found(f"Block {block_id} not found in zone {zone_id}", block_id=block_id, zone_id=zone_id)
        )
    block = zone.blocks[index]
    current = block.payload

    if isinstance(changes, Mapping):
        allowed = {item.name for item in fields(current)}
        unknown = sorted(set(changes) - allowed)
        if unknown:
            raise MutationRejected(
                MutationError.invariant(
                    f"Unknown {block.kind.value} payload field(s): {', '.join(unknown)}",
                    block_id=block_id,
                    fields=unknown,
                )
            )
        try:
            payload = replace(current, **dict(changes))
        except (TypeError, ValueError) as exc:
            raise MutationRejected(MutationError.invariant(str(exc), block_id=block_id)) from exc
    else:
        if getattr(changes, "kind", None) is not block.kind:
            raise MutationRejected(
                MutationError.invariant(
                    "Payload kind does not match the block kind",
                    block_id=block_id,
                    kind=block.kind.value,
                )
            )
        payload = changes

    blocks = zone.blocks[:index] + (replace(block, payload=payload),) + zone.blocks[index + 1 :]
    return _with_zones(document, {zone.id: blocks})


# ---------------------------------------------------------------------------
# Split / merge
# ---------------------------------------------------------------------------


def split_container(
    document: Document,
    container_id: str,
    viewport: Viewport | str,
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[Document, tuple[str, str]]:
    """Split a leaf container into two children one level deeper.

    The first child takes over every block (zone by zone), the second starts
    empty, and the parent keeps its zone ids with no blocks.
    """

    container = find_container(document, container_id)
    if container is None:
        raise MutationRejected(MutationError.not_found(f"Container {container_id} not found", container_id=container_id))
    if container.is_split:
        raise MutationRejected(MutationError.invariant("Container is already split", container_id=container_id))
    try:
        target = Viewport(viewport)
    except ValueError:
        raise MutationRejected(MutationError.invariant(f"Unknown viewport {viewport!r}", viewport=str(viewport))) from None
    limit = target.max_split_level
    if container.split_level >= limit:
        raise MutationRejected(
            MutationError.invariant(
                "Split depth limit reached for this viewport",
                container_id=container_id,
                split_level=container.split_level,
                max_split_level=limit,
                viewport=target.value,
            )
        )

    level = container.split_level + 1
    first = LayoutContainer(
        id=id_factory(),
        kind=container.kind,
        zones=tuple(Zone(id=id_factory(), blocks=zone.blocks) for zone in container.zones),
        split_level=level,
    )
    second = new_container(container.kind, split_level=level, id_factory=id_factory)
    fresh = _container_ids(first) + _container_ids(second)
    if len(set(fresh)) != len(fresh):
        raise TreeIntegrityError("id factory returned duplicate ids while splitting")
    _ensure_fresh_ids(document, fresh)

    parent = replace(
        container,
        zones=tuple(replace(zone, blocks=()) for zone in container.zones),
        children=(first, second),
    )
    return _with_container(document, parent), (first.id, second.id)


def merge_containers(document: Document, container_id: str, sibling_id: str) -> tuple[Document, str]:
    """Collapse two leaf children back into their split parent.

    Blocks are concatenated zone by zone in child order, whatever the argument
    order, which makes merge the inverse of :func:`split_container`.
    """

    if container_id == sibling_id:
        raise MutationRejected(MutationError.invariant("Cannot merge a container with itself", container_id=container_id))
    for candidate in (container_id, sibling_id):
        if find_container(document, candidate) is None:
            raise MutationRejected(MutationError.not_found(f"Container {candidate} not found", container_id=candidate))

    parent = find_parent(document, container_id)
    other_parent = find_parent(document, sibling_id)
    if parent is None or other_parent is None or parent.id != other_parent.id:
        raise MutationRejected(
            MutationError.invariant(
                "Containers are not siblings of the same split parent",
                container_id=container_id,
                sibling_id=sibling_id,
            )
        )
    first, second = parent.children
    if not (first.is_leaf and second.is_leaf):
        raise MutationRejected(
            MutationError.invariant("Only leaf containers can be merged", parent_id=parent.id)
        )

    zones = tuple(
        replace(zone, blocks=first.zones[index].blocks + second.zones[index].blocks)
        for index, zone in enumerate(parent.zones)
    )
    merged = replace(parent, zones=zones, children=())
    return _with_container(document, merged), parent.id


# ---------------------------------------------------------------------------
# Gap drops (new container + block in one transition)
# ---------------------------------------------------------------------------


def move_block_to_new_container(
    document: Document,
    block_id: str,
    source: ZoneAddress,
    at_index: int | None,
    kind: ContainerKind | str = ContainerKind.SINGLE_COLUMN,
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[Document, str]:
    """Create a container at ``at_index`` and move ``block_id`` into its first zone."""

    source_zone = _require_zone(document, source)
    index = source_zone.index_of(block_id)
    if index is None:
        raise MutationRejected(
            MutationError.not_found(f"Block {block_id} not found in zone {source.zone_id}", block_id=block_id)
        )
    block = source_zone.blocks[index]
    stripped = _with_zones(document, {source_zone.id: source_zone.blocks[:index] + source_zone.blocks[index + 1 :]})
    return _insert_container_with_block(stripped, block, at_index, kind, id_factory)


def add_block_in_new_container(
    document: Document,
    payload: BlockPayload,
    at_index: int | None,
    kind: ContainerKind | str = ContainerKind.SINGLE_COLUMN,
    *,
    id_factory: IdFactory = generate_id,
) -> tuple[Document, str, str]:
    block = ContentBlock(id=id_factory(), payload=payload)
    _ensure_fresh_ids(document, (block.id,))
    updated, container_id = _insert_container_with_block(document, block, at_index, kind, id_factory)
    return updated, container_id, block.id


# ---------------------------------------------------------------------------
# Document-level edits
# ---------------------------------------------------------------------------


def set_title(document: Document, title: str) -> Document:
    cleaned = (title or "").strip() or "Untitled Board"
    return replace(document, metadata=replace(document.metadata, title=cleaned))


def prune_empty_containers(document: Document) -> tuple[Document, tuple[str, ...]]:
    """Drop top-level containers that hold no blocks anywhere."""

    kept = tuple(container for container in document.containers if not is_container_empty(container))
    removed = tuple(container.id for container in document.containers if is_container_empty(container))
    if not removed:
        return document, ()
    return replace(document, containers=kept), removed


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _clamp(index: int | None, upper: int) -> int:
    if index is None:
        return upper
    return max(0, min(int(index), upper))


def _require_zone(document: Document, address: ZoneAddress) -> Zone:
    container = find_container(document, address.container_id)
    if container is None:
        raise MutationRejected(
            MutationError.not_found(f"Container {address.container_id} not found", container_id=address.container_id)
        )
    zone = find_zone(document, address.container_id, address.zone_id)
    if zone is None:
        raise MutationRejected(
            MutationError.not_found(
                f"Zone {address.zone_id} not found in container {address.container_id}",
                container_id=address.container_id,
                zone_id=address.zone_id,
            )
        )
    return zone


def _require_leaf_zone(document: Document, address: ZoneAddress) -> Zone:
    zone = _require_zone(document, address)
    container = find_container(document, address.container_id)
    if container is not None and container.is_split:
        raise MutationRejected(
            MutationError.invariant(
                "Split containers hold no blocks; target one of their children",
                container_id=address.container_id,
            )
        )
    return zone


def _container_ids(container: LayoutContainer) -> tuple[str, ...]:
    ids = [container.id]
    ids.extend(zone.id for zone in container.zones)
    for child in container.children:
        ids.extend(_container_ids(child))
    return tuple(ids)


def _existing_ids(document: Document) -> set[str]:
    ids: set[str] = set()
    for container in iter_containers(document):
        ids.add(container.id)
        for zone in container.zones:
            ids.add(zone.id)
            ids.update(block.id for block in zone.blocks)
    return ids


def _ensure_fresh_ids(document: Document, candidates: Iterable[str]) -> None:
    collisions = _existing_ids(document).intersection(candidates)
    if collisions:
        raise TreeIntegrityError(f"id factory produced ids already in use: {sorted(collisions)}")


def _map_containers(
    containers: tuple[LayoutContainer, ...],
    update: Callable[[LayoutContainer], LayoutContainer],
) -> tuple[LayoutContainer, ...]:
    result = []
    for container in containers:
        if container.children:
            children = _map_containers(container.children, update)
            if children != container.children:
                container = replace(container, children=children)
        result.append(update(container))
    return tuple(result)


def _with_zones(document: Document, updates: Mapping[str, tuple[ContentBlock, ...]]) -> Document:
    """Rebuild the tree with new block tuples for the zones named in ``updates``."""

    def _update(container: LayoutContainer) -> LayoutContainer:
        if not any(zone.id in updates for zone in container.zones):
            return container
        zones = tuple(
            replace(zone, blocks=updates[zone.id]) if zone.id in updates else zone for zone in container.zones
        )
        return replace(container, zones=zones)

    return replace(document, containers=_map_containers(document.containers, _update))


def _with_container(document: Document, replacement: LayoutContainer) -> Document:
    def _update(container: LayoutContainer) -> LayoutContainer:
        return replacement if container.id == replacement.id else container

    return replace(document, containers=_map_containers(document.containers, _update))


def _insert_container_with_block(
    document: Document,
    block: ContentBlock,
    at_index: int | None,
    kind: ContainerKind | str,
    id_factory: IdFactory,
) -> tuple[Document, str]:
    try:
        container_kind = ContainerKind(kind)
    except ValueError:
        raise MutationRejected(MutationError.invariant(f"Unknown container kind {kind!r}", kind=str(kind))) from None
    container = new_container(container_kind, id_factory=id_factory)
    _ensure_fresh_ids(document, _container_ids(container))
    first_zone = replace(container.zones[0], blocks=(block,))
    container = replace(container, zones=(first_zone,) + container.zones[1:])
    insert_at = _clamp(at_index, len(document.containers))
    containers = document.containers[:insert_at] + (container,) + document.containers[insert_at:]
    return replace(document, containers=containers), container.id
