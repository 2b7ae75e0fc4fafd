"""Read-only traversal helpers over a board :class:`Document`.

The tree is shallow (container → zone → block, plus at most two levels of split
children), so every lookup is a direct walk; nothing here mutates or caches.
Parent relationships are answered by traversal rather than stored
back-references.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .document_model import ContentBlock, Document, LayoutContainer, Zone

__all__ = [
    "BlockLocation",
    "find_container",
    "find_zone",
    "find_block",
    "find_parent",
    "locate_block",
    "is_zone_empty",
    "is_container_empty",
    "top_level_index",
    "iter_containers",
    "iter_blocks",
    "block_count",
    "non_empty_containers",
    "split_siblings",
]


@dataclass(slots=True, frozen=True)
class BlockLocation:
    """Where a block currently lives."""

    container_id: str
    zone_id: str
    index: int


def iter_containers(document: Document) -> Iterator[LayoutContainer]:
    """Yield every container depth first, in document order."""

    stack = list(reversed(document.containers))
    while stack:
        container = stack.pop()
        yield container
        stack.extend(reversed(container.children))


def iter_blocks(document: Document) -> Iterator[tuple[LayoutContainer, Zone, ContentBlock]]:
    for container in iter_containers(document):
        for zone in container.zones:
            for block in zone.blocks:
                yield container, zone, block


def block_count(document: Document) -> int:
    return sum(1 for _ in iter_blocks(document))


def find_container(document: Document, container_id: str) -> LayoutContainer | None:
    for container in iter_containers(document):
        if container.id == container_id:
            return container
    return None


def find_zone(document: Document, container_id: str, zone_id: str) -> Zone | None:
    container = find_container(document, container_id)
    if container is None:
        return None
    for zone in container.zones:
        if zone.id == zone_id:
            return zone
    return None


def find_block(document: Document, container_id: str, zone_id: str, block_id: str) -> ContentBlock | None:
    zone = find_zone(document, container_id, zone_id)
    if zone is None:
        return None
    for block in zone.blocks:
        if block.id == block_id:
            return block
    return None


def locate_block(document: Document, block_id: str) -> BlockLocation | None:
    for container in iter_containers(document):
        for zone in container.zones:
            index = zone.index_of(block_id)
            if index is not None:
                return BlockLocation(container.id, zone.id, index)
    return None


def find_parent(document: Document, container_id: str) -> LayoutContainer | None:
    """Return the split container owning ``container_id`` (``None`` for top level)."""

    for container in iter_containers(document):
        if any(child.id == container_id for child in container.children):
            return container
    return None


def top_level_index(document: Document, container_id: str) -> int | None:
    for index, container in enumerate(document.containers):
        if container.id == container_id:
            return index
    return None


def is_zone_empty(zone: Zone) -> bool:
    return not zone.blocks


def is_container_empty(container: LayoutContainer) -> bool:
    """A container is empty when every zone, including split children's, is empty."""

    if not all(is_zone_empty(zone) for zone in container.zones):
        return False
    return all(is_container_empty(child) for child in container.children)


def non_empty_containers(document: Document) -> tuple[LayoutContainer, ...]:
    """Top-level containers holding at least one block (preview filter)."""

    return tuple(container for container in document.containers if not is_container_empty(container))


def split_siblings(document: Document, container_id: str) -> tuple[LayoutContainer, LayoutContainer] | None:
    parent = find_parent(document, container_id)
    if parent is None or len(parent.children) != 2:
        return None
    first, second = parent.children
    return first, second
