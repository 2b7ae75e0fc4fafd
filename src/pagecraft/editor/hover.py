"""Deterministic hover computations used while a drag is in flight.

All functions are pure: the same pointer and geometry always produce the same
answer, which keeps repeated ``dragover`` notifications idempotent.
"""

from __future__ import annotations

from typing import Sequence

from .geometry import ContainerGeometry, Point, Rect, ZoneGeometry

__all__ = [
    "hover_index",
    "gap_insertion_index",
    "canvas_insertion_index",
    "merge_edge_hit",
    "innermost_zone_at",
]


def hover_index(pointer_y: float, block_midpoints: Sequence[float]) -> int:
    """Return the insertion index in ``[0, n]`` for a pointer over a zone.

    The first block whose vertical midpoint lies below the pointer receives the
    insertion; past every midpoint the block is appended.
    """

    for index, midpoint in enumerate(block_midpoints):
        if pointer_y < midpoint:
            return index
    return len(block_midpoints)


def _gap_hit(pointer: Point, upper: Rect, lower: Rect, threshold: float) -> bool:
    midpoint = upper.bottom + (lower.top - upper.bottom) / 2
    if abs(pointer.y - midpoint) >= threshold:
        return False
    left = min(upper.left, lower.left)
    right = max(upper.right, lower.right)
    return left <= pointer.x <= right


def gap_insertion_index(
    pointer: Point,
    containers: Sequence[ContainerGeometry],
    threshold: float,
) -> int | None:
    """Index for a new container when the pointer sits in the band between two containers."""

    for index in range(len(containers) - 1):
        if _gap_hit(pointer, containers[index].rect, containers[index + 1].rect, threshold):
            return index + 1
    return None


def canvas_insertion_index(
    pointer: Point,
    containers: Sequence[ContainerGeometry],
    threshold: float,
    canvas_rect: Rect | None = None,
) -> int | None:
    """Insertion index for a container drag over the canvas, or ``None``."""

    if not containers:
        if canvas_rect is not None and canvas_rect.contains(pointer):
            return 0
        return None
    if pointer.y < containers[0].rect.mid_y:
        return 0
    gap = gap_insertion_index(pointer, containers, threshold)
    if gap is not None:
        return gap
    if pointer.y > containers[-1].rect.mid_y:
        return len(containers)
    return None


def merge_edge_hit(pointer: Point, first: Rect, second: Rect, threshold: float) -> bool:
    """True when the pointer is on the shared vertical edge of two side-by-side rects."""

    edge = first.right
    if abs(pointer.x - edge) > threshold:
        return False
    top = min(first.top, second.top)
    bottom = max(first.bottom, second.bottom)
    return top <= pointer.y <= bottom


def innermost_zone_at(
    pointer: Point,
    containers: Sequence[ContainerGeometry],
) -> tuple[ContainerGeometry, ZoneGeometry] | None:
    """Find the deepest container zone under the pointer.

    Split children are searched before their parent so the innermost target
    wins, mirroring nested drop handlers.
    """

    for container in containers:
        if not container.rect.contains(pointer):
            continue
        if container.children:
            nested = innermost_zone_at(pointer, container.children)
            if nested is not None:
                return nested
            continue
        for zone in container.zones:
            if zone.rect.contains(pointer):
                return container, zone
    return None
