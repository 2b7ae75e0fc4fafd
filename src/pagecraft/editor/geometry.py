"""Plain geometry snapshots the canvas hands to hover computations."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "Point",
    "Rect",
    "BlockGeometry",
    "ZoneGeometry",
    "ContainerGeometry",
    "HoverFrame",
    "HoverThresholds",
]


@dataclass(slots=True, frozen=True)
class Point:
    x: float
    y: float


@dataclass(slots=True, frozen=True)
class Rect:
    """Axis-aligned rectangle in canvas coordinates (y grows downwards)."""

    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def mid_y(self) -> float:
        return self.top + self.height / 2

    def contains(self, point: Point) -> bool:
        return self.left <= point.x <= self.right and self.top <= point.y <= self.bottom


@dataclass(slots=True, frozen=True)
class BlockGeometry:
    block_id: str
    rect: Rect


@dataclass(slots=True, frozen=True)
class ZoneGeometry:
    zone_id: str
    rect: Rect
    blocks: tuple[BlockGeometry, ...] = ()

    def midpoints(self) -> tuple[float, ...]:
        return tuple(block.rect.mid_y for block in self.blocks)


@dataclass(slots=True, frozen=True)
class ContainerGeometry:
    """Rendered bounds of a container, its zones and (when split) its children."""

    container_id: str
    rect: Rect
    zones: tuple[ZoneGeometry, ...] = ()
    children: tuple["ContainerGeometry", ...] = ()


@dataclass(slots=True, frozen=True)
class HoverFrame:
    """Everything hover logic needs to know about one rendered frame.

    ``containers`` lists the top-level containers in document order.
    ``canvas_rect`` is the placeholder drop area shown while the board is empty.
    """

    containers: tuple[ContainerGeometry, ...] = ()
    canvas_rect: Rect | None = None


@dataclass(slots=True, frozen=True)
class HoverThresholds:
    """Pixel tolerances for gap and merge-edge detection."""

    gap_px: float = 20.0
    merge_px: float = 12.0

    def __post_init__(self) -> None:
        if self.gap_px < 0 or self.merge_px < 0:
            raise ValueError("Hover thresholds must be non-negative")
