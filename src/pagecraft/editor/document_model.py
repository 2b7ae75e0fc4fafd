"""Dataclasses representing the board document tree and its content blocks."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Iterator, Mapping

__all__ = [
    "ContainerKind",
    "BlockKind",
    "Viewport",
    "HeadingPayload",
    "ParagraphPayload",
    "ImagePayload",
    "VideoPayload",
    "AudioPayload",
    "DocumentPayload",
    "GifPayload",
    "BlockPayload",
    "PAYLOAD_TYPES",
    "ContentBlock",
    "Zone",
    "LayoutContainer",
    "BoardMetadata",
    "Document",
    "IdFactory",
    "generate_id",
    "new_zone",
    "new_container",
    "new_document",
    "payload_from_mapping",
    "payload_to_mapping",
    "validate_document",
]

IdFactory = Callable[[], str]


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def generate_id() -> str:
    return uuid.uuid4().hex


class ContainerKind(str, Enum):
    """Closed set of layout container kinds."""

    SINGLE_COLUMN = "single-column"
    TWO_COLUMNS = "two-columns"
    THREE_COLUMNS = "three-columns"
    ASYMMETRIC_1_2 = "layout-1-2"
    ASYMMETRIC_2_1 = "layout-2-1"
    GRID_2X2 = "grid-2x2"

    @property
    def zone_count(self) -> int:
        return _ZONE_COUNTS[self]


_ZONE_COUNTS: dict[ContainerKind, int] = {
    ContainerKind.SINGLE_COLUMN: 1,
    ContainerKind.TWO_COLUMNS: 2,
    ContainerKind.THREE_COLUMNS: 2,
    ContainerKind.ASYMMETRIC_1_2: 2,
    ContainerKind.ASYMMETRIC_2_1: 2,
    ContainerKind.GRID_2X2: 4,
}


class BlockKind(str, Enum):
    """Closed set of content block kinds."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    GIF = "gif"


class Viewport(str, Enum):
    """Editor viewport; bounds how deep containers may be split."""

    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"

    @property
    def max_split_level(self) -> int:
        return _MAX_SPLIT_LEVELS[self]


_MAX_SPLIT_LEVELS: dict[Viewport, int] = {
    Viewport.MOBILE: 0,
    Viewport.TABLET: 1,
    Viewport.DESKTOP: 2,
}


# ---------------------------------------------------------------------------
# Block payloads (one variant per block kind)
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class HeadingPayload:
    kind: ClassVar[BlockKind] = BlockKind.HEADING

    text: str = ""
    level: int = 1

    def __post_init__(self) -> None:
        if not 1 <= int(self.level) <= 6:
            raise ValueError(f"Heading level must be between 1 and 6, got {self.level!r}")


@dataclass(slots=True, frozen=True)
class ParagraphPayload:
    kind: ClassVar[BlockKind] = BlockKind.PARAGRAPH

    text: str = ""


@dataclass(slots=True, frozen=True)
class ImagePayload:
    kind: ClassVar[BlockKind] = BlockKind.IMAGE

    src: str = ""
    alt_text: str = ""
    preview_url: str | None = None


@dataclass(slots=True, frozen=True)
class VideoPayload:
    kind: ClassVar[BlockKind] = BlockKind.VIDEO

    src: str = ""
    thumbnail_ref: str | None = None
    preview_url: str | None = None


@dataclass(slots=True, frozen=True)
class AudioPayload:
    kind: ClassVar[BlockKind] = BlockKind.AUDIO

    src: str = ""
    title: str = ""


@dataclass(slots=True, frozen=True)
class DocumentPayload:
    kind: ClassVar[BlockKind] = BlockKind.DOCUMENT

    src: str = ""
    file_name: str = ""
    thumbnail_url: str | None = None
    preview_url: str | None = None


@dataclass(slots=True, frozen=True)
class GifPayload:
    kind: ClassVar[BlockKind] = BlockKind.GIF

    src: str = ""
    title: str = ""


BlockPayload = (
    HeadingPayload
    | ParagraphPayload
    | ImagePayload
    | VideoPayload
    | AudioPayload
    | DocumentPayload
    | GifPayload
)

PAYLOAD_TYPES: dict[BlockKind, type] = {
    BlockKind.HEADING: HeadingPayload,
    BlockKind.PARAGRAPH: ParagraphPayload,
    BlockKind.IMAGE: ImagePayload,
    BlockKind.VIDEO: VideoPayload,
    BlockKind.AUDIO: AudioPayload,
    BlockKind.DOCUMENT: DocumentPayload,
    BlockKind.GIF: GifPayload,
}


def payload_from_mapping(kind: BlockKind | str, data: Mapping[str, Any] | None = None) -> BlockPayload:
    """Build the payload variant for ``kind`` from plain data.

    Unknown keys raise ``ValueError`` instead of being dropped silently.
    """

    block_kind = BlockKind(kind)
    payload_type = PAYLOAD_TYPES[block_kind]
    values = dict(data or {})
    allowed = {item.name for item in fields(payload_type)}
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ValueError(f"Unknown {block_kind.value} payload field(s): {', '.join(unknown)}")
    return payload_type(**values)


def payload_to_mapping(payload: BlockPayload) -> dict[str, Any]:
    return {item.name: getattr(payload, item.name) for item in fields(payload)}


# ---------------------------------------------------------------------------
# Tree nodes
# ---------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ContentBlock:
    """Leaf unit of the board; owned by exactly one zone."""

    id: str
    payload: BlockPayload

    @property
    def kind(self) -> BlockKind:
        return self.payload.kind


@dataclass(slots=True, frozen=True)
class Zone:
    """Ordered slot of content blocks inside a layout container."""

    id: str
    blocks: tuple[ContentBlock, ...] = ()

    def block_ids(self) -> tuple[str, ...]:
        return tuple(block.id for block in self.blocks)

    def index_of(self, block_id: str) -> int | None:
        for index, block in enumerate(self.blocks):
            if block.id == block_id:
                return index
        return None


@dataclass(slots=True, frozen=True)
class LayoutContainer:
    """Layout block on the canvas.

    A split container keeps its (empty) zones and owns exactly two children of
    the same kind one ``split_level`` deeper; content lives in the children.
    """

    id: str
    kind: ContainerKind
    zones: tuple[Zone, ...]
    split_level: int = 0
    children: tuple["LayoutContainer", ...] = ()

    @property
    def is_split(self) -> bool:
        return bool(self.children)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def zone_index(self, zone_id: str) -> int | None:
        for index, zone in enumerate(self.zones):
            if zone.id == zone_id:
                return index
        return None


@dataclass(slots=True, frozen=True)
class BoardMetadata:
    """Document-level metadata persisted with every snapshot."""

    title: str = "Untitled Board"
    description: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True, frozen=True)
class Document:
    """Root of the board: an ordered sequence of layout containers."""

    id: str = field(default_factory=generate_id)
    containers: tuple[LayoutContainer, ...] = ()
    metadata: BoardMetadata = field(default_factory=BoardMetadata)
    version_id: int = 1

    def touch(self) -> "Document":
        """Return a copy with a bumped version and fresh ``updated_at``."""

        return replace(
            self,
            version_id=self.version_id + 1,
            metadata=replace(self.metadata, updated_at=_utcnow()),
        )

    def version_signature(self) -> str:
        return f"{self.id}:{self.version_id}"


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def new_zone(*, id_factory: IdFactory = generate_id) -> Zone:
    return Zone(id=id_factory())


def new_container(
    kind: ContainerKind | str,
    *,
    split_level: int = 0,
    id_factory: IdFactory = generate_id,
) -> LayoutContainer:
    """Create a container with its zones pre-populated empty."""

    container_kind = ContainerKind(kind)
    zones = tuple(new_zone(id_factory=id_factory) for _ in range(container_kind.zone_count))
    return LayoutContainer(
        id=id_factory(),
        kind=container_kind,
        zones=zones,
        split_level=split_level,
    )


def new_document(title: str = "Untitled Board", *, description: str = "") -> Document:
    return Document(metadata=BoardMetadata(title=title, description=description))


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


def _walk(containers: tuple[LayoutContainer, ...]) -> Iterator[LayoutContainer]:
    for container in containers:
        yield container
        yield from _walk(container.children)


def validate_document(document: Document) -> list[str]:
    """Return a description of every violated structural invariant."""

    problems: list[str] = []
    container_ids: set[str] = set()
    zone_ids: set[str] = set()
    block_ids: set[str] = set()

    for container in _walk(document.containers):
        if container.id in container_ids:
            problems.append(f"duplicate container id {container.id}")
        container_ids.add(container.id)

        expected = container.kind.zone_count
        if len(container.zones) != expected:
            problems.append(
                f"container {container.id} ({container.kind.value}) has {len(container.zones)} zones, expected {expected}"
            )

        if container.children:
            if len(container.children) != 2:
                problems.append(f"split container {container.id} has {len(container.children)} children, expected 2")
            for child in container.children:
                if child.kind is not container.kind:
                    problems.append(f"split child {child.id} kind differs from parent {container.id}")
                if child.split_level != container.split_level + 1:
                    problems.append(f"split child {child.id} has split level {child.split_level}")
            if any(zone.blocks for zone in container.zones):
                problems.append(f"split container {container.id} still holds blocks")

        for zone in container.zones:
            if zone.id in zone_ids:
                problems.append(f"duplicate zone id {zone.id}")
            zone_ids.add(zone.id)
            for block in zone.blocks:
                if block.id in block_ids:
                    problems.append(f"duplicate block id {block.id}")
                block_ids.add(block.id)

    return problems
