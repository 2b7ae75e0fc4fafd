"""Shared test helpers: deterministic ids, event recording and a sample board.

Import from here instead of duplicating these in individual test files::

    from tests.helpers import SequentialIds, build_board
"""

from __future__ import annotations

import itertools
from typing import Any

from pagecraft.canvas.events import Event, EventBus
from pagecraft.editor.document_model import (
    BoardMetadata,
    ContainerKind,
    ContentBlock,
    Document,
    HeadingPayload,
    ImagePayload,
    LayoutContainer,
    ParagraphPayload,
    Zone,
)


class SequentialIds:
    """Deterministic id factory: ``new-1``, ``new-2``..."""

    def __init__(self, prefix: str = "new") -> None:
        self.prefix = prefix
        self._counter = itertools.count(1)

    def __call__(self) -> str:
        return f"{self.prefix}-{next(self._counter)}"


class EventRecorder:
    """Subscribes to every given event type and records deliveries in order."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def types(self) -> list[type]:
        return [type(event) for event in self.events]

    def of(self, event_type: type[Event]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]


def paragraph(block_id: str, text: str | None = None) -> ContentBlock:
    return ContentBlock(id=block_id, payload=ParagraphPayload(text=text or f"text {block_id}"))


def build_board() -> Document:
    """Three top-level containers with a handful of blocks.

    * ``c1`` two-columns: zone ``z1a`` = [b1 heading, b2, b3], zone ``z1b`` = [b4]
    * ``c2`` single-column: zone ``z2`` = [b5 image]
    * ``c3`` single-column: zone ``z3`` = [] (empty container)
    """

    c1 = LayoutContainer(
        id="c1",
        kind=ContainerKind.TWO_COLUMNS,
        zones=(
            Zone(
                id="z1a",
                blocks=(
                    ContentBlock(id="b1", payload=HeadingPayload(text="Welcome", level=2)),
                    paragraph("b2"),
                    paragraph("b3"),
                ),
            ),
            Zone(id="z1b", blocks=(paragraph("b4"),)),
        ),
    )
    c2 = LayoutContainer(
        id="c2",
        kind=ContainerKind.SINGLE_COLUMN,
        zones=(Zone(id="z2", blocks=(ContentBlock(id="b5", payload=ImagePayload(src="cat.png", alt_text="A cat")),)),),
    )
    c3 = LayoutContainer(id="c3", kind=ContainerKind.SINGLE_COLUMN, zones=(Zone(id="z3"),))
    return Document(id="doc-1", containers=(c1, c2, c3), metadata=BoardMetadata(title="Sample"))


def zone_ids(document: Document, container_id: str, zone_id: str) -> tuple[str, ...]:
    from pagecraft.editor.tree_queries import find_zone

    zone = find_zone(document, container_id, zone_id)
    assert zone is not None
    return zone.block_ids()
