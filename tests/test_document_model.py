"""Tests for the board document model."""

from __future__ import annotations

from dataclasses import FrozenInstanceError, replace

import pytest

from pagecraft.editor.document_model import (
    BlockKind,
    ContainerKind,
    ContentBlock,
    Document,
    DocumentPayload,
    HeadingPayload,
    LayoutContainer,
    ParagraphPayload,
    Viewport,
    Zone,
    new_container,
    new_document,
    payload_from_mapping,
    payload_to_mapping,
    validate_document,
)
from tests.helpers import SequentialIds, build_board, paragraph


@pytest.mark.parametrize(
    ("kind", "count"),
    [
        (ContainerKind.SINGLE_COLUMN, 1),
        (ContainerKind.TWO_COLUMNS, 2),
        (ContainerKind.THREE_COLUMNS, 2),
        (ContainerKind.ASYMMETRIC_1_2, 2),
        (ContainerKind.ASYMMETRIC_2_1, 2),
        (ContainerKind.GRID_2X2, 4),
    ],
)
def test_new_container_prepopulates_zones(kind: ContainerKind, count: int) -> None:
    container = new_container(kind, id_factory=SequentialIds())

    assert len(container.zones) == count
    assert all(zone.blocks == () for zone in container.zones)
    assert container.split_level == 0
    assert container.is_leaf


def test_new_container_accepts_kind_string() -> None:
    container = new_container("layout-1-2", id_factory=SequentialIds())
    assert container.kind is ContainerKind.ASYMMETRIC_1_2


def test_new_container_ids_are_unique() -> None:
    container = new_container(ContainerKind.GRID_2X2)
    ids = {container.id, *(zone.id for zone in container.zones)}
    assert len(ids) == 5


def test_viewport_split_limits() -> None:
    assert Viewport.MOBILE.max_split_level == 0
    assert Viewport.TABLET.max_split_level == 1
    assert Viewport.DESKTOP.max_split_level == 2


def test_heading_level_is_validated() -> None:
    assert HeadingPayload(text="x", level=6).level == 6
    with pytest.raises(ValueError):
        HeadingPayload(text="x", level=7)
    with pytest.raises(ValueError):
        HeadingPayload(text="x", level=0)


def test_block_kind_follows_payload() -> None:
    block = ContentBlock(id="b", payload=DocumentPayload(src="a.pdf", file_name="a.pdf"))
    assert block.kind is BlockKind.DOCUMENT


def test_payload_from_mapping_builds_variant() -> None:
    payload = payload_from_mapping("heading", {"text": "Hi", "level": 3})
    assert payload == HeadingPayload(text="Hi", level=3)
    assert payload_to_mapping(payload) == {"text": "Hi", "level": 3}


def test_payload_from_mapping_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError, match="alt"):
        payload_from_mapping(BlockKind.PARAGRAPH, {"text": "x", "alt": "nope"})


def test_payload_from_mapping_rejects_unknown_kind() -> None:
    with pytest.raises(ValueError):
        payload_from_mapping("carousel", {})


def test_nodes_are_immutable() -> None:
    zone = Zone(id="z", blocks=(paragraph("b"),))
    with pytest.raises(FrozenInstanceError):
        zone.blocks = ()  # type: ignore[misc]


def test_touch_bumps_version_and_timestamp() -> None:
    document = new_document("Board")
    touched = document.touch()

    assert touched.version_id == document.version_id + 1
    assert touched.metadata.updated_at >= document.metadata.updated_at
    assert touched.metadata.created_at == document.metadata.created_at
    assert touched.version_signature() == f"{document.id}:{touched.version_id}"


def test_zone_lookup_helpers() -> None:
    zone = Zone(id="z", blocks=(paragraph("a"), paragraph("b")))
    assert zone.block_ids() == ("a", "b")
    assert zone.index_of("b") == 1
    assert zone.index_of("missing") is None


class TestValidateDocument:
    def test_sample_board_is_valid(self) -> None:
        assert validate_document(build_board()) == []

    def test_duplicate_block_ids_are_reported(self) -> None:
        board = build_board()
        c2 = board.containers[1]
        broken = replace(c2, zones=(Zone(id="z2", blocks=(paragraph("b1"),)),))
        document = replace(board, containers=(board.containers[0], broken))

        assert any("duplicate block id b1" in problem for problem in validate_document(document))

    def test_zone_count_mismatch_is_reported(self) -> None:
        container = LayoutContainer(id="c", kind=ContainerKind.TWO_COLUMNS, zones=(Zone(id="z"),))
        problems = validate_document(Document(containers=(container,)))
        assert problems == ["container c (two-columns) has 1 zones, expected 2"]

    def test_split_parent_holding_blocks_is_reported(self) -> None:
        child_a = LayoutContainer(id="a", kind=ContainerKind.SINGLE_COLUMN, zones=(Zone(id="za"),), split_level=1)
        child_b = LayoutContainer(id="b", kind=ContainerKind.SINGLE_COLUMN, zones=(Zone(id="zb"),), split_level=1)
        parent = LayoutContainer(
            id="p",
            kind=ContainerKind.SINGLE_COLUMN,
            zones=(Zone(id="zp", blocks=(paragraph("x"),)),),
            children=(child_a, child_b),
        )
        problems = validate_document(Document(containers=(parent,)))
        assert problems == ["split container p still holds blocks"]

    def test_split_children_must_match_kind_and_level(self) -> None:
        child_a = LayoutContainer(id="a", kind=ContainerKind.TWO_COLUMNS, zones=(Zone(id="za1"), Zone(id="za2")), split_level=1)
        child_b = LayoutContainer(id="b", kind=ContainerKind.SINGLE_COLUMN, zones=(Zone(id="zb"),), split_level=2)
        parent = LayoutContainer(
            id="p",
            kind=ContainerKind.SINGLE_COLUMN,
            zones=(Zone(id="zp"),),
            children=(child_a, child_b),
        )
        problems = validate_document(Document(containers=(parent,)))
        assert "split child a kind differs from parent p" in problems
        assert "split child b has split level 2" in problems


def test_new_document_defaults() -> None:
    document = new_document()
    assert document.metadata.title == "Untitled Board"
    assert document.containers == ()
    assert document.version_id == 1
    assert isinstance(ParagraphPayload().text, str)
