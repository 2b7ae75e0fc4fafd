"""Tests for the drag-and-drop coordinator."""

from __future__ import annotations

import logging
from typing import Callable
from unittest.mock import MagicMock

import pytest

from pagecraft.canvas.domain.board_store import BoardStore
from pagecraft.canvas.domain.drag_coordinator import (
    CanvasDropTarget,
    DragContext,
    DragCoordinator,
    DragState,
    DropClaim,
    DropStatus,
    GapDropTarget,
    MergeAffordance,
    ZoneDropTarget,
)
from pagecraft.canvas.events import DragEnded, DragStarted, DragTargetChanged, EventBus
from pagecraft.editor.document_model import ContainerKind, ParagraphPayload, new_document
from pagecraft.editor.geometry import (
    BlockGeometry,
    ContainerGeometry,
    HoverFrame,
    Point,
    Rect,
    ZoneGeometry,
)
from pagecraft.editor.mutations import ZoneAddress
from tests.helpers import EventRecorder, SequentialIds, zone_ids

StoreFactory = Callable[..., BoardStore]


def _blocks(left: float, top: float, *block_ids: str) -> tuple[BlockGeometry, ...]:
    return tuple(
        BlockGeometry(block_id, Rect(left, top + 30 * index, 200, 30)) for index, block_id in enumerate(block_ids)
    )


def board_frame() -> HoverFrame:
    """Rendered geometry for the sample board.

    c1 spans y 0-100 (zones side by side), c2 140-240, c3 280-380.
    """

    c1 = ContainerGeometry(
        "c1",
        Rect(0, 0, 400, 100),
        zones=(
            ZoneGeometry("z1a", Rect(0, 0, 200, 100), _blocks(0, 0, "b1", "b2", "b3")),
            ZoneGeometry("z1b", Rect(200, 0, 200, 100), _blocks(200, 0, "b4")),
        ),
    )
    c2 = ContainerGeometry(
        "c2", Rect(0, 140, 400, 100), zones=(ZoneGeometry("z2", Rect(0, 140, 400, 100), _blocks(0, 140, "b5")),)
    )
    c3 = ContainerGeometry("c3", Rect(0, 280, 400, 100), zones=(ZoneGeometry("z3", Rect(0, 280, 400, 100)),))
    return HoverFrame(containers=(c1, c2, c3))


@pytest.fixture
def store(make_store: StoreFactory) -> BoardStore:
    return make_store()


@pytest.fixture
def drag(store: BoardStore, bus: EventBus) -> DragCoordinator:
    return DragCoordinator(store, bus, id_factory=SequentialIds("drag"))


class TestBeginDrag:
    def test_starts_session_from_handle(self, drag: DragCoordinator, bus: EventBus) -> None:
        recorder = EventRecorder(bus, DragStarted)

        session = drag.begin_drag("b2", ZoneAddress("c1", "z1a"))

        assert session is not None
        assert session.session_id == "drag-1"
        assert (session.origin_container_id, session.origin_zone_id, session.origin_index) == ("c1", "z1a", 1)
        assert drag.state is DragState.DRAGGING
        assert recorder.events[0].session_id == "drag-1"

    def test_pointer_down_outside_handle_is_ignored(self, drag: DragCoordinator) -> None:
        assert drag.begin_drag("b2", ZoneAddress("c1", "z1a"), from_handle=False) is None
        assert drag.state is DragState.IDLE

    def test_wrong_origin_is_ignored(self, drag: DragCoordinator) -> None:
        assert drag.begin_drag("b2", ZoneAddress("c2", "z2")) is None
        assert drag.begin_drag("nope", ZoneAddress("c1", "z1a")) is None

    def test_second_drag_is_refused(self, drag: DragCoordinator, caplog: pytest.LogCaptureFixture) -> None:
        first = drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        with caplog.at_level(logging.WARNING):
            second = drag.begin_palette_drag(ParagraphPayload("x"))

        assert second is None
        assert drag.session is first
        assert "drag already active" in caplog.text

    def test_unknown_layout_kind_is_ignored(self, drag: DragCoordinator, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert drag.begin_layout_drag("hexagon") is None

        assert drag.state is DragState.IDLE
        assert "unknown container kind" in caplog.text

    def test_container_drag_requires_top_level(self, drag: DragCoordinator, store: BoardStore) -> None:
        first_id, _ = store.split_container("c2").value
        assert drag.begin_container_drag(first_id) is None
        assert drag.begin_container_drag("c2").origin_index == 1


class TestHover:
    def test_repeated_hover_notifies_once(self, drag: DragCoordinator, bus: EventBus) -> None:
        recorder = EventRecorder(bus, DragTargetChanged)
        on_target_changed = MagicMock()
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"), context=DragContext(on_target_changed=on_target_changed))
        frame = board_frame()

        targets = {drag.update_drag_hover(Point(50, 70), frame) for _ in range(4)}

        assert targets == {ZoneDropTarget("c1", "z1a", 2)}
        on_target_changed.assert_called_once_with(ZoneDropTarget("c1", "z1a", 2))
        assert len(recorder.events) == 1

    def test_leaving_every_target_disarms(self, drag: DragCoordinator) -> None:
        on_target_changed = MagicMock()
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"), context=DragContext(on_target_changed=on_target_changed))
        frame = board_frame()

        drag.update_drag_hover(Point(50, 70), frame)
        assert drag.update_drag_hover(Point(900, 900), frame) is None
        assert on_target_changed.call_args_list[-1].args == (None,)

    def test_gap_between_non_empty_containers(self, drag: DragCoordinator) -> None:
        drag.begin_drag("b3", ZoneAddress("c1", "z1a"))
        assert drag.update_drag_hover(Point(50, 120), board_frame()) == GapDropTarget(1, "c1", "c2")

    def test_gap_next_to_empty_container_is_not_offered(self, drag: DragCoordinator) -> None:
        drag.begin_drag("b3", ZoneAddress("c1", "z1a"))
        assert drag.update_drag_hover(Point(50, 260), board_frame()) is None

    def test_hover_without_session(self, drag: DragCoordinator) -> None:
        assert drag.update_drag_hover(Point(50, 70), board_frame()) is None

    def test_container_drag_uses_canvas_targets(self, drag: DragCoordinator) -> None:
        drag.begin_layout_drag("two-columns")
        frame = board_frame()
        assert drag.update_drag_hover(Point(10, 10), frame) == CanvasDropTarget(0)
        assert drag.update_drag_hover(Point(10, 350), frame) == CanvasDropTarget(3)
        assert drag.update_drag_hover(Point(10, 80), frame) is None


class TestBlockDrops:
    def test_same_zone_drop_adjusts_index(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 70), board_frame())

        outcome = drag.commit_drag()

        assert outcome.status is DropStatus.DROPPED
        assert outcome.committed
        assert zone_ids(store.document, "c1", "z1a") == ("b2", "b1", "b3")
        assert drag.state is DragState.IDLE
        assert drag.session is None

    def test_drop_in_place_is_cancelled(self, drag: DragCoordinator, store: BoardStore) -> None:
        version = store.document.version_id
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 40), board_frame())  # hover index 1, i.e. just below itself

        outcome = drag.commit_drag()

        assert outcome.status is DropStatus.CANCELLED
        assert store.document.version_id == version

    def test_cross_container_drop(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b4", ZoneAddress("c1", "z1b"))
        drag.update_drag_hover(Point(50, 160), board_frame())

        outcome = drag.commit_drag()

        assert outcome.result.value.container_id == "c2"
        assert zone_ids(store.document, "c2", "z2") == ("b5", "b4")
        assert zone_ids(store.document, "c1", "z1b") == ()

    def test_gap_drop_creates_container(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b3", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 120), board_frame())

        outcome = drag.commit_drag()

        container_id = outcome.result.value
        assert store.top_level_index(container_id) == 1
        created = store.find_container(container_id)
        assert created.kind is ContainerKind.SINGLE_COLUMN
        assert created.zones[0].block_ids() == ("b3",)

    def test_palette_drop_into_zone(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_palette_drag(ParagraphPayload("from palette"))
        drag.update_drag_hover(Point(50, 300), board_frame())

        outcome = drag.commit_drag()

        assert outcome.committed
        assert zone_ids(store.document, "c3", "z3") == (outcome.result.value,)

    def test_palette_gap_drop(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_palette_drag(ParagraphPayload("between"))
        drag.update_drag_hover(Point(50, 120), board_frame())

        container_id, block_id = drag.commit_drag().result.value

        assert store.top_level_index(container_id) == 1
        assert store.locate_block(block_id).container_id == container_id

    def test_drop_without_target_cancels(self, drag: DragCoordinator) -> None:
        on_finished = MagicMock()
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"), context=DragContext(on_finished=on_finished))

        outcome = drag.commit_drag()

        assert outcome.status is DropStatus.CANCELLED
        on_finished.assert_called_once_with(outcome)


class TestClaims:
    def test_only_innermost_handler_commits(self, drag: DragCoordinator, store: BoardStore, bus: EventBus) -> None:
        recorder = EventRecorder(bus, DragEnded)
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 70), board_frame())
        claim = DropClaim()

        inner = drag.commit_drag(claim, handler_id="zone:z1a")
        outer = drag.commit_drag(claim, handler_id="container:c1")

        assert inner.status is DropStatus.DROPPED
        assert outer.status is DropStatus.IGNORED
        assert claim.claimed_by == "zone:z1a"
        assert len(recorder.events) == 1
        assert store.document.version_id == 2

    def test_claim_can_only_be_taken_once(self) -> None:
        claim = DropClaim()
        assert claim.claim("a")
        assert not claim.claim("b")
        assert claim.claimed_by == "a"


class TestStaleTargets:
    def test_target_container_deleted_mid_drag(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 300), board_frame())
        store.delete_container("c3")

        outcome = drag.commit_drag()

        assert outcome.status is DropStatus.STALE
        assert outcome.result is None
        assert zone_ids(store.document, "c1", "z1a") == ("b1", "b2", "b3")

    def test_target_split_mid_drag(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 200), board_frame())
        store.split_container("c2")

        assert drag.commit_drag().status is DropStatus.STALE

    def test_dragged_block_deleted_mid_drag(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b4", ZoneAddress("c1", "z1b"))
        drag.update_drag_hover(Point(50, 300), board_frame())
        store.delete_block("b4", "c1", "z1b")

        assert drag.commit_drag().status is DropStatus.STALE


    def test_gap_neighbour_deleted_mid_drag(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b5", ZoneAddress("c2", "z2"))
        drag.update_drag_hover(Point(50, 120), board_frame())
        store.delete_container("c1")

        outcome = drag.commit_drag()

        assert outcome.status is DropStatus.STALE
        assert [container.id for container in store.document.containers] == ["c2", "c3"]
        assert zone_ids(store.document, "c2", "z2") == ("b5",)

    def test_gap_neighbours_separated_mid_drag(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b3", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 120), board_frame())
        store.add_container(ContainerKind.SINGLE_COLUMN, 1)

        assert drag.commit_drag().status is DropStatus.STALE
        assert zone_ids(store.document, "c1", "z1a") == ("b1", "b2", "b3")

    def test_gap_follows_neighbours_that_shifted(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_drag("b3", ZoneAddress("c1", "z1a"))
        drag.update_drag_hover(Point(50, 120), board_frame())
        store.add_container(ContainerKind.SINGLE_COLUMN, 0)

        outcome = drag.commit_drag()

        assert outcome.committed
        assert outcome.target == GapDropTarget(2, "c1", "c2")
        assert store.top_level_index(outcome.result.value) == 2
        assert store.top_level_index("c2") == 3


class TestCancel:
    def test_cancel_resets_to_idle(self, drag: DragCoordinator, bus: EventBus) -> None:
        recorder = EventRecorder(bus, DragEnded)
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))

        outcome = drag.cancel_drag()

        assert outcome.status is DropStatus.CANCELLED
        assert drag.state is DragState.IDLE
        assert drag.last_outcome is outcome
        assert recorder.events[0].outcome is outcome
        assert drag.commit_drag().status is DropStatus.IGNORED
        assert drag.cancel_drag().status is DropStatus.IGNORED

    def test_new_drag_after_finish(self, drag: DragCoordinator) -> None:
        drag.begin_drag("b1", ZoneAddress("c1", "z1a"))
        drag.cancel_drag()
        assert drag.begin_drag("b2", ZoneAddress("c1", "z1a")).session_id == "drag-2"


class TestContainerDrops:
    def test_move_container_to_end(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_container_drag("c1")
        drag.update_drag_hover(Point(10, 350), board_frame())

        outcome = drag.commit_drag()

        assert outcome.result.value == 2
        assert [container.id for container in store.document.containers] == ["c2", "c3", "c1"]

    def test_container_dropped_in_place(self, drag: DragCoordinator, store: BoardStore) -> None:
        drag.begin_container_drag("c1")
        drag.update_drag_hover(Point(10, 10), board_frame())
        assert drag.commit_drag().status is DropStatus.CANCELLED

    def test_layout_drop_on_empty_board(self, make_store: StoreFactory, bus: EventBus) -> None:
        store = make_store(document=new_document("Blank"))
        drag = DragCoordinator(store, bus)
        frame = HoverFrame(canvas_rect=Rect(0, 0, 600, 400))

        drag.begin_layout_drag(ContainerKind.THREE_COLUMNS)
        assert drag.update_drag_hover(Point(100, 100), frame) == CanvasDropTarget(0)
        outcome = drag.commit_drag()

        assert outcome.committed
        assert len(store.document.containers[0].zones) == 2


class TestMergeAffordance:
    def _split_frame(self, first_id: str, second_id: str) -> HoverFrame:
        children = (
            ContainerGeometry(first_id, Rect(0, 0, 200, 100)),
            ContainerGeometry(second_id, Rect(200, 0, 200, 100)),
        )
        parent = ContainerGeometry("c1", Rect(0, 0, 400, 100), children=children)
        return HoverFrame(containers=(parent,))

    def test_merge_edge_offers_affordance(self, drag: DragCoordinator, store: BoardStore) -> None:
        first_id, second_id = store.split_container("c1").value
        frame = self._split_frame(first_id, second_id)

        affordance = drag.hover_merge(Point(204, 50), frame)

        assert affordance == MergeAffordance("c1", first_id, second_id)
        assert drag.hover_merge(Point(100, 50), frame) is None

        result = drag.commit_merge(affordance)
        assert result.ok
        assert zone_ids(store.document, "c1", "z1a") == ("b1", "b2", "b3")

    def test_no_affordance_without_split(self, drag: DragCoordinator) -> None:
        assert drag.hover_merge(Point(200, 50), board_frame()) is None

    def test_no_affordance_while_dragging(self, drag: DragCoordinator, store: BoardStore) -> None:
        first_id, second_id = store.split_container("c1").value
        frame = self._split_frame(first_id, second_id)
        drag.begin_drag("b5", ZoneAddress("c2", "z2"))

        assert drag.hover_merge(Point(204, 50), frame) is None

        drag.cancel_drag()
        assert drag.hover_merge(Point(204, 50), frame) == MergeAffordance("c1", first_id, second_id)
