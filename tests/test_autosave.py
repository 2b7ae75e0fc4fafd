"""Tests for the debounced autosave bridge."""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from unittest.mock import MagicMock

import pytest

from pagecraft.canvas.domain.board_store import BoardStore
from pagecraft.canvas.events import EventBus
from pagecraft.editor.document_model import Document
from pagecraft.editor.serialization import document_to_snapshot
from pagecraft.services.autosave import AutosaveBridge
from tests.helpers import SequentialIds, build_board


class RecordingPersister:
    def __init__(self, failures: int = 0) -> None:
        self.saved: list[dict[str, Any]] = []
        self.attempts = 0
        self._failures = failures

    def save(self, snapshot: dict[str, Any]) -> None:
        self.attempts += 1
        if self.attempts <= self._failures:
            raise OSError("disk full")
        self.saved.append(snapshot)


def _versions(persister: RecordingPersister) -> list[int]:
    return [snapshot["document"]["version_id"] for snapshot in persister.saved]


def test_debounce_writes_only_latest_snapshot(board: Document) -> None:
    persister = RecordingPersister()

    async def _run() -> None:
        bridge = AutosaveBridge(persister, debounce_seconds=0.02)
        for version in (2, 3, 4):
            bridge.notify_changed(Document(id=board.id, containers=board.containers, version_id=version))
            await asyncio.sleep(0.005)
        assert persister.saved == []
        await asyncio.sleep(0.08)
        assert bridge.pending is None
        assert bridge.save_count == 1

    asyncio.run(_run())

    assert _versions(persister) == [4]


def test_snapshot_is_taken_at_notification_time(board: Document) -> None:
    bridge = AutosaveBridge(RecordingPersister())
    bridge.notify_changed(board)
    assert bridge.pending == document_to_snapshot(board)


def test_failed_write_is_retried(board: Document, caplog: pytest.LogCaptureFixture) -> None:
    persister = RecordingPersister(failures=1)

    async def _run() -> AutosaveBridge:
        bridge = AutosaveBridge(persister, debounce_seconds=0.01, retry_seconds=0.01)
        bridge.notify_changed(board)
        await asyncio.sleep(0.1)
        return bridge

    with caplog.at_level(logging.WARNING, logger="pagecraft.services.autosave"):
        bridge = asyncio.run(_run())

    assert persister.attempts == 2
    assert bridge.save_count == 1
    assert bridge.last_error is None
    assert "Autosave failed" in caplog.text


def test_without_loop_snapshot_waits_for_flush(board: Document) -> None:
    persister = RecordingPersister()
    bridge = AutosaveBridge(persister)

    bridge.notify_changed(board)
    assert bridge.pending is not None
    assert persister.saved == []

    assert bridge.flush()
    assert bridge.pending is None
    assert bridge.last_saved_at is not None
    assert bridge.flush()
    assert persister.attempts == 1


def test_failed_flush_keeps_snapshot(board: Document) -> None:
    persister = RecordingPersister(failures=1)
    bridge = AutosaveBridge(persister)
    bridge.notify_changed(board)

    assert not bridge.flush()
    assert bridge.pending is not None
    assert isinstance(bridge.last_error, OSError)
    assert bridge.flush()


def test_close_flushes_and_ignores_later_changes(board: Document, caplog: pytest.LogCaptureFixture) -> None:
    persister = RecordingPersister()
    bridge = AutosaveBridge(persister, debounce_seconds=60)
    bridge.notify_changed(board)

    assert bridge.close()
    assert bridge.closed
    assert len(persister.saved) == 1

    with caplog.at_level(logging.WARNING, logger="pagecraft.services.autosave"):
        bridge.notify_changed(board)
    assert bridge.pending is None
    assert "ignoring change" in caplog.text
    assert bridge.close()


def test_close_reports_failed_final_write(board: Document) -> None:
    bridge = AutosaveBridge(RecordingPersister(failures=5))
    bridge.notify_changed(board)
    assert not bridge.close()


def test_close_cancels_pending_timer(board: Document) -> None:
    persister = RecordingPersister()

    async def _run() -> None:
        bridge = AutosaveBridge(persister, debounce_seconds=0.02)
        bridge.notify_changed(board)
        bridge.close()
        await asyncio.sleep(0.06)

    asyncio.run(_run())

    assert len(persister.saved) == 1


def test_disabled_bridge_does_nothing(board: Document) -> None:
    persister = MagicMock()
    bridge = AutosaveBridge(persister, enabled=False)
    bridge.notify_changed(board)
    assert bridge.pending is None
    assert bridge.flush()
    persister.save.assert_not_called()


def test_store_mutations_reach_persister() -> None:
    persister = RecordingPersister()
    bridge = AutosaveBridge(persister)
    store = BoardStore(EventBus(), document=build_board(), change_listener=bridge, id_factory=SequentialIds())

    store.delete_container("c3")
    store.set_title("Saved board")
    store.delete_block("b9", "c1", "z1a")
    bridge.flush()

    assert _versions(persister) == [3]
    assert persister.saved[0]["document"]["metadata"]["title"] == "Saved board"
