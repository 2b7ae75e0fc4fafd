"""Shared pytest fixtures."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

import pytest

from pagecraft.canvas.domain.board_store import BoardStore
from pagecraft.canvas.events import EventBus
from pagecraft.editor.document_model import Document
from pagecraft.utils import logging as logging_utils
from tests.helpers import SequentialIds, build_board


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def board() -> Document:
    return build_board()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def make_store(bus: EventBus, ids: SequentialIds) -> Callable[..., BoardStore]:
    def factory(document: Document | None = None, **kwargs: Any) -> BoardStore:
        kwargs.setdefault("id_factory", ids)
        return BoardStore(bus, document=document if document is not None else build_board(), **kwargs)

    return factory


@pytest.fixture
def restore_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Undo root logger changes made by ``setup_logging`` during a test."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    monkeypatch.setattr(logging_utils, "_LOG_PATH", None)
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.captureWarnings(False)
