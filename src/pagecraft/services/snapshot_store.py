"""File-backed persister for board snapshots."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from ..editor.document_model import Document
from ..editor.serialization import SnapshotFormatError, document_from_snapshot

__all__ = ["JsonSnapshotStore"]

LOGGER = logging.getLogger(__name__)


class JsonSnapshotStore:
    """Persists snapshots as JSON with an atomic temp-file replace."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def save(self, snapshot: Mapping[str, Any]) -> Path:
        body = json.dumps(snapshot, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Snapshot written to %s", self._path)
        return self._path

    def read_payload(self) -> dict[str, Any] | None:
        """Return the raw JSON object, or ``None`` if missing or unreadable."""

        if not self._path.exists():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as exc:
            LOGGER.warning("Snapshot %s is not valid JSON: %s", self._path, exc)
            return None
        if not isinstance(data, Mapping):
            LOGGER.warning("Snapshot %s does not contain an object", self._path)
            return None
        return dict(data)

    def load(self) -> Document | None:
        payload = self.read_payload()
        if payload is None:
            return None
        try:
            return document_from_snapshot(payload)
        except SnapshotFormatError as exc:
            LOGGER.warning("Snapshot %s is invalid: %s", self._path, exc)
            return None
