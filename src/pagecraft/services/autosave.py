"""Debounced persistence of board snapshots."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from ..editor.document_model import Document
from ..editor.serialization import document_to_snapshot

__all__ = ["AutosaveBridge", "SnapshotPersister"]

LOGGER = logging.getLogger(__name__)


class SnapshotPersister(Protocol):
    def save(self, snapshot: dict[str, Any]) -> object:
        ...


class AutosaveBridge:
    """Change listener that writes the latest document snapshot after a quiet period.

    The snapshot is taken when :meth:`notify_changed` is called, so later
    mutations can never leak into an earlier write. Only the newest snapshot is
    kept; every notification re-arms the debounce timer. Without a running
    event loop the snapshot stays pending until :meth:`flush` or :meth:`close`.
    """

    def __init__(
        self,
        persister: SnapshotPersister,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        debounce_seconds: float = 2.0,
        retry_seconds: float = 3.0,
        enabled: bool = True,
    ) -> None:
        self._persister = persister
        self._loop = loop
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._retry_seconds = max(0.0, retry_seconds)
        self._enabled = enabled
        self._pending: dict[str, Any] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._closed = False
        self.save_count = 0
        self.last_saved_at: datetime | None = None
        self.last_error: Exception | None = None

    @property
    def pending(self) -> dict[str, Any] | None:
        return self._pending

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ------------------------------------------------------------------
    # Change listener
    # ------------------------------------------------------------------

    def notify_changed(self, document: Document) -> None:
        if self._closed:
            LOGGER.warning("Autosave closed; ignoring change to %s v%s", document.id, document.version_id)
            return
        if not self._enabled:
            return
        self._pending = document_to_snapshot(document)
        LOGGER.debug("Autosave: snapshot of %s v%s pending", document.id, document.version_id)
        self._schedule(self._debounce_seconds)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def flush(self) -> bool:
        """Write the pending snapshot now.

        Returns ``True`` when nothing is left pending. On failure the snapshot
        is kept and, unless the bridge is closed, a retry is scheduled.
        """
        self._cancel_timer()
        snapshot = self._pending
        if snapshot is None:
            return True
        try:
            self._persister.save(snapshot)
        except Exception as exc:
            self.last_error = exc
            LOGGER.warning("Autosave failed: %s", exc, exc_info=True)
            if not self._closed:
                self._schedule(self._retry_seconds)
            return False

        if self._pending is snapshot:
            self._pending = None
        self.save_count += 1
        self.last_saved_at = datetime.now(timezone.utc)
        self.last_error = None
        LOGGER.debug("Autosave: snapshot written (%d total)", self.save_count)
        return True

    def close(self) -> bool:
        """Stop the timer and write whatever is pending; later changes are ignored."""
        if self._closed:
            return self._pending is None
        self._closed = True
        self._cancel_timer()
        saved = self.flush()
        if not saved:
            LOGGER.error("Autosave: final snapshot could not be written on close")
        return saved

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _schedule(self, delay: float) -> None:
        loop = self._resolve_loop()
        if loop is None:
            LOGGER.debug("Autosave: no event loop; snapshot stays pending until flush()")
            return
        self._cancel_timer()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self.flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _resolve_loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None and not self._loop.is_closed():
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None
