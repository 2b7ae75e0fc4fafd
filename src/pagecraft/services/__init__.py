"""Service layer helpers (settings, autosave, snapshot storage)."""

from .autosave import AutosaveBridge
from .settings import EditorSettings, SettingsStore
from .snapshot_store import JsonSnapshotStore

__all__ = ["AutosaveBridge", "EditorSettings", "JsonSnapshotStore", "SettingsStore"]
