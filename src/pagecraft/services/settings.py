"""Editor settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..editor.document_model import Viewport
from ..editor.geometry import HoverThresholds

__all__ = ["EditorSettings", "SettingsStore"]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".pagecraft"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECRAFT_VIEWPORT": "default_viewport",
    "PAGECRAFT_SNAPSHOT_PATH": "snapshot_path",
    "PAGECRAFT_LOG_DIR": "log_dir",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECRAFT_AUTOSAVE_ENABLED": "autosave_enabled",
    "PAGECRAFT_DEBUG_LOGGING": "debug_logging",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "PAGECRAFT_AUTOSAVE_DEBOUNCE": "autosave_debounce_seconds",
    "PAGECRAFT_AUTOSAVE_RETRY": "autosave_retry_seconds",
    "PAGECRAFT_GAP_THRESHOLD": "gap_threshold_px",
    "PAGECRAFT_MERGE_THRESHOLD": "merge_threshold_px",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class EditorSettings:
    """User-configurable editor behaviour.

    Attributes:
        autosave_enabled: Whether edits are persisted automatically.
        autosave_debounce_seconds: Quiet period before a pending snapshot is written.
        autosave_retry_seconds: Delay before retrying a failed write.
        gap_threshold_px: Half-height of the band between containers that arms a gap drop.
        merge_threshold_px: Half-width of the band around a split edge that offers a merge.
        default_viewport: Viewport used when the editor starts.
        snapshot_path: File the autosave bridge writes to (``None`` uses the settings dir).
        debug_logging: Enable DEBUG level logging.
        log_dir: Directory for the rotating log file.
    """

    autosave_enabled: bool = True
    autosave_debounce_seconds: float = 2.0
    autosave_retry_seconds: float = 3.0
    gap_threshold_px: float = 20.0
    merge_threshold_px: float = 12.0
    default_viewport: str = Viewport.DESKTOP.value
    snapshot_path: str | None = None
    debug_logging: bool = False
    log_dir: str | None = None

    def hover_thresholds(self) -> HoverThresholds:
        return HoverThresholds(gap_px=self.gap_threshold_px, merge_px=self.merge_threshold_px)

    def viewport(self) -> Viewport:
        try:
            return Viewport(self.default_viewport)
        except ValueError:
            LOGGER.warning("Unknown viewport %r; falling back to desktop", self.default_viewport)
            return Viewport.DESKTOP

    def resolved_snapshot_path(self) -> Path:
        if self.snapshot_path:
            return Path(self.snapshot_path).expanduser()
        return _SETTINGS_DIR / "board.json"


class SettingsStore:
    """Persistence adapter for :class:`EditorSettings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> EditorSettings:
        """Load settings from disk, then apply CLI and environment overrides."""

        payload = self._read_payload()
        settings = EditorSettings()
        if payload:
            try:
                settings = EditorSettings(**_filter_fields(payload))
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = EditorSettings()
            if payload.get("version") != _SETTINGS_VERSION:
                LOGGER.debug("Settings file %s has version %r", self._path, payload.get("version"))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: EditorSettings) -> Path:
        """Persist settings to disk with an atomic replace."""

        data = asdict(settings)
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, Mapping):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        return dict(data)

    def _apply_overrides(
        self,
        settings: EditorSettings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> EditorSettings:
        allowed = {item.name for item in fields(EditorSettings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: EditorSettings) -> EditorSettings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid float", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(EditorSettings)}
    return {key: value for key, value in payload.items() if key in allowed}
