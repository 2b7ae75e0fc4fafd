"""Application bootstrap helpers and the ``pagecraft`` command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .canvas.domain.board_store import BoardStore, SelectionListener
from .canvas.domain.drag_coordinator import DragCoordinator
from .canvas.events import EventBus
from .editor.document_model import (
    ContainerKind,
    ContentBlock,
    Document,
    IdFactory,
    LayoutContainer,
    generate_id,
    new_document,
)
from .editor.serialization import (
    SnapshotFormatError,
    document_from_legacy_project,
    document_from_snapshot,
    document_to_snapshot,
    validate_snapshot,
)
from .editor.tree_queries import block_count, iter_containers, non_empty_containers
from .services.autosave import AutosaveBridge, SnapshotPersister
from .services.settings import EditorSettings, SettingsStore
from .services.snapshot_store import JsonSnapshotStore
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EditorRuntime:
    """Wired editor components returned by :func:`build_editor`."""

    settings: EditorSettings
    bus: EventBus
    store: BoardStore
    drag: DragCoordinator
    autosave: AutosaveBridge

    def close(self) -> bool:
        """Cancel any in-flight drag and flush the last snapshot."""

        if self.drag.session is not None:
            self.drag.cancel_drag()
        return self.autosave.close()


def configure_logging(debug: bool = False, *, force: bool = False, log_dir: str | Path | None = None) -> Path:
    level = logging_utils.level_for(debug)
    path = logging_utils.setup_logging(level, log_dir=log_dir, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> EditorSettings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return EditorSettings()


def build_editor(
    settings: EditorSettings | None = None,
    *,
    persister: SnapshotPersister | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
    document: Document | None = None,
    selection_listener: SelectionListener | None = None,
    id_factory: IdFactory = generate_id,
) -> EditorRuntime:
    """Wire the event bus, board store, drag coordinator and autosave bridge.

    Without an explicit ``persister`` snapshots go to the settings' snapshot
    path through :class:`JsonSnapshotStore`.
    """

    active = settings or EditorSettings()
    bus = EventBus()
    autosave = AutosaveBridge(
        persister or JsonSnapshotStore(active.resolved_snapshot_path()),
        loop=loop,
        debounce_seconds=active.autosave_debounce_seconds,
        retry_seconds=active.autosave_retry_seconds,
        enabled=active.autosave_enabled,
    )
    store = BoardStore(
        bus,
        document=document,
        viewport=active.viewport(),
        change_listener=autosave,
        selection_listener=selection_listener,
        id_factory=id_factory,
    )
    drag = DragCoordinator(store, bus, thresholds=active.hover_thresholds(), id_factory=id_factory)
    _LOGGER.debug(
        "Editor built (viewport=%s, autosave=%s, debounce=%.2fs)",
        store.viewport.value,
        active.autosave_enabled,
        active.autosave_debounce_seconds,
    )
    return EditorRuntime(settings=active, bus=bus, store=store, drag=drag, autosave=autosave)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``pagecraft`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings_store = SettingsStore(Path(args.settings_path).expanduser() if args.settings_path else None)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2
    settings = load_settings(store=settings_store, overrides=cli_overrides or None)

    configure_logging(args.debug or settings.debug_logging, log_dir=settings.log_dir)

    if args.dump_settings:
        json.dump(asdict(settings), sys.stdout, indent=2, sort_keys=True)
        sys.stdout.write("\n")
        return 0

    handler: Callable[[argparse.Namespace, TextIO], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 0
    return handler(args, sys.stdout)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagecraft",
        description="Create, inspect and convert pagecraft board snapshots.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging.")
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.pagecraft/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings and exit.",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    new = commands.add_parser("new", help="Write an empty board snapshot.")
    new.add_argument("path", type=Path)
    new.add_argument("--title", default="Untitled Board")
    new.add_argument(
        "--layout",
        action="append",
        default=[],
        choices=[kind.value for kind in ContainerKind],
        help="Append an empty container of this kind (repeatable).",
    )
    new.add_argument("--force", action="store_true", help="Overwrite an existing file.")
    new.set_defaults(handler=_cmd_new)

    validate = commands.add_parser("validate", help="Check a snapshot against the schema and tree invariants.")
    validate.add_argument("path", type=Path)
    validate.set_defaults(handler=_cmd_validate)

    outline = commands.add_parser("outline", help="Print the container/zone/block tree of a snapshot.")
    outline.add_argument("path", type=Path)
    outline.add_argument("--preview", action="store_true", help="Hide containers without any blocks.")
    outline.set_defaults(handler=_cmd_outline)

    legacy = commands.add_parser("import-legacy", help="Convert a project saved by the previous editor.")
    legacy.add_argument("source", type=Path)
    legacy.add_argument("destination", type=Path)
    legacy.set_defaults(handler=_cmd_import_legacy)
    return parser


def _cmd_new(args: argparse.Namespace, out: TextIO) -> int:
    path: Path = args.path
    if path.exists() and not args.force:
        print(f"{path} already exists (use --force to overwrite)", file=sys.stderr)
        return 1
    runtime = build_editor(
        EditorSettings(autosave_enabled=False),
        persister=JsonSnapshotStore(path),
        document=new_document(args.title),
    )
    for kind in args.layout:
        runtime.store.add_container(kind)
    JsonSnapshotStore(path).save(runtime.store.snapshot())
    print(f"Created {path}", file=out)
    return 0


def _cmd_validate(args: argparse.Namespace, out: TextIO) -> int:
    payload = _read_json(args.path)
    if payload is None:
        return 1
    problems = validate_snapshot(payload)
    if not problems:
        try:
            document = document_from_snapshot(payload)
        except SnapshotFormatError as exc:
            problems = exc.errors or [str(exc)]
        else:
            print(
                f"{args.path}: OK ({len(document.containers)} container(s), {block_count(document)} block(s))",
                file=out,
            )
            return 0
    print(f"{args.path}: invalid", file=out)
    for problem in problems:
        print(f"  - {problem}", file=out)
    return 1


def _cmd_outline(args: argparse.Namespace, out: TextIO) -> int:
    payload = _read_json(args.path)
    if payload is None:
        return 1
    try:
        document = document_from_snapshot(payload)
    except SnapshotFormatError as exc:
        print(f"{args.path}: {exc}", file=sys.stderr)
        return 1
    for line in render_outline(document, preview=args.preview):
        print(line, file=out)
    return 0


def _cmd_import_legacy(args: argparse.Namespace, out: TextIO) -> int:
    payload = _read_json(args.source)
    if payload is None:
        return 1
    try:
        document = document_from_legacy_project(payload)
    except SnapshotFormatError as exc:
        print(f"{args.source}: {exc}", file=sys.stderr)
        return 1
    JsonSnapshotStore(args.destination).save(document_to_snapshot(document))
    print(
        f"Imported {len(list(iter_containers(document)))} container(s) and "
        f"{block_count(document)} block(s) into {args.destination}",
        file=out,
    )
    return 0


def render_outline(document: Document, *, preview: bool = False) -> list[str]:
    """Human-readable tree listing used by ``pagecraft outline``."""

    lines = [f"{document.metadata.title} ({document.id}) v{document.version_id}"]
    containers = non_empty_containers(document) if preview else document.containers
    for container in containers:
        _outline_container(container, lines, depth=1)
    return lines


def _outline_container(container: LayoutContainer, lines: list[str], depth: int) -> None:
    indent = "  " * depth
    split = " split" if container.is_split else ""
    lines.append(f"{indent}[{container.kind.value}] {container.id} level={container.split_level}{split}")
    if container.is_split:
        for child in container.children:
            _outline_container(child, lines, depth + 1)
        return
    for position, zone in enumerate(container.zones):
        lines.append(f"{indent}  zone {position} {zone.id}")
        for block in zone.blocks:
            lines.append(f"{indent}    - {block.kind.value} {block.id}: {_block_summary(block)}")


def _block_summary(block: ContentBlock, limit: int = 40) -> str:
    payload = block.payload
    text = getattr(payload, "text", None) or getattr(payload, "file_name", None) or getattr(payload, "src", "")
    text = " ".join(str(text).split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"{path}: no such file", file=sys.stderr)
    except json.JSONDecodeError as exc:
        print(f"{path}: not valid JSON ({exc})", file=sys.stderr)
    return None


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    fields = EditorSettings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(EditorSettings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = annotation
    if get_origin(annotation) is not None:
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        if raw_value.lower() in {"none", "null"}:
            return None
        target = args[0] if args else str
    if target is bool:
        return _parse_bool(raw_value)
    if target is float:
        return float(raw_value)
    if target is int:
        return int(raw_value, 10)
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
