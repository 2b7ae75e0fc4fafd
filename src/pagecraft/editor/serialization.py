"""Snapshot wire format for board documents.

A snapshot is a plain JSON-compatible mapping::

    {
        "version": 1,
        "document": {
            "id": "...",
            "version_id": 3,
            "metadata": {"title": ..., "description": ..., "created_at": ..., "updated_at": ...},
            "containers": [
                {"id": ..., "kind": "two-columns", "split_level": 0,
                 "zones": [{"id": ..., "blocks": [{"id": ..., "kind": "heading", "payload": {...}}]}],
                 "children": []}
            ]
        }
    }

Conversion in both directions is lossless. Incoming snapshots are checked
against :data:`SNAPSHOT_SCHEMA` and the structural invariants of the tree.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Sequence

import jsonschema

from .document_model import (
    BlockKind,
    BoardMetadata,
    ContainerKind,
    ContentBlock,
    Document,
    LayoutContainer,
    Zone,
    generate_id,
    payload_from_mapping,
    payload_to_mapping,
    validate_document,
)

__all__ = [
    "SNAPSHOT_VERSION",
    "SNAPSHOT_SCHEMA",
    "SnapshotFormatError",
    "document_to_snapshot",
    "document_from_snapshot",
    "document_from_legacy_project",
    "validate_snapshot",
]

LOGGER = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1
MAX_SCHEMA_ERRORS = 25

SNAPSHOT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "pagecraft board snapshot",
    "type": "object",
    "required": ["version", "document"],
    "properties": {
        "version": {"type": "integer", "const": SNAPSHOT_VERSION},
        "document": {
            "type": "object",
            "required": ["id", "version_id", "metadata", "containers"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "version_id": {"type": "integer", "minimum": 0},
                "metadata": {"$ref": "#/definitions/metadata"},
                "containers": {"type": "array", "items": {"$ref": "#/definitions/container"}},
            },
            "additionalProperties": False,
        },
    },
    "additionalProperties": False,
    "definitions": {
        "metadata": {
            "type": "object",
            "required": ["title", "created_at", "updated_at"],
            "properties": {
                "title": {"type": "string"},
                "description": {"type": "string"},
                "created_at": {"type": "string"},
                "updated_at": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "block": {
            "type": "object",
            "required": ["id", "kind", "payload"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "kind": {"enum": [kind.value for kind in BlockKind]},
                "payload": {"type": "object"},
            },
            "additionalProperties": False,
        },
        "zone": {
            "type": "object",
            "required": ["id", "blocks"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "blocks": {"type": "array", "items": {"$ref": "#/definitions/block"}},
            },
            "additionalProperties": False,
        },
        "container": {
            "type": "object",
            "required": ["id", "kind", "zones"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "kind": {"enum": [kind.value for kind in ContainerKind]},
                "split_level": {"type": "integer", "minimum": 0},
                "zones": {"type": "array", "items": {"$ref": "#/definitions/zone"}},
                "children": {"type": "array", "items": {"$ref": "#/definitions/container"}},
            },
            "additionalProperties": False,
        },
    },
}


class SnapshotFormatError(ValueError):
    """Raised when a snapshot cannot be turned into a valid document."""

    def __init__(self, message: str, errors: Sequence[str] | None = None) -> None:
        self.errors = list(errors or [])
        detail = f": {'; '.join(self.errors)}" if self.errors else ""
        super().__init__(f"{message}{detail}")


# ---------------------------------------------------------------------------
# Document -> snapshot
# ---------------------------------------------------------------------------


def document_to_snapshot(document: Document) -> dict[str, Any]:
    metadata = document.metadata
    return {
        "version": SNAPSHOT_VERSION,
        "document": {
            "id": document.id,
            "version_id": document.version_id,
            "metadata": {
                "title": metadata.title,
                "description": metadata.description,
                "created_at": metadata.created_at.isoformat(),
                "updated_at": metadata.updated_at.isoformat(),
            },
            "containers": [_container_to_dict(container) for container in document.containers],
        },
    }


def _container_to_dict(container: LayoutContainer) -> dict[str, Any]:
    return {
        "id": container.id,
        "kind": container.kind.value,
        "split_level": container.split_level,
        "zones": [
            {
                "id": zone.id,
                "blocks": [
                    {"id": block.id, "kind": block.kind.value, "payload": payload_to_mapping(block.payload)}
                    for block in zone.blocks
                ],
            }
            for zone in container.zones
        ],
        "children": [_container_to_dict(child) for child in container.children],
    }


# ---------------------------------------------------------------------------
# Snapshot -> document
# ---------------------------------------------------------------------------


def validate_snapshot(payload: Any) -> list[str]:
    """Return schema violations for ``payload`` (empty when it is well formed)."""

    validator = jsonschema.Draft7Validator(SNAPSHOT_SCHEMA)
    errors: list[str] = []
    for issue in validator.iter_errors(payload):
        path = _format_schema_path(issue.absolute_path)
        errors.append(f"{path}: {issue.message}" if path else issue.message)
        if len(errors) >= MAX_SCHEMA_ERRORS:
            errors.append("Too many validation errors; stopping early.")
            break
    return errors


def document_from_snapshot(payload: Mapping[str, Any]) -> Document:
    """Rebuild a :class:`Document` from :func:`document_to_snapshot` output.

    Raises:
        SnapshotFormatError: when the payload fails the schema, holds an
            invalid block payload, or violates a tree invariant.
    """

    schema_errors = validate_snapshot(payload)
    if schema_errors:
        raise SnapshotFormatError("Snapshot does not match the schema", schema_errors)

    body = payload["document"]
    meta = body["metadata"]
    try:
        metadata = BoardMetadata(
            title=meta["title"],
            description=meta.get("description", ""),
            created_at=_parse_timestamp(meta["created_at"]),
            updated_at=_parse_timestamp(meta["updated_at"]),
        )
        containers = tuple(_container_from_dict(item) for item in body["containers"])
    except (TypeError, ValueError) as exc:
        raise SnapshotFormatError("Snapshot contains invalid values", [str(exc)]) from exc

    document = Document(
        id=body["id"],
        containers=containers,
        metadata=metadata,
        version_id=body["version_id"],
    )
    return _checked(document)


def _container_from_dict(data: Mapping[str, Any]) -> LayoutContainer:
    return LayoutContainer(
        id=data["id"],
        kind=ContainerKind(data["kind"]),
        zones=tuple(
            Zone(
                id=zone["id"],
                blocks=tuple(
                    ContentBlock(id=block["id"], payload=payload_from_mapping(block["kind"], block["payload"]))
                    for block in zone["blocks"]
                ),
            )
            for zone in data["zones"]
        ),
        split_level=data.get("split_level", 0),
        children=tuple(_container_from_dict(child) for child in data.get("children", ())),
    )


# ---------------------------------------------------------------------------
# Legacy project import
# ---------------------------------------------------------------------------


def document_from_legacy_project(payload: Mapping[str, Any]) -> Document:
    """Import a project saved by the previous editor.

    Two shapes are understood: the layout shape (``layoutBlocks`` with typed
    zones) and the older drop-area shape (``dropAreas`` with ``splitAreas``),
    where every drop area becomes a single-column container. Blocks carry their
    main value in ``content`` and kind-specific extras in camelCase keys.
    """

    if not isinstance(payload, Mapping):
        raise SnapshotFormatError("Legacy project must be a JSON object")

    try:
        if "layoutBlocks" in payload:
            containers = tuple(_legacy_layout(item) for item in payload.get("layoutBlocks") or ())
        elif "dropAreas" in payload:
            containers = tuple(_legacy_drop_area(item, 0) for item in payload.get("dropAreas") or ())
        else:
            raise SnapshotFormatError("Legacy project has neither 'layoutBlocks' nor 'dropAreas'")

        now = datetime.now(timezone.utc)
        created = payload.get("createdAt") or payload.get("created_at")
        updated = payload.get("updatedAt") or payload.get("updated_at")
        metadata = BoardMetadata(
            title=str(payload.get("title") or "Untitled Board"),
            description=str(payload.get("description") or ""),
            created_at=_parse_timestamp(created) if created else now,
            updated_at=_parse_timestamp(updated) if updated else now,
        )
    except SnapshotFormatError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise SnapshotFormatError("Legacy project contains invalid values", [str(exc)]) from exc

    document = Document(
        id=str(payload.get("id") or generate_id()),
        containers=containers,
        metadata=metadata,
    )
    LOGGER.debug("Imported legacy project %s with %d container(s)", document.id, len(containers))
    return _checked(document)


def _legacy_layout(data: Mapping[str, Any]) -> LayoutContainer:
    kind = ContainerKind(data["type"])
    zones = tuple(
        Zone(id=str(zone.get("id") or generate_id()), blocks=_legacy_blocks(zone.get("blocks") or ()))
        for zone in data.get("zones") or ()
    )
    return LayoutContainer(id=str(data.get("id") or generate_id()), kind=kind, zones=zones)


def _legacy_drop_area(data: Mapping[str, Any], level: int) -> LayoutContainer:
    area_id = str(data.get("id") or generate_id())
    split_areas = data.get("splitAreas") or ()
    children: tuple[LayoutContainer, ...] = ()
    blocks = _legacy_blocks(data.get("blocks") or ())
    if data.get("isSplit") and split_areas:
        children = tuple(_legacy_drop_area(child, level + 1) for child in split_areas)
        blocks = ()
    return LayoutContainer(
        id=area_id,
        kind=ContainerKind.SINGLE_COLUMN,
        zones=(Zone(id=f"{area_id}-zone", blocks=blocks),),
        split_level=int(data.get("splitLevel", level)),
        children=children,
    )


def _legacy_blocks(items: Iterable[Mapping[str, Any]]) -> tuple[ContentBlock, ...]:
    return tuple(ContentBlock(id=str(item.get("id") or generate_id()), payload=_legacy_payload(item)) for item in items)


def _legacy_payload(item: Mapping[str, Any]):
    kind = BlockKind(item.get("type"))
    content = item.get("content") or ""
    if kind is BlockKind.HEADING:
        data = {"text": content, "level": int(item.get("headingLevel") or 1)}
    elif kind is BlockKind.PARAGRAPH:
        data = {"text": content}
    elif kind is BlockKind.IMAGE:
        data = {"src": content, "alt_text": item.get("altText") or "", "preview_url": item.get("previewUrl")}
    elif kind is BlockKind.VIDEO:
        data = {"src": content, "thumbnail_ref": item.get("thumbnailUrl"), "preview_url": item.get("previewUrl")}
    elif kind is BlockKind.DOCUMENT:
        data = {
            "src": content,
            "file_name": item.get("fileName") or "",
            "thumbnail_url": item.get("thumbnailUrl"),
            "preview_url": item.get("previewUrl"),
        }
    else:
        data = {"src": content, "title": item.get("altText") or item.get("fileName") or ""}
    return payload_from_mapping(kind, data)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _checked(document: Document) -> Document:
    problems = validate_document(document)
    if problems:
        raise SnapshotFormatError("Snapshot violates tree invariants", problems)
    return document


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_schema_path(path: Iterable[Any]) -> str:
    parts: list[str] = []
    for element in path:
        if isinstance(element, int):
            parts.append(f"[{element}]")
        else:
            parts.append(f".{element}" if parts else str(element))
    return "".join(parts)
