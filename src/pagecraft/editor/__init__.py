"""Board document model, tree queries, pure mutations and the snapshot format."""

from . import document_model, geometry, hover, mutations, results, serialization, tree_queries
from .document_model import (
    BlockKind,
    ContainerKind,
    ContentBlock,
    Document,
    LayoutContainer,
    Viewport,
    Zone,
)
from .results import ErrorCode, MutationError, MutationResult

__all__ = [
    "document_model",
    "geometry",
    "hover",
    "mutations",
    "results",
    "serialization",
    "tree_queries",
    "BlockKind",
    "ContainerKind",
    "ContentBlock",
    "Document",
    "ErrorCode",
    "LayoutContainer",
    "MutationError",
    "MutationResult",
    "Viewport",
    "Zone",
]
