"""Result and error types shared by the mutation engine and drag coordinator.

Expected conditions (a missing id, an index out of bounds, a rejected
structural change, a vanished drop target) are returned as data so callers can
decide whether to surface feedback. Only defects raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .document_model import Document

__all__ = [
    "ErrorCode",
    "MutationError",
    "MutationRejected",
    "MutationResult",
    "TreeIntegrityError",
]

T = TypeVar("T")


class ErrorCode:
    """Machine-readable codes for expected, recoverable failures."""

    NOT_FOUND = "not_found"
    OUT_OF_RANGE = "out_of_range"
    INVARIANT_VIOLATION = "invariant_violation"
    STALE_TARGET = "stale_target"


@dataclass(slots=True, frozen=True)
class MutationError:
    """Why an operation was rejected.

    Attributes:
        code: One of the :class:`ErrorCode` constants.
        message: Human-readable description.
        details: Structured context (ids, indices) for logging and UI hints.
    """

    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    @classmethod
    def not_found(cls, message: str, **details: Any) -> "MutationError":
        return cls(ErrorCode.NOT_FOUND, message, details)

    @classmethod
    def out_of_range(cls, message: str, **details: Any) -> "MutationError":
        return cls(ErrorCode.OUT_OF_RANGE, message, details)

    @classmethod
    def invariant(cls, message: str, **details: Any) -> "MutationError":
        return cls(ErrorCode.INVARIANT_VIOLATION, message, details)

    @classmethod
    def stale(cls, message: str, **details: Any) -> "MutationError":
        return cls(ErrorCode.STALE_TARGET, message, details)


class MutationRejected(Exception):
    """Internal signal used by the pure tree transforms.

    The engine converts it into a failed :class:`MutationResult`; it never
    escapes to callers of the engine.
    """

    def __init__(self, error: MutationError) -> None:
        super().__init__(str(error))
        self.error = error


class TreeIntegrityError(RuntimeError):
    """Raised for defects such as an id factory handing out a duplicate id."""


@dataclass(slots=True)
class MutationResult(Generic[T]):
    """Discriminated outcome of one engine operation.

    Attributes:
        ok: ``True`` when the change was applied.
        operation: Name of the operation (``"move_block"``...).
        document: The document after the call (unchanged when rejected).
        value: Operation-specific value, e.g. the id of a created node.
        error: The rejection reason when ``ok`` is ``False``.
    """

    ok: bool
    operation: str
    document: "Document"
    value: T | None = None
    error: MutationError | None = None

    @property
    def code(self) -> str | None:
        return self.error.code if self.error is not None else None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, operation: str, document: "Document", value: T | None = None) -> "MutationResult[T]":
        return cls(ok=True, operation=operation, document=document, value=value)

    @classmethod
    def failure(cls, operation: str, document: "Document", error: MutationError) -> "MutationResult[T]":
        return cls(ok=False, operation=operation, document=document, error=error)
