"""Canvas editing layer: event bus and domain managers."""

from .events import EventBus

__all__ = ["EventBus"]
