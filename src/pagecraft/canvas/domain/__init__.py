"""Domain managers for the canvas.

Domain Managers:
    - BoardStore: owns the document, selection and viewport; applies mutations
    - DragCoordinator: drag session state machine and drop arbitration

All domain managers:
    - Receive dependencies via constructor injection
    - Emit events to notify other layers of state changes
    - Have no dependency on a rendering toolkit
"""

from __future__ import annotations

from .board_store import BoardStore
from .drag_coordinator import DragCoordinator

__all__ = ["BoardStore", "DragCoordinator"]
