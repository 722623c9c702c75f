"""Offline-tolerant synchronization core for a personal job applications Kanban."""

__version__ = "0.1.0"

from .collection import ColumnView, PositionedCollection
from .errors import (
    CacheError,
    GatewayError,
    InvalidOperationError,
    InvariantViolationError,
    JobTrackerError,
)
from .models import KanbanColumn, TrackedJob
from .tracker import JobTracker

__all__ = [
    "CacheError",
    "ColumnView",
    "GatewayError",
    "InvalidOperationError",
    "InvariantViolationError",
    "JobTracker",
    "JobTrackerError",
    "KanbanColumn",
    "PositionedCollection",
    "TrackedJob",
    "__version__",
]
