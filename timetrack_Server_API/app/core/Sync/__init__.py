# Sync/__init__.py
from .core import SyncCoordinator
from .models import ProjectRecord, SessionRecord, PushBatch, PullResult, SkippedRecord
from .exceptions import (
    SyncError, AuthorizationError, ValidationError, OwnershipMismatch, StorageError, SyncTimeoutError
)
from .conflict import ConflictResolver, LastArrivalWinsStrategy
from .tombstone import TombstoneManager
from .state import CursorTracker

__all__ = [
    "SyncCoordinator",
    "ProjectRecord",
    "SessionRecord",
    "PushBatch",
    "PullResult",
    "SkippedRecord",
    "SyncError",
    "AuthorizationError",
    "ValidationError",
    "OwnershipMismatch",
    "StorageError",
    "SyncTimeoutError",
    "ConflictResolver",
    "LastArrivalWinsStrategy",
    "TombstoneManager",
    "CursorTracker",
]
