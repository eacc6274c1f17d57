"""Snapshot engine for worksnap

This module checkpoints working trees through git plumbing with:
- One isolated store per project
- Tracking, diffing and restoring checkpoints
- File-level rollback with a partial-failure policy
- Step recording and undoable rollback
"""

from .models import Checkpoint, Patch, FileDiff, RevertAction, Outcome, ToolResult, StoreHandle
from .backend import ObjectStoreBackend, GitBackend
from .store import CheckpointStore
from .tracker import Tracker
from .differ import Differencer
from .restorer import Restorer
from .reverter import Reverter
from .engine import SnapshotEngine
from .steps import StepRecorder, StepRecord
from .rollback import RollbackSession, RollbackState

__all__ = [
    "Checkpoint",
    "Patch",
    "FileDiff",
    "RevertAction",
    "Outcome",
    "ToolResult",
    "StoreHandle",
    "ObjectStoreBackend",
    "GitBackend",
    "CheckpointStore",
    "Tracker",
    "Differencer",
    "Restorer",
    "Reverter",
    "SnapshotEngine",
    "StepRecorder",
    "StepRecord",
    "RollbackSession",
    "RollbackState",
]
