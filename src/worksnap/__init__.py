"""
worksnap - workspace checkpoints for autonomous coding agents.

This package checkpoints a project's working tree into an isolated git
object store and provides:
- Content-addressed checkpoints of the tracked file set
- Name-only, unified and per-file diffs
- Exact restore of a checkpoint
- File-by-file rollback with a keep/delete policy
"""

__version__ = "0.1.0"

from .project import ProjectInfo, resolve_project
from .snapshot import (
    SnapshotEngine,
    Patch,
    FileDiff,
    RevertAction,
    StepRecorder,
    RollbackSession,
)

__all__ = [
    'SnapshotEngine',
    'Patch',
    'FileDiff',
    'RevertAction',
    'StepRecorder',
    'RollbackSession',
    'ProjectInfo',
    'resolve_project',
]
