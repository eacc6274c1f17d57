"""
Undoable rollback.

``RollbackSession`` reverts patches after checkpointing the pre-rollback
state, so the rollback itself can be undone until it is committed.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .engine import SnapshotEngine
from .models import Checkpoint, Patch
from ..utils.logging import get_logger


logger = get_logger("worksnap.snapshot.rollback")


@dataclass
class RollbackState:
    """Pending rollback: where to return on undo and what the rollback changed."""
    snapshot: Optional[Checkpoint]
    diff: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"snapshot": self.snapshot, "diff": self.diff}


class RollbackSession:
    """Rollback with undo for one project."""

    def __init__(self, engine: SnapshotEngine, project_id: str, worktree: Union[str, Path]):
        self.engine = engine
        self.project_id = project_id
        self.worktree = worktree
        self.state: Optional[RollbackState] = None

    async def rollback(self, patches: List[Patch]) -> RollbackState:
        """
        Revert ``patches``, remembering the state before the first rollback.

        A second rollback before ``undo``/``commit`` keeps the original
        pre-rollback checkpoint.
        """
        snapshot = self.state.snapshot if self.state else None
        if snapshot is None:
            snapshot = await self.engine.track(self.project_id, self.worktree)

        await self.engine.revert(patches, self.project_id, self.worktree)

        diff = ""
        if snapshot is not None:
            diff = await self.engine.diff(snapshot, self.project_id, self.worktree)

        self.state = RollbackState(snapshot=snapshot, diff=diff)
        logger.info("rollback_applied", project_id=self.project_id, snapshot=snapshot, patches=len(patches))
        return self.state

    async def undo(self) -> bool:
        """Restore the pre-rollback checkpoint. False when there is nothing to undo."""
        if self.state is None or self.state.snapshot is None:
            self.state = None
            return False

        await self.engine.restore(self.state.snapshot, self.project_id, self.worktree)
        logger.info("rollback_undone", project_id=self.project_id, snapshot=self.state.snapshot)
        self.state = None
        return True

    def commit(self) -> None:
        """Keep the rolled-back files and forget the pending state."""
        if self.state is not None:
            logger.info("rollback_committed", project_id=self.project_id)
        self.state = None


__all__ = ['RollbackState', 'RollbackSession']
