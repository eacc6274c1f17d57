"""Captures the working tree as a checkpoint."""

from pathlib import Path
from typing import Optional, Union

import structlog

from .backend import ObjectStoreBackend
from .models import Checkpoint, Outcome
from .store import CheckpointStore
from ..utils.errors import StoreUnavailable
from ..utils.logging import get_logger


class Tracker:
    """Stages the tracked file set and writes it as a tree."""

    def __init__(
        self,
        store: CheckpointStore,
        enabled: bool = True,
        logger: Optional[structlog.BoundLogger] = None
    ):
        self.store = store
        self.enabled = enabled
        self.logger = logger or get_logger("worksnap.snapshot")

    @property
    def backend(self) -> ObjectStoreBackend:
        return self.store.backend

    async def track(self, project_id: str, worktree: Union[str, Path]) -> Outcome[Optional[Checkpoint]]:
        """
        Capture the current tracked state of ``worktree``.

        Returns ``Outcome.ok(None)`` when snapshotting is disabled and a
        downgraded ``None`` when the store or git fails.
        """
        if not self.enabled:
            return Outcome.ok(None)

        try:
            handle = await self.store.ensure(project_id, worktree)
        except StoreUnavailable as e:
            self.logger.debug("track_skipped", project_id=project_id, reason=e.reason)
            return Outcome.downgrade(None, e)

        staged = await self.backend.stage(handle)
        if not staged.ok:
            # A failed add leaves the previous index; its tree would be stale
            self.logger.warning(
                "stage_failed",
                project_id=project_id,
                exit_code=staged.returncode,
                stderr=staged.stderr.decode(errors="replace")
            )
            return Outcome.downgrade(None, staged.to_error())

        result = await self.backend.write_tree(handle)
        hash = result.text.strip()
        if not result.ok or not hash:
            self.logger.warning(
                "write_tree_failed",
                project_id=project_id,
                exit_code=result.returncode,
                stderr=result.stderr.decode(errors="replace")
            )
            return Outcome.downgrade(None, result.to_error())

        self.logger.info("tracking", hash=hash, project_id=project_id, worktree=str(handle.worktree))
        return Outcome.ok(hash)


__all__ = ['Tracker']
