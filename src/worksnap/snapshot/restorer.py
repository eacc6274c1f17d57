"""Forces the working tree back to a checkpoint."""

from pathlib import Path
from typing import Optional, Union

import structlog

from .backend import ObjectStoreBackend
from .models import Checkpoint, Outcome
from .store import CheckpointStore
from ..utils.errors import StoreUnavailable
from ..utils.logging import get_logger


class Restorer:
    """
    Overwrites every file of a checkpoint in the working tree.

    Restoring is best-effort and not atomic: if the forced checkout fails
    part way, some files may already be overwritten. Files created after
    the checkpoint are left in place.
    """

    def __init__(self, store: CheckpointStore, logger: Optional[structlog.BoundLogger] = None):
        self.store = store
        self.logger = logger or get_logger("worksnap.snapshot")

    @property
    def backend(self) -> ObjectStoreBackend:
        return self.store.backend

    async def restore(self, hash: Checkpoint, project_id: str, worktree: Union[str, Path]) -> Outcome[None]:
        self.logger.info("restore", hash=hash, project_id=project_id)

        try:
            handle = await self.store.ensure(project_id, worktree)
        except StoreUnavailable as e:
            return Outcome.downgrade(None, e)

        result = await self.backend.read_tree_checkout(handle, hash)
        if not result.ok:
            self.logger.error(
                "failed_to_restore_snapshot",
                hash=hash,
                exit_code=result.returncode,
                timed_out=result.timed_out,
                stderr=result.stderr.decode(errors="replace"),
                stdout=result.text
            )
            return Outcome.downgrade(None, result.to_error())

        return Outcome.ok(None)


__all__ = ['Restorer']
