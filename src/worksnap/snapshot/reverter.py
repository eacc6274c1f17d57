"""
Selective file-by-file rollback.

For each file of each patch, in order, the first patch that mentions a
file decides its fate:

    checkout(hash, file) succeeds                 -> content as of hash
    checkout fails, file is listed in tree(hash)  -> keep what is on disk
    checkout fails, file is not in tree(hash)     -> delete it
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import aiofiles.os
import structlog

from .backend import ObjectStoreBackend, SPAWN_FAILED
from .models import Outcome, Patch, RevertAction, StoreHandle
from .store import CheckpointStore
from ..utils.errors import StoreUnavailable
from ..utils.logging import get_logger


class Reverter:
    """Rolls back the files listed in a sequence of patches."""

    def __init__(self, store: CheckpointStore, logger: Optional[structlog.BoundLogger] = None):
        self.store = store
        self.logger = logger or get_logger("worksnap.snapshot")

    @property
    def backend(self) -> ObjectStoreBackend:
        return self.store.backend

    async def revert(
        self,
        patches: List[Patch],
        project_id: str,
        worktree: Union[str, Path]
    ) -> Outcome[Dict[str, RevertAction]]:
        """
        Revert every file in ``patches``.

        Returns the action taken per file (absolute path), in processing
        order. Per-file checkout failures are resolved by the policy above
        and never surface as errors.
        """
        try:
            handle = await self.store.ensure(project_id, worktree)
        except StoreUnavailable as e:
            return Outcome.downgrade({}, e)

        actions: Dict[str, RevertAction] = {}
        processed: Set[str] = set()

        for patch in patches:
            for entry in patch.files:
                file = os.path.normpath(os.path.join(handle.worktree, entry))
                if file in processed:
                    continue
                processed.add(file)

                self.logger.info("reverting", file=file, hash=patch.hash)
                actions[file] = await self._revert_file(handle, patch, file)

        return Outcome.ok(actions)

    async def _revert_file(self, handle: StoreHandle, patch: Patch, file: str) -> RevertAction:
        result = await self.backend.checkout_path(handle, patch.hash, file)
        if result.ok:
            return RevertAction.RESTORED

        relative_path = Path(os.path.relpath(file, handle.worktree)).as_posix()
        listing = await self.backend.ls_tree_path(handle, patch.hash, relative_path)

        if listing.timed_out or listing.returncode == SPAWN_FAILED:
            # Membership is unknown; deleting would be a guess
            self.logger.warning("tree_lookup_unavailable_keeping", file=file)
            return RevertAction.KEPT

        if listing.ok and listing.text.strip():
            self.logger.info("checkout_failed_keeping_existing", file=file)
            return RevertAction.KEPT

        self.logger.info("file_not_in_snapshot_deleting", file=file)
        try:
            await aiofiles.os.remove(file)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning("delete_failed", file=file, error=str(e))
        return RevertAction.DELETED


__all__ = ['Reverter']
