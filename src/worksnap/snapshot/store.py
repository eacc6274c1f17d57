"""
Checkpoint store: one isolated object store per project.

Stores live at ``<data_root>/snapshot/<project-id>/`` and use the
project's working directory as their external work tree, so the
project's own version-control history is never touched.
"""

import shutil
from pathlib import Path
from typing import Optional, Union

import structlog

from .backend import ObjectStoreBackend
from .models import StoreHandle
from ..utils.errors import StoreUnavailable
from ..utils.logging import get_logger


def find_vcs_root(directory: Union[str, Path]) -> Optional[Path]:
    """Walk upwards from ``directory`` to the first entry containing ``.git``."""
    current = Path(directory)
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


class CheckpointStore:
    """Locates and lazily initializes per-project checkpoint stores."""

    def __init__(
        self,
        backend: ObjectStoreBackend,
        data_root: Path,
        require_vcs: bool = True,
        logger: Optional[structlog.BoundLogger] = None
    ):
        self.backend = backend
        self.data_root = Path(data_root)
        self.require_vcs = require_vcs
        self.logger = logger or get_logger("worksnap.snapshot")

    def location(self, project_id: str) -> Path:
        """Directory of the store for ``project_id``."""
        return self.data_root / "snapshot" / project_id

    async def ensure(self, project_id: str, worktree: Union[str, Path]) -> StoreHandle:
        """
        Return the store for a project, initializing it on first use.

        Safe to call before every operation.

        Raises:
            StoreUnavailable: git is missing, the project is not eligible,
                or the store could not be created
        """
        worktree = Path(worktree)
        handle = StoreHandle(
            project_id=project_id,
            store=self.location(project_id),
            worktree=worktree
        )

        if self.require_vcs and find_vcs_root(worktree) is None:
            raise StoreUnavailable(
                f"{worktree} is not inside a git-managed project",
                reason="not_eligible"
            )

        if not await self.backend.available():
            raise StoreUnavailable("git executable is not available", reason="tool_missing")

        if (handle.store / "HEAD").exists():
            return handle

        try:
            handle.store.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(
                f"Cannot create checkpoint store at {handle.store}: {e}",
                reason="init_failed",
                cause=e
            ) from e

        result = await self.backend.init(handle)
        if not result.ok:
            # A half-initialized store would pass the HEAD check next time
            shutil.rmtree(handle.store, ignore_errors=True)
            self.logger.warning(
                "store_init_failed",
                project_id=project_id,
                store=str(handle.store),
                exit_code=result.returncode
            )
            raise StoreUnavailable(
                f"Cannot initialize checkpoint store at {handle.store}",
                reason="init_failed",
                cause=result.to_error()
            )

        self.logger.info("store_initialized", project_id=project_id, store=str(handle.store))
        return handle


__all__ = ['CheckpointStore', 'find_vcs_root']
