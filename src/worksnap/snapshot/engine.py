"""
Snapshot engine facade.

``SnapshotEngine`` wires the store, tracker, differencer, restorer and
reverter together for explicit ``(project_id, worktree)`` pairs. It checks
arguments (raising ``PreconditionError``), unwraps component outcomes to
plain values and reports downgraded failures on the optional event bus.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import structlog

from .backend import GitBackend, ObjectStoreBackend
from .differ import Differencer
from .models import Checkpoint, FileDiff, Outcome, Patch, RevertAction
from .restorer import Restorer
from .reverter import Reverter
from .store import CheckpointStore
from .tracker import Tracker
from ..managers.git import GitBinaryManager
from ..utils.config import SnapshotConfig, WorksnapConfig
from ..utils.errors import PreconditionError
from ..utils.logging import get_logger, log_function_call
from ..utils.notifications import EventBus, EventCategory, EventPriority
from ..utils.validators import (
    checkpoint_hash_validator,
    project_id_validator,
    worktree_validator,
)


logger = get_logger("worksnap.snapshot")


class SnapshotEngine:
    """Checkpoint, diff, restore and revert a project's working tree."""

    def __init__(
        self,
        config: Optional[SnapshotConfig] = None,
        backend: Optional[ObjectStoreBackend] = None,
        binary_manager: Optional[GitBinaryManager] = None,
        event_bus: Optional[EventBus] = None,
        logger: Optional[structlog.BoundLogger] = None
    ):
        self.config = config or SnapshotConfig()
        self.logger = logger or get_logger("worksnap.snapshot")
        self.event_bus = event_bus
        self.backend = backend or GitBackend(
            binary_manager or GitBinaryManager(event_bus=event_bus),
            timeout=self.config.command_timeout
        )

        self.store = CheckpointStore(
            self.backend,
            self.config.data_root,
            require_vcs=self.config.require_vcs,
            logger=self.logger
        )
        self.tracker = Tracker(self.store, enabled=self.config.enabled, logger=self.logger)
        self.differ = Differencer(self.store, logger=self.logger)
        self.restorer = Restorer(self.store, logger=self.logger)
        self.reverter = Reverter(self.store, logger=self.logger)

    @classmethod
    def from_config(cls, config: WorksnapConfig, event_bus: Optional[EventBus] = None) -> 'SnapshotEngine':
        """Build an engine from the full application configuration."""
        return cls(
            config=config.snapshot,
            binary_manager=GitBinaryManager(config.git, event_bus=event_bus),
            event_bus=event_bus
        )

    def _check_target(self, project_id: str, worktree: Union[str, Path]) -> None:
        project_id_validator().validate(project_id)
        worktree_validator().validate(worktree)

    def _check_patches(self, patches: List[Patch], worktree: Union[str, Path]) -> None:
        root = os.path.normpath(worktree)
        for patch in patches:
            if not isinstance(patch, Patch):
                raise PreconditionError(field="patches", value=patch, constraint="must contain Patch objects")
            checkpoint_hash_validator("patch.hash").validate(patch.hash)
            for entry in patch.files:
                file = os.path.normpath(os.path.join(root, entry))
                if os.path.commonpath([root, file]) != root or file == root:
                    raise PreconditionError(
                        field="patch.files",
                        value=entry,
                        constraint="files must lie inside the working tree"
                    )

    async def _unwrap(self, operation: str, outcome: Outcome, project_id: str, **data: Any) -> Any:
        if outcome.degraded and outcome.error is not None:
            self.logger.warning(
                "snapshot_degraded",
                operation=operation,
                project_id=project_id,
                error_code=outcome.error.code,
                error=outcome.error.message
            )
            await self._emit(
                "snapshot_degraded",
                EventCategory.ERROR,
                {
                    "operation": operation,
                    "project_id": project_id,
                    **data,
                    **outcome.error.to_dict(),
                },
                priority=EventPriority.HIGH
            )
        return outcome.value

    async def _emit(self, name: str, category: EventCategory, data: Dict[str, Any], **kwargs) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.emit(name, category, data, source="snapshot_engine", **kwargs)

    async def track(self, project_id: str, worktree: Union[str, Path]) -> Optional[Checkpoint]:
        """
        Checkpoint the working tree.

        Returns the tree hash, or None when snapshotting is disabled or
        unavailable.
        """
        self._check_target(project_id, worktree)
        outcome = await self.tracker.track(project_id, worktree)
        hash = await self._unwrap("track", outcome, project_id)
        if hash is not None:
            await self._emit(
                "checkpoint_tracked",
                EventCategory.CHECKPOINT,
                {"project_id": project_id, "hash": hash, "worktree": str(worktree)}
            )
        return hash

    async def patch(self, hash: Checkpoint, project_id: str, worktree: Union[str, Path]) -> Patch:
        """Files changed since ``hash``; empty on failure."""
        checkpoint_hash_validator().validate(hash)
        self._check_target(project_id, worktree)
        outcome = await self.differ.patch(hash, project_id, worktree)
        return await self._unwrap("patch", outcome, project_id, hash=hash)

    async def diff(self, hash: Checkpoint, project_id: str, worktree: Union[str, Path]) -> str:
        """Unified diff since ``hash``; empty string on failure."""
        checkpoint_hash_validator().validate(hash)
        self._check_target(project_id, worktree)
        outcome = await self.differ.diff(hash, project_id, worktree)
        return await self._unwrap("diff", outcome, project_id, hash=hash)

    async def diff_full(
        self,
        from_hash: Checkpoint,
        to_hash: Checkpoint,
        project_id: str,
        worktree: Union[str, Path]
    ) -> List[FileDiff]:
        """Per-file diff with content between two checkpoints."""
        checkpoint_hash_validator("from_hash").validate(from_hash)
        checkpoint_hash_validator("to_hash").validate(to_hash)
        self._check_target(project_id, worktree)
        outcome = await self.differ.diff_full(from_hash, to_hash, project_id, worktree)
        return await self._unwrap("diff_full", outcome, project_id, from_hash=from_hash, to_hash=to_hash)

    @log_function_call(logger)
    async def restore(self, hash: Checkpoint, project_id: str, worktree: Union[str, Path]) -> None:
        """
        Force the working tree to match ``hash``.

        Destructive: local modifications are overwritten without merging.
        Failures are logged and reported as ``snapshot_degraded``; the
        working tree may then be partially restored.
        """
        checkpoint_hash_validator().validate(hash)
        self._check_target(project_id, worktree)
        outcome = await self.restorer.restore(hash, project_id, worktree)
        await self._unwrap("restore", outcome, project_id, hash=hash)
        if not outcome.degraded:
            await self._emit(
                "checkpoint_restored",
                EventCategory.CHECKPOINT,
                {"project_id": project_id, "hash": hash}
            )

    @log_function_call(logger)
    async def revert(
        self,
        patches: List[Patch],
        project_id: str,
        worktree: Union[str, Path]
    ) -> Dict[str, RevertAction]:
        """Roll back the files listed in ``patches``; returns the action per file."""
        self._check_target(project_id, worktree)
        self._check_patches(patches, worktree)
        outcome = await self.reverter.revert(patches, project_id, worktree)
        actions = await self._unwrap("revert", outcome, project_id)
        if not outcome.degraded:
            await self._emit(
                "checkpoint_reverted",
                EventCategory.CHECKPOINT,
                {
                    "project_id": project_id,
                    "files": {file: action.value for file, action in actions.items()},
                }
            )
        return actions


__all__ = ['SnapshotEngine']
