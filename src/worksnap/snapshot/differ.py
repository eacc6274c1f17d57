"""
Differences between checkpoints and the working tree.

None of these operations raise for tool failures: an unusable store or a
failing git command yields an empty result marked as degraded.
"""

from pathlib import Path
from typing import List, Optional, Tuple, Union

import structlog

from .backend import ObjectStoreBackend
from .models import Checkpoint, FileDiff, Outcome, Patch, StoreHandle
from .store import CheckpointStore
from ..utils.errors import ParseFailure, StoreUnavailable, ToolInvocationFailed, WorksnapError
from ..utils.logging import get_logger


BINARY_MARKER = "-"


def parse_numstat(record: str) -> Tuple[Optional[int], Optional[int], str]:
    """
    Split one ``additions<TAB>deletions<TAB>path`` record.

    Counts come back as ``None`` for binary files (both markers ``-``).

    Raises:
        ParseFailure: no path field, or a count that is not an integer
    """
    parts = record.split("\t", 2)
    if len(parts) != 3 or not parts[2]:
        raise ParseFailure(record, "expected additions, deletions and path")

    additions, deletions, path = parts
    if additions == BINARY_MARKER and deletions == BINARY_MARKER:
        return None, None, path

    try:
        return int(additions), int(deletions), path
    except ValueError as e:
        raise ParseFailure(record, "counts are not integers", cause=e) from e


class Differencer:
    """Compares checkpoints with each other and with the working tree."""

    def __init__(self, store: CheckpointStore, logger: Optional[structlog.BoundLogger] = None):
        self.store = store
        self.logger = logger or get_logger("worksnap.snapshot")

    @property
    def backend(self) -> ObjectStoreBackend:
        return self.store.backend

    async def _staged(self, project_id: str, worktree: Union[str, Path]) -> StoreHandle:
        handle = await self.store.ensure(project_id, worktree)
        staged = await self.backend.stage(handle)
        if not staged.ok:
            self.logger.warning("stage_failed", project_id=project_id, exit_code=staged.returncode)
            raise staged.to_error()
        return handle

    async def patch(self, hash: Checkpoint, project_id: str, worktree: Union[str, Path]) -> Outcome[Patch]:
        """Files that differ between ``hash`` and the current working tree."""
        try:
            handle = await self._staged(project_id, worktree)
        except (StoreUnavailable, ToolInvocationFailed) as e:
            return Outcome.downgrade(Patch(hash=hash), e)

        result = await self.backend.diff_names(handle, hash)
        if not result.ok:
            self.logger.warning("failed_to_get_diff", hash=hash, exit_code=result.returncode)
            return Outcome.downgrade(Patch(hash=hash), result.to_error())

        files = [
            str(handle.worktree / name)
            for name in result.text.split("\0")
            if name
        ]
        return Outcome.ok(Patch(hash=hash, files=files))

    async def diff(self, hash: Checkpoint, project_id: str, worktree: Union[str, Path]) -> Outcome[str]:
        """Unified diff between ``hash`` and the current working tree."""
        try:
            handle = await self._staged(project_id, worktree)
        except (StoreUnavailable, ToolInvocationFailed) as e:
            return Outcome.downgrade("", e)

        result = await self.backend.diff_text(handle, hash)
        if not result.ok:
            self.logger.warning(
                "failed_to_get_diff",
                hash=hash,
                exit_code=result.returncode,
                stderr=result.stderr.decode(errors="replace"),
                stdout=result.text
            )
            return Outcome.downgrade("", result.to_error())

        return Outcome.ok(result.text.strip())

    async def diff_full(
        self,
        from_hash: Checkpoint,
        to_hash: Checkpoint,
        project_id: str,
        worktree: Union[str, Path]
    ) -> Outcome[List[FileDiff]]:
        """
        File-level diff with content between two checkpoints.

        Binary entries get empty content without any blob read. A record
        whose counts cannot be parsed is still emitted with zero counts and
        no content; the outcome is then marked degraded.
        """
        try:
            handle = await self.store.ensure(project_id, worktree)
        except StoreUnavailable as e:
            return Outcome.downgrade([], e)

        result = await self.backend.diff_stat(handle, from_hash, to_hash)
        if not result.ok:
            self.logger.warning(
                "failed_to_get_numstat",
                from_hash=from_hash,
                to_hash=to_hash,
                exit_code=result.returncode
            )
            return Outcome.downgrade([], result.to_error())

        diffs: List[FileDiff] = []
        problem: Optional[WorksnapError] = None

        for record in result.text.split("\0"):
            if not record:
                continue

            try:
                additions, deletions, path = parse_numstat(record)
            except ParseFailure as e:
                self.logger.warning("numstat_parse_failed", line=record, reason=e.reason)
                problem = problem or e
                fields = record.split("\t", 2)
                if len(fields) == 3 and fields[2]:
                    diffs.append(FileDiff(file=fields[2]))
                continue

            if additions is None or deletions is None:
                diffs.append(FileDiff(file=path))
                continue

            before = await self._blob(handle, from_hash, path)
            after = await self._blob(handle, to_hash, path)
            diffs.append(FileDiff(
                file=path,
                before=before,
                after=after,
                additions=additions,
                deletions=deletions
            ))

        if problem is not None:
            return Outcome.downgrade(diffs, problem)
        return Outcome.ok(diffs)

    async def _blob(self, handle: StoreHandle, ref: Checkpoint, path: str) -> bytes:
        # Missing on this side (added or deleted file)
        result = await self.backend.show_blob(handle, ref, path)
        return result.stdout if result.ok else b""


__all__ = ['Differencer', 'parse_numstat']
