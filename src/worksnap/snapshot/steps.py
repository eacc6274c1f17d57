"""
Per-step checkpoints for an agent loop.

A step is bracketed by ``start()`` and ``finish()``; the recorder keeps the
checkpoints taken at both ends and the patch of files the step touched.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .engine import SnapshotEngine
from .models import Checkpoint, FileDiff, Patch
from ..utils.logging import get_logger


logger = get_logger("worksnap.snapshot.steps")


@dataclass
class StepRecord:
    """Checkpoints and changed files for one step."""
    start: Optional[Checkpoint] = None
    finish: Optional[Checkpoint] = None
    patch: Optional[Patch] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "start": self.start,
            "finish": self.finish,
            "patch": self.patch.to_dict() if self.patch else None,
        }


class StepRecorder:
    """Records start/finish checkpoints and patches for successive steps."""

    def __init__(self, engine: SnapshotEngine, project_id: str, worktree: Union[str, Path]):
        self.engine = engine
        self.project_id = project_id
        self.worktree = worktree
        self.steps: List[StepRecord] = []
        self._current: Optional[StepRecord] = None

    async def start(self) -> Optional[Checkpoint]:
        """Open a step and checkpoint the working tree."""
        if self._current is not None:
            logger.warning("step_already_open", project_id=self.project_id)
            self.steps.append(self._current)

        self._current = StepRecord(
            start=await self.engine.track(self.project_id, self.worktree)
        )
        return self._current.start

    async def finish(self) -> StepRecord:
        """
        Close the current step.

        Checkpoints the end state and, when the step has a start
        checkpoint, records the files changed since it. Empty patches are
        dropped.
        """
        record = self._current or StepRecord()
        self._current = None

        record.finish = await self.engine.track(self.project_id, self.worktree)
        if record.start is not None:
            patch = await self.engine.patch(record.start, self.project_id, self.worktree)
            if patch.files:
                record.patch = patch

        self.steps.append(record)
        logger.debug(
            "step_finished",
            project_id=self.project_id,
            start=record.start,
            finish=record.finish,
            files=len(record.patch.files) if record.patch else 0
        )
        return record

    def patches(self) -> List[Patch]:
        """Non-empty patches of all finished steps, oldest first."""
        return [step.patch for step in self.steps if step.patch is not None]

    async def summarize(self) -> List[FileDiff]:
        """Diff from the earliest step start to the latest step finish."""
        starts = [step.start for step in self.steps if step.start is not None]
        finishes = [step.finish for step in self.steps if step.finish is not None]
        if not starts or not finishes:
            return []
        return await self.engine.diff_full(starts[0], finishes[-1], self.project_id, self.worktree)


__all__ = ['StepRecord', 'StepRecorder']
