"""
Data models for workspace checkpoints.

A checkpoint is the tree hash the object store computes over the tracked
file set; it carries no timestamp or counter, so identical content always
maps to the identical hash.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..utils.errors import ToolInvocationFailed, WorksnapError


T = TypeVar('T')

Checkpoint = str


@dataclass(frozen=True)
class StoreHandle:
    """Location of one project's checkpoint store and the tree it tracks."""
    project_id: str
    store: Path
    worktree: Path


@dataclass
class Patch:
    """Files that differ between a checkpoint and the working tree."""
    hash: Checkpoint
    files: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"hash": self.hash, "files": list(self.files)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Patch':
        """Create from dictionary."""
        return cls(hash=data["hash"], files=list(data.get("files", [])))


@dataclass
class FileDiff:
    """
    File-level difference between two checkpoints.

    ``before``/``after`` hold the raw bytes at each side; a side where the
    file does not exist, or a binary file, is empty.
    """
    file: str
    before: bytes = b""
    after: bytes = b""
    additions: int = 0
    deletions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, decoding content as UTF-8."""
        return {
            "file": self.file,
            "before": self.before.decode("utf-8", errors="replace"),
            "after": self.after.decode("utf-8", errors="replace"),
            "additions": self.additions,
            "deletions": self.deletions,
        }


class RevertAction(Enum):
    """What the reverter did to a single file."""
    RESTORED = "restored"
    KEPT = "kept"
    DELETED = "deleted"


@dataclass
class ToolResult:
    """Captured result of one delegate tool invocation."""
    command: List[str]
    returncode: int
    stdout: bytes = b""
    stderr: bytes = b""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    def to_error(self) -> ToolInvocationFailed:
        """Describe this result as a ToolInvocationFailed."""
        return ToolInvocationFailed(
            command=self.command,
            returncode=self.returncode,
            stdout=self.stdout.decode("utf-8", errors="replace"),
            stderr=self.stderr.decode("utf-8", errors="replace"),
            timed_out=self.timed_out,
        )


@dataclass
class Outcome(Generic[T]):
    """
    Result of an engine component call.

    ``degraded`` distinguishes "nothing changed" from "an error occurred and
    was downgraded to a neutral value"; ``error`` holds what was downgraded.
    """
    value: T
    degraded: bool = False
    error: Optional[WorksnapError] = None

    @classmethod
    def ok(cls, value: T) -> 'Outcome[T]':
        return cls(value=value)

    @classmethod
    def downgrade(cls, value: T, error: WorksnapError) -> 'Outcome[T]':
        return cls(value=value, degraded=True, error=error)


__all__ = [
    'Checkpoint',
    'StoreHandle',
    'Patch',
    'FileDiff',
    'RevertAction',
    'ToolResult',
    'Outcome',
]
