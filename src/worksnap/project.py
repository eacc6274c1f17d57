"""
Project identity lookup.

Turns a directory into the explicit ``(id, worktree)`` pair every engine
operation takes. A git project is identified by its lexicographically
first root commit, cached in a ``worksnap`` file inside the git directory;
anything else is the global project.
"""

import asyncio
import subprocess
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import aiofiles
import aiofiles.os

from .managers.git import GitBinaryManager
from .utils.logging import get_logger


logger = get_logger("worksnap.project")

GLOBAL_PROJECT_ID = "global"
ID_CACHE_FILE = "worksnap"


@dataclass
class ProjectInfo:
    """Identity and location of a project."""
    id: str
    worktree: Path
    vcs: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_global(self) -> bool:
        return self.id == GLOBAL_PROJECT_ID

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "worktree": str(self.worktree),
            "vcs": self.vcs,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectInfo':
        """Create from dictionary."""
        return cls(
            id=data["id"],
            worktree=Path(data["worktree"]),
            vcs=data.get("vcs"),
            created_at=datetime.fromisoformat(data["created_at"]),
        )


def _global_project() -> ProjectInfo:
    return ProjectInfo(id=GLOBAL_PROJECT_ID, worktree=Path("/"))


def _find_git_entry(directory: Path) -> Optional[Path]:
    for candidate in (directory, *directory.parents):
        entry = candidate / ".git"
        if entry.exists():
            return entry
    return None


async def _git(binary: Path, cwd: Path, *args: str) -> Optional[str]:
    """Run git in ``cwd``; stdout on success, None otherwise."""
    try:
        process = await asyncio.create_subprocess_exec(
            str(binary), *args,
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE
        )
        stdout, _ = await process.communicate()
    except OSError as e:
        logger.warning("git_failed", args=list(args), error=str(e))
        return None

    if process.returncode != 0:
        return None
    return stdout.decode(errors="replace")


async def _read_cached_id(git_entry: Path) -> Optional[str]:
    cache = git_entry / ID_CACHE_FILE
    if not await aiofiles.os.path.isfile(cache):
        return None
    async with aiofiles.open(cache, "r", encoding="utf-8") as f:
        return (await f.read()).strip() or None


async def _write_cached_id(git_entry: Path, project_id: str) -> None:
    try:
        async with aiofiles.open(git_entry / ID_CACHE_FILE, "w", encoding="utf-8") as f:
            await f.write(project_id)
    except OSError as e:
        # A .git file (linked worktree) or read-only repository
        logger.debug("project_id_not_cached", git=str(git_entry), error=str(e))


async def resolve_project(
    directory: Union[str, Path],
    git: Optional[GitBinaryManager] = None
) -> ProjectInfo:
    """
    Resolve the project that owns ``directory``.

    Args:
        directory: Any directory inside the project
        git: Binary manager used to run git (a default one if omitted)

    Returns:
        The git project, or the global project when there is no git
        repository, no commits yet, or no usable git executable.
    """
    directory = Path(directory).absolute()
    logger.info("resolving_project", directory=str(directory))

    git_entry = _find_git_entry(directory)
    if git_entry is None:
        return _global_project()

    project_id = await _read_cached_id(git_entry) if git_entry.is_dir() else None

    binary = await (git or GitBinaryManager()).get_binary()
    if binary is None:
        logger.warning("git_unavailable_using_global_project", directory=str(directory))
        return _global_project()

    if project_id is None:
        roots = await _git(binary.path, git_entry.parent, "rev-list", "--max-parents=0", "--all")
        candidates = sorted(line.strip() for line in (roots or "").splitlines() if line.strip())
        if not candidates:
            return _global_project()
        project_id = candidates[0]
        await _write_cached_id(git_entry, project_id)

    toplevel = await _git(binary.path, git_entry.parent, "rev-parse", "--show-toplevel")
    worktree = Path(toplevel.strip()) if toplevel and toplevel.strip() else git_entry.parent

    project = ProjectInfo(id=project_id, worktree=worktree, vcs="git")
    logger.info("project_resolved", project_id=project.id, worktree=str(project.worktree))
    return project


__all__ = ['ProjectInfo', 'resolve_project', 'GLOBAL_PROJECT_ID']
