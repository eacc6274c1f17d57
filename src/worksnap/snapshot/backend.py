"""
Object store binding.

``ObjectStoreBackend`` is the narrow set of object-store primitives the
checkpoint engine needs. ``GitBackend`` implements it by running git
plumbing commands as child processes against a store directory that is
separate from the project's own ``.git``.

Backends never raise for a failed command; they return a ``ToolResult``
and leave the policy to the caller.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Sequence
import asyncio
import os
import subprocess

from .models import Checkpoint, StoreHandle, ToolResult
from ..managers.git import GitBinaryManager
from ..utils.logging import get_logger


logger = get_logger("worksnap.git")

# Exit status reported when the tool could not be started at all.
SPAWN_FAILED = 127
# Exit status reported for a child killed after the timeout.
KILLED = -9

_INHERITED_GIT_VARS = ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE")
_DIFF_CONFIG = ("-c", "core.autocrlf=false", "-c", "core.quotepath=false")


class ObjectStoreBackend(ABC):
    """Primitives over a content-addressable, tree-structured object store."""

    @abstractmethod
    async def available(self) -> bool:
        """Whether the underlying tool can be used at all."""

    @abstractmethod
    async def init(self, handle: StoreHandle) -> ToolResult:
        """Create the store bound to ``handle.worktree``; line endings kept as-is."""

    @abstractmethod
    async def stage(self, handle: StoreHandle) -> ToolResult:
        """Stage the whole tracked file set into the store's index."""

    @abstractmethod
    async def write_tree(self, handle: StoreHandle) -> ToolResult:
        """Write the index as a tree; stdout carries the hash."""

    @abstractmethod
    async def diff_names(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        """NUL-separated paths that differ between ``hash`` and the index."""

    @abstractmethod
    async def diff_text(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        """Unified diff between ``hash`` and the index."""

    @abstractmethod
    async def diff_stat(self, handle: StoreHandle, from_hash: Checkpoint, to_hash: Checkpoint) -> ToolResult:
        """NUL-terminated ``additions<TAB>deletions<TAB>path`` records."""

    @abstractmethod
    async def show_blob(self, handle: StoreHandle, ref: Checkpoint, path: str) -> ToolResult:
        """Raw content of ``path`` in tree ``ref``."""

    @abstractmethod
    async def read_tree_checkout(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        """Load tree ``hash`` into the index and force-check-out every entry."""

    @abstractmethod
    async def checkout_path(self, handle: StoreHandle, hash: Checkpoint, path: str) -> ToolResult:
        """Check out a single path from ``hash`` into the working tree."""

    @abstractmethod
    async def ls_tree_path(self, handle: StoreHandle, hash: Checkpoint, relative_path: str) -> ToolResult:
        """List ``relative_path`` in tree ``hash``; empty output if absent."""


class GitBackend(ObjectStoreBackend):
    """Object store backed by the git command line tool."""

    def __init__(
        self,
        binary_manager: Optional[GitBinaryManager] = None,
        timeout: Optional[float] = None
    ):
        self.binary_manager = binary_manager or GitBinaryManager()
        self.timeout = timeout

    async def _locate(self) -> Optional[Path]:
        binary = await self.binary_manager.get_binary()
        return binary.path if binary else None

    async def available(self) -> bool:
        return await self._locate() is not None

    def _child_env(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        env = {k: v for k, v in os.environ.items() if k not in _INHERITED_GIT_VARS}
        env["GIT_TERMINAL_PROMPT"] = "0"
        if extra:
            env.update(extra)
        return env

    async def _run(
        self,
        handle: StoreHandle,
        *args: str,
        options: Sequence[str] = (),
        bind: bool = True,
        env: Optional[Dict[str, str]] = None
    ) -> ToolResult:
        """
        Run one git command for ``handle``.

        Args:
            handle: Store the command operates on
            *args: Git subcommand and its arguments
            options: Global options placed before the subcommand
            bind: Pass ``--git-dir``/``--work-tree`` for the store
            env: Extra environment for the child

        Returns:
            The captured result; spawn failures and timeouts are folded in.
        """
        binary = await self._locate()
        command: List[str] = ["git", *options]
        if bind:
            command += ["--git-dir", str(handle.store), "--work-tree", str(handle.worktree)]
        command += list(args)

        if binary is None:
            return ToolResult(command, SPAWN_FAILED, stderr=b"git executable not found")
        command[0] = str(binary)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=str(handle.worktree),
                env=self._child_env(env)
            )
        except OSError as e:
            logger.warning("spawn_failed", command=command, error=str(e))
            return ToolResult(command, SPAWN_FAILED, stderr=str(e).encode())

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("command_timed_out", command=command, timeout=self.timeout)
            return ToolResult(command, KILLED, timed_out=True)

        return ToolResult(command, process.returncode, stdout, stderr)

    async def init(self, handle: StoreHandle) -> ToolResult:
        result = await self._run(
            handle, "init", "--quiet",
            bind=False,
            env={"GIT_DIR": str(handle.store), "GIT_WORK_TREE": str(handle.worktree)}
        )
        if not result.ok:
            return result
        return await self._run(handle, "config", "core.autocrlf", "false")

    async def stage(self, handle: StoreHandle) -> ToolResult:
        return await self._run(handle, "add", ".")

    async def write_tree(self, handle: StoreHandle) -> ToolResult:
        return await self._run(handle, "write-tree")

    async def diff_names(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        return await self._run(
            handle, "diff", "--name-only", "-z", hash, "--", ".",
            options=_DIFF_CONFIG
        )

    async def diff_text(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        return await self._run(handle, "diff", hash, "--", ".", options=_DIFF_CONFIG)

    async def diff_stat(self, handle: StoreHandle, from_hash: Checkpoint, to_hash: Checkpoint) -> ToolResult:
        return await self._run(
            handle, "diff", "--no-renames", "--numstat", "-z", from_hash, to_hash, "--", ".",
            options=_DIFF_CONFIG
        )

    async def show_blob(self, handle: StoreHandle, ref: Checkpoint, path: str) -> ToolResult:
        return await self._run(handle, "show", f"{ref}:{path}", options=_DIFF_CONFIG)

    async def read_tree_checkout(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        result = await self._run(handle, "read-tree", hash)
        if not result.ok:
            return result
        return await self._run(handle, "checkout-index", "-a", "-f")

    async def checkout_path(self, handle: StoreHandle, hash: Checkpoint, path: str) -> ToolResult:
        return await self._run(handle, "checkout", hash, "--", path)

    async def ls_tree_path(self, handle: StoreHandle, hash: Checkpoint, relative_path: str) -> ToolResult:
        return await self._run(handle, "ls-tree", hash, "--", relative_path)


__all__ = [
    'ObjectStoreBackend',
    'GitBackend',
    'SPAWN_FAILED',
    'KILLED',
]
