"""
Object store test doubles and helpers.
"""

import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from worksnap.snapshot.backend import GitBackend, ObjectStoreBackend, SPAWN_FAILED
from worksnap.snapshot.models import Checkpoint, StoreHandle, ToolResult


GIT = shutil.which("git")

requires_git = pytest.mark.skipif(GIT is None, reason="git executable not installed")

PROJECT_ID = "test-project"

Response = Union[ToolResult, Callable[..., ToolResult]]


def ok(stdout: bytes = b"") -> ToolResult:
    return ToolResult(["git"], 0, stdout=stdout)


def failed(returncode: int = 128, stderr: bytes = b"fatal: simulated") -> ToolResult:
    return ToolResult(["git"], returncode, stderr=stderr)


class FakeBackend(ObjectStoreBackend):
    """Scriptable backend; every primitive succeeds with empty output unless told otherwise."""

    def __init__(self, is_available: bool = True):
        self.is_available = is_available
        self.responses: Dict[str, Response] = {}
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []

    def respond(self, operation: str, response: Response) -> None:
        self.responses[operation] = response

    def calls_to(self, operation: str) -> List[Tuple[Any, ...]]:
        return [args for name, args in self.calls if name == operation]

    def _answer(self, operation: str, *args: Any) -> ToolResult:
        self.calls.append((operation, args))
        response = self.responses.get(operation)
        if response is None:
            return ok()
        if callable(response):
            return response(*args)
        return response

    async def available(self) -> bool:
        return self.is_available

    async def init(self, handle: StoreHandle) -> ToolResult:
        return self._answer("init", handle)

    async def stage(self, handle: StoreHandle) -> ToolResult:
        return self._answer("stage", handle)

    async def write_tree(self, handle: StoreHandle) -> ToolResult:
        return self._answer("write_tree", handle)

    async def diff_names(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        return self._answer("diff_names", handle, hash)

    async def diff_text(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        return self._answer("diff_text", handle, hash)

    async def diff_stat(self, handle: StoreHandle, from_hash: Checkpoint, to_hash: Checkpoint) -> ToolResult:
        return self._answer("diff_stat", handle, from_hash, to_hash)

    async def show_blob(self, handle: StoreHandle, ref: Checkpoint, path: str) -> ToolResult:
        return self._answer("show_blob", handle, ref, path)

    async def read_tree_checkout(self, handle: StoreHandle, hash: Checkpoint) -> ToolResult:
        return self._answer("read_tree_checkout", handle, hash)

    async def checkout_path(self, handle: StoreHandle, hash: Checkpoint, path: str) -> ToolResult:
        return self._answer("checkout_path", handle, hash, path)

    async def ls_tree_path(self, handle: StoreHandle, hash: Checkpoint, relative_path: str) -> ToolResult:
        return self._answer("ls_tree_path", handle, hash, relative_path)


class FailingCheckoutGitBackend(GitBackend):
    """Real git, except that single-path checkouts always fail."""

    async def checkout_path(self, handle: StoreHandle, hash: Checkpoint, path: str) -> ToolResult:
        return failed(1, b"error: simulated checkout failure")


class FlakyStageGitBackend(GitBackend):
    """Real git, except that staging fails while ``fail_stage`` is set."""

    fail_stage = False

    async def stage(self, handle: StoreHandle) -> ToolResult:
        if self.fail_stage:
            return failed(128, b"fatal: adding files failed")
        return await super().stage(handle)


def create_mock_git(directory: Path, version: str = "2.43.0") -> Path:
    """Create an executable that answers ``--version`` like git."""
    directory.mkdir(parents=True, exist_ok=True)
    binary_path = directory / "git"
    binary_path.write_text(
        "#!/bin/sh\n"
        "if [ \"$1\" = \"--version\" ]; then\n"
        f"    echo \"git version {version}\"\n"
        "    exit 0\n"
        "fi\n"
        "exit 1\n"
    )
    binary_path.chmod(0o755)
    return binary_path


def write(path: Path, content: Union[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode()
    path.write_bytes(content)
    return path


__all__ = [
    'GIT',
    'requires_git',
    'PROJECT_ID',
    'FakeBackend',
    'FailingCheckoutGitBackend',
    'FlakyStageGitBackend',
    'create_mock_git',
    'write',
    'ok',
    'failed',
    'SPAWN_FAILED',
]
