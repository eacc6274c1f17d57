"""
Tests for project identity lookup.
"""

import subprocess
from datetime import datetime
from pathlib import Path

import pytest

from worksnap.managers.git import GitBinaryManager
from worksnap.project import GLOBAL_PROJECT_ID, ProjectInfo, resolve_project
from worksnap.utils.config import GitBinaryConfig

from tests.fixtures.backend_fixtures import GIT, requires_git, write


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        [GIT, "-c", "user.name=Test", "-c", "user.email=test@example.com", "-c", "commit.gpgsign=false", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True
    )
    return result.stdout.strip()


@pytest.fixture
def repo(temp_dir: Path) -> Path:
    """A git repository with a single commit."""
    path = temp_dir / "repo"
    path.mkdir()
    git(path, "init", "--quiet")
    write(path / "README", "hello\n")
    git(path, "add", "README")
    git(path, "commit", "--quiet", "-m", "initial")
    return path


@requires_git
class TestResolveProject:
    """Identity from the root commit."""

    @pytest.mark.asyncio
    async def test_id_is_root_commit(self, repo: Path):
        root = git(repo, "rev-list", "--max-parents=0", "HEAD")

        project = await resolve_project(repo)

        assert project.id == root
        assert project.vcs == "git"
        assert project.worktree.resolve() == repo.resolve()
        assert not project.is_global

    @pytest.mark.asyncio
    async def test_subdirectory_resolves_to_toplevel(self, repo: Path):
        nested = repo / "src" / "pkg"
        nested.mkdir(parents=True)

        project = await resolve_project(nested)

        assert project.worktree.resolve() == repo.resolve()

    @pytest.mark.asyncio
    async def test_id_is_cached(self, repo: Path):
        first = await resolve_project(repo)
        cache = repo / ".git" / "worksnap"

        assert cache.read_text() == first.id

        cache.write_text("cached-id\n")
        second = await resolve_project(repo)
        assert second.id == "cached-id"

    @pytest.mark.asyncio
    async def test_id_survives_later_commits(self, repo: Path):
        first = await resolve_project(repo)
        (repo / ".git" / "worksnap").unlink()
        write(repo / "more.txt", "x\n")
        git(repo, "add", "more.txt")
        git(repo, "commit", "--quiet", "-m", "second")

        assert (await resolve_project(repo)).id == first.id

    @pytest.mark.asyncio
    async def test_repository_without_commits_is_global(self, temp_dir: Path):
        path = temp_dir / "empty"
        path.mkdir()
        git(path, "init", "--quiet")

        project = await resolve_project(path)

        assert project.is_global
        assert not (path / ".git" / "worksnap").exists()


class TestGlobalProject:
    """Fallbacks to the global project."""

    @pytest.mark.asyncio
    async def test_directory_outside_git(self, temp_dir: Path):
        project = await resolve_project(temp_dir)

        assert project.id == GLOBAL_PROJECT_ID
        assert project.worktree == Path("/")
        assert project.vcs is None

    @pytest.mark.asyncio
    async def test_git_unavailable(self, project_dir: Path, temp_dir: Path, monkeypatch):
        monkeypatch.setattr("worksnap.managers.git.shutil.which", lambda name: None)
        monkeypatch.setattr("worksnap.managers.git.DEFAULT_SEARCH_PATHS", [])
        manager = GitBinaryManager(GitBinaryConfig(binary_path=temp_dir / "missing"))

        project = await resolve_project(project_dir, git=manager)

        assert project.is_global

    @pytest.mark.asyncio
    async def test_toplevel_with_oldest_supported_git(self, project_dir: Path, temp_dir: Path):
        write(project_dir / ".git" / "worksnap", "cached-id")
        nested = project_dir / "pkg"
        nested.mkdir()

        binary = temp_dir / "bin" / "git"
        write(binary, (
            "#!/bin/sh\n"
            "if [ \"$1\" = \"--version\" ]; then echo \"git version 2.20.0\"; exit 0; fi\n"
            f"if [ \"$*\" = \"rev-parse --show-toplevel\" ]; then echo \"{project_dir}\"; exit 0; fi\n"
            "exit 129\n"
        ))
        binary.chmod(0o755)
        manager = GitBinaryManager(GitBinaryConfig(binary_path=binary))

        project = await resolve_project(nested, git=manager)

        assert project.id == "cached-id"
        assert project.worktree == project_dir

    def test_round_trip(self):
        project = ProjectInfo(id="abc123", worktree=Path("/work/app"), vcs="git", created_at=datetime(2024, 5, 1, 12, 0))
        assert ProjectInfo.from_dict(project.to_dict()) == project
