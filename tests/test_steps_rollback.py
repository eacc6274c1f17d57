"""
Tests for step recording and undoable rollback.
"""

import pytest
from pathlib import Path

from worksnap.snapshot.engine import SnapshotEngine
from worksnap.snapshot.rollback import RollbackSession
from worksnap.snapshot.steps import StepRecorder

from tests.fixtures.backend_fixtures import PROJECT_ID, requires_git, write


pytestmark = requires_git


class TestStepRecorder:
    """Start/finish checkpoints per step."""

    @pytest.mark.asyncio
    async def test_step_records_changed_files(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "one\n")
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)

        start = await recorder.start()
        write(project_dir / "a.txt", "two\n")
        record = await recorder.finish()

        assert record.start == start
        assert record.finish and record.finish != start
        assert record.patch.hash == start
        assert record.patch.files == [str(project_dir / "a.txt")]

    @pytest.mark.asyncio
    async def test_step_without_changes_has_no_patch(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "one\n")
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)

        await recorder.start()
        record = await recorder.finish()

        assert record.patch is None
        assert record.start == record.finish
        assert recorder.patches() == []

    @pytest.mark.asyncio
    async def test_patches_and_summary_across_steps(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "1\n")
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)

        await recorder.start()
        write(project_dir / "a.txt", "2\n")
        await recorder.finish()

        await recorder.start()
        write(project_dir / "b.txt", "new\n")
        await recorder.finish()

        patches = recorder.patches()
        assert [p.files for p in patches] == [
            [str(project_dir / "a.txt")],
            [str(project_dir / "b.txt")],
        ]

        summary = await recorder.summarize()
        assert [(d.file, d.before, d.after) for d in summary] == [
            ("a.txt", b"1\n", b"2\n"),
            ("b.txt", b"", b"new\n"),
        ]

    @pytest.mark.asyncio
    async def test_summary_without_steps_is_empty(self, git_engine: SnapshotEngine, project_dir: Path):
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)
        assert await recorder.summarize() == []

    @pytest.mark.asyncio
    async def test_finish_without_start(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "1\n")
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)

        record = await recorder.finish()

        assert record.start is None
        assert record.finish
        assert record.patch is None


class TestRollbackSession:
    """Revert with undo."""

    @pytest.mark.asyncio
    async def test_rollback_then_undo(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "before\n")
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)
        await recorder.start()
        write(project_dir / "a.txt", "after\n")
        write(project_dir / "b.txt", "added\n")
        await recorder.finish()

        session = RollbackSession(git_engine, PROJECT_ID, project_dir)
        state = await session.rollback(recorder.patches())

        assert (project_dir / "a.txt").read_text() == "before\n"
        assert not (project_dir / "b.txt").exists()
        assert state.snapshot
        assert "+after" in state.diff or "-after" in state.diff

        assert await session.undo() is True
        assert (project_dir / "a.txt").read_text() == "after\n"
        assert (project_dir / "b.txt").read_text() == "added\n"
        assert session.state is None

    @pytest.mark.asyncio
    async def test_second_rollback_keeps_first_snapshot(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "v1\n")
        recorder = StepRecorder(git_engine, PROJECT_ID, project_dir)

        await recorder.start()
        write(project_dir / "a.txt", "v2\n")
        await recorder.finish()
        await recorder.start()
        write(project_dir / "a.txt", "v3\n")
        await recorder.finish()
        first_patch, second_patch = recorder.patches()

        session = RollbackSession(git_engine, PROJECT_ID, project_dir)
        first = await session.rollback([second_patch])
        assert (project_dir / "a.txt").read_text() == "v2\n"

        second = await session.rollback([first_patch])
        assert (project_dir / "a.txt").read_text() == "v1\n"
        assert second.snapshot == first.snapshot

        await session.undo()
        assert (project_dir / "a.txt").read_text() == "v3\n"

    @pytest.mark.asyncio
    async def test_commit_keeps_rolled_back_files(self, git_engine: SnapshotEngine, project_dir: Path):
        write(project_dir / "a.txt", "before\n")
        hash = await git_engine.track(PROJECT_ID, project_dir)
        write(project_dir / "a.txt", "after\n")
        patch = await git_engine.patch(hash, PROJECT_ID, project_dir)

        session = RollbackSession(git_engine, PROJECT_ID, project_dir)
        await session.rollback([patch])
        session.commit()

        assert session.state is None
        assert await session.undo() is False
        assert (project_dir / "a.txt").read_text() == "before\n"
