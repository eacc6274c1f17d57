"""
Pytest configuration and shared fixtures for worksnap tests.
"""

import shutil
import tempfile
from pathlib import Path
from typing import AsyncGenerator, Generator

import pytest

import worksnap.utils.config as config_module
import worksnap.utils.notifications as notifications_module
from worksnap.managers.git import GitBinaryManager
from worksnap.snapshot.backend import GitBackend
from worksnap.snapshot.engine import SnapshotEngine
from worksnap.utils.config import SnapshotConfig
from worksnap.utils.notifications import EventBus

from tests.fixtures.backend_fixtures import FakeBackend


@pytest.fixture(autouse=True)
def reset_globals() -> Generator[None, None, None]:
    """Give every test a fresh global event bus and config loader."""
    notifications_module._event_bus = None
    config_module._config_loader = None
    yield
    notifications_module._event_bus = None
    config_module._config_loader = None


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def project_dir(temp_dir: Path) -> Path:
    """A working tree that counts as git-managed."""
    project = temp_dir / "project"
    (project / ".git").mkdir(parents=True)
    return project


@pytest.fixture
def snapshot_config(temp_dir: Path) -> SnapshotConfig:
    return SnapshotConfig(data_root=temp_dir / "data")


@pytest.fixture
async def event_bus() -> AsyncGenerator[EventBus, None]:
    bus = EventBus()
    yield bus
    await bus.shutdown()


@pytest.fixture
def git_engine(snapshot_config: SnapshotConfig, event_bus: EventBus) -> SnapshotEngine:
    """Engine driving the real git executable."""
    return SnapshotEngine(
        config=snapshot_config,
        backend=GitBackend(GitBinaryManager()),
        event_bus=event_bus
    )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def fake_engine(snapshot_config: SnapshotConfig, fake_backend: FakeBackend, event_bus: EventBus) -> SnapshotEngine:
    """Engine over the scriptable backend."""
    return SnapshotEngine(config=snapshot_config, backend=fake_backend, event_bus=event_bus)
