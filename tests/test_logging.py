"""
Tests for logging setup.
"""

import json
import logging
from pathlib import Path

import pytest
import structlog

from worksnap.utils.logging import JSONFormatter, get_logger, log_function_call, setup_logging


@pytest.fixture
def restore_logging():
    """Put the root logger and structlog back the way they were."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    structlog.reset_defaults()


class TestSetupLogging:
    """Handlers and files created by setup_logging."""

    def test_creates_log_files(self, temp_dir: Path, restore_logging):
        result = setup_logging(app_name="worksnap-test", log_level="debug", log_dir=temp_dir / "logs")

        logging.getLogger("worksnap.test").error("disk full", extra={"project_id": "p"})
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert result["log_dir"] == temp_dir / "logs"
        assert result["files"]["errors"] == temp_dir / "logs" / "worksnap-test-errors.log"
        assert result["config"]["log_level"] == "DEBUG"

        main_lines = (temp_dir / "logs" / "worksnap-test.log").read_text().splitlines()
        error_lines = (temp_dir / "logs" / "worksnap-test-errors.log").read_text().splitlines()
        record = json.loads(error_lines[-1])
        assert record["message"] == "disk full"
        assert record["level"] == "ERROR"
        assert record["project_id"] == "p"
        assert len(main_lines) >= len(error_lines)

    def test_console_format(self, temp_dir: Path, restore_logging):
        result = setup_logging(log_dir=temp_dir, enable_json=False)

        assert result["config"]["enable_json"] is False
        assert (temp_dir / "worksnap.log").exists()


class TestJSONFormatter:
    """Record serialization."""

    def test_unserializable_extra_is_stringified(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.path = Path("/tmp/a")

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "hello world"
        assert data["path"] == "/tmp/a"


class TestLogFunctionCall:
    """The call-timing decorator."""

    def test_sync_passthrough(self):
        @log_function_call(get_logger("worksnap.test"))
        def add(a, b):
            return a + b

        assert add(1, 2) == 3

    @pytest.mark.asyncio
    async def test_async_reraises(self):
        @log_function_call(get_logger("worksnap.test"))
        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await broken()
