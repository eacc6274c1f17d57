"""
Logging setup for worksnap.

Modules log snake_case event names with keyword context through structlog
(``logger.info("checkpoint_tracked", hash=..., project_id=...)``). The
stdlib root logger fans records out to a Rich console handler and two
rotating files under the log directory: everything, and errors only.
Sentry is attached when a DSN is configured.
"""

import logging
import logging.handlers
import sys
import asyncio
import functools
import os
import time
from pathlib import Path
from typing import Optional, Dict, Any
import json
from datetime import datetime
import structlog
from rich.logging import RichHandler
from rich.console import Console
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration


console = Console(file=sys.stderr)

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per line, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
            "pid": record.process,
        }

        for key, value in vars(record).items():
            if key in _RECORD_ATTRS:
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                value = str(value)
            entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry)


def _rotating(path: Path, level: int, formatter: logging.Formatter, max_size: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_size, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    app_name: str = "worksnap",
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    enable_json: bool = True,
    enable_sentry: bool = False,
    sentry_dsn: Optional[str] = None,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 10,
) -> Dict[str, Any]:
    """
    Configure structlog, the root logger and optional Sentry reporting.

    Args:
        app_name: Prefix of the log file names
        log_level: Console and root level name (case-insensitive)
        log_dir: Directory for log files (defaults to ~/.worksnap/logs)
        enable_json: Render structlog events and log files as JSON
        enable_sentry: Report errors to Sentry when a DSN is given
        sentry_dsn: Sentry DSN
        max_size: Size in bytes before a log file is rotated
        backup_count: Rotated files to keep

    Returns:
        The log directory, the files written and the effective settings
    """
    level = getattr(logging, log_level.upper())
    log_dir = log_dir or Path.home() / ".worksnap" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if enable_json else structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(level)

    rich_handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
    rich_handler.setLevel(level)
    root.addHandler(rich_handler)

    file_format = JSONFormatter() if enable_json else logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    files = {
        "all": log_dir / f"{app_name}.log",
        "errors": log_dir / f"{app_name}-errors.log",
    }
    root.addHandler(_rotating(files["all"], logging.DEBUG, file_format, max_size, backup_count))
    root.addHandler(_rotating(files["errors"], logging.ERROR, file_format, max_size, max(1, backup_count // 2)))

    if enable_sentry and sentry_dsn:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        )

    get_logger(app_name).info(
        "logging_initialized",
        log_level=log_level.upper(),
        log_dir=str(log_dir),
        sentry=bool(enable_sentry and sentry_dsn),
        pid=os.getpid(),
    )

    return {
        "log_dir": log_dir,
        "files": files,
        "config": {
            "app_name": app_name,
            "log_level": log_level.upper(),
            "enable_json": enable_json,
            "enable_sentry": bool(enable_sentry and sentry_dsn),
        },
    }


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance by name."""
    return structlog.get_logger(name)


def log_function_call(logger: structlog.BoundLogger):
    """Log entry, duration and failure of the decorated function."""
    def decorator(func):
        def finished(started: float, error: Optional[BaseException] = None) -> None:
            duration_ms = round((time.monotonic() - started) * 1000, 3)
            if error is None:
                logger.info(f"completed_{func.__name__}", duration_ms=duration_ms)
            else:
                logger.error(
                    f"failed_{func.__name__}",
                    duration_ms=duration_ms,
                    error=str(error),
                    error_type=type(error).__name__,
                    exc_info=True
                )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                logger.debug(f"calling_{func.__name__}", kwargs=kwargs)
                started = time.monotonic()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    finished(started, e)
                    raise
                finished(started)
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            logger.debug(f"calling_{func.__name__}", kwargs=kwargs)
            started = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                finished(started, e)
                raise
            finished(started)
            return result
        return sync_wrapper

    return decorator


__all__ = [
    'setup_logging',
    'get_logger',
    'log_function_call',
    'JSONFormatter',
]
