"""
Error types for worksnap.

Every worksnap error carries a stable ``code``, a severity, a category and
an ``ErrorContext`` naming where it happened, and serializes to a JSON
envelope via ``to_dict()``. Engine operations only ever raise
``PreconditionError`` to callers; the store and tool errors below are
downgraded to neutral results and reported through logs and events.
"""

from typing import Optional, Dict, Any, List, Type, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import traceback
from contextlib import contextmanager
import asyncio
import functools

from .logging import get_logger


logger = get_logger("worksnap.errors")


class ErrorSeverity(Enum):
    """Error severity levels; values are logger method names."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    SYSTEM = "system"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    EXTERNAL_TOOL = "external_tool"
    STORAGE = "storage"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Where an error happened."""
    timestamp: datetime = field(default_factory=datetime.utcnow)
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "component": self.component,
            "operation": self.operation,
            "metadata": self.metadata,
        }


class WorksnapError(Exception):
    """Base exception for all worksnap errors."""

    code: str = "WORKSNAP_ERROR"
    default_message: str = "An error occurred in worksnap"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN
    is_retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause

        if self.context.stack_trace is None and cause is not None:
            self.context.stack_trace = "".join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )

        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Hints for resolving the error."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready envelope: ``{"error": {...}}``."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "is_retryable": self.is_retryable,
                "suggestions": self.get_suggestions(),
                "context": self.context.to_dict(),
            }
        }


class ConfigurationError(WorksnapError):
    """Configuration could not be loaded or failed validation."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Verify WORKSNAP_* environment variables",
        ]


class ValidationError(WorksnapError):
    """A value broke a constraint."""
    code = "VALIDATION_ERROR"
    default_message = "Validation error"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.WARNING

    def __init__(self, field: str, value: Any, constraint: str, **kwargs):
        self.field = field
        self.value = value
        self.constraint = constraint
        super().__init__(f"Validation failed for field '{field}': {constraint}", **kwargs)

    def get_suggestions(self) -> List[str]:
        return [f"Check the value of field '{self.field}': {self.constraint}"]


class PreconditionError(ValidationError):
    """An engine operation was called with invalid static arguments."""
    code = "PRECONDITION_FAILED"
    severity = ErrorSeverity.ERROR


class StoreUnavailable(WorksnapError):
    """
    The checkpoint store cannot be used for a project.

    ``reason`` is one of ``tool_missing``, ``not_eligible`` or
    ``init_failed``.
    """
    code = "STORE_UNAVAILABLE"
    default_message = "Checkpoint store unavailable"
    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.WARNING

    def __init__(self, message: Optional[str] = None, reason: str = "unknown", **kwargs):
        self.reason = reason
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        if self.reason == "tool_missing":
            return ["Install git or set git.binary_path in the configuration"]
        if self.reason == "not_eligible":
            return ["Run inside a git-managed project or set snapshot.require_vcs to false"]
        return []


class ToolInvocationFailed(WorksnapError):
    """The delegate tool ran but did not succeed."""
    code = "TOOL_INVOCATION_FAILED"
    default_message = "Delegate tool invocation failed"
    category = ErrorCategory.EXTERNAL_TOOL
    is_retryable = True

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        timed_out: bool = False,
        **kwargs
    ):
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out
        what = "timed out" if timed_out else f"exited with status {returncode}"
        message = f"'{' '.join(self.command)}' {what}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message, **kwargs)


class ParseFailure(WorksnapError):
    """Delegate tool output could not be parsed."""
    code = "PARSE_FAILURE"
    default_message = "Failed to parse tool output"
    category = ErrorCategory.INTERNAL
    severity = ErrorSeverity.WARNING

    def __init__(self, line: str, reason: str, **kwargs):
        self.line = line
        self.reason = reason
        super().__init__(f"Cannot parse {line!r}: {reason}", **kwargs)


def handle_errors(
    *error_classes: Type[Exception],
    fallback: Optional[Callable] = None,
    reraise: bool = True,
    log_level: ErrorSeverity = ErrorSeverity.ERROR
):
    """
    Log ``error_classes`` raised by the decorated function.

    The fallback, when given, is called with the original arguments and
    its result returned. Otherwise the error is re-raised, or None is
    returned when ``reraise`` is False. Other exceptions pass through.
    """
    def decorator(func):
        def on_error(e: Exception) -> None:
            getattr(logger, log_level.value)(
                f"error_in_{func.__name__}",
                error=str(e),
                error_type=type(e).__name__,
            )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except error_classes as e:
                    on_error(e)
                    if fallback is not None:
                        result = fallback(*args, **kwargs)
                        return await result if asyncio.iscoroutine(result) else result
                    if reraise:
                        raise
                    return None
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except error_classes as e:
                on_error(e)
                if fallback is not None:
                    return fallback(*args, **kwargs)
                if reraise:
                    raise
                return None
        return sync_wrapper

    return decorator


@contextmanager
def error_context(component: str, operation: str, reraise: bool = True, **metadata):
    """
    Attach component/operation context to errors raised in the block.

    worksnap errors get missing context fields filled in; any other
    exception is wrapped in a ``WorksnapError``.
    """
    context = ErrorContext(component=component, operation=operation, metadata=metadata)

    try:
        yield context
    except WorksnapError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.metadata.update(metadata)
        logger.error("worksnap_error_in_context", error=e.to_dict())
        if reraise:
            raise
    except Exception as e:
        wrapped = WorksnapError(message=str(e), context=context, cause=e)
        logger.error("unexpected_error_in_context", error=wrapped.to_dict(), exc_info=True)
        if reraise:
            raise wrapped from e


__all__ = [
    'WorksnapError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'ValidationError',
    'PreconditionError',
    'StoreUnavailable',
    'ToolInvocationFailed',
    'ParseFailure',
    'handle_errors',
    'error_context',
]
