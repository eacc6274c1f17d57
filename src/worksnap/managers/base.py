"""
Lifecycle base for long-lived worksnap components.

A manager moves UNINITIALIZED -> READY -> RUNNING -> STOPPED; any hook that
raises leaves it FAILED. Transitions are reported to locally registered
handlers as ``initialized``, ``started`` and ``stopped``.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..utils.logging import get_logger
from ..utils.errors import WorksnapError, ErrorCategory


T = TypeVar('T')

LifecycleHandler = Callable[[str, Dict[str, Any]], Any]


class ManagerState(Enum):
    """Manager lifecycle states."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    RUNNING = "running"
    STOPPED = "stopped"
    FAILED = "failed"


class ManagerError(WorksnapError):
    """A lifecycle transition was refused or its hook failed."""
    code = "MANAGER_ERROR"
    default_message = "Manager lifecycle error"
    category = ErrorCategory.SYSTEM


@dataclass
class HealthStatus:
    """Result of the last health probe."""
    healthy: bool
    checked_at: datetime = field(default_factory=datetime.utcnow)
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class BaseManager(ABC, Generic[T]):
    """Shared lifecycle, health probing and local event handlers."""

    def __init__(self, name: str, notify: bool = True):
        self.name = name
        self.notify = notify
        self.logger = get_logger(f"worksnap.managers.{name}")
        self.state = ManagerState.UNINITIALIZED
        self._handlers: Dict[str, List[LifecycleHandler]] = {}
        self._health = HealthStatus(healthy=True)

    @property
    def is_ready(self) -> bool:
        return self.state in (ManagerState.READY, ManagerState.RUNNING)

    @property
    def is_running(self) -> bool:
        return self.state == ManagerState.RUNNING

    async def _transition(
        self,
        hook: Callable[[], Awaitable[None]],
        target: ManagerState,
        event: str
    ) -> None:
        try:
            await hook()
        except Exception as e:
            self.state = ManagerState.FAILED
            self.logger.error(f"{event}_failed", manager=self.name, error=str(e), exc_info=True)
            raise ManagerError(f"{self.name}: {event} failed: {e}", cause=e) from e

        self.state = target
        self.logger.info(f"manager_{event}", manager=self.name)
        await self._notify_event(event, {"manager": self.name})

    async def initialize(self) -> None:
        """Run component setup; the manager becomes READY."""
        if self.state != ManagerState.UNINITIALIZED:
            raise ManagerError(f"{self.name}: cannot initialize from {self.state.value}")
        await self._transition(self._initialize, ManagerState.READY, "initialized")

    async def start(self) -> None:
        """Start a READY manager."""
        if self.state != ManagerState.READY:
            raise ManagerError(f"{self.name}: cannot start from {self.state.value}")
        await self._transition(self._start, ManagerState.RUNNING, "started")

    async def stop(self) -> None:
        """Stop a running manager; a no-op otherwise."""
        if not self.is_running:
            self.logger.debug("stop_ignored", manager=self.name, state=self.state.value)
            return
        await self._transition(self._stop, ManagerState.STOPPED, "stopped")

    async def health_check(self) -> HealthStatus:
        """Probe the component. A probe that raises reports unhealthy."""
        try:
            details = await self._health_check()
            self._health = HealthStatus(healthy=bool(details.get("healthy", True)), details=details)
        except Exception as e:
            self.logger.error("health_check_failed", manager=self.name, error=str(e))
            self._health = HealthStatus(healthy=False, error=str(e))
        return self._health

    def register_event_handler(self, event: str, handler: LifecycleHandler) -> None:
        """Call ``handler(event, data)`` on each ``event`` transition."""
        self._handlers.setdefault(event, []).append(handler)

    def unregister_event_handler(self, event: str, handler: LifecycleHandler) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    async def _notify_event(self, event: str, data: Dict[str, Any]) -> None:
        if not self.notify:
            return

        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(event, data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                self.logger.error(
                    "event_handler_error",
                    manager=self.name,
                    event_type=event,
                    error=str(e)
                )

    @abstractmethod
    async def _initialize(self) -> None:
        ...

    @abstractmethod
    async def _start(self) -> None:
        ...

    @abstractmethod
    async def _stop(self) -> None:
        ...

    @abstractmethod
    async def _health_check(self) -> Dict[str, Any]:
        ...


__all__ = [
    'BaseManager',
    'ManagerState',
    'ManagerError',
    'HealthStatus',
]
