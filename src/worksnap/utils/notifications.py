"""
In-process event bus for worksnap.

Engine components publish what they did (checkpoint tracked, restore
degraded, configuration reloaded) without knowing who listens. Events are
queued by ``emit`` and delivered on a background task, so a slow or
failing subscriber never holds up the operation that emitted them.
"""

from typing import Optional, Dict, Any, List, Callable, Set, Union, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from collections import deque
import asyncio
import inspect

from .logging import get_logger


logger = get_logger("worksnap.notifications")

Handler = Callable[['Event'], Any]


class EventPriority(Enum):
    """Event priority levels."""
    LOW = 1
    NORMAL = 2
    HIGH = 3
    CRITICAL = 4


class EventCategory(Enum):
    """Event categories for routing."""
    SYSTEM = "system"
    CHECKPOINT = "checkpoint"
    BINARY = "binary"
    CONFIG = "config"
    ERROR = "error"


@dataclass
class Event:
    """A published event."""
    name: str
    category: EventCategory
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.utcnow)
    priority: EventPriority = EventPriority.NORMAL
    source: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "category": self.category.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "priority": self.priority.value,
            "source": self.source,
            "metadata": self.metadata
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Event':
        """Create from dictionary."""
        return cls(
            name=data["name"],
            category=EventCategory(data["category"]),
            data=data["data"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            priority=EventPriority(data.get("priority", EventPriority.NORMAL.value)),
            source=data.get("source"),
            metadata=data.get("metadata", {})
        )


def _as_set(value: Union[None, Any, Iterable[Any]], single: type) -> Optional[Set[Any]]:
    if value is None:
        return None
    if isinstance(value, single):
        return {value}
    return set(value)


@dataclass(eq=False)
class Subscription:
    """A handler and the events it wants."""
    handler: Handler
    categories: Optional[Set[EventCategory]] = None
    event_names: Optional[Set[str]] = None
    priority_min: EventPriority = EventPriority.LOW
    filter_func: Optional[Callable[[Event], bool]] = None

    def matches(self, event: Event) -> bool:
        if event.priority.value < self.priority_min.value:
            return False
        if self.categories and event.category not in self.categories:
            return False
        if self.event_names and event.name not in self.event_names:
            return False
        return self.filter_func is None or bool(self.filter_func(event))


class EventBus:
    """Publish/subscribe hub with a bounded history."""

    def __init__(self, max_history: int = 1000):
        self._subscriptions: List[Subscription] = []
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._history: deque = deque(maxlen=max_history)

    def subscribe(
        self,
        handler: Handler,
        categories: Optional[Union[EventCategory, List[EventCategory]]] = None,
        event_names: Optional[Union[str, List[str]]] = None,
        priority_min: EventPriority = EventPriority.LOW,
        filter_func: Optional[Callable[[Event], bool]] = None,
    ) -> Subscription:
        """
        Register ``handler`` for matching events.

        Handlers may be plain functions or coroutine functions. Every
        filter given must match for the handler to be called.
        """
        subscription = Subscription(
            handler=handler,
            categories=_as_set(categories, EventCategory),
            event_names=_as_set(event_names, str),
            priority_min=priority_min,
            filter_func=filter_func,
        )
        self._subscriptions.append(subscription)
        logger.debug("subscription_added", handler=getattr(handler, '__name__', repr(handler)))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. False if it was not registered."""
        if subscription not in self._subscriptions:
            return False
        self._subscriptions.remove(subscription)
        return True

    async def emit(
        self,
        name: str,
        category: EventCategory,
        data: Dict[str, Any],
        priority: EventPriority = EventPriority.NORMAL,
        source: Optional[str] = None,
        **metadata
    ) -> None:
        """Record an event and queue it for delivery."""
        event = Event(
            name=name,
            category=category,
            data=data,
            priority=priority,
            source=source,
            metadata=metadata
        )
        self._history.append(event)
        await self._queue.put(event)

        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._deliver_forever())

        logger.debug("event_emitted", event_name=name, category=category.value)

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        await self._queue.join()

    async def _deliver_forever(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for subscription in list(self._subscriptions):
                    if subscription.matches(event):
                        await self._call(subscription.handler, event)
            finally:
                self._queue.task_done()

    async def _call(self, handler: Handler, event: Event) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                "event_handler_error",
                handler=getattr(handler, '__name__', repr(handler)),
                event_name=event.name,
                error=str(e),
                exc_info=True
            )

    def get_history(
        self,
        category: Optional[EventCategory] = None,
        event_name: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[Event]:
        """Recorded events, oldest first, optionally filtered; ``limit`` keeps the newest."""
        events = [
            e for e in self._history
            if (category is None or e.category == category)
            and (event_name is None or e.name == event_name)
            and (since is None or e.timestamp >= since)
        ]
        if limit:
            events = events[-limit:]
        return events

    async def wait_for(
        self,
        event_name: str,
        category: Optional[EventCategory] = None,
        timeout: Optional[float] = None,
        filter_func: Optional[Callable[[Event], bool]] = None
    ) -> Optional[Event]:
        """Next matching event delivered after the call, or None on timeout."""
        future: asyncio.Future = asyncio.get_running_loop().create_future()

        def resolve(event: Event) -> None:
            if not future.done():
                future.set_result(event)

        subscription = self.subscribe(
            resolve,
            categories=category,
            event_names=event_name,
            filter_func=filter_func
        )
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            self.unsubscribe(subscription)

    async def shutdown(self) -> None:
        """Stop delivery and forget subscriptions and history."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        self._subscriptions.clear()
        self._history.clear()
        logger.debug("event_bus_shutdown")


_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """Process-wide event bus."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


async def emit(name: str, category: EventCategory, data: Dict[str, Any], **kwargs) -> None:
    await get_event_bus().emit(name, category, data, **kwargs)


def subscribe(handler: Handler, **kwargs) -> Subscription:
    return get_event_bus().subscribe(handler, **kwargs)


def unsubscribe(subscription: Subscription) -> bool:
    return get_event_bus().unsubscribe(subscription)


__all__ = [
    'Event',
    'EventCategory',
    'EventPriority',
    'EventBus',
    'Subscription',
    'get_event_bus',
    'emit',
    'subscribe',
    'unsubscribe',
]
