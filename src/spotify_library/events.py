"""
Lifecycle and observability events.

Producers call `EventBus.publish`, which never blocks and never raises.
Each subscriber owns a bounded buffer; when a slow subscriber falls behind,
its oldest buffered events are dropped and counted.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .debug import PerformanceMetrics
    from .rate_limit import RateLimitInfo

lib_logger = logging.getLogger("spotify_library")


@dataclass(frozen=True)
class Event:
    pass


@dataclass(frozen=True)
class TokenRefreshWillStart(Event):
    reason: str  # "automatic" or "manual"
    seconds_until_expiration: Optional[float] = None


@dataclass(frozen=True)
class TokenRefreshSucceeded(Event):
    expires_at: float
    rotated_refresh_token: bool = False


@dataclass(frozen=True)
class TokenRefreshFailed(Event):
    error: BaseException


@dataclass(frozen=True)
class TokenExpiringSoon(Event):
    seconds_until_expiration: float


@dataclass(frozen=True)
class RateLimited(Event):
    info: "RateLimitInfo"
    retry_after: float
    attempt: int


@dataclass(frozen=True)
class RequestRetried(Event):
    attempt: int
    delay: float
    reason: str


@dataclass(frozen=True)
class PerformanceRecorded(Event):
    metrics: "PerformanceMetrics"


class Subscription:
    """
    A bounded, drop-oldest buffer of events for one consumer.

    Iterate with `async for`; iteration ends after `close()` once the buffer
    has been drained.
    """

    def __init__(self, bus: "EventBus", buffer_size: int):
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self._bus = bus
        self._buffer: Deque[Event] = deque(maxlen=buffer_size)
        self._ready = asyncio.Event()
        self._closed = False
        self.dropped = 0

    def _push(self, event: Event) -> None:
        if self._closed:
            return
        if len(self._buffer) == self._buffer.maxlen:
            self.dropped += 1
        self._buffer.append(event)
        self._ready.set()

    def pending(self) -> List[Event]:
        """Drain and return everything currently buffered without waiting."""
        items = list(self._buffer)
        self._buffer.clear()
        self._ready.clear()
        return items

    async def get(self) -> Event:
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            self._ready.clear()
            await self._ready.wait()
        event = self._buffer.popleft()
        if not self._buffer:
            self._ready.clear()
        return event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._ready.set()
        self._bus._remove(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Event:
        return await self.get()


class EventBus:
    """Client-wide broadcast of lifecycle events to zero or more subscribers."""

    def __init__(self, default_buffer_size: int = 64):
        self.default_buffer_size = default_buffer_size
        self._subscriptions: List[Subscription] = []
        self._listeners: Dict[Type[Event], List[Callable[[Any], Any]]] = {}
        self._listener_tasks = set()

    def subscribe(self, buffer_size: Optional[int] = None) -> Subscription:
        subscription = Subscription(self, buffer_size or self.default_buffer_size)
        self._subscriptions.append(subscription)
        return subscription

    def on(self, event_type: Type[Event], callback: Callable[[Any], Any]) -> Callable[[], None]:
        """
        Register a listener for one event type (and its subclasses).

        Sync callbacks run inline; coroutine results are scheduled as tasks.
        Listener failures are logged and never reach the producer.

        Returns:
            A function that unregisters the listener
        """
        self._listeners.setdefault(event_type, []).append(callback)

        def remove() -> None:
            listeners = self._listeners.get(event_type, [])
            if callback in listeners:
                listeners.remove(callback)

        return remove

    def publish(self, event: Event) -> None:
        for subscription in list(self._subscriptions):
            subscription._push(event)

        for event_type, listeners in list(self._listeners.items()):
            if not isinstance(event, event_type):
                continue
            for callback in list(listeners):
                self._dispatch(callback, event)

    def _dispatch(self, callback: Callable[[Any], Any], event: Event) -> None:
        try:
            result = callback(event)
        except Exception as e:
            lib_logger.error(
                f"Event listener {getattr(callback, '__name__', callback)} failed for {type(event).__name__}: {e}"
            )
            return
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._listener_tasks.add(task)
            task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: "asyncio.Future") -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            lib_logger.error(f"Async event listener failed: {error}")

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
