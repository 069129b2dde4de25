"""Broadcast event bus for fire-and-observe communication.

Every subscriber sees every event emitted after it subscribed. Events that
arrived before a subscription are not replayed. Each bus keeps a bounded
history; a subscriber that falls further behind than that history is told
how many events it missed and resumes at the oldest one still held.
"""

from __future__ import annotations

import asyncio
import weakref
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, TypeAlias

from forgeclaw.ids import ChannelId, ContainerId, DispatchId, GroupId, ProviderId, TaskId

__all__ = [
    "Event",
    "MessageEvent",
    "ContainerEventKind",
    "ContainerEvent",
    "ProviderEventKind",
    "ProviderEvent",
    "TanrenEventKind",
    "TanrenEvent",
    "TaskEventKind",
    "TaskEvent",
    "HealthEvent",
    "IpcEvent",
    "ConfigEvent",
    "Lagged",
    "SubscriptionEmpty",
    "Subscription",
    "EventBus",
]


@dataclass(frozen=True)
class MessageEvent:
    """A message received from a channel."""

    group: GroupId
    channel: ChannelId
    sender: str
    text: str
    timestamp: datetime


class ContainerEventKind(Enum):
    """The kind of container state change."""

    STARTED = "started"
    READY = "ready"
    PROCESSING = "processing"
    IDLE = "idle"
    EXITED = "exited"
    FAILED = "failed"


@dataclass(frozen=True)
class ContainerEvent:
    """A container lifecycle state change."""

    container: ContainerId
    group: GroupId
    kind: ContainerEventKind


class ProviderEventKind(Enum):
    """The kind of provider health or budget change."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    BUDGET_ALERT = "budget_alert"
    BUDGET_EXHAUSTED = "budget_exhausted"


@dataclass(frozen=True)
class ProviderEvent:
    """A provider health or budget change."""

    provider: ProviderId
    kind: ProviderEventKind


class TanrenEventKind(Enum):
    """The kind of Tanren dispatch status change."""

    SUBMITTED = "submitted"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TanrenEvent:
    """A Tanren dispatch status change."""

    dispatch: DispatchId
    kind: TanrenEventKind


class TaskEventKind(Enum):
    """The kind of scheduled task event."""

    DUE = "due"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TaskEvent:
    """A scheduled task became due or finished."""

    task: TaskId
    kind: TaskEventKind


@dataclass(frozen=True)
class HealthEvent:
    """The health of a component (e.g. "database") changed."""

    component: str
    healthy: bool
    message: str | None = None


@dataclass(frozen=True)
class IpcEvent:
    """An IPC message received from a container."""

    container: ContainerId
    payload: str


@dataclass(frozen=True)
class ConfigEvent:
    """Configuration was reloaded; lists the keys that changed."""

    keys_changed: tuple[str, ...]

    def __init__(self, keys_changed: Iterable[str]) -> None:
        object.__setattr__(self, "keys_changed", tuple(keys_changed))


Event: TypeAlias = (
    MessageEvent
    | ContainerEvent
    | ProviderEvent
    | TanrenEvent
    | TaskEvent
    | HealthEvent
    | IpcEvent
    | ConfigEvent
)


class Lagged(Exception):
    """The subscriber fell behind and ``skipped`` events were dropped for it."""

    def __init__(self, skipped: int) -> None:
        super().__init__(f"receiver lagged behind by {skipped} events")
        self.skipped = skipped


class SubscriptionEmpty(Exception):
    """No event is waiting for the subscriber right now."""

    def __init__(self) -> None:
        super().__init__("no event is available")


class Subscription:
    """A subscriber's view of an :class:`EventBus`."""

    def __init__(self, bus: EventBus, position: int) -> None:
        self._bus = bus
        self._position = position
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("subscription is closed")

    def try_recv(self) -> Event:
        """Return the next event without waiting.

        Raises SubscriptionEmpty if nothing is waiting and Lagged if events
        were dropped since the last read; the next read then succeeds.
        """
        self._ensure_open()
        oldest = self._bus._oldest_position()
        if self._position < oldest:
            skipped = oldest - self._position
            self._position = oldest
            raise Lagged(skipped)
        if self._position >= self._bus._next_position:
            raise SubscriptionEmpty()
        event = self._bus._history[self._position - oldest]
        self._position += 1
        return event

    async def recv(self) -> Event:
        """Wait for and return the next event; raises Lagged like try_recv."""
        while True:
            try:
                return self.try_recv()
            except SubscriptionEmpty:
                await self._bus._wait()

    def close(self) -> None:
        """Unsubscribe; the bus no longer counts or buffers for this subscriber."""
        if not self._closed:
            self._closed = True
            self._bus._unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class EventBus:
    """Typed broadcast bus with a bounded history of ``capacity`` events.

    A capacity below 1 is clamped to 1. Share the same instance among
    emitters; every emitter reaches every subscriber.
    """

    def __init__(self, capacity: int) -> None:
        self._capacity = max(capacity, 1)
        self._history: deque[Event] = deque(maxlen=self._capacity)
        self._next_position = 0
        self._subscribers: weakref.WeakSet[Subscription] = weakref.WeakSet()
        self._waiters: list[asyncio.Future[None]] = []

    @property
    def capacity(self) -> int:
        """The number of events kept for slow subscribers."""
        return self._capacity

    def emit(self, event: Event) -> int:
        """Send an event to every current subscriber and return how many there are."""
        receivers = len(self._subscribers)
        if receivers == 0:
            return 0
        self._history.append(event)
        self._next_position += 1
        self._wake()
        return receivers

    def subscribe(self) -> Subscription:
        """Return a subscription that sees every event emitted from now on."""
        subscription = Subscription(self, self._next_position)
        self._subscribers.add(subscription)
        return subscription

    def _oldest_position(self) -> int:
        return self._next_position - len(self._history)

    def _unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)
        self._wake()

    def _wake(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    async def _wait(self) -> None:
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter