"""Point-to-point command bus: each command is handled once and answered once.

The event bus broadcasts observations to every subscriber. The command bus
carries a request to exactly one handler and returns its typed answer to the
caller. Handlers usually answer the command and also emit an event, so that
observers stay informed.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from forgeclaw.errors import ErrorClass
from forgeclaw.ids import ContainerId, GroupId

__all__ = [
    "Command",
    "SpawnContainer",
    "HealthCheck",
    "CommandError",
    "HandlerDropped",
    "HandlerFailed",
    "Responder",
    "CommandBus",
    "CommandReceiver",
]

R = TypeVar("R")
C = TypeVar("C", bound="Command[Any]")


class Command(Generic[R]):
    """Base for request types; ``R`` is the type the handler answers with."""


@dataclass(frozen=True)
class SpawnContainer(Command[ContainerId]):
    """Ask the container manager for a container; answered with its id."""

    group: GroupId


@dataclass(frozen=True)
class HealthCheck(Command[bool]):
    """Ask whether a component (e.g. "database") is healthy."""

    component: str


class CommandError(Exception):
    """Raised by :meth:`CommandBus.call` when a command gets no answer."""

    def is_retriable(self) -> bool:
        """Return True if the underlying failure should be retried."""
        return False


class HandlerDropped(CommandError):
    """The handler is gone or discarded the command without answering."""

    def __init__(self) -> None:
        super().__init__("command handler is unavailable")


class HandlerFailed(CommandError):
    """The handler received the command and answered with an error."""

    def __init__(self, error: ErrorClass) -> None:
        super().__init__(str(error))
        self.error = error

    def is_retriable(self) -> bool:
        return self.error.is_retriable()


def _drop_future(future: asyncio.Future[Any]) -> None:
    if not future.done():
        future.set_exception(HandlerDropped())


class Responder(Generic[R]):
    """One-shot handle a handler uses to answer the caller.

    Exactly one of :meth:`respond`, :meth:`fail` or :meth:`abandon` may be
    called. If the caller has stopped waiting the answer is silently lost.
    A responder discarded without an answer counts as abandoned.
    """

    def __init__(self, future: asyncio.Future[R]) -> None:
        self._future = future
        self._used = False

    def _settle(self, action: Callable[[], None]) -> None:
        if self._used:
            raise RuntimeError("responder has already been used")
        self._used = True
        if not self._future.done():
            action()

    def respond(self, value: R) -> None:
        """Answer the caller with a successful value."""
        self._settle(lambda: self._future.set_result(value))

    def fail(self, error: ErrorClass) -> None:
        """Answer the caller with a classified error."""
        if not isinstance(error, ErrorClass):
            raise TypeError("a responder can only fail with an ErrorClass")
        self._settle(lambda: self._future.set_exception(error))

    def abandon(self) -> None:
        """Discard the command without answering; the caller sees HandlerDropped."""
        self._settle(lambda: self._future.set_exception(HandlerDropped()))

    def __del__(self) -> None:
        if getattr(self, "_used", True):
            return
        future = self._future
        if future.done():
            return
        loop = future.get_loop()
        if loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(_drop_future, future)
        except RuntimeError:
            pass


@dataclass
class _Envelope:
    command: Any
    future: asyncio.Future[Any]


@dataclass
class _Channel:
    """Bounded queue shared by the bus handles and the single receiver."""

    capacity: int
    senders: int = 1
    receiver_open: bool = True
    buffer: deque[_Envelope] = field(default_factory=deque)
    waiters: list[asyncio.Future[None]] = field(default_factory=list)

    def _wake(self) -> None:
        waiters, self.waiters = self.waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)

    async def _wait(self) -> None:
        waiter = asyncio.get_running_loop().create_future()
        self.waiters.append(waiter)
        await waiter

    async def send(self, envelope: _Envelope) -> None:
        while True:
            if not self.receiver_open:
                raise HandlerDropped()
            if len(self.buffer) < self.capacity:
                self.buffer.append(envelope)
                self._wake()
                return
            await self._wait()

    async def receive(self) -> _Envelope | None:
        while True:
            if self.buffer:
                envelope = self.buffer.popleft()
                self._wake()
                return envelope
            if self.senders == 0 or not self.receiver_open:
                return None
            await self._wait()

    def release_sender(self) -> None:
        self.senders = max(self.senders - 1, 0)
        self._wake()

    def close_receiver(self) -> None:
        self.receiver_open = False
        while self.buffer:
            _drop_future(self.buffer.popleft().future)
        self._wake()


class CommandBus(Generic[C]):
    """Sending handle of a command bus; clone it to share among callers."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel
        self._closed = False

    @classmethod
    def create(cls, capacity: int) -> tuple[CommandBus[C], CommandReceiver[C]]:
        """Return a bus and its receiver; capacity is clamped to at least 1."""
        channel = _Channel(capacity=max(capacity, 1))
        return cls(channel), CommandReceiver(channel)

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("command bus handle is closed")

    def clone(self) -> CommandBus[C]:
        """Return another handle sending to the same handler."""
        self._ensure_open()
        self._channel.senders += 1
        return CommandBus(self._channel)

    def close(self) -> None:
        """Release this handle; the receiver ends once every handle is closed."""
        if not self._closed:
            self._closed = True
            self._channel.release_sender()

    def __enter__(self) -> CommandBus[C]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    async def call(self, command: C) -> Any:
        """Send a command and wait for its answer.

        Raises HandlerDropped if the handler is gone or never answers, and
        HandlerFailed if it answers with an error.
        """
        self._ensure_open()
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._channel.send(_Envelope(command, future))
        try:
            return await future
        except ErrorClass as error:
            raise HandlerFailed(error) from error


class CommandReceiver(Generic[C]):
    """Receiving handle of a command bus, held by the handling subsystem."""

    def __init__(self, channel: _Channel) -> None:
        self._channel = channel

    async def recv(self) -> tuple[C, Responder[Any]] | None:
        """Return the next command and its responder, or None once all senders closed."""
        envelope = await self._channel.receive()
        if envelope is None:
            return None
        return envelope.command, Responder(envelope.future)

    def close(self) -> None:
        """Stop receiving; pending and future calls fail with HandlerDropped."""
        self._channel.close_receiver()

    def __aiter__(self) -> CommandReceiver[C]:
        return self

    async def __anext__(self) -> tuple[C, Responder[Any]]:
        received = await self.recv()
        if received is None:
            raise StopAsyncIteration
        return received