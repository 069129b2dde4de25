"""Typed identifiers that cannot be mixed up with one another.

Constructing an identifier directly (``GroupId("x")``) accepts any string.
``GroupId.parse("x")`` validates the value and rejects empty or
whitespace-only strings; use it wherever input comes from outside.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

__all__ = [
    "IdError",
    "Identifier",
    "GroupId",
    "ContainerId",
    "ProviderId",
    "ChannelId",
    "JobId",
    "TaskId",
    "DispatchId",
    "PoolId",
]


class IdError(ValueError):
    """Raised when an identifier string fails validation."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"invalid identifier: {reason}")
        self.reason = reason


@dataclass(frozen=True)
class Identifier:
    """Base for string identifiers; equal only to the same kind with the same value."""

    value: str

    @classmethod
    def parse(cls, value: str) -> Self:
        """Build a validated identifier, rejecting empty or whitespace-only values."""
        if not value.strip():
            raise IdError(f"{cls.__name__} cannot be empty or whitespace-only")
        return cls(value)

    def __str__(self) -> str:
        return self.value


class GroupId(Identifier):
    """Identifier for a group (logical agent context)."""


class ContainerId(Identifier):
    """Identifier for a container instance."""


class ProviderId(Identifier):
    """Identifier for a provider such as "anthropic" or "ollama"."""


class ChannelId(Identifier):
    """Identifier for a channel such as "discord" or "telegram"."""


class JobId(Identifier):
    """Identifier for a queued job."""


class TaskId(Identifier):
    """Identifier for a scheduled task."""


class DispatchId(Identifier):
    """Identifier for a Tanren dispatch."""


class PoolId(Identifier):
    """Identifier for a budget pool."""