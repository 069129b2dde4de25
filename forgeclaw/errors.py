"""Error taxonomy used to decide how to recover from a failure."""

from __future__ import annotations

from datetime import timedelta
from typing import Sequence

from forgeclaw.ids import ContainerId, ProviderId

__all__ = [
    "ErrorClass",
    "TransientError",
    "AuthError",
    "ConfigKeyError",
    "ContainerError",
    "FatalError",
    "ConfigError",
    "ConfigIoError",
    "ConfigParseError",
    "ConfigValidationError",
]


class ErrorClass(Exception):
    """Base for classified errors; the subclass determines the recovery strategy."""

    def is_retriable(self) -> bool:
        """Return True if the error is transient and should be retried."""
        return False


class TransientError(ErrorClass):
    """A transient failure that should be retried after a delay."""

    def __init__(self, retry_after: timedelta) -> None:
        self.retry_after = retry_after
        millis = retry_after // timedelta(milliseconds=1)
        super().__init__(f"transient error (retry after {millis}ms)")

    def is_retriable(self) -> bool:
        return True


class AuthError(ErrorClass):
    """An authentication or authorization failure for a provider."""

    def __init__(self, provider: ProviderId, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"auth error for provider {provider}: {reason}")


class ConfigKeyError(ErrorClass):
    """A missing or invalid configuration value."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"config error for key '{key}': {reason}")


class ContainerError(ErrorClass):
    """A container lifecycle failure, optionally tied to a container."""

    def __init__(self, id: ContainerId | None, reason: str) -> None:
        self.id = id
        self.reason = reason
        where = f" for {id}" if id is not None else ""
        super().__init__(f"container error{where}: {reason}")


class FatalError(ErrorClass):
    """A fatal condition requiring graceful shutdown."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"fatal error: {reason}")


class ConfigError(Exception):
    """Base for errors raised while loading or validating configuration."""


class ConfigIoError(ConfigError):
    """The configuration file could not be read."""

    def __init__(self, error: OSError) -> None:
        self.error = error
        super().__init__(f"failed to read config file: {error}")


class ConfigParseError(ConfigError):
    """The configuration could not be parsed or deserialized."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"failed to parse config: {detail}")


class ConfigValidationError(ConfigError):
    """One or more cross-reference validation failures."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__(f"config validation failed: {'; '.join(self.errors)}")