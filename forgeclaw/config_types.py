"""Configuration sections for each subsystem, read strictly from TOML tables.

Every ``from_dict`` rejects unknown keys, missing required keys, values of
the wrong type and unknown enum variants with :class:`ConfigParseError`.
``to_dict`` produces a table that ``from_dict`` accepts again; absent
optional values are left out, as TOML has no null.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Self, TypeVar

from forgeclaw.errors import ConfigParseError

__all__ = [
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_EVENT_BUS_CAPACITY",
    "RuntimeConfig",
    "StoreBackend",
    "StoreConfig",
    "ProviderKind",
    "ProviderConfig",
    "ExhaustAction",
    "BudgetPoolConfig",
    "FallbackEntry",
    "TokenBudget",
    "GroupConfig",
    "ContainerDefaults",
    "TanrenConfig",
    "ChannelKind",
    "ChannelConfig",
]

DEFAULT_LOG_LEVEL = "info"
DEFAULT_EVENT_BUS_CAPACITY = 256

T = TypeVar("T")
E = TypeVar("E", bound=StrEnum)


def _describe(value: Any) -> str:
    if isinstance(value, bool):
        return f"boolean `{str(value).lower()}`"
    if isinstance(value, int):
        return f"integer `{value}`"
    if isinstance(value, float):
        return f"floating point `{value}`"
    if isinstance(value, str):
        return f'string "{value}"'
    if isinstance(value, Mapping):
        return "map"
    if isinstance(value, (list, tuple)):
        return "sequence"
    return type(value).__name__


def _invalid_type(value: Any, expected: str) -> ConfigParseError:
    return ConfigParseError(f"invalid type: {_describe(value)}, expected {expected}")


@contextmanager
def _within(path: str) -> Iterator[None]:
    try:
        yield
    except ConfigParseError as exc:
        joiner = "" if exc.detail.startswith("[") else ": "
        raise ConfigParseError(f"{path}{joiner}{exc.detail}") from exc


def _string(value: Any) -> str:
    if not isinstance(value, str):
        raise _invalid_type(value, "a string")
    return value


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise _invalid_type(value, "a boolean")
    return value


def _float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _invalid_type(value, "f64")
    return float(value)


def _unsigned(type_name: str, maximum: int) -> Callable[[Any], int]:
    def convert(value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise _invalid_type(value, type_name)
        if not 0 <= value <= maximum:
            raise ConfigParseError(f"invalid value: integer `{value}`, expected {type_name}")
        return value

    return convert


_U32 = _unsigned("u32", 2**32 - 1)
_U64 = _unsigned("u64", 2**64 - 1)
_USIZE = _unsigned("usize", 2**64 - 1)


def _list_of(convert: Callable[[Any], T]) -> Callable[[Any], list[T]]:
    def convert_list(value: Any) -> list[T]:
        if not isinstance(value, (list, tuple)):
            raise _invalid_type(value, "a sequence")
        items = []
        for index, item in enumerate(value):
            with _within(f"[{index}]"):
                items.append(convert(item))
        return items

    return convert_list


def _variant(enum_cls: type[E]) -> Callable[[Any], E]:
    def convert(value: Any) -> E:
        if not isinstance(value, str):
            raise _invalid_type(value, "a string")
        try:
            return enum_cls(value)
        except ValueError:
            expected = ", ".join(f"`{member.value}`" for member in enum_cls)
            raise ConfigParseError(
                f"unknown variant `{value}`, expected one of {expected}"
            ) from None

    return convert


def _settings(value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise _invalid_type(value, "a map")
    for key in value:
        if not isinstance(key, str):
            raise _invalid_type(key, "a string key")
    return copy.deepcopy(dict(value))


def _none() -> None:
    return None


class _Fields:
    """Reads the keys of one table, remembering which ones are known."""

    def __init__(self, data: Any) -> None:
        if not isinstance(data, Mapping):
            raise _invalid_type(data, "a table")
        self._data = data
        self._known: list[str] = []

    def required(self, name: str, convert: Callable[[Any], T]) -> T:
        self._known.append(name)
        if name not in self._data:
            raise ConfigParseError(f"missing field `{name}`")
        with _within(name):
            return convert(self._data[name])

    def optional(
        self, name: str, convert: Callable[[Any], T], default: Callable[[], Any] = _none
    ) -> Any:
        self._known.append(name)
        if name not in self._data:
            return default()
        with _within(name):
            return convert(self._data[name])

    def finish(self) -> None:
        for key in self._data:
            if key not in self._known:
                expected = ", ".join(f"`{name}`" for name in self._known)
                raise ConfigParseError(f"unknown field `{key}`, expected one of {expected}")


def _without_none(table: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in table.items() if value is not None}


@dataclass(kw_only=True)
class RuntimeConfig:
    """Runtime settings: data directory, log level and concurrency limits."""

    data_dir: str
    log_level: str = DEFAULT_LOG_LEVEL
    max_concurrent_containers: int
    warm_pool_size: int
    event_bus_capacity: int = DEFAULT_EVENT_BUS_CAPACITY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            data_dir=fields.required("data_dir", _string),
            log_level=fields.optional("log_level", _string, lambda: DEFAULT_LOG_LEVEL),
            max_concurrent_containers=fields.required("max_concurrent_containers", _USIZE),
            warm_pool_size=fields.required("warm_pool_size", _USIZE),
            event_bus_capacity=fields.optional(
                "event_bus_capacity", _USIZE, lambda: DEFAULT_EVENT_BUS_CAPACITY
            ),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_dir": self.data_dir,
            "log_level": self.log_level,
            "max_concurrent_containers": self.max_concurrent_containers,
            "warm_pool_size": self.warm_pool_size,
            "event_bus_capacity": self.event_bus_capacity,
        }


class StoreBackend(StrEnum):
    """Supported database backends."""

    SQLITE = "sqlite"
    POSTGRES = "postgres"


@dataclass(kw_only=True)
class StoreConfig:
    """Persistence backend and its connection URL."""

    backend: StoreBackend
    url: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            backend=fields.required("backend", _variant(StoreBackend)),
            url=fields.required("url", _string),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {"backend": self.backend.value, "url": self.url}


class ProviderKind(StrEnum):
    """Known LLM provider types."""

    ANTHROPIC = "anthropic"
    OPENAI_COMPAT = "openai_compat"


@dataclass(kw_only=True)
class ProviderConfig:
    """One LLM provider; the TOML key for ``kind`` is ``type``."""

    kind: ProviderKind
    base_url: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            kind=fields.required("type", _variant(ProviderKind)),
            base_url=fields.optional("base_url", _string),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return _without_none({"type": self.kind.value, "base_url": self.base_url})


class ExhaustAction(StrEnum):
    """What to do when a budget pool is exhausted."""

    FALLBACK = "fallback"
    PAUSE = "pause"
    NOTIFY = "notify"


@dataclass(kw_only=True)
class BudgetPoolConfig:
    """A token budget shared between groups."""

    daily_limit: int
    monthly_limit: int
    action_on_exhaust: ExhaustAction
    alert_thresholds: list[float] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            daily_limit=fields.required("daily_limit", _U64),
            monthly_limit=fields.required("monthly_limit", _U64),
            action_on_exhaust=fields.required("action_on_exhaust", _variant(ExhaustAction)),
            alert_thresholds=fields.optional("alert_thresholds", _list_of(_float), list),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_limit": self.daily_limit,
            "monthly_limit": self.monthly_limit,
            "action_on_exhaust": self.action_on_exhaust.value,
            "alert_thresholds": list(self.alert_thresholds),
        }


@dataclass(kw_only=True)
class FallbackEntry:
    """A provider and model tried when the primary provider fails."""

    provider: str
    model: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            provider=fields.required("provider", _string),
            model=fields.required("model", _string),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "model": self.model}


@dataclass(kw_only=True)
class TokenBudget:
    """Per-group token limits."""

    daily: int
    monthly: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            daily=fields.required("daily", _U64),
            monthly=fields.required("monthly", _U64),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {"daily": self.daily, "monthly": self.monthly}


@dataclass(kw_only=True)
class GroupConfig:
    """A logical agent context bound to a provider and a channel."""

    provider: str
    model: str
    fallback: list[FallbackEntry] = field(default_factory=list)
    channel: str
    is_main: bool = False
    token_budget: TokenBudget | None = None
    budget_pool: str | None = None
    allowed_compose_services: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            provider=fields.required("provider", _string),
            model=fields.required("model", _string),
            fallback=fields.optional("fallback", _list_of(FallbackEntry.from_dict), list),
            channel=fields.required("channel", _string),
            is_main=fields.optional("is_main", _bool, lambda: False),
            token_budget=fields.optional("token_budget", TokenBudget.from_dict),
            budget_pool=fields.optional("budget_pool", _string),
            allowed_compose_services=fields.optional(
                "allowed_compose_services", _list_of(_string), list
            ),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return _without_none(
            {
                "provider": self.provider,
                "model": self.model,
                "fallback": [entry.to_dict() for entry in self.fallback],
                "channel": self.channel,
                "is_main": self.is_main,
                "token_budget": self.token_budget.to_dict() if self.token_budget else None,
                "budget_pool": self.budget_pool,
                "allowed_compose_services": list(self.allowed_compose_services),
            }
        )


@dataclass(kw_only=True)
class ContainerDefaults:
    """Default image and limits for containers."""

    image: str
    timeout: str
    idle_ttl: str
    memory_limit: str
    cpu_limit: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            image=fields.required("image", _string),
            timeout=fields.required("timeout", _string),
            idle_ttl=fields.required("idle_ttl", _string),
            memory_limit=fields.required("memory_limit", _string),
            cpu_limit=fields.required("cpu_limit", _U32),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "image": self.image,
            "timeout": self.timeout,
            "idle_ttl": self.idle_ttl,
            "memory_limit": self.memory_limit,
            "cpu_limit": self.cpu_limit,
        }


@dataclass(kw_only=True)
class TanrenConfig:
    """Tanren integration settings."""

    api_url: str
    poll_interval: str | None = None
    max_concurrent_dispatches: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            api_url=fields.required("api_url", _string),
            poll_interval=fields.optional("poll_interval", _string),
            max_concurrent_dispatches=fields.optional("max_concurrent_dispatches", _USIZE),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return _without_none(
            {
                "api_url": self.api_url,
                "poll_interval": self.poll_interval,
                "max_concurrent_dispatches": self.max_concurrent_dispatches,
            }
        )


class ChannelKind(StrEnum):
    """Known channel platforms."""

    DISCORD = "discord"
    TELEGRAM = "telegram"
    SLACK = "slack"
    WEBHOOK = "webhook"


@dataclass(kw_only=True)
class ChannelConfig:
    """One channel instance; the TOML key for ``kind`` is ``type``."""

    kind: ChannelKind
    name: str | None = None
    settings: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        fields = _Fields(data)
        config = cls(
            kind=fields.required("type", _variant(ChannelKind)),
            name=fields.optional("name", _string),
            settings=fields.optional("settings", _settings, dict),
        )
        fields.finish()
        return config

    def to_dict(self) -> dict[str, Any]:
        return _without_none(
            {
                "type": self.kind.value,
                "name": self.name,
                "settings": copy.deepcopy(self.settings),
            }
        )