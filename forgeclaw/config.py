"""Top-level configuration, loaded from TOML with optional layering.

Layered loading applies, from lowest to highest precedence:

1. ``~/.config/forgeclaw/config.toml``: user-level defaults
2. ``./forgeclaw.toml`` or an explicit project file
3. ``FORGECLAW_*`` environment variables with ``__`` path separators
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Self, TypeVar

from forgeclaw.config_types import (
    BudgetPoolConfig,
    ChannelConfig,
    ContainerDefaults,
    GroupConfig,
    ProviderConfig,
    RuntimeConfig,
    StoreConfig,
    TanrenConfig,
)
from forgeclaw.env import apply_env_overrides
from forgeclaw.errors import ConfigIoError, ConfigParseError, ConfigValidationError
from forgeclaw.merge import deep_merge

__all__ = [
    "MAX_CONFIG_SIZE",
    "DEFAULT_PROJECT_CONFIG",
    "ForgeclawConfig",
    "home_config_path",
]

MAX_CONFIG_SIZE = 1024 * 1024
"""Files larger than this many bytes are rejected before reading."""

DEFAULT_PROJECT_CONFIG = "forgeclaw.toml"

_FIELDS = (
    "runtime",
    "store",
    "providers",
    "budget_pools",
    "groups",
    "channels",
    "container",
    "tanren",
)

T = TypeVar("T")


@contextmanager
def _at(path: str) -> Iterator[None]:
    try:
        yield
    except ConfigParseError as exc:
        raise ConfigParseError(f"{path}: {exc.detail}") from exc


def _named_tables(value: Any, parse: Callable[[Any], T]) -> dict[str, T]:
    if not isinstance(value, Mapping):
        raise ConfigParseError(f"invalid type: {type(value).__name__}, expected a map")
    entries: dict[str, T] = {}
    for name in sorted(value, key=str):
        if not isinstance(name, str):
            raise ConfigParseError(f"invalid type: {type(name).__name__}, expected a string key")
        with _at(name):
            entries[name] = parse(value[name])
    return entries


def home_config_path(env: Mapping[str, str] | None = None) -> Path | None:
    """Return ``$HOME/.config/forgeclaw/config.toml``, or None without HOME."""
    environ = os.environ if env is None else env
    home = environ.get("HOME")
    if home is None:
        return None
    return Path(home) / ".config" / "forgeclaw" / "config.toml"


def _read_guarded(path: Path) -> str:
    try:
        size = path.stat().st_size
    except OSError as exc:
        raise ConfigIoError(exc) from exc
    if size > MAX_CONFIG_SIZE:
        raise ConfigValidationError(
            [f"config file {path} exceeds maximum size of {MAX_CONFIG_SIZE} bytes"]
        )
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigIoError(exc) from exc
    except UnicodeDecodeError as exc:
        raise ConfigIoError(OSError(str(exc))) from exc


def _parse_toml(text: str) -> dict[str, Any]:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigParseError(str(exc)) from exc


@dataclass(kw_only=True)
class ForgeclawConfig:
    """The whole deployment configuration; maps are kept in key order."""

    runtime: RuntimeConfig
    store: StoreConfig
    providers: dict[str, ProviderConfig]
    budget_pools: dict[str, BudgetPoolConfig] = field(default_factory=dict)
    groups: dict[str, GroupConfig]
    channels: dict[str, ChannelConfig]
    container: ContainerDefaults
    tanren: TanrenConfig | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Build a configuration from a parsed table without cross-checking it."""
        if not isinstance(data, Mapping):
            raise ConfigParseError(f"invalid type: {type(data).__name__}, expected a table")
        for key in data:
            if key not in _FIELDS:
                expected = ", ".join(f"`{name}`" for name in _FIELDS)
                raise ConfigParseError(f"unknown field `{key}`, expected one of {expected}")

        def required(name: str, parse: Callable[[Any], T]) -> T:
            if name not in data:
                raise ConfigParseError(f"missing field `{name}`")
            with _at(name):
                return parse(data[name])

        def optional(name: str, parse: Callable[[Any], T], default: Callable[[], Any]) -> Any:
            if name not in data:
                return default()
            with _at(name):
                return parse(data[name])

        return cls(
            runtime=required("runtime", RuntimeConfig.from_dict),
            store=required("store", StoreConfig.from_dict),
            providers=required(
                "providers", lambda v: _named_tables(v, ProviderConfig.from_dict)
            ),
            budget_pools=optional(
                "budget_pools", lambda v: _named_tables(v, BudgetPoolConfig.from_dict), dict
            ),
            groups=required("groups", lambda v: _named_tables(v, GroupConfig.from_dict)),
            channels=required(
                "channels", lambda v: _named_tables(v, ChannelConfig.from_dict)
            ),
            container=required("container", ContainerDefaults.from_dict),
            tanren=optional("tanren", TanrenConfig.from_dict, lambda: None),
        )

    @classmethod
    def from_toml(cls, text: str) -> Self:
        """Parse TOML text into a configuration without cross-checking it."""
        return cls.from_dict(_parse_toml(text))

    def to_dict(self) -> dict[str, Any]:
        """Return a table that :meth:`from_dict` accepts again."""
        table: dict[str, Any] = {
            "runtime": self.runtime.to_dict(),
            "store": self.store.to_dict(),
            "providers": {name: p.to_dict() for name, p in self.providers.items()},
            "budget_pools": {name: b.to_dict() for name, b in self.budget_pools.items()},
            "groups": {name: g.to_dict() for name, g in self.groups.items()},
            "channels": {name: c.to_dict() for name, c in self.channels.items()},
            "container": self.container.to_dict(),
        }
        if self.tanren is not None:
            table["tanren"] = self.tanren.to_dict()
        return table

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> Self:
        """Read, parse and validate one configuration file."""
        config = cls.from_toml(_read_guarded(Path(path)))
        config.validate()
        return config

    @classmethod
    def load_layered(
        cls,
        project_path: str | os.PathLike[str] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> Self:
        """Merge user file, project file and environment overrides, then validate.

        ``project_path`` defaults to ``./forgeclaw.toml``; ``env`` defaults to
        the process environment. Missing files are skipped.
        """
        environ = os.environ if env is None else env
        merged: Any = {}

        home = home_config_path(environ)
        if home is not None and home.exists():
            merged = deep_merge(merged, _parse_toml(_read_guarded(home)))

        project = Path(DEFAULT_PROJECT_CONFIG if project_path is None else project_path)
        if project.exists():
            merged = deep_merge(merged, _parse_toml(_read_guarded(project)))

        merged = apply_env_overrides(merged, environ)

        config = cls.from_dict(merged)
        config.validate()
        return config

    def validate(self) -> None:
        """Check that groups refer only to providers, channels and pools that exist.

        Raises ConfigValidationError listing every broken reference.
        """
        errors: list[str] = []

        if not self.channels and self.groups:
            errors.append("at least one channel must be defined when groups are present")

        for group_name, group in sorted(self.groups.items()):
            if group.provider not in self.providers:
                errors.append(
                    f"group '{group_name}' references unknown provider '{group.provider}'"
                )
            if group.channel not in self.channels:
                errors.append(
                    f"group '{group_name}' references unknown channel '{group.channel}'"
                )
            if group.budget_pool is not None and group.budget_pool not in self.budget_pools:
                errors.append(
                    f"group '{group_name}' references unknown budget_pool '{group.budget_pool}'"
                )
            for index, entry in enumerate(group.fallback):
                if entry.provider not in self.providers:
                    errors.append(
                        f"group '{group_name}' fallback[{index}] references unknown "
                        f"provider '{entry.provider}'"
                    )

        if errors:
            raise ConfigValidationError(errors)