"""Environment-variable overrides for layered configuration.

Only ``FORGECLAW_*`` variables whose remainder contains ``__`` are config
overrides; ``__`` separates path segments, so ``FORGECLAW_RUNTIME__LOG_LEVEL``
sets ``runtime.log_level``. Flat variables such as
``FORGECLAW_ANTHROPIC_API_KEY`` are secrets and never enter the config.
"""

from __future__ import annotations

import copy
import tomllib
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from typing import Any

__all__ = [
    "ENV_PREFIX",
    "MAP_SECTIONS",
    "parse_env_value",
    "normalize_env_path",
    "set_nested",
    "apply_env_overrides",
]

ENV_PREFIX = "FORGECLAW_"

# Top-level sections whose second path segment is a user-chosen map key
# (provider, group, channel or pool name) whose casing must be kept.
MAP_SECTIONS = frozenset({"providers", "groups", "channels", "budget_pools"})


def parse_env_value(raw: str) -> Any:
    """Read a value as a TOML value, falling back to the plain string."""
    try:
        table = tomllib.loads(f"v = {raw}")
    except tomllib.TOMLDecodeError:
        return raw
    return table.get("v", raw)


def normalize_env_path(parts: Sequence[str]) -> list[str]:
    """Lowercase every segment except the map key under a map section."""
    is_map_section = bool(parts) and parts[0].lower() in MAP_SECTIONS
    return [
        segment if index == 1 and is_map_section else segment.lower()
        for index, segment in enumerate(parts)
    ]


def set_nested(root: Any, path: Sequence[str], value: Any) -> None:
    """Set ``value`` at ``path`` inside ``root``, creating tables on the way.

    Nothing happens if the path is empty or runs into a non-table value.
    """
    if not path or not isinstance(root, MutableMapping):
        return
    head, *rest = path
    if not rest:
        root[head] = value
        return
    child = root.setdefault(head, {})
    set_nested(child, rest, value)


def apply_env_overrides(
    base: Any, env_vars: Mapping[str, str] | Iterable[tuple[str, str]]
) -> Any:
    """Return a copy of ``base`` with every config override in ``env_vars`` applied."""
    result = copy.deepcopy(base)
    pairs = env_vars.items() if isinstance(env_vars, Mapping) else env_vars
    for key, value in pairs:
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):]
        if "__" not in suffix:
            continue
        path = normalize_env_path(suffix.split("__"))
        set_nested(result, path, parse_env_value(value))
    return result