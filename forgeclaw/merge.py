"""Deep merging of parsed TOML documents for layered configuration."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

__all__ = ["deep_merge"]


def deep_merge(base: Any, overlay: Any) -> Any:
    """Merge ``overlay`` into ``base`` and return the result.

    Tables merge recursively with keys from ``overlay`` taking precedence;
    any other overlay value replaces the base value. Inputs are not modified.
    """
    if isinstance(base, Mapping) and isinstance(overlay, Mapping):
        merged = dict(base)
        for key, overlay_value in overlay.items():
            if key in merged:
                merged[key] = deep_merge(merged[key], overlay_value)
            else:
                merged[key] = overlay_value
        return merged
    return overlay