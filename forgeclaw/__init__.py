"""Typed identifiers, error taxonomy, command and event buses, and layered TOML configuration."""

__version__ = "0.1.0"

__all__ = ["__version__"]