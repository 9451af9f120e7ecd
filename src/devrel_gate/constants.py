"""Stable constants shared across the security gates, config, and CLI."""

from __future__ import annotations

from typing import Final

# Schema version for devrel-gate.toml.
CONFIG_SCHEMA_VERSION: Final[int] = 1

# Config discovery.
DEFAULT_CONFIG_FILE: Final[str] = "devrel-gate.toml"
ENV_PREFIX: Final[str] = "DEVREL_GATE_"

# Identity recorded on events when the caller does not supply one.
UNKNOWN_IDENTITY: Final[str] = "unknown"

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "UNKNOWN_IDENTITY",
]
