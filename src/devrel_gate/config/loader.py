"""
devrel-gate — runtime config loader.

File: src/devrel_gate/config/loader.py

Purpose
- Build the effective runtime config from layered sources and remember which
  layer supplied each setting.

What should be included in this file
- Layer order: defaults, ``devrel-gate.toml``, profile overlay,
  ``DEVREL_GATE_*`` environment, CLI overrides. Later layers win.
- TOML parsing via ``tomllib``.
- Environment coercion driven by the type of each default value.
- Path normalization relative to the config file location.
- Redacted deterministic dump of the effective config.

Functional requirements
- Reject invalid or secret-bearing config via schema validation.
- Fail with ``ConfigLoadError`` on unreadable files and uncoercible env values.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from functools import reduce
from pathlib import Path
from typing import Any, Final

from devrel_gate.config.schema import (
    PATH_FIELDS,
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)
from devrel_gate.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
_UNBOUND_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


class ConfigSource(StrEnum):
    DEFAULT = "default"
    FILE = "file"
    PROFILE = "profile"
    ENV = "env"
    CLI = "cli"


@dataclass(frozen=True, slots=True)
class ConfigLayer:
    """One partial config payload and where it came from."""

    source: ConfigSource
    payload: dict[str, Any]
    origin: str | None = None


@dataclass(frozen=True, slots=True)
class LoadedConfig:
    """Validated effective config plus the layers it was merged from."""

    config: dict[str, Any]
    layers: tuple[ConfigLayer, ...]
    config_path: Path
    profile: str | None

    def source_of(self, dotted_key: str) -> ConfigSource:
        """Return the last layer that set ``dotted_key`` (for example ``distribution.strict_mode``)."""

        path = tuple(dotted_key.split("."))
        for layer in reversed(self.layers):
            if _lookup(layer.payload, path) is not _MISSING:
                return layer.source
        raise KeyError(dotted_key)

    def sources(self) -> dict[str, str]:
        return {
            ".".join(path): self.source_of(".".join(path)).value
            for path, _ in _leaves(self.config)
            if path[0] not in _UNBOUND_SECTIONS
        }


_MISSING: Final[object] = object()


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > profile > file > defaults."""

    return load_layered_config(
        config_path, profile=profile, cli_overrides=cli_overrides, environ=environ
    ).config


def load_layered_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> LoadedConfig:
    """Like ``load_config`` but keeps every layer for provenance queries.

    An explicit ``config_path`` must exist; without one, ``./devrel-gate.toml``
    is used when present and silently skipped otherwise.
    """

    path = _resolve_config_path(config_path)
    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})

    layers = [ConfigLayer(ConfigSource.DEFAULT, dict(default_config()))]
    file_payload = _read_toml(path, required=config_path is not None)
    if file_payload:
        layers.append(ConfigLayer(ConfigSource.FILE, file_payload, origin=str(path)))
    base = assert_valid_config(_merge_layers(layers))

    selected = _select_profile(profile, overrides, env)
    if selected is not None:
        layers.append(
            ConfigLayer(ConfigSource.PROFILE, _profile_overlay(base, selected), origin=selected)
        )

    env_payload, env_names = _env_layer(env)
    if env_payload:
        layers.append(ConfigLayer(ConfigSource.ENV, env_payload, origin=",".join(env_names)))

    cli_payload = _cli_layer(overrides)
    if cli_payload:
        layers.append(ConfigLayer(ConfigSource.CLI, cli_payload))

    merged = assert_valid_config(_merge_layers(layers), active_profile=selected)
    config = assert_valid_config(
        normalize_paths(merged, base_dir=path.parent), active_profile=selected
    )
    return LoadedConfig(config=config, layers=tuple(layers), config_path=path, profile=selected)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Anchor relative path fields (including profile overlays) at ``base_dir``."""

    normalized = merge_config({}, config)
    targets: list[tuple[str, ...]] = list(PATH_FIELDS)
    profiles = normalized.get("profiles")
    if isinstance(profiles, Mapping):
        for name in sorted(profiles):
            overlay = profiles[name]
            if isinstance(overlay, Mapping):
                targets.extend(
                    ("profiles", name, *field) for field in PATH_FIELDS if field[0] in overlay
                )

    for target in targets:
        raw = _lookup(normalized, target)
        if isinstance(raw, str):
            _assign(normalized, target, _anchor_path(raw, base_dir))
    return normalized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted effective config representation suitable for logging."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def env_binding_names(config: Mapping[str, object] | None = None) -> tuple[str, ...]:
    """Environment variable names that override ``config`` (defaults when omitted)."""

    source = config if config is not None else default_config()
    return tuple(sorted(name for name, _, _ in _env_bindings(source)))


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    try:
        return tomllib.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc


def _select_profile(
    profile: str | None,
    overrides: Mapping[str, object],
    environ: Mapping[str, str],
) -> str | None:
    candidates: Sequence[tuple[object, str]] = (
        (profile, "profile argument"),
        (overrides.get("profile"), "cli override 'profile'"),
        (environ.get(f"{ENV_PREFIX}PROFILE"), f"{ENV_PREFIX}PROFILE"),
    )
    for candidate, origin in candidates:
        if candidate is None:
            continue
        if not isinstance(candidate, str):
            raise ConfigLoadError(f"{origin} must be a string")
        return candidate.strip() or None
    return None


def _profile_overlay(base: Mapping[str, Any], name: str) -> dict[str, Any]:
    profiles = base.get("profiles")
    overlay = profiles.get(name) if isinstance(profiles, Mapping) else None
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {name!r} is not defined"),)
        )
    return merge_config({}, overlay)


def _env_layer(environ: Mapping[str, str]) -> tuple[dict[str, Any], tuple[str, ...]]:
    payload: dict[str, Any] = {}
    used: list[str] = []
    for name, path, default in _env_bindings(default_config()):
        raw = environ.get(name)
        if raw is None:
            continue
        coerce = _COERCERS[type(default)]
        try:
            value = coerce(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{name} -> {'.'.join(path)}: {exc}") from exc
        _assign(payload, path, value)
        used.append(name)
    return payload, tuple(used)


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(overrides):
        if key == "profile":
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        value = overrides[key]
        _assign(payload, path, merge_config({}, value) if isinstance(value, Mapping) else value)
    return payload


def _merge_layers(layers: Sequence[ConfigLayer]) -> dict[str, Any]:
    return reduce(lambda acc, layer: merge_config(acc, layer.payload), layers, {})


# ---------------------------------------------------------------------------
# Environment coercion
# ---------------------------------------------------------------------------


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _parse_list(raw: str) -> list[str]:
    # Comma-separated; an empty value clears the list.
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _parse_float(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


_COERCERS: Final[dict[type, Callable[[str], object]]] = {
    bool: _parse_bool,
    int: _parse_int,
    float: _parse_float,
    str: str,
    list: _parse_list,
}


def _env_bindings(config: Mapping[str, object]) -> Iterator[tuple[str, tuple[str, ...], object]]:
    for path, value in _leaves(config):
        if path[0] in _UNBOUND_SECTIONS or type(value) not in _COERCERS:
            continue
        yield ENV_PREFIX + "_".join(part.upper() for part in path), path, value


# ---------------------------------------------------------------------------
# Nested mapping helpers
# ---------------------------------------------------------------------------


def _leaves(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _lookup(payload: Mapping[str, object], path: tuple[str, ...]) -> object:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return _MISSING
        cursor = cursor[part]
    return cursor


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        child = cursor.get(part)
        if not isinstance(child, dict):
            child = {}
            cursor[part] = child
        cursor = child
    cursor[path[-1]] = value


def _anchor_path(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLayer",
    "ConfigLoadError",
    "ConfigSource",
    "LoadedConfig",
    "dump_effective_config",
    "effective_config",
    "env_binding_names",
    "load_config",
    "load_layered_config",
    "normalize_paths",
]
