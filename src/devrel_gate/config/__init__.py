"""
devrel-gate config package public API.

File: src/devrel_gate/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``devrel-gate.toml`` + ``DEVREL_GATE_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from devrel_gate.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLayer,
    ConfigLoadError,
    ConfigSource,
    LoadedConfig,
    dump_effective_config,
    effective_config,
    env_binding_names,
    load_config,
    load_layered_config,
    normalize_paths,
)
from devrel_gate.config.schema import (
    BUILTIN_PROFILE_NAMES,
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    GateConfig,
    ProfileOverlay,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    migration_guidance,
    redact_config,
    validate_config,
)

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PATH_FIELDS",
    "ConfigLayer",
    "ConfigLoadError",
    "ConfigSource",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "GateConfig",
    "LoadedConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "effective_config",
    "env_binding_names",
    "load_config",
    "load_layered_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "redact_config",
    "validate_config",
]
