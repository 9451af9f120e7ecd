"""
devrel-gate — configuration schema and validation.

File: src/devrel_gate/config/schema.py

Purpose
- Built-in defaults for ``devrel-gate.toml`` and the rule table every value is
  checked against.
- Structured issues (dotted field path + message) instead of first-error
  exceptions, so ``devrel-gate config`` can report everything at once.
- Secret-looking keys are rejected outright; the gate never holds credentials.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from devrel_gate.constants import CONFIG_SCHEMA_VERSION

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "permissive", "production")

# Resolved against the config file's directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("resolver", "root"),
    ("observability", "log_dir"),
)

_PROFILE_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")
_SECRET_TYPE_NAME = re.compile(r"^[A-Z][A-Z0-9_]*$")
_CAMEL_HUMP = re.compile(r"([a-z0-9])([A-Z])")
_SEPARATORS = re.compile(r"[^a-z0-9]+")

_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {"secret", "token", "password", "passwd", "apikey", "credential", "credentials", "auth"}
)
_SECRET_PHRASES: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
)
_SECRET_KEY_MESSAGE: Final[str] = "embedded secret values are forbidden in devrel-gate config"
_REDACTED: Final[str] = "<redacted>"


class MetaConfig(TypedDict):
    schema_version: int


class ScannerSettings(TypedDict):
    entropy_threshold: float
    url_lookbehind_chars: int
    placeholder_window_chars: int
    context_chars: int
    disabled_patterns: list[str]


class SanitizerSettings(TypedDict):
    instruction_density_threshold: float
    instruction_density_min_words: int
    max_removal_ratio: float
    detect_css_hiding: bool


class AssemblerSettings(TypedDict):
    max_context_documents: int
    fail_on_validation_error: bool
    allow_circular_references: bool
    missing_sensitivity_policy: Literal["default", "reject"]
    max_concurrent_fetches: int


class ResolverSettings(TypedDict):
    root: str
    allowed_base_dirs: list[str]


class DistributionSettings(TypedDict):
    strict_mode: bool
    allow_warnings: bool
    raise_on_block: bool
    scan_context_chars: int


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool
    redact_secrets: bool


class ProfileOverlay(TypedDict, total=False):
    scanner: dict[str, object]
    sanitizer: dict[str, object]
    assembler: dict[str, object]
    resolver: dict[str, object]
    distribution: dict[str, object]
    observability: dict[str, object]


class GateConfig(TypedDict):
    meta: MetaConfig
    scanner: ScannerSettings
    sanitizer: SanitizerSettings
    assembler: AssemblerSettings
    resolver: ResolverSettings
    distribution: DistributionSettings
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[GateConfig] = {
    "meta": {
        "schema_version": ConfigSchemaVersion,
    },
    "scanner": {
        "entropy_threshold": 3.0,
        "url_lookbehind_chars": 100,
        "placeholder_window_chars": 100,
        "context_chars": 50,
        "disabled_patterns": [],
    },
    "sanitizer": {
        "instruction_density_threshold": 0.10,
        "instruction_density_min_words": 20,
        "max_removal_ratio": 0.9,
        "detect_css_hiding": True,
    },
    "assembler": {
        "max_context_documents": 10,
        "fail_on_validation_error": False,
        "allow_circular_references": False,
        "missing_sensitivity_policy": "default",
        "max_concurrent_fetches": 4,
    },
    "resolver": {
        "root": ".",
        "allowed_base_dirs": ["docs", "integration/docs", "examples"],
    },
    "distribution": {
        "strict_mode": False,
        "allow_warnings": False,
        "raise_on_block": True,
        "scan_context_chars": 100,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
    "profiles": {
        "strict": {
            "assembler": {
                "fail_on_validation_error": True,
                "missing_sensitivity_policy": "reject",
            },
            "distribution": {"strict_mode": True},
        },
        "permissive": {
            "distribution": {"allow_warnings": True},
        },
        "production": {
            "distribution": {"strict_mode": True},
            "observability": {"log_level": "WARNING"},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config, or ``None`` with the issues that prevented it."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


# --------------------------------------------------------------------------
# Rule table
# --------------------------------------------------------------------------

_Kind = Literal["bool", "int", "number", "text", "choice", "names"]


@dataclass(frozen=True, slots=True)
class _Rule:
    kind: _Kind
    low: float | None = None
    high: float | None = None
    choices: tuple[str, ...] = ()
    each: Callable[[str], str | None] | None = None
    non_empty: bool = False


def _secret_type_name(name: str) -> str | None:
    if _SECRET_TYPE_NAME.fullmatch(name):
        return None
    return "must be an upper-case secret type name (example: GENERIC_API_KEY)"


def _inside_root(entry: str) -> str | None:
    segments = entry.replace("\\", "/").split("/")
    if entry[:1] in ("/", "\\") or ".." in segments:
        return "must be a relative path inside root"
    return None


_BOOL: Final[_Rule] = _Rule("bool")
_RATIO: Final[_Rule] = _Rule("number", low=0.0, high=1.0)
_CHARS: Final[_Rule] = _Rule("int", low=0)

_RULES: Final[dict[str, dict[str, _Rule]]] = {
    "scanner": {
        "entropy_threshold": _Rule("number", low=0.0),
        "url_lookbehind_chars": _CHARS,
        "placeholder_window_chars": _CHARS,
        "context_chars": _CHARS,
        "disabled_patterns": _Rule("names", each=_secret_type_name),
    },
    "sanitizer": {
        "instruction_density_threshold": _RATIO,
        "instruction_density_min_words": _Rule("int", low=1),
        "max_removal_ratio": _RATIO,
        "detect_css_hiding": _BOOL,
    },
    "assembler": {
        "max_context_documents": _Rule("int", low=0),
        "fail_on_validation_error": _BOOL,
        "allow_circular_references": _BOOL,
        "missing_sensitivity_policy": _Rule("choice", choices=("default", "reject")),
        "max_concurrent_fetches": _Rule("int", low=1),
    },
    "resolver": {
        "root": _Rule("text"),
        "allowed_base_dirs": _Rule("names", each=_inside_root, non_empty=True),
    },
    "distribution": {
        "strict_mode": _BOOL,
        "allow_warnings": _BOOL,
        "raise_on_block": _BOOL,
        "scan_context_chars": _CHARS,
    },
    "observability": {
        "log_level": _Rule("choice", choices=("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_dir": _Rule("text"),
        "log_to_stdout": _BOOL,
        "redact_secrets": _BOOL,
    },
}
_SECTIONS: Final[tuple[str, ...]] = tuple(_RULES)

_INVALID: Final[object] = object()


def _looks_sensitive_key(key: str) -> bool:
    snake = _SEPARATORS.sub("_", _CAMEL_HUMP.sub(r"\1_\2", key.strip()).lower()).strip("_")
    if any(phrase in snake for phrase in _SECRET_PHRASES):
        return True
    return not _SECRET_WORDS.isdisjoint(snake.split("_"))


def _dotted(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


class _Validator:
    """Accumulates issues while producing a normalized copy of the input."""

    def __init__(self) -> None:
        self.issues: list[ConfigValidationIssue] = []

    def fail(self, path: str, message: str) -> object:
        self.issues.append(ConfigValidationIssue(path=path, message=message))
        return _INVALID

    def mapping(self, value: object, path: str) -> dict[str, object] | None:
        if not isinstance(value, Mapping):
            self.fail(path, f"expected object, got {type(value).__name__}")
            return None
        out: dict[str, object] = {}
        for key, item in value.items():
            if isinstance(key, str):
                out[key] = item
            else:
                self.fail(path, f"object key must be string, got {type(key).__name__}")
        return out

    def check_keys(
        self,
        payload: Mapping[str, object],
        path: str,
        *,
        allowed: Iterable[str],
        required: Iterable[str] = (),
    ) -> None:
        for key in sorted(set(payload) - set(allowed)):
            message = _SECRET_KEY_MESSAGE if _looks_sensitive_key(key) else "unknown field"
            self.fail(_dotted(path, key), message)
        for key in sorted(set(required) - set(payload)):
            self.fail(_dotted(path, key), "missing required field")

    def text(self, raw: object, path: str) -> object:
        if not isinstance(raw, str):
            return self.fail(path, f"expected string, got {type(raw).__name__}")
        stripped = raw.strip()
        if not stripped:
            return self.fail(path, "must not be empty")
        if "\x00" in stripped:
            return self.fail(path, "must not contain NUL bytes")
        return stripped

    def bounded(self, rule: _Rule, number: float, path: str) -> object:
        if rule.low is not None and number < rule.low:
            return self.fail(path, f"must be >= {rule.low:g}")
        if rule.high is not None and number > rule.high:
            return self.fail(path, f"must be <= {rule.high:g}")
        return number

    def value(self, rule: _Rule, raw: object, path: str) -> object:
        kind = rule.kind
        if kind == "bool":
            if isinstance(raw, bool):
                return raw
            return self.fail(path, f"expected boolean, got {type(raw).__name__}")
        if kind == "int":
            if isinstance(raw, bool) or not isinstance(raw, int):
                return self.fail(path, f"expected integer, got {type(raw).__name__}")
            return self.bounded(rule, raw, path)
        if kind == "number":
            if isinstance(raw, bool) or not isinstance(raw, (int, float)):
                return self.fail(path, f"expected number, got {type(raw).__name__}")
            number = float(raw)
            if not math.isfinite(number):
                return self.fail(path, "must be finite")
            return self.bounded(rule, number, path)
        if kind == "text":
            return self.text(raw, path)
        if kind == "choice":
            chosen = self.text(raw, path)
            if chosen is _INVALID or chosen in rule.choices:
                return chosen
            options = ", ".join(sorted(rule.choices))
            return self.fail(path, f"invalid value {chosen!r}; expected one of: {options}")
        return self.names(rule, raw, path)

    def names(self, rule: _Rule, raw: object, path: str) -> object:
        if not isinstance(raw, (list, tuple)):
            return self.fail(path, f"expected array of strings, got {type(raw).__name__}")
        if rule.non_empty and not raw:
            return self.fail(path, "must list at least one entry")
        names: list[str] = []
        for index, item in enumerate(raw):
            item_path = f"{path}[{index}]"
            name = self.text(item, item_path)
            if not isinstance(name, str):
                continue
            problem = rule.each(name) if rule.each is not None else None
            if problem is not None:
                self.fail(item_path, problem)
            names.append(name)
        return names

    def section(
        self, name: str, payload: Mapping[str, object], path: str, *, partial: bool
    ) -> dict[str, Any]:
        rules = _RULES[name]
        self.check_keys(
            payload, path, allowed=rules.keys(), required=() if partial else rules.keys()
        )
        out: dict[str, Any] = {}
        for key, rule in rules.items():
            if key in payload:
                checked = self.value(rule, payload[key], _dotted(path, key))
                if checked is not _INVALID:
                    out[key] = checked
        return out

    def meta(self, payload: Mapping[str, object]) -> dict[str, Any]:
        self.check_keys(payload, "meta", allowed={"schema_version"}, required={"schema_version"})
        if "schema_version" not in payload:
            return {}
        version = self.value(_Rule("int", low=1), payload["schema_version"], "meta.schema_version")
        if version is _INVALID:
            return {}
        if isinstance(version, int) and version != ConfigSchemaVersion:
            self.fail("meta.schema_version", migration_guidance(version))
        return {"schema_version": version}

    def profiles(self, payload: Mapping[str, object]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for name in sorted(payload):
            path = _dotted("profiles", name)
            if not _PROFILE_NAME.fullmatch(name):
                self.fail(path, f"profile name must match {_PROFILE_NAME.pattern}")
                continue
            overlay = self.mapping(payload[name], path)
            if overlay is None:
                continue
            self.check_keys(overlay, path, allowed=set(_SECTIONS))
            sections: dict[str, Any] = {}
            for section in _SECTIONS:
                if overlay.get(section) is None:
                    continue
                body = self.mapping(overlay[section], _dotted(path, section))
                if body is not None:
                    sections[section] = self.section(
                        section, body, _dotted(path, section), partial=True
                    )
            out[name] = sections
        return out

    def root(self, payload: Mapping[str, object]) -> dict[str, Any]:
        required = {"meta", *_SECTIONS}
        self.check_keys(payload, "", allowed=required | {"profiles"}, required=required)
        out: dict[str, Any] = {}
        for name in ("meta", *_SECTIONS, "profiles"):
            if payload.get(name) is None:
                continue
            body = self.mapping(payload[name], name)
            if body is None:
                continue
            if name == "meta":
                out[name] = self.meta(body)
            elif name == "profiles":
                out[name] = self.profiles(body)
            else:
                out[name] = self.section(name, body, name, partial=False)
        return out


# --------------------------------------------------------------------------
# Public API
# --------------------------------------------------------------------------


def default_config() -> GateConfig:
    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade devrel-gate.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the devrel-gate package"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; neither input is mutated."""
    merged: dict[str, Any] = {key: copy.deepcopy(base[key]) for key in sorted(base)}
    for key in sorted(overlay):
        incoming = overlay[key]
        if isinstance(incoming, Mapping):
            current = merged.get(key)
            merged[key] = merge_config(current if isinstance(current, Mapping) else {}, incoming)
        else:
            merged[key] = copy.deepcopy(incoming)
    return merged


def validate_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> ConfigValidationResult:
    validator = _Validator()
    payload = validator.mapping(config, "<root>")
    if payload is None:
        return ConfigValidationResult(config=None, issues=tuple(validator.issues))

    normalized = validator.root(payload)
    wanted = active_profile.strip() if isinstance(active_profile, str) else ""
    if wanted and wanted not in normalized.get("profiles", {}):
        validator.fail("profiles", f"profile {wanted!r} is not defined")

    issues = tuple(validator.issues)
    return ConfigValidationResult(config=None if issues else normalized, issues=issues)


def assert_valid_config(
    config: Mapping[str, object] | object,
    *,
    active_profile: str | None = None,
) -> dict[str, Any]:
    result = validate_config(config, active_profile=active_profile)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile onto ``config`` and validate the result.

    A ``None`` or blank profile returns an unvalidated copy.
    """
    selected = (profile or "").strip()
    if not selected:
        return merge_config(config, {})

    profiles = config.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )
    return assert_valid_config(merge_config(config, overlay), active_profile=selected)


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with sensitive-looking keys masked, safe for output."""

    def scrub(value: object) -> object:
        if isinstance(value, Mapping):
            return {
                key: _REDACTED if _looks_sensitive_key(key) else scrub(value[key])
                for key in sorted(value)
            }
        if isinstance(value, (list, tuple)):
            return [scrub(item) for item in value]
        return value

    scrubbed = scrub(config) if isinstance(config, Mapping) else None
    return scrubbed if isinstance(scrubbed, dict) else {}


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "GateConfig",
    "ProfileOverlay",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
