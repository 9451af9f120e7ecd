"""Security event envelope published by every gate decision."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Final, TypeVar

from devrel_gate.constants import UNKNOWN_IDENTITY
from devrel_gate.domain import ids
from devrel_gate.domain.models import JSONValue

_MAX_IDENTITY: Final[int] = 256
_MAX_TYPE_NAME: Final[int] = 128
_MAX_DETAIL_TEXT: Final[int] = 8192
_MAX_DETAIL_DEPTH: Final[int] = 16

_REQUIRED_KEYS: Final[frozenset[str]] = frozenset(
    {"event_id", "event_type", "severity", "timestamp"}
)
_OPTIONAL_KEYS: Final[frozenset[str]] = frozenset(
    {"detected_types", "requesting_identity", "details"}
)

_E = TypeVar("_E", bound=StrEnum)


class EventType(StrEnum):
    CONTEXT_ACCESS_DENIED = "ContextAccessDenied"
    CONTEXT_ASSEMBLED = "ContextAssembled"
    SECRET_DETECTION_BLOCKED = "SecretDetectionBlocked"
    DISTRIBUTION_BLOCKED = "DistributionBlocked"
    DISTRIBUTION_APPROVED = "DistributionApproved"
    MANUAL_REVIEW_REQUIRED = "ManualReviewRequired"
    INPUT_SANITIZED = "InputSanitized"


class EventSeverity(StrEnum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Ordering used by severity filters: info < warning < critical."""
        return list(EventSeverity).index(self)


def _text(value: object, where: str, limit: int) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{where}: expected string, got {type(value).__name__}")
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"{where}: must not be empty")
    if len(cleaned) > limit:
        raise ValueError(f"{where}: longer than {limit} characters")
    return cleaned


def _enum_member(kind: type[_E], value: object, where: str, label: str) -> _E:
    if isinstance(value, kind):
        return value
    if isinstance(value, str) and value in kind._value2member_map_:
        return kind(value)
    choices = ", ".join(member.value for member in kind)
    raise ValueError(f"{where}: unsupported {label} {value!r}; allowed: {choices}")


def _utc(value: object, where: str) -> datetime:
    if isinstance(value, str):
        iso = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            value = datetime.fromisoformat(iso)
        except ValueError as exc:
            raise ValueError(f"{where}: invalid ISO-8601 datetime {value!r}") from exc
    if not isinstance(value, datetime):
        raise ValueError(f"{where}: expected datetime, got {type(value).__name__}")
    if value.utcoffset() is None:
        raise ValueError(f"{where}: datetime must be timezone-aware")
    return value.astimezone(UTC)


def _json_tree(value: object, where: str, depth: int = 0) -> JSONValue:
    """Validate a details payload: finite numbers, bounded strings, string keys."""
    if depth > _MAX_DETAIL_DEPTH:
        raise ValueError(f"{where}: nested deeper than {_MAX_DETAIL_DEPTH} levels")
    match value:
        case None | bool() | int():
            return value
        case float() if not math.isfinite(value):
            raise ValueError(f"{where}: float value must be finite")
        case float():
            return value
        case str() if len(value) > _MAX_DETAIL_TEXT:
            raise ValueError(f"{where}: string longer than {_MAX_DETAIL_TEXT} characters")
        case str():
            return value
        case list() | tuple():
            return [_json_tree(item, f"{where}[{i}]", depth + 1) for i, item in enumerate(value)]
        case dict():
            tree: dict[str, JSONValue] = {}
            for key, item in value.items():
                if not isinstance(key, str):
                    raise ValueError(f"{where}: object keys must be strings")
                tree[key] = _json_tree(item, f"{where}.{key}", depth + 1)
            return tree
    raise ValueError(f"{where}: value is not JSON-serializable ({type(value).__name__})")


def _details(value: object) -> dict[str, JSONValue]:
    tree = _json_tree(value, "SecurityEvent.details")
    if not isinstance(tree, dict):
        raise ValueError("SecurityEvent.details: expected object")
    return tree


@dataclass(slots=True)
class SecurityEvent:
    """Audit record for one security decision.

    ``detected_types`` names secret categories only; matched values never
    enter an event. Fields are validated and normalized on construction, so
    string enum values and naive whitespace are accepted from callers.
    """

    event_type: EventType
    severity: EventSeverity
    requesting_identity: str = UNKNOWN_IDENTITY
    detected_types: tuple[str, ...] = ()
    details: dict[str, JSONValue] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    event_id: str = field(default_factory=ids.generate_event_id)

    def __post_init__(self) -> None:
        ids.validate_event_id(self.event_id)
        self.event_type = _enum_member(
            EventType, self.event_type, "SecurityEvent.event_type", "event type"
        )
        self.severity = _enum_member(
            EventSeverity, self.severity, "SecurityEvent.severity", "severity"
        )
        self.requesting_identity = _text(
            self.requesting_identity, "SecurityEvent.requesting_identity", _MAX_IDENTITY
        )
        self.detected_types = tuple(
            _text(name, f"SecurityEvent.detected_types[{i}]", _MAX_TYPE_NAME)
            for i, name in enumerate(self.detected_types)
        )
        self.timestamp = _utc(self.timestamp, "SecurityEvent.timestamp")
        self.details = _details(self.details)

    @property
    def is_critical(self) -> bool:
        return self.severity is EventSeverity.CRITICAL

    def to_dict(self) -> dict[str, JSONValue]:
        stamp = self.timestamp.isoformat(timespec="microseconds").replace("+00:00", "Z")
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "detected_types": list(self.detected_types),
            "requesting_identity": self.requesting_identity,
            "timestamp": stamp,
            "details": _details(self.details),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> SecurityEvent:
        if not isinstance(data, dict):
            raise ValueError(f"SecurityEvent: expected object, got {type(data).__name__}")
        keys = set(data)
        if unexpected := sorted(map(str, keys - _REQUIRED_KEYS - _OPTIONAL_KEYS)):
            raise ValueError(f"SecurityEvent: unexpected fields: {unexpected}")
        if missing := sorted(_REQUIRED_KEYS - keys):
            raise ValueError(f"SecurityEvent: missing required fields: {missing}")

        detected = data.get("detected_types", [])
        if not isinstance(detected, list):
            raise ValueError("SecurityEvent.detected_types: expected array")
        return cls(
            event_id=_text(data["event_id"], "SecurityEvent.event_id", _MAX_TYPE_NAME),
            event_type=_enum_member(
                EventType, data["event_type"], "SecurityEvent.event_type", "event type"
            ),
            severity=_enum_member(
                EventSeverity, data["severity"], "SecurityEvent.severity", "severity"
            ),
            requesting_identity=_text(
                data.get("requesting_identity", UNKNOWN_IDENTITY),
                "SecurityEvent.requesting_identity",
                _MAX_IDENTITY,
            ),
            detected_types=tuple(
                _text(name, f"SecurityEvent.detected_types[{i}]", _MAX_TYPE_NAME)
                for i, name in enumerate(detected)
            ),
            timestamp=_utc(data["timestamp"], "SecurityEvent.timestamp"),
            details=_details(data.get("details", {})),
        )

    @classmethod
    def from_json(cls, raw: str) -> SecurityEvent:
        try:
            parsed = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as exc:
            raise ValueError(f"SecurityEvent: invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise ValueError("SecurityEvent: JSON root must be an object")
        return cls.from_dict(parsed)


__all__ = ["EventSeverity", "EventType", "SecurityEvent"]
