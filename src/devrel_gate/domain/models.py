"""Immutable result and document models for the content-security pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class SensitivityLevel(StrEnum):
    """Ordered document classification: public < internal < confidential < restricted."""

    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"

    @property
    def rank(self) -> int:
        return _SENSITIVITY_RANK[self]

    def can_include(self, context: SensitivityLevel) -> bool:
        """Return whether a document at this level may admit ``context`` as context."""

        return context.rank <= self.rank

    @classmethod
    def parse(cls, value: object) -> SensitivityLevel | None:
        """Case-sensitive parse; returns ``None`` for anything outside the enumeration."""

        if isinstance(value, SensitivityLevel):
            return value
        if not isinstance(value, str):
            return None
        for member in cls:
            if member.value == value:
                return member
        return None


_SENSITIVITY_RANK: Final[dict[SensitivityLevel, int]] = {
    SensitivityLevel.PUBLIC: 0,
    SensitivityLevel.INTERNAL: 1,
    SensitivityLevel.CONFIDENTIAL: 2,
    SensitivityLevel.RESTRICTED: 3,
}

DEFAULT_SENSITIVITY: Final[SensitivityLevel] = SensitivityLevel.INTERNAL


class SensitivitySource(StrEnum):
    """Where a document's effective sensitivity came from."""

    DECLARED = "declared"
    DEFAULTED = "defaulted"
    INVALID = "invalid"


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


@dataclass(frozen=True, slots=True)
class DocumentMetadata:
    """Parsed frontmatter block of one document.

    ``sensitivity`` is ``None`` only when the declared value failed validation;
    such documents cannot be ranked and are treated as inadmissible.
    """

    sensitivity: SensitivityLevel | None = DEFAULT_SENSITIVITY
    sensitivity_source: SensitivitySource = SensitivitySource.DEFAULTED
    raw_sensitivity: str | None = None
    context_documents: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    allowed_audiences: tuple[str, ...] = ()
    requires_approval: bool | None = None
    retention_days: int | None = None
    pii_present: bool | None = None
    title: str | None = None
    description: str | None = None
    version: str | None = None
    owner: str | None = None
    department: str | None = None
    created: str | None = None
    updated: str | None = None
    validation_errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors

    @property
    def sensitivity_label(self) -> str:
        if self.sensitivity is not None:
            return self.sensitivity.value
        return self.raw_sensitivity or "unknown"


@dataclass(frozen=True, slots=True)
class Document:
    path: str
    metadata: DocumentMetadata
    body: str
    raw_content: str

    @property
    def sensitivity(self) -> SensitivityLevel | None:
        return self.metadata.sensitivity


@dataclass(frozen=True, slots=True)
class DetectedSecret:
    """One secret match that survived false-positive suppression."""

    type: str
    matched_text: str
    offset: int
    severity: Severity
    surrounding_excerpt: str

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("DetectedSecret.offset must be >= 0")
        if not self.matched_text:
            raise ValueError("DetectedSecret.matched_text must not be empty")

    @property
    def end(self) -> int:
        return self.offset + len(self.matched_text)

    def to_dict(self, *, include_value: bool = False) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "type": self.type,
            "offset": self.offset,
            "length": len(self.matched_text),
            "severity": self.severity.value,
        }
        if include_value:
            payload["matched_text"] = self.matched_text
            payload["surrounding_excerpt"] = self.surrounding_excerpt
        return payload


@dataclass(frozen=True, slots=True)
class ScanResult:
    has_secrets: bool
    secrets: tuple[DetectedSecret, ...]
    redacted_text: str
    total_count: int
    critical_count: int

    @property
    def detected_types(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(item.type for item in self.secrets))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "has_secrets": self.has_secrets,
            "total_count": self.total_count,
            "critical_count": self.critical_count,
            "secrets": [item.to_dict() for item in self.secrets],
            "redacted_text": self.redacted_text,
        }


@dataclass(frozen=True, slots=True)
class SanitizationResult:
    sanitized_text: str
    flagged: bool
    removed_descriptions: tuple[str, ...]
    reason: str | None
    content_hash: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "sanitized_text": self.sanitized_text,
            "flagged": self.flagged,
            "removed_descriptions": list(self.removed_descriptions),
            "reason": self.reason,
            "content_hash": self.content_hash,
        }


@dataclass(frozen=True, slots=True)
class RejectedContext:
    path: str
    reason: str


@dataclass(frozen=True, slots=True)
class ContextAssemblyResult:
    primary_document: Document
    admitted_context_documents: tuple[Document, ...]
    warnings: tuple[str, ...]
    rejected_contexts: tuple[RejectedContext, ...]

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "primary_document": {
                "path": self.primary_document.path,
                "sensitivity": self.primary_document.metadata.sensitivity_label,
            },
            "admitted_context_documents": [
                {"path": doc.path, "sensitivity": doc.metadata.sensitivity_label}
                for doc in self.admitted_context_documents
            ],
            "warnings": list(self.warnings),
            "rejected_contexts": [
                {"path": item.path, "reason": item.reason} for item in self.rejected_contexts
            ],
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    blocking_reasons: tuple[str, ...] = ()
    scan_result: ScanResult | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not self.valid and not self.blocking_reasons:
            raise ValueError("ValidationResult.valid=False requires at least one blocking reason")
        if self.valid and self.blocking_reasons:
            raise ValueError("ValidationResult.valid=True must not carry blocking reasons")

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "blocking_reasons": list(self.blocking_reasons),
        }
        if self.scan_result is not None:
            payload["secret_count"] = self.scan_result.total_count
            payload["critical_secret_count"] = self.scan_result.critical_count
            payload["secret_types"] = list(self.scan_result.detected_types)
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "DEFAULT_SENSITIVITY",
    "ContextAssemblyResult",
    "DetectedSecret",
    "Document",
    "DocumentMetadata",
    "JSONScalar",
    "JSONValue",
    "RejectedContext",
    "SanitizationResult",
    "ScanResult",
    "SensitivityLevel",
    "SensitivitySource",
    "Severity",
    "ValidationResult",
]
