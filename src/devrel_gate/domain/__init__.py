"""Domain types shared by the sanitizer, assembler, scanner, and distribution gate."""

from devrel_gate.domain.events import EventSeverity, EventType, SecurityEvent
from devrel_gate.domain.models import (
    DEFAULT_SENSITIVITY,
    ContextAssemblyResult,
    DetectedSecret,
    Document,
    DocumentMetadata,
    RejectedContext,
    SanitizationResult,
    ScanResult,
    SensitivityLevel,
    SensitivitySource,
    Severity,
    ValidationResult,
)

__all__ = [
    "DEFAULT_SENSITIVITY",
    "ContextAssemblyResult",
    "DetectedSecret",
    "Document",
    "DocumentMetadata",
    "EventSeverity",
    "EventType",
    "RejectedContext",
    "SanitizationResult",
    "ScanResult",
    "SecurityEvent",
    "SensitivityLevel",
    "SensitivitySource",
    "Severity",
    "ValidationResult",
]
