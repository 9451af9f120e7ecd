"""Security audit trail: one place that turns gate decisions into events and logs.

Every decision is published on the ``EventBus`` and written to the
``devrel_gate.security`` structlog logger. Events carry secret *types* and
document paths only; matched values never reach this module.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Final

import structlog

from devrel_gate.constants import UNKNOWN_IDENTITY
from devrel_gate.domain.events import EventSeverity, EventType, SecurityEvent
from devrel_gate.domain.models import JSONValue
from devrel_gate.observability.events import EventBus

SECURITY_LOGGER_NAME: Final[str] = "devrel_gate.security"


class AuditTrail:
    """Publish security events to the bus and the security logger."""

    def __init__(self, bus: EventBus | None = None, *, logger: Any | None = None) -> None:
        self._bus = bus if bus is not None else EventBus()
        self._logger = logger if logger is not None else structlog.get_logger(SECURITY_LOGGER_NAME)

    @property
    def bus(self) -> EventBus:
        return self._bus

    def record(self, event: SecurityEvent) -> SecurityEvent:
        fields = {
            "event_id": event.event_id,
            "severity": event.severity.value,
            "requesting_identity": event.requesting_identity,
            "detected_types": list(event.detected_types),
            **event.details,
        }
        if event.severity is EventSeverity.CRITICAL:
            self._logger.error(event.event_type.value, **fields)
        elif event.severity is EventSeverity.WARNING:
            self._logger.warning(event.event_type.value, **fields)
        else:
            self._logger.info(event.event_type.value, **fields)
        self._bus.publish(event)
        return event

    def events(
        self,
        *,
        event_type: EventType | str | None = None,
        limit: int | None = None,
    ) -> tuple[SecurityEvent, ...]:
        return self._bus.replay(event_type=event_type, limit=limit)

    def emit(
        self,
        event_type: EventType,
        severity: EventSeverity,
        *,
        requested_by: str,
        detected_types: Sequence[str] = (),
        details: Mapping[str, JSONValue] | None = None,
    ) -> SecurityEvent:
        return self.record(
            SecurityEvent(
                event_type=event_type,
                severity=severity,
                requesting_identity=requested_by or UNKNOWN_IDENTITY,
                detected_types=tuple(detected_types),
                details=dict(details or {}),
            )
        )

    # Convenience constructors, one per decision the gates make.

    def context_access_denied(
        self,
        *,
        requested_by: str,
        primary_path: str,
        primary_sensitivity: str,
        context_path: str,
        context_sensitivity: str,
        reason: str,
    ) -> SecurityEvent:
        return self.emit(
            EventType.CONTEXT_ACCESS_DENIED,
            EventSeverity.WARNING,
            requested_by=requested_by,
            details={
                "primary_path": primary_path,
                "primary_sensitivity": primary_sensitivity,
                "context_path": context_path,
                "context_sensitivity": context_sensitivity,
                "reason": reason,
            },
        )

    def context_assembled(
        self,
        *,
        requested_by: str,
        primary_path: str,
        primary_sensitivity: str,
        requested_count: int,
        admitted_paths: Sequence[str],
        rejected_paths: Sequence[str],
    ) -> SecurityEvent:
        return self.emit(
            EventType.CONTEXT_ASSEMBLED,
            EventSeverity.INFO,
            requested_by=requested_by,
            details={
                "primary_path": primary_path,
                "primary_sensitivity": primary_sensitivity,
                "requested_count": requested_count,
                "context_count": len(admitted_paths),
                "rejected_count": len(rejected_paths),
                "context_paths": list(admitted_paths),
                "rejected_paths": list(rejected_paths),
            },
        )

    def secret_detection_blocked(
        self,
        *,
        requested_by: str,
        document_id: str,
        detected_types: Sequence[str],
        secret_count: int,
        critical_count: int,
    ) -> SecurityEvent:
        return self.emit(
            EventType.SECRET_DETECTION_BLOCKED,
            EventSeverity.CRITICAL,
            requested_by=requested_by,
            detected_types=detected_types,
            details={
                "document_id": document_id,
                "secret_count": secret_count,
                "critical_count": critical_count,
            },
        )

    def manual_review_required(
        self,
        *,
        requested_by: str,
        document_id: str,
        warnings: Sequence[str],
    ) -> SecurityEvent:
        return self.emit(
            EventType.MANUAL_REVIEW_REQUIRED,
            EventSeverity.WARNING,
            requested_by=requested_by,
            details={"document_id": document_id, "warnings": list(warnings)},
        )

    def distribution_decision(
        self,
        *,
        requested_by: str,
        document_id: str,
        channel: str | None,
        valid: bool,
        blocking_reasons: Sequence[str],
    ) -> SecurityEvent:
        if valid:
            return self.emit(
                EventType.DISTRIBUTION_APPROVED,
                EventSeverity.INFO,
                requested_by=requested_by,
                details={"document_id": document_id, "channel": channel},
            )
        return self.emit(
            EventType.DISTRIBUTION_BLOCKED,
            EventSeverity.CRITICAL,
            requested_by=requested_by,
            details={
                "document_id": document_id,
                "channel": channel,
                "blocking_reasons": list(blocking_reasons),
            },
        )

    def input_sanitized(
        self,
        *,
        requested_by: str,
        reason: str | None,
        removed_count: int,
        content_hash: str,
    ) -> SecurityEvent:
        return self.emit(
            EventType.INPUT_SANITIZED,
            EventSeverity.WARNING,
            requested_by=requested_by,
            details={"reason": reason, "removed_count": removed_count, "content_hash": content_hash},
        )


__all__ = ["SECURITY_LOGGER_NAME", "AuditTrail"]
