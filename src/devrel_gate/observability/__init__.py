"""Security audit trail, in-process event bus, and redacting structured logs."""

from devrel_gate.observability.audit import SECURITY_LOGGER_NAME, AuditTrail
from devrel_gate.observability.events import (
    DispatchError,
    EventBus,
    PersistenceCallback,
    Subscriber,
)
from devrel_gate.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    configure_console_logging,
    correlation_scope,
    default_log_redactor,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "SECURITY_LOGGER_NAME",
    "AuditTrail",
    "DispatchError",
    "EventBus",
    "LogRedactor",
    "LoggingConfig",
    "PersistenceCallback",
    "StructuredLoggingHandle",
    "Subscriber",
    "configure_console_logging",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
