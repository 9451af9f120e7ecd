"""Exception hierarchy shared by the content-security pipeline.

Only ``SecurityException`` is fatal to a distribution workflow; the other
errors describe inputs the caller must fix (unresolvable primary documents,
strict-mode metadata failures).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from devrel_gate.domain.models import ValidationResult


class DevrelGateError(Exception):
    """Base class for all pipeline errors."""


class SecurityException(DevrelGateError):
    """Raised when the pre-distribution gate blocks content.

    Carries the full ``ValidationResult`` so callers can report exact reasons
    without re-running the gate.
    """

    def __init__(self, message: str, *, result: ValidationResult | None = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def blocking_reasons(self) -> tuple[str, ...]:
        if self.result is None:
            return ()
        return self.result.blocking_reasons


class DocumentNotFoundError(DevrelGateError):
    """Raised when the primary document of an assembly cannot be resolved or read."""

    def __init__(self, path: str, detail: str | None = None) -> None:
        self.path = path
        self.detail = detail
        message = f"primary document not found or unreadable: {path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class FrontmatterValidationError(DevrelGateError, ValueError):
    """Raised in strict mode when a document's metadata block is invalid."""

    def __init__(self, path: str, errors: Sequence[str]) -> None:
        self.path = path
        self.errors = tuple(errors)
        rendered = ", ".join(self.errors) or "unknown validation failure"
        super().__init__(f"invalid frontmatter in {path}: {rendered}")


__all__ = [
    "DevrelGateError",
    "DocumentNotFoundError",
    "FrontmatterValidationError",
    "SecurityException",
]
