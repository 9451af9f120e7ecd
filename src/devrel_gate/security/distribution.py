"""
devrel-gate — pre-distribution validator

File: src/devrel_gate/security/distribution.py

Purpose
- Terminal gate that runs immediately before content is published outside
  the organization.

Functional requirements
- Always re-scans for secrets; upstream "already scanned" claims are logged
  and ignored.
- Any detected secret blocks unconditionally, independent of strict mode.
- Keyword policy: BLOCK keywords become blocking reasons, WARN keywords
  become warnings; strict mode turns warnings into a manual-review block.
- Every ``valid=False`` outcome is flagged to the review queue.

Non-functional requirements
- Hard blocks raise ``SecurityException`` carrying the full result unless the
  caller opts into result-only mode.
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final, Protocol, runtime_checkable

import structlog

from devrel_gate.constants import UNKNOWN_IDENTITY
from devrel_gate.domain.models import ScanResult, ValidationResult
from devrel_gate.errors import SecurityException
from devrel_gate.observability.audit import AuditTrail
from devrel_gate.security.secret_scanner import ScanOptions, SecretScanner

MANUAL_REVIEW_REASON: Final[str] = "Manual review required"
STRICT_MODE_ERROR: Final[str] = "Strict mode: Manual review required due to warnings"


class KeywordAction(StrEnum):
    BLOCK = "block"
    WARN = "warn"


@dataclass(frozen=True, slots=True)
class KeywordRule:
    keyword: str
    pattern: re.Pattern[str]
    action: KeywordAction
    description: str

    @property
    def message(self) -> str:
        return f'Sensitive keyword detected: "{self.keyword}" - {self.description}'


def _kw(keyword: str, regex: str, action: KeywordAction, description: str) -> KeywordRule:
    return KeywordRule(
        keyword=keyword,
        pattern=re.compile(regex, re.IGNORECASE),
        action=action,
        description=description,
    )


DEFAULT_KEYWORD_RULES: Final[tuple[KeywordRule, ...]] = (
    _kw("password", r"password\s*[:=]", KeywordAction.BLOCK, "Password assignment detected"),
    _kw("private key", r"private\s+key", KeywordAction.BLOCK, "Private key reference"),
    _kw("secret", r"secret\s*[:=]", KeywordAction.BLOCK, "Secret assignment detected"),
    _kw("api_key", r"api[_-]?key\s*[:=]", KeywordAction.BLOCK, "API key assignment detected"),
    _kw("token", r"token\s*[:=]", KeywordAction.BLOCK, "Token assignment detected"),
    _kw("credential", r"credential", KeywordAction.BLOCK, "Credential reference"),
    _kw("confidential", r"confidential", KeywordAction.WARN, "Confidential information reference"),
    _kw("internal only", r"internal\s+only", KeywordAction.WARN, "Internal only designation"),
    _kw("do not share", r"do\s+not\s+share", KeywordAction.WARN, "Explicit no-share instruction"),
    _kw("proprietary", r"proprietary", KeywordAction.WARN, "Proprietary information reference"),
)


@dataclass(frozen=True, slots=True)
class DistributionMetadata:
    """Caller-supplied description of the item about to be published."""

    document_id: str | None = None
    document_name: str | None = None
    author: str | None = None
    channel: str | None = None
    requested_by: str = UNKNOWN_IDENTITY
    already_scanned: bool = False

    @property
    def label(self) -> str:
        return self.document_id or self.document_name or "unknown"


@dataclass(frozen=True, slots=True)
class DistributionOptions:
    strict_mode: bool = False
    allow_warnings: bool = False
    raise_on_block: bool = True


@dataclass(frozen=True, slots=True)
class DistributionValidatorConfig:
    keyword_rules: tuple[KeywordRule, ...] = DEFAULT_KEYWORD_RULES
    scan_context_chars: int = 100
    default_options: DistributionOptions = DistributionOptions()

    def __post_init__(self) -> None:
        if self.scan_context_chars < 0:
            raise ValueError("scan_context_chars must be >= 0")


@dataclass(frozen=True, slots=True)
class ReviewItem:
    """What a reviewer sees: reasons and secret categories, never secret values."""

    document_id: str
    document_name: str | None
    author: str | None
    channel: str | None
    requested_by: str
    reasons: tuple[str, ...]
    detected_types: tuple[str, ...] = ()
    secret_count: int = 0
    critical_count: int = 0
    flagged_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


@runtime_checkable
class ReviewQueue(Protocol):
    def flag_for_review(self, item: ReviewItem) -> None: ...


class InMemoryReviewQueue:
    """Thread-safe list-backed review queue."""

    def __init__(self) -> None:
        self._items: list[ReviewItem] = []
        self._lock = threading.Lock()

    def flag_for_review(self, item: ReviewItem) -> None:
        with self._lock:
            self._items.append(item)

    def pending(self) -> tuple[ReviewItem, ...]:
        with self._lock:
            return tuple(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class PreDistributionValidator:
    """Last gate before publication; fails closed on any detected secret."""

    def __init__(
        self,
        scanner: SecretScanner | None = None,
        config: DistributionValidatorConfig | None = None,
        *,
        audit: AuditTrail | None = None,
        review_queue: ReviewQueue | None = None,
        logger: Any | None = None,
    ) -> None:
        self._scanner = scanner or SecretScanner()
        self._config = config or DistributionValidatorConfig()
        self._audit = audit if audit is not None else AuditTrail()
        self._review_queue = review_queue
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> DistributionValidatorConfig:
        return self._config

    def validate(
        self,
        content: str,
        metadata: DistributionMetadata | None = None,
        options: DistributionOptions | None = None,
    ) -> ValidationResult:
        meta = metadata or DistributionMetadata()
        opts = options or self._config.default_options

        self._logger.info(
            "distribution_validation_started",
            document_id=meta.label,
            content_length=len(content),
            strict_mode=opts.strict_mode,
            allow_warnings=opts.allow_warnings,
            upstream_already_scanned=meta.already_scanned,
        )

        errors: list[str] = []
        warnings: list[str] = []
        blocking: list[str] = []

        scan = self._scanner.scan(
            content, ScanOptions(context_chars=self._config.scan_context_chars)
        )
        if scan.has_secrets:
            types = ", ".join(scan.detected_types)
            errors.append(f"Secrets detected in content: {types}")
            blocking.append(f"Found {scan.total_count} secrets ({scan.critical_count} critical)")
            self._audit.secret_detection_blocked(
                requested_by=meta.requested_by,
                document_id=meta.label,
                detected_types=scan.detected_types,
                secret_count=scan.total_count,
                critical_count=scan.critical_count,
            )

        for rule in self._config.keyword_rules:
            if not rule.pattern.search(content):
                continue
            if rule.action is KeywordAction.BLOCK:
                errors.append(rule.message)
                blocking.append(rule.message)
                self._logger.error(
                    "distribution_blocking_keyword",
                    keyword=rule.keyword,
                    document_id=meta.label,
                )
            else:
                warnings.append(rule.message)
                self._logger.warning(
                    "distribution_warning_keyword",
                    keyword=rule.keyword,
                    document_id=meta.label,
                )

        hard_block = bool(blocking)
        if not hard_block and warnings and opts.strict_mode and not opts.allow_warnings:
            errors.append(STRICT_MODE_ERROR)
            blocking.append(MANUAL_REVIEW_REASON)
            self._audit.manual_review_required(
                requested_by=meta.requested_by,
                document_id=meta.label,
                warnings=warnings,
            )

        result = ValidationResult(
            valid=not blocking,
            errors=tuple(errors),
            warnings=tuple(warnings),
            blocking_reasons=tuple(blocking),
            scan_result=scan,
        )

        self._audit.distribution_decision(
            requested_by=meta.requested_by,
            document_id=meta.label,
            channel=meta.channel,
            valid=result.valid,
            blocking_reasons=result.blocking_reasons,
        )

        if not result.valid:
            self._flag_for_review(meta, result, scan)

        if hard_block and opts.raise_on_block:
            if scan.has_secrets:
                message = (
                    "Cannot distribute content containing secrets. "
                    f"Found: {', '.join(scan.detected_types)}"
                )
            else:
                message = f"Pre-distribution validation failed: {'; '.join(blocking)}"
            raise SecurityException(message, result=result)

        return result

    def _flag_for_review(
        self, meta: DistributionMetadata, result: ValidationResult, scan: ScanResult
    ) -> None:
        item = ReviewItem(
            document_id=meta.label,
            document_name=meta.document_name,
            author=meta.author,
            channel=meta.channel,
            requested_by=meta.requested_by,
            reasons=result.blocking_reasons,
            detected_types=scan.detected_types,
            secret_count=scan.total_count,
            critical_count=scan.critical_count,
        )
        self._logger.warning(
            "distribution_flagged_for_review",
            document_id=item.document_id,
            reasons=list(item.reasons),
            queued=self._review_queue is not None,
        )
        if self._review_queue is not None:
            self._review_queue.flag_for_review(item)


def format_review_summary(item: ReviewItem) -> str:
    """Plain-text summary for a reviewer; lists secret categories only."""

    lines = [
        "Distribution BLOCKED pending manual review",
        "",
        f"  Document ID: {item.document_id}",
        f"  Document Name: {item.document_name or 'N/A'}",
        f"  Author: {item.author or 'N/A'}",
        f"  Target Channel: {item.channel or 'N/A'}",
        f"  Requested By: {item.requested_by}",
        "",
        "Reasons:",
    ]
    lines.extend(f"  - {reason}" for reason in item.reasons)
    if item.secret_count:
        lines.append("")
        lines.append(f"Secrets: {item.secret_count} ({item.critical_count} critical)")
        lines.extend(f"  - {secret_type}" for secret_type in item.detected_types)
        lines.append("")
        lines.append("Rotate any exposed credentials before re-submitting.")
    lines.append(f"Flagged at: {item.flagged_at.isoformat()}")
    return "\n".join(lines)


__all__ = [
    "DEFAULT_KEYWORD_RULES",
    "MANUAL_REVIEW_REASON",
    "DistributionMetadata",
    "DistributionOptions",
    "DistributionValidatorConfig",
    "InMemoryReviewQueue",
    "KeywordAction",
    "KeywordRule",
    "PreDistributionValidator",
    "ReviewItem",
    "ReviewQueue",
    "format_review_summary",
]
