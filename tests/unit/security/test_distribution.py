"""
devrel-gate — unit tests for the pre-distribution validator

File: tests/unit/security/test_distribution.py

Purpose
- Validate the terminal publishing gate: unconditional secret blocking,
  keyword policy, strict-mode escalation, review queue, and audit events.

What this test file should cover
- Secrets block even with strict mode off and with an upstream
  "already scanned" claim.
- Warnings only block under strict mode without ``allow_warnings``.
- Nothing the gate emits (exception, result, queue item, events) carries a
  matched secret value.
"""

from __future__ import annotations

import pytest

from devrel_gate.domain.events import EventType
from devrel_gate.errors import SecurityException
from devrel_gate.observability.audit import AuditTrail
from devrel_gate.observability.events import EventBus
from devrel_gate.security.distribution import (
    MANUAL_REVIEW_REASON,
    DistributionMetadata,
    DistributionOptions,
    InMemoryReviewQueue,
    PreDistributionValidator,
    format_review_summary,
)

GITHUB_PAT = "ghp_" + "aB3dE5gH7j" * 3 + "kL9mN1"


def _validator() -> tuple[PreDistributionValidator, InMemoryReviewQueue, EventBus]:
    bus = EventBus()
    queue = InMemoryReviewQueue()
    validator = PreDistributionValidator(audit=AuditTrail(bus), review_queue=queue)
    return validator, queue, bus


def test_clean_content_is_approved() -> None:
    validator, queue, bus = _validator()

    result = validator.validate(
        "Release notes: the SDK now retries idempotent calls.",
        DistributionMetadata(document_id="notes-1", channel="blog"),
    )

    assert result.valid
    assert result.errors == ()
    assert result.blocking_reasons == ()
    assert result.scan_result is not None and not result.scan_result.has_secrets
    assert len(queue) == 0
    assert [event.event_type for event in bus.replay()] == [EventType.DISTRIBUTION_APPROVED]


def test_secret_blocks_even_without_strict_mode_and_raises() -> None:
    validator, queue, bus = _validator()

    with pytest.raises(SecurityException) as exc_info:
        validator.validate(
            f"Deploy with {GITHUB_PAT} today.",
            DistributionMetadata(document_id="summary-7", requested_by="writer@example.com"),
            DistributionOptions(strict_mode=False),
        )

    exc = exc_info.value
    assert str(exc) == "Cannot distribute content containing secrets. Found: GITHUB_PAT"
    assert exc.result is not None
    assert not exc.result.valid
    assert exc.blocking_reasons == ("Found 1 secrets (1 critical)",)
    assert exc.result.errors[0] == "Secrets detected in content: GITHUB_PAT"

    (item,) = queue.pending()
    assert item.document_id == "summary-7"
    assert item.detected_types == ("GITHUB_PAT",)
    assert item.critical_count == 1

    event_types = [event.event_type for event in bus.replay()]
    assert event_types == [EventType.SECRET_DETECTION_BLOCKED, EventType.DISTRIBUTION_BLOCKED]
    assert all(event.requesting_identity == "writer@example.com" for event in bus.replay())
    for event in bus.replay():
        assert GITHUB_PAT not in event.to_json()
    assert GITHUB_PAT not in exc.result.to_json()


def test_upstream_scan_claim_is_ignored() -> None:
    validator, _, _ = _validator()

    with pytest.raises(SecurityException):
        validator.validate(
            f"Deploy with {GITHUB_PAT} today.",
            DistributionMetadata(already_scanned=True),
        )


def test_result_only_mode_returns_blocked_result() -> None:
    validator, queue, _ = _validator()

    result = validator.validate(
        f"Deploy with {GITHUB_PAT} today.",
        options=DistributionOptions(raise_on_block=False),
    )

    assert not result.valid
    assert result.scan_result is not None
    assert result.scan_result.detected_types == ("GITHUB_PAT",)
    assert len(queue) == 1


def test_blocking_keyword_without_secret_raises_validation_failure() -> None:
    validator, _, _ = _validator()

    with pytest.raises(SecurityException, match="Pre-distribution validation failed"):
        validator.validate("Reset steps: password: see the vault entry.")


def test_warning_keyword_passes_outside_strict_mode() -> None:
    validator, queue, _ = _validator()

    result = validator.validate("This confidential roadmap ships in Q3.")

    assert result.valid
    assert result.warnings == (
        'Sensitive keyword detected: "confidential" - Confidential information reference',
    )
    assert len(queue) == 0


def test_strict_mode_escalates_warnings_to_manual_review_without_raising() -> None:
    validator, queue, bus = _validator()

    result = validator.validate(
        "This confidential roadmap ships in Q3.",
        DistributionMetadata(document_id="roadmap"),
        DistributionOptions(strict_mode=True),
    )

    assert not result.valid
    assert result.blocking_reasons == (MANUAL_REVIEW_REASON,)
    assert "Strict mode: Manual review required due to warnings" in result.errors
    assert queue.pending()[0].reasons == (MANUAL_REVIEW_REASON,)
    assert EventType.MANUAL_REVIEW_REQUIRED in {event.event_type for event in bus.replay()}


def test_allow_warnings_overrides_strict_mode() -> None:
    validator, _, _ = _validator()

    result = validator.validate(
        "This confidential roadmap ships in Q3.",
        options=DistributionOptions(strict_mode=True, allow_warnings=True),
    )

    assert result.valid
    assert len(result.warnings) == 1


def test_review_summary_lists_types_not_values() -> None:
    validator, queue, _ = _validator()

    validator.validate(
        f"Deploy with {GITHUB_PAT} today.",
        DistributionMetadata(document_id="summary-7", author="dana", channel="newsletter"),
        DistributionOptions(raise_on_block=False),
    )

    summary = format_review_summary(queue.pending()[0])

    assert "Distribution BLOCKED pending manual review" in summary
    assert "Document ID: summary-7" in summary
    assert "Target Channel: newsletter" in summary
    assert "  - GITHUB_PAT" in summary
    assert GITHUB_PAT not in summary
