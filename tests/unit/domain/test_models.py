"""
devrel-gate — unit tests for domain models

File: tests/unit/domain/test_models.py

Purpose
- Validate sensitivity ordering, result invariants, and JSON projections.

What this test file should cover
- Sensitivity ranking and the inclusion rule for every level pair.
- Case-sensitive sensitivity parsing.
- ValidationResult valid/blocking_reasons invariant.
- Serialized results never carry matched secret values.
"""

from __future__ import annotations

import itertools
import json

import pytest

from devrel_gate.domain.models import (
    DEFAULT_SENSITIVITY,
    DetectedSecret,
    DocumentMetadata,
    ScanResult,
    SensitivityLevel,
    SensitivitySource,
    Severity,
    ValidationResult,
)

_ORDERED_LEVELS = [
    SensitivityLevel.PUBLIC,
    SensitivityLevel.INTERNAL,
    SensitivityLevel.CONFIDENTIAL,
    SensitivityLevel.RESTRICTED,
]

_PAT = "ghp_" + "aB3dE5gH7j" * 3 + "kL9mN1"


@pytest.mark.parametrize(
    ("primary", "context"),
    list(itertools.product(_ORDERED_LEVELS, repeat=2)),
)
def test_can_include_follows_total_order(
    primary: SensitivityLevel, context: SensitivityLevel
) -> None:
    expected = _ORDERED_LEVELS.index(context) <= _ORDERED_LEVELS.index(primary)
    assert primary.can_include(context) is expected


def test_rank_is_strictly_increasing() -> None:
    ranks = [level.rank for level in _ORDERED_LEVELS]
    assert ranks == sorted(ranks)
    assert len(set(ranks)) == len(ranks)


def test_parse_is_case_sensitive_and_rejects_unknown_values() -> None:
    assert SensitivityLevel.parse("confidential") is SensitivityLevel.CONFIDENTIAL
    assert SensitivityLevel.parse(SensitivityLevel.PUBLIC) is SensitivityLevel.PUBLIC
    assert SensitivityLevel.parse("Confidential") is None
    assert SensitivityLevel.parse("top-secret") is None
    assert SensitivityLevel.parse(3) is None
    assert SensitivityLevel.parse(None) is None


def test_default_metadata_is_defaulted_internal() -> None:
    meta = DocumentMetadata()

    assert DEFAULT_SENSITIVITY is SensitivityLevel.INTERNAL
    assert meta.sensitivity is SensitivityLevel.INTERNAL
    assert meta.sensitivity_source is SensitivitySource.DEFAULTED
    assert meta.sensitivity_label == "internal"
    assert meta.is_valid


def test_invalid_metadata_label_falls_back_to_raw_value() -> None:
    meta = DocumentMetadata(
        sensitivity=None,
        sensitivity_source=SensitivitySource.INVALID,
        raw_sensitivity="top-secret",
        validation_errors=("Invalid sensitivity level: top-secret",),
    )

    assert meta.sensitivity_label == "top-secret"
    assert not meta.is_valid
    assert DocumentMetadata(sensitivity=None).sensitivity_label == "unknown"


def test_validation_result_requires_blocking_reason_when_invalid() -> None:
    with pytest.raises(ValueError, match="requires at least one blocking reason"):
        ValidationResult(valid=False)

    with pytest.raises(ValueError, match="must not carry blocking reasons"):
        ValidationResult(valid=True, blocking_reasons=("Manual review required",))


def test_detected_secret_rejects_negative_offset_and_empty_match() -> None:
    with pytest.raises(ValueError, match="offset"):
        DetectedSecret(
            type="GITHUB_PAT",
            matched_text=_PAT,
            offset=-1,
            severity=Severity.CRITICAL,
            surrounding_excerpt="",
        )
    with pytest.raises(ValueError, match="matched_text"):
        DetectedSecret(
            type="GITHUB_PAT",
            matched_text="",
            offset=0,
            severity=Severity.CRITICAL,
            surrounding_excerpt="",
        )


def test_serialized_results_omit_secret_values() -> None:
    secret = DetectedSecret(
        type="GITHUB_PAT",
        matched_text=_PAT,
        offset=4,
        severity=Severity.CRITICAL,
        surrounding_excerpt=f"Use {_PAT} now",
    )
    scan = ScanResult(
        has_secrets=True,
        secrets=(secret,),
        redacted_text="Use [REDACTED: GITHUB_PAT] now",
        total_count=1,
        critical_count=1,
    )
    result = ValidationResult(
        valid=False,
        errors=("Secrets detected in content: GITHUB_PAT",),
        blocking_reasons=("Found 1 secrets (1 critical)",),
        scan_result=scan,
    )

    payload = json.loads(result.to_json())

    assert payload["valid"] is False
    assert payload["secret_count"] == 1
    assert payload["critical_secret_count"] == 1
    assert payload["secret_types"] == ["GITHUB_PAT"]
    assert _PAT not in result.to_json()
    assert _PAT not in json.dumps(scan.to_dict())
    assert secret.to_dict() == {
        "type": "GITHUB_PAT",
        "offset": 4,
        "length": len(_PAT),
        "severity": "critical",
    }
    assert secret.to_dict(include_value=True)["matched_text"] == _PAT
    assert secret.end == 4 + len(_PAT)


def test_detected_types_are_unique_in_first_seen_order() -> None:
    def _secret(kind: str, offset: int) -> DetectedSecret:
        return DetectedSecret(
            type=kind,
            matched_text="x" * 8,
            offset=offset,
            severity=Severity.HIGH,
            surrounding_excerpt="",
        )

    scan = ScanResult(
        has_secrets=True,
        secrets=(_secret("SLACK_TOKEN", 0), _secret("JWT_TOKEN", 10), _secret("SLACK_TOKEN", 20)),
        redacted_text="",
        total_count=3,
        critical_count=0,
    )

    assert scan.detected_types == ("SLACK_TOKEN", "JWT_TOKEN")
