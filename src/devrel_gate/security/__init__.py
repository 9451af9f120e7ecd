"""
devrel-gate — content security gates

File: src/devrel_gate/security/__init__.py

Purpose
- Secret scanning and redaction, input sanitization, and the
  pre-distribution validator.

Non-functional requirements
- Must fail closed: a detected secret always blocks distribution.
"""

from devrel_gate.security.secret_scanner import (
    CATCH_ALL_TYPE,
    DEFAULT_SECRET_PATTERNS,
    PatternStatistics,
    ScanOptions,
    SecretPattern,
    SecretScanner,
    SecretScannerConfig,
    redact,
    redaction_marker,
    shannon_entropy,
)
from devrel_gate.security.sanitizer import (
    DEFAULT_INJECTION_RULES,
    InjectionRule,
    InputSanitizer,
    SanitizerConfig,
    instruction_density,
    normalize_whitespace,
)
from devrel_gate.security.distribution import (
    DEFAULT_KEYWORD_RULES,
    MANUAL_REVIEW_REASON,
    DistributionMetadata,
    DistributionOptions,
    DistributionValidatorConfig,
    InMemoryReviewQueue,
    KeywordAction,
    KeywordRule,
    PreDistributionValidator,
    ReviewItem,
    ReviewQueue,
    format_review_summary,
)

__all__ = [
    "CATCH_ALL_TYPE",
    "DEFAULT_INJECTION_RULES",
    "DEFAULT_KEYWORD_RULES",
    "DEFAULT_SECRET_PATTERNS",
    "MANUAL_REVIEW_REASON",
    "DistributionMetadata",
    "DistributionOptions",
    "DistributionValidatorConfig",
    "InMemoryReviewQueue",
    "InjectionRule",
    "InputSanitizer",
    "KeywordAction",
    "KeywordRule",
    "PatternStatistics",
    "PreDistributionValidator",
    "ReviewItem",
    "ReviewQueue",
    "SanitizerConfig",
    "ScanOptions",
    "SecretPattern",
    "SecretScanner",
    "SecretScannerConfig",
    "format_review_summary",
    "instruction_density",
    "normalize_whitespace",
    "redact",
    "redaction_marker",
    "shannon_entropy",
]
