"""
devrel-gate — security pipeline facade

File: src/devrel_gate/pipeline.py

Purpose
- Compose the sanitizer, context assembler, secret scanner, and
  pre-distribution validator around one shared audit trail.

Functional requirements
- ``from_config`` builds every component from a validated config mapping
  (``devrel_gate.config.load_config`` output or ``default_config()``).
- Components stay independent: the facade only wires configuration and
  collaborators, it adds no decisions of its own.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from devrel_gate.config.schema import assert_valid_config, default_config
from devrel_gate.constants import UNKNOWN_IDENTITY
from devrel_gate.context.assembler import AssemblyOptions, ContextAssembler, ContextAssemblerConfig
from devrel_gate.context.frontmatter import MissingSensitivityPolicy
from devrel_gate.context.resolver import DocumentResolver, FilesystemDocumentResolver
from devrel_gate.domain.models import (
    ContextAssemblyResult,
    SanitizationResult,
    ScanResult,
    ValidationResult,
)
from devrel_gate.observability.audit import AuditTrail
from devrel_gate.observability.events import EventBus
from devrel_gate.security.distribution import (
    DistributionMetadata,
    DistributionOptions,
    DistributionValidatorConfig,
    PreDistributionValidator,
    ReviewQueue,
)
from devrel_gate.security.sanitizer import InputSanitizer, SanitizerConfig
from devrel_gate.security.secret_scanner import (
    DEFAULT_SECRET_PATTERNS,
    ScanOptions,
    SecretScanner,
    SecretScannerConfig,
)


class SecurityPipeline:
    """The four security gates sharing one ``AuditTrail``."""

    def __init__(
        self,
        *,
        sanitizer: InputSanitizer,
        assembler: ContextAssembler,
        scanner: SecretScanner,
        validator: PreDistributionValidator,
        audit: AuditTrail,
    ) -> None:
        self.sanitizer = sanitizer
        self.assembler = assembler
        self.scanner = scanner
        self.validator = validator
        self.audit = audit

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, object] | None = None,
        *,
        resolver: DocumentResolver | None = None,
        bus: EventBus | None = None,
        review_queue: ReviewQueue | None = None,
        logger: Any | None = None,
    ) -> SecurityPipeline:
        """Build a pipeline from a config mapping; defaults when ``config`` is None."""

        effective = assert_valid_config(config if config is not None else default_config())
        audit = AuditTrail(bus)

        scanner = SecretScanner(scanner_config_from(effective["scanner"]), logger=logger)
        sanitizer = InputSanitizer(sanitizer_config_from(effective["sanitizer"]), logger=logger)

        resolver_settings = effective["resolver"]
        if resolver is None:
            resolver = FilesystemDocumentResolver(
                resolver_settings["root"],
                allowed_base_dirs=tuple(resolver_settings["allowed_base_dirs"]),
            )
        assembler = ContextAssembler(
            resolver,
            assembler_config_from(effective["assembler"]),
            audit=audit,
            logger=logger,
        )

        validator = PreDistributionValidator(
            scanner,
            distribution_config_from(effective["distribution"]),
            audit=audit,
            review_queue=review_queue,
            logger=logger,
        )
        return cls(
            sanitizer=sanitizer,
            assembler=assembler,
            scanner=scanner,
            validator=validator,
            audit=audit,
        )

    def sanitize(self, text: str, *, requested_by: str = UNKNOWN_IDENTITY) -> SanitizationResult:
        result = self.sanitizer.sanitize(text)
        if result.flagged:
            self.audit.input_sanitized(
                requested_by=requested_by,
                reason=result.reason,
                removed_count=len(result.removed_descriptions),
                content_hash=result.content_hash,
            )
        return result

    def assemble(
        self, primary_path: str, options: AssemblyOptions | None = None
    ) -> ContextAssemblyResult:
        return self.assembler.assemble(primary_path, options)

    async def assemble_async(
        self, primary_path: str, options: AssemblyOptions | None = None
    ) -> ContextAssemblyResult:
        return await self.assembler.assemble_async(primary_path, options)

    def scan(self, text: str, options: ScanOptions | None = None) -> ScanResult:
        return self.scanner.scan(text, options)

    def validate(
        self,
        content: str,
        metadata: DistributionMetadata | None = None,
        options: DistributionOptions | None = None,
    ) -> ValidationResult:
        return self.validator.validate(content, metadata, options)


def scanner_config_from(settings: Mapping[str, Any]) -> SecretScannerConfig:
    disabled = set(settings.get("disabled_patterns", ()))
    patterns = tuple(entry for entry in DEFAULT_SECRET_PATTERNS if entry.type_name not in disabled)
    return SecretScannerConfig(
        patterns=patterns,
        entropy_threshold=float(settings["entropy_threshold"]),
        url_lookbehind_chars=int(settings["url_lookbehind_chars"]),
        placeholder_window_chars=int(settings["placeholder_window_chars"]),
        context_chars=int(settings["context_chars"]),
    )


def sanitizer_config_from(settings: Mapping[str, Any]) -> SanitizerConfig:
    return SanitizerConfig(
        instruction_density_threshold=float(settings["instruction_density_threshold"]),
        instruction_density_min_words=int(settings["instruction_density_min_words"]),
        max_removal_ratio=float(settings["max_removal_ratio"]),
        detect_css_hiding=bool(settings["detect_css_hiding"]),
    )


def assembler_config_from(settings: Mapping[str, Any]) -> ContextAssemblerConfig:
    return ContextAssemblerConfig(
        missing_sensitivity_policy=MissingSensitivityPolicy(settings["missing_sensitivity_policy"]),
        max_concurrent_fetches=int(settings["max_concurrent_fetches"]),
        default_options=AssemblyOptions(
            max_context_documents=int(settings["max_context_documents"]),
            fail_on_validation_error=bool(settings["fail_on_validation_error"]),
            allow_circular_references=bool(settings["allow_circular_references"]),
        ),
    )


def distribution_config_from(settings: Mapping[str, Any]) -> DistributionValidatorConfig:
    return DistributionValidatorConfig(
        scan_context_chars=int(settings["scan_context_chars"]),
        default_options=DistributionOptions(
            strict_mode=bool(settings["strict_mode"]),
            allow_warnings=bool(settings["allow_warnings"]),
            raise_on_block=bool(settings["raise_on_block"]),
        ),
    )


__all__ = [
    "SecurityPipeline",
    "assembler_config_from",
    "distribution_config_from",
    "sanitizer_config_from",
    "scanner_config_from",
]
