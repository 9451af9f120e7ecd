"""
devrel-gate — context assembler

File: src/devrel_gate/context/assembler.py

Purpose
- Stitch a primary document together with the context documents its
  frontmatter declares, without ever admitting a context document that is
  more sensitive than the primary.

Functional requirements
- Declared order is preserved; the declared list is capped and truncation
  produces one warning naming the declared count.
- Each candidate is checked in order: circular reference, resolvability,
  frontmatter validity, then sensitivity rank.
- A sensitivity that failed validation cannot be ranked and is never
  admitted.
- Every sensitivity rejection emits ``CONTEXT_ACCESS_DENIED``; every call
  emits one ``CONTEXT_ASSEMBLED`` summary.

Non-functional requirements
- No caching and no cross-call state; the visited set lives for one call.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from devrel_gate.constants import UNKNOWN_IDENTITY
from devrel_gate.context.frontmatter import MissingSensitivityPolicy, parse_document
from devrel_gate.domain.models import ContextAssemblyResult, Document, RejectedContext
from devrel_gate.errors import DocumentNotFoundError, FrontmatterValidationError
from devrel_gate.observability.audit import AuditTrail
from devrel_gate.utils.concurrency import BoundedSemaphore, gather_bounded

if TYPE_CHECKING:
    from devrel_gate.context.resolver import DocumentResolver

REASON_CIRCULAR: str = "circular reference"
REASON_NOT_FOUND: str = "not found"


@dataclass(frozen=True, slots=True)
class AssemblyOptions:
    max_context_documents: int = 10
    fail_on_validation_error: bool = False
    allow_circular_references: bool = False
    requested_by: str = UNKNOWN_IDENTITY

    def __post_init__(self) -> None:
        if self.max_context_documents < 0:
            raise ValueError("max_context_documents must be >= 0")


@dataclass(frozen=True, slots=True)
class ContextAssemblerConfig:
    """Assembler-wide policy; per-call knobs live on ``AssemblyOptions``."""

    missing_sensitivity_policy: MissingSensitivityPolicy = MissingSensitivityPolicy.DEFAULT
    max_concurrent_fetches: int = 4
    default_options: AssemblyOptions = AssemblyOptions()

    def __post_init__(self) -> None:
        if self.max_concurrent_fetches <= 0:
            raise ValueError("max_concurrent_fetches must be > 0")


@dataclass(frozen=True, slots=True)
class _Fetched:
    path: str
    document: Document | None
    error: str | None = None


class ContextAssembler:
    """Sensitivity-enforcing context builder over a ``DocumentResolver``."""

    def __init__(
        self,
        resolver: DocumentResolver,
        config: ContextAssemblerConfig | None = None,
        *,
        audit: AuditTrail | None = None,
        logger: Any | None = None,
    ) -> None:
        self._resolver = resolver
        self._config = config or ContextAssemblerConfig()
        self._audit = audit if audit is not None else AuditTrail()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> ContextAssemblerConfig:
        return self._config

    def assemble(
        self, primary_path: str, options: AssemblyOptions | None = None
    ) -> ContextAssemblyResult:
        """Assemble context for ``primary_path`` with sequential fetches."""

        opts = options or self._config.default_options
        primary, warnings = self._load_primary(self._fetch(primary_path), opts)

        declared, candidates = self._candidates(primary, opts, warnings)
        fetched = [self._fetch(path) for path in self._paths_to_fetch(primary, candidates, opts)]
        return self._evaluate(primary, declared, candidates, fetched, warnings, opts)

    async def assemble_async(
        self, primary_path: str, options: AssemblyOptions | None = None
    ) -> ContextAssemblyResult:
        """Assemble context with context fetches fanned out concurrently.

        Results are evaluated in declared order, so the outcome is identical
        to ``assemble`` for the same resolver state.
        """

        opts = options or self._config.default_options
        primary, warnings = self._load_primary(await self._fetch_async(primary_path), opts)

        declared, candidates = self._candidates(primary, opts, warnings)
        to_fetch = self._paths_to_fetch(primary, candidates, opts)
        semaphore = BoundedSemaphore(self._config.max_concurrent_fetches)
        outcomes = await gather_bounded(to_fetch, self._fetch_async, semaphore=semaphore)
        fetched = [
            outcome
            if isinstance(outcome, _Fetched)
            else _Fetched(path=path, document=None, error=str(outcome) or type(outcome).__name__)
            for path, outcome in zip(to_fetch, outcomes, strict=True)
        ]
        return self._evaluate(primary, declared, candidates, fetched, warnings, opts)

    # ------------------------------------------------------------------
    # Steps shared by the sync and async paths
    # ------------------------------------------------------------------

    def _load_primary(
        self, fetched: _Fetched, opts: AssemblyOptions
    ) -> tuple[Document, list[str]]:
        if fetched.document is None:
            self._logger.error(
                "context_primary_not_found", path=fetched.path, error=fetched.error
            )
            raise DocumentNotFoundError(fetched.path, fetched.error)

        primary = fetched.document
        warnings: list[str] = []
        errors = primary.metadata.validation_errors
        if errors:
            if opts.fail_on_validation_error:
                raise FrontmatterValidationError(primary.path, errors)
            warnings.append(f"Primary document has invalid frontmatter: {', '.join(errors)}")
            self._logger.warning(
                "context_primary_invalid_frontmatter", path=primary.path, errors=list(errors)
            )
        return primary, warnings

    def _candidates(
        self, primary: Document, opts: AssemblyOptions, warnings: list[str]
    ) -> tuple[int, tuple[str, ...]]:
        declared = primary.metadata.context_documents
        if len(declared) > opts.max_context_documents:
            warnings.append(
                f"Context documents limited to {opts.max_context_documents} "
                f"({len(declared)} specified)"
            )
        return len(declared), declared[: opts.max_context_documents]

    def _paths_to_fetch(
        self, primary: Document, candidates: tuple[str, ...], opts: AssemblyOptions
    ) -> list[str]:
        # Self-references are always circular; skip the fetch unless allowed.
        if opts.allow_circular_references:
            return list(candidates)
        return [path for path in candidates if path != primary.path]

    def _evaluate(
        self,
        primary: Document,
        declared_count: int,
        candidates: tuple[str, ...],
        fetched: list[_Fetched],
        warnings: list[str],
        opts: AssemblyOptions,
    ) -> ContextAssemblyResult:
        by_path = {item.path: item for item in fetched}
        visited: set[str] = {primary.path}
        admitted: list[Document] = []
        rejected: list[RejectedContext] = []

        for path in candidates:
            if path in visited and not opts.allow_circular_references:
                warnings.append(f"Circular reference detected: {path}")
                rejected.append(RejectedContext(path=path, reason=REASON_CIRCULAR))
                continue

            item = by_path.get(path)
            if item is None or item.document is None:
                warnings.append(f"Context document not found: {path}")
                rejected.append(RejectedContext(path=path, reason=REASON_NOT_FOUND))
                self._logger.warning(
                    "context_document_not_found",
                    primary_path=primary.path,
                    context_path=path,
                    error=None if item is None else item.error,
                )
                continue

            document = item.document
            errors = document.metadata.validation_errors
            if errors:
                rendered = ", ".join(errors)
                warnings.append(f"Context document has invalid frontmatter: {path} - {rendered}")
                if opts.fail_on_validation_error:
                    rejected.append(
                        RejectedContext(path=path, reason=f"invalid frontmatter: {rendered}")
                    )
                    continue

            if not _can_include(primary, document):
                reason = _sensitivity_violation(primary, document)
                warnings.append(f"SECURITY: {reason} for {path}")
                rejected.append(RejectedContext(path=path, reason=reason))
                self._audit.context_access_denied(
                    requested_by=opts.requested_by,
                    primary_path=primary.path,
                    primary_sensitivity=primary.metadata.sensitivity_label,
                    context_path=path,
                    context_sensitivity=document.metadata.sensitivity_label,
                    reason=reason,
                )
                continue

            admitted.append(document)
            visited.add(path)
            self._logger.debug(
                "context_document_included",
                primary_path=primary.path,
                context_path=path,
                context_sensitivity=document.metadata.sensitivity_label,
            )

        self._audit.context_assembled(
            requested_by=opts.requested_by,
            primary_path=primary.path,
            primary_sensitivity=primary.metadata.sensitivity_label,
            requested_count=declared_count,
            admitted_paths=[doc.path for doc in admitted],
            rejected_paths=[item.path for item in rejected],
        )
        self._logger.info(
            "context_assembly_complete",
            primary_path=primary.path,
            context_count=len(admitted),
            rejected_count=len(rejected),
            warning_count=len(warnings),
        )
        return ContextAssemblyResult(
            primary_document=primary,
            admitted_context_documents=tuple(admitted),
            warnings=tuple(warnings),
            rejected_contexts=tuple(rejected),
        )

    # ------------------------------------------------------------------
    # Resolver access
    # ------------------------------------------------------------------

    def _fetch(self, path: str) -> _Fetched:
        try:
            resolved = self._resolver.resolve(path)
            if not resolved.exists:
                return _Fetched(path=path, document=None, error=resolved.error)
            content = self._resolver.read(resolved)
        except Exception as exc:  # noqa: BLE001
            # Any resolver failure, timeouts included, means "not found".
            return _Fetched(path=path, document=None, error=f"{type(exc).__name__}: {exc}")
        return self._parsed(path, content)

    async def _fetch_async(self, path: str) -> _Fetched:
        resolve = self._resolver.resolve
        read = self._resolver.read
        try:
            if inspect.iscoroutinefunction(resolve):
                resolved = await resolve(path)
            else:
                resolved = await asyncio.to_thread(resolve, path)
            if not resolved.exists:
                return _Fetched(path=path, document=None, error=resolved.error)
            if inspect.iscoroutinefunction(read):
                content = await read(resolved)
            else:
                content = await asyncio.to_thread(read, resolved)
        except Exception as exc:  # noqa: BLE001
            return _Fetched(path=path, document=None, error=f"{type(exc).__name__}: {exc}")
        return self._parsed(path, content)

    def _parsed(self, path: str, content: str) -> _Fetched:
        document = parse_document(
            path,
            content,
            missing_sensitivity_policy=self._config.missing_sensitivity_policy,
        )
        return _Fetched(path=path, document=document)


def _can_include(primary: Document, context: Document) -> bool:
    primary_level = primary.metadata.sensitivity
    context_level = context.metadata.sensitivity
    if primary_level is None or context_level is None:
        return False
    return primary_level.can_include(context_level)


def _sensitivity_violation(primary: Document, context: Document) -> str:
    primary_label = primary.metadata.sensitivity_label
    context_label = context.metadata.sensitivity_label
    if primary.metadata.sensitivity is None or context.metadata.sensitivity is None:
        return (
            f"Sensitivity violation: primary document sensitivity '{primary_label}' cannot be "
            f"compared with context document sensitivity '{context_label}'"
        )
    return (
        f"Sensitivity violation: {primary_label} primary document cannot include "
        f"{context_label} context document"
    )


__all__ = [
    "REASON_CIRCULAR",
    "REASON_NOT_FOUND",
    "AssemblyOptions",
    "ContextAssembler",
    "ContextAssemblerConfig",
]
