"""
devrel-gate — unit tests for the context assembler

File: tests/unit/context/test_assembler.py

Purpose
- Validate sensitivity-safe context assembly over an in-memory resolver.

What this test file should cover
- No admitted context document is ever more sensitive than the primary.
- Rejections for circular references, missing documents, invalid
  frontmatter, and sensitivity violations, in declared order.
- Declared-list truncation warning.
- Audit events for denials and the per-call summary.
- The async path produces the same result as the sync path.
"""

from __future__ import annotations

import itertools
from collections.abc import Sequence

import pytest
import yaml

from devrel_gate.context.assembler import (
    REASON_CIRCULAR,
    REASON_NOT_FOUND,
    AssemblyOptions,
    ContextAssembler,
    ContextAssemblerConfig,
)
from devrel_gate.context.frontmatter import MissingSensitivityPolicy
from devrel_gate.context.resolver import InMemoryDocumentResolver, ResolvedDocument
from devrel_gate.domain.events import EventType
from devrel_gate.domain.models import SensitivityLevel
from devrel_gate.errors import DocumentNotFoundError, FrontmatterValidationError
from devrel_gate.observability.audit import AuditTrail
from devrel_gate.observability.events import EventBus


def _doc(sensitivity: str | None, context: Sequence[str] = (), body: str = "Body") -> str:
    fields: dict[str, object] = {}
    if sensitivity is not None:
        fields["sensitivity"] = sensitivity
    if context:
        fields["context_documents"] = list(context)
    if not fields:
        return body
    return f"---\n{yaml.safe_dump(fields, sort_keys=True)}---\n{body}"


def _assembler(
    documents: dict[str, str],
    config: ContextAssemblerConfig | None = None,
) -> tuple[ContextAssembler, InMemoryDocumentResolver, EventBus]:
    resolver = InMemoryDocumentResolver(documents)
    bus = EventBus()
    return ContextAssembler(resolver, config, audit=AuditTrail(bus)), resolver, bus


def test_admits_equal_and_lower_and_rejects_higher_sensitivity() -> None:
    assembler, _, bus = _assembler(
        {
            "guide.md": _doc("internal", ["public.md", "peer.md", "roadmap.md"]),
            "public.md": _doc("public"),
            "peer.md": _doc("internal"),
            "roadmap.md": _doc("confidential"),
        }
    )

    result = assembler.assemble("guide.md", AssemblyOptions(requested_by="docs-bot"))

    assert [doc.path for doc in result.admitted_context_documents] == ["public.md", "peer.md"]
    (rejected,) = result.rejected_contexts
    assert rejected.path == "roadmap.md"
    assert rejected.reason == (
        "Sensitivity violation: internal primary document cannot include "
        "confidential context document"
    )
    assert f"SECURITY: {rejected.reason} for roadmap.md" in result.warnings

    denied = bus.replay(event_type=EventType.CONTEXT_ACCESS_DENIED)
    assert len(denied) == 1
    assert denied[0].requesting_identity == "docs-bot"
    assert denied[0].details["context_path"] == "roadmap.md"
    assert denied[0].details["context_sensitivity"] == "confidential"

    (summary,) = bus.replay(event_type=EventType.CONTEXT_ASSEMBLED)
    assert summary.details["requested_count"] == 3
    assert summary.details["context_paths"] == ["public.md", "peer.md"]
    assert summary.details["rejected_paths"] == ["roadmap.md"]


@pytest.mark.parametrize(
    ("primary", "context"),
    list(itertools.product([level.value for level in SensitivityLevel], repeat=2)),
)
def test_admission_matches_sensitivity_order(primary: str, context: str) -> None:
    assembler, _, _ = _assembler(
        {"primary.md": _doc(primary, ["context.md"]), "context.md": _doc(context)}
    )

    result = assembler.assemble("primary.md")

    admitted = bool(result.admitted_context_documents)
    assert admitted is SensitivityLevel(primary).can_include(SensitivityLevel(context))
    for doc in result.admitted_context_documents:
        assert doc.metadata.sensitivity is not None
        assert doc.metadata.sensitivity.rank <= SensitivityLevel(primary).rank


def test_missing_context_is_rejected_as_not_found() -> None:
    assembler, _, _ = _assembler({"guide.md": _doc("public", ["ghost.md"])})

    result = assembler.assemble("guide.md")

    assert result.admitted_context_documents == ()
    assert [(item.path, item.reason) for item in result.rejected_contexts] == [
        ("ghost.md", REASON_NOT_FOUND)
    ]
    assert "Context document not found: ghost.md" in result.warnings


def test_circular_references_are_rejected_without_refetching() -> None:
    assembler, resolver, _ = _assembler(
        {
            "guide.md": _doc("internal", ["guide.md", "peer.md", "peer.md"]),
            "peer.md": _doc("internal"),
        }
    )

    result = assembler.assemble("guide.md")

    assert [doc.path for doc in result.admitted_context_documents] == ["peer.md"]
    assert [(item.path, item.reason) for item in result.rejected_contexts] == [
        ("guide.md", REASON_CIRCULAR),
        ("peer.md", REASON_CIRCULAR),
    ]
    assert "Circular reference detected: guide.md" in result.warnings
    assert resolver.read_count("guide.md") == 1


def test_circular_references_can_be_allowed() -> None:
    assembler, _, _ = _assembler(
        {
            "guide.md": _doc("internal", ["guide.md", "peer.md", "peer.md"]),
            "peer.md": _doc("internal"),
        }
    )

    result = assembler.assemble("guide.md", AssemblyOptions(allow_circular_references=True))

    assert [doc.path for doc in result.admitted_context_documents] == [
        "guide.md",
        "peer.md",
        "peer.md",
    ]
    assert result.rejected_contexts == ()


def test_declared_list_is_truncated_with_one_warning() -> None:
    declared = [f"ctx-{index:02d}.md" for index in range(12)]
    documents = {"guide.md": _doc("restricted", declared)}
    documents.update({path: _doc("public") for path in declared})
    assembler, resolver, _ = _assembler(documents)

    result = assembler.assemble("guide.md")

    assert len(result.admitted_context_documents) == 10
    assert [doc.path for doc in result.admitted_context_documents] == declared[:10]
    assert "Context documents limited to 10 (12 specified)" in result.warnings
    assert resolver.read_count("ctx-10.md") == 0


def test_unrankable_context_is_never_admitted() -> None:
    assembler, _, _ = _assembler(
        {
            "guide.md": _doc("restricted", ["weird.md"]),
            "weird.md": _doc("top-secret"),
        }
    )

    result = assembler.assemble("guide.md")

    assert result.admitted_context_documents == ()
    (rejected,) = result.rejected_contexts
    assert "cannot be compared" in rejected.reason
    assert any(
        warning.startswith("Context document has invalid frontmatter: weird.md")
        for warning in result.warnings
    )


def test_fail_on_validation_error_rejects_invalid_context() -> None:
    assembler, _, _ = _assembler(
        {
            "guide.md": _doc("restricted", ["weird.md"]),
            "weird.md": "---\nsensitivity: [public\n---\nBody",
        }
    )

    result = assembler.assemble("guide.md", AssemblyOptions(fail_on_validation_error=True))

    (rejected,) = result.rejected_contexts
    assert rejected.reason.startswith("invalid frontmatter: Invalid YAML frontmatter")


def test_reject_policy_refuses_context_without_sensitivity() -> None:
    config = ContextAssemblerConfig(missing_sensitivity_policy=MissingSensitivityPolicy.REJECT)
    assembler, _, _ = _assembler(
        {
            "guide.md": _doc("restricted", ["bare.md"]),
            "bare.md": _doc(None, body="No frontmatter at all"),
        },
        config,
    )

    result = assembler.assemble("guide.md")

    assert result.admitted_context_documents == ()
    assert result.rejected_contexts[0].path == "bare.md"


def test_defaulted_context_is_internal() -> None:
    assembler, _, _ = _assembler(
        {
            "guide.md": _doc("public", ["bare.md"]),
            "bare.md": _doc(None, body="No frontmatter at all"),
        }
    )

    result = assembler.assemble("guide.md")

    assert result.admitted_context_documents == ()
    assert "public primary document cannot include internal" in result.rejected_contexts[0].reason


def test_malformed_context_frontmatter_is_admitted_as_internal() -> None:
    assembler, _, bus = _assembler(
        {
            "guide.md": _doc("internal", ["ctx.md"]),
            "ctx.md": "---\nsensitivity: [unclosed\n---\nContext body",
        }
    )

    result = assembler.assemble("guide.md")

    assert [doc.path for doc in result.admitted_context_documents] == ["ctx.md"]
    assert result.rejected_contexts == ()
    assert any(
        warning.startswith("Context document has invalid frontmatter: ctx.md")
        for warning in result.warnings
    )
    assert bus.replay(event_type=EventType.CONTEXT_ACCESS_DENIED) == ()


def test_malformed_primary_frontmatter_is_treated_as_internal() -> None:
    assembler, _, _ = _assembler(
        {
            "guide.md": "---\n- not\n- a mapping\n---\nBody",
        }
    )

    result = assembler.assemble("guide.md")

    assert result.primary_document.sensitivity is SensitivityLevel.INTERNAL
    assert result.warnings[0].startswith("Primary document has invalid frontmatter")


def test_missing_primary_raises() -> None:
    assembler, _, _ = _assembler({})

    with pytest.raises(DocumentNotFoundError, match="ghost.md"):
        assembler.assemble("ghost.md")


def test_invalid_primary_raises_only_in_strict_mode() -> None:
    documents = {"guide.md": _doc("top-secret", ["peer.md"]), "peer.md": _doc("public")}
    assembler, _, _ = _assembler(documents)

    with pytest.raises(FrontmatterValidationError, match="guide.md"):
        assembler.assemble("guide.md", AssemblyOptions(fail_on_validation_error=True))

    result = assembler.assemble("guide.md")
    assert result.admitted_context_documents == ()
    assert result.warnings[0].startswith("Primary document has invalid frontmatter")


def test_resolver_failures_are_treated_as_not_found() -> None:
    class _FlakyResolver(InMemoryDocumentResolver):
        def read(self, resolved: ResolvedDocument) -> str:
            if resolved.original_path == "slow.md":
                raise TimeoutError("resolver timed out")
            return super().read(resolved)

    resolver = _FlakyResolver({"guide.md": _doc("public", ["slow.md"]), "slow.md": _doc("public")})
    assembler = ContextAssembler(resolver, audit=AuditTrail(EventBus()))

    result = assembler.assemble("guide.md")

    assert [(item.path, item.reason) for item in result.rejected_contexts] == [
        ("slow.md", REASON_NOT_FOUND)
    ]


@pytest.mark.asyncio
async def test_async_assembly_matches_sync_assembly() -> None:
    documents = {
        "guide.md": _doc("confidential", ["a.md", "b.md", "ghost.md", "guide.md", "c.md"]),
        "a.md": _doc("public"),
        "b.md": _doc("restricted"),
        "c.md": _doc("confidential"),
    }
    sync_assembler, _, _ = _assembler(documents)
    async_assembler, _, _ = _assembler(documents, ContextAssemblerConfig(max_concurrent_fetches=2))

    expected = sync_assembler.assemble("guide.md")
    actual = await async_assembler.assemble_async("guide.md")

    assert actual.to_dict() == expected.to_dict()


@pytest.mark.asyncio
async def test_async_assembly_awaits_coroutine_resolvers() -> None:
    backing = InMemoryDocumentResolver(
        {"guide.md": _doc("internal", ["a.md"]), "a.md": _doc("public")}
    )

    class _AsyncResolver:
        async def resolve(self, path: str) -> ResolvedDocument:
            return backing.resolve(path)

        async def read(self, resolved: ResolvedDocument) -> str:
            return backing.read(resolved)

    assembler = ContextAssembler(_AsyncResolver(), audit=AuditTrail(EventBus()))  # type: ignore[arg-type]

    result = await assembler.assemble_async("guide.md")

    assert [doc.path for doc in result.admitted_context_documents] == ["a.md"]
