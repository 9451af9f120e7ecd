"""Frontmatter parsing, document resolution, and sensitivity-enforcing context assembly."""

from devrel_gate.context.frontmatter import (
    FrontmatterBlock,
    MissingSensitivityPolicy,
    build_metadata,
    parse_document,
    split_frontmatter,
)
from devrel_gate.context.resolver import (
    DEFAULT_ALLOWED_BASE_DIRS,
    DocumentReadError,
    DocumentResolver,
    FilesystemDocumentResolver,
    InMemoryDocumentResolver,
    ResolvedDocument,
)
from devrel_gate.context.assembler import (
    REASON_CIRCULAR,
    REASON_NOT_FOUND,
    AssemblyOptions,
    ContextAssembler,
    ContextAssemblerConfig,
)

__all__ = [
    "DEFAULT_ALLOWED_BASE_DIRS",
    "REASON_CIRCULAR",
    "REASON_NOT_FOUND",
    "AssemblyOptions",
    "ContextAssembler",
    "ContextAssemblerConfig",
    "DocumentReadError",
    "DocumentResolver",
    "FilesystemDocumentResolver",
    "FrontmatterBlock",
    "InMemoryDocumentResolver",
    "MissingSensitivityPolicy",
    "ResolvedDocument",
    "build_metadata",
    "parse_document",
    "split_frontmatter",
]
