"""
devrel-gate — unit tests for document resolvers

File: tests/unit/context/test_resolver.py

Purpose
- Validate allowed-directory lookup, traversal refusal, and the in-memory
  resolver used by tests and embedders.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from devrel_gate.context.resolver import (
    DocumentReadError,
    DocumentResolver,
    FilesystemDocumentResolver,
    InMemoryDocumentResolver,
)


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_filesystem_resolver_searches_allowed_dirs_in_order(tmp_path: Path) -> None:
    _write(tmp_path / "integration" / "docs" / "setup.md", "integration copy")
    _write(tmp_path / "examples" / "setup.md", "example copy")
    resolver = FilesystemDocumentResolver(tmp_path)

    resolved = resolver.resolve("setup.md")

    assert resolved.exists
    assert resolved.resolved_location == str((tmp_path / "integration" / "docs" / "setup.md").resolve())
    assert resolver.read(resolved) == "integration copy"
    assert isinstance(resolver, DocumentResolver)


@pytest.mark.parametrize("path", ["../secrets.md", "/etc/passwd", "missing.md", ""])
def test_filesystem_resolver_reports_missing_without_raising(tmp_path: Path, path: str) -> None:
    _write(tmp_path / "secrets.md", "outside allowed dirs")
    (tmp_path / "docs").mkdir()
    resolver = FilesystemDocumentResolver(tmp_path)

    resolved = resolver.resolve(path)

    assert not resolved.exists
    assert resolved.error == "File not found in allowed directories"
    assert not resolver.is_path_allowed("../secrets.md")


def test_filesystem_resolver_read_of_missing_document_raises(tmp_path: Path) -> None:
    resolver = FilesystemDocumentResolver(tmp_path, allowed_base_dirs=("docs",))

    with pytest.raises(DocumentReadError, match="does not exist"):
        resolver.read(resolver.resolve("nope.md"))


def test_filesystem_resolver_requires_allowed_dirs(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="allowed_base_dirs"):
        FilesystemDocumentResolver(tmp_path, allowed_base_dirs=())


def test_in_memory_resolver_counts_reads() -> None:
    resolver = InMemoryDocumentResolver({"a.md": "alpha"})
    resolver.add("b.md", "beta")

    assert resolver.read(resolver.resolve("b.md")) == "beta"
    assert resolver.read_count("b.md") == 1
    assert resolver.read_count("a.md") == 0
    assert not resolver.resolve("c.md").exists

    with pytest.raises(DocumentReadError):
        resolver.read(resolver.resolve("c.md"))
