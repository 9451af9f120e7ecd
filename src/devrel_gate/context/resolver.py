"""
devrel-gate — document resolution

File: src/devrel_gate/context/resolver.py

Purpose
- Map document references declared in frontmatter to readable content.

Functional requirements
- ``resolve`` never raises for an unknown path; it reports ``exists=False``
  with an error string.
- The filesystem resolver only serves files inside its allowed base
  directories and refuses traversal out of them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from devrel_gate.utils.fs import resolve_within

DEFAULT_ALLOWED_BASE_DIRS: Final[tuple[str, ...]] = ("docs", "integration/docs", "examples")


class DocumentReadError(OSError):
    """Raised by ``read`` when a resolved document cannot be loaded."""


@dataclass(frozen=True, slots=True)
class ResolvedDocument:
    original_path: str
    exists: bool
    resolved_location: str | None = None
    error: str | None = None


@runtime_checkable
class DocumentResolver(Protocol):
    """Resolution contract consumed by the context assembler."""

    def resolve(self, path: str) -> ResolvedDocument: ...

    def read(self, resolved: ResolvedDocument) -> str: ...


class FilesystemDocumentResolver:
    """Resolve relative document paths under a project root's allowed directories."""

    def __init__(
        self,
        root: Path | str,
        *,
        allowed_base_dirs: Sequence[str] = DEFAULT_ALLOWED_BASE_DIRS,
        encoding: str = "utf-8",
    ) -> None:
        if not allowed_base_dirs:
            raise ValueError("allowed_base_dirs must not be empty")
        self._root = Path(root).resolve()
        self._allowed_base_dirs = tuple(allowed_base_dirs)
        self._encoding = encoding

    @property
    def root(self) -> Path:
        return self._root

    def allowed_directories(self) -> tuple[Path, ...]:
        return tuple(self._root / base for base in self._allowed_base_dirs)

    def is_path_allowed(self, path: str) -> bool:
        return any(resolve_within(base, path) is not None for base in self.allowed_directories())

    def resolve(self, path: str) -> ResolvedDocument:
        for base in self.allowed_directories():
            candidate = resolve_within(base, path)
            if candidate is None:
                continue
            if candidate.is_file():
                return ResolvedDocument(
                    original_path=path,
                    exists=True,
                    resolved_location=str(candidate),
                )
        return ResolvedDocument(
            original_path=path,
            exists=False,
            error="File not found in allowed directories",
        )

    def read(self, resolved: ResolvedDocument) -> str:
        if not resolved.exists or resolved.resolved_location is None:
            raise DocumentReadError(
                f"document does not exist: {resolved.error or resolved.original_path}"
            )
        try:
            return Path(resolved.resolved_location).read_text(encoding=self._encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentReadError(f"failed to read {resolved.original_path}: {exc}") from exc


class InMemoryDocumentResolver:
    """Serve documents from a mapping of path to raw content."""

    def __init__(self, documents: Mapping[str, str] | None = None) -> None:
        self._documents = dict(documents or {})
        self._read_counts: dict[str, int] = {}

    def add(self, path: str, content: str) -> None:
        self._documents[path] = content

    def read_count(self, path: str) -> int:
        return self._read_counts.get(path, 0)

    def resolve(self, path: str) -> ResolvedDocument:
        if path in self._documents:
            return ResolvedDocument(original_path=path, exists=True, resolved_location=path)
        return ResolvedDocument(original_path=path, exists=False, error="Document not registered")

    def read(self, resolved: ResolvedDocument) -> str:
        key = resolved.resolved_location
        if not resolved.exists or key is None or key not in self._documents:
            raise DocumentReadError(f"document does not exist: {resolved.original_path}")
        self._read_counts[key] = self._read_counts.get(key, 0) + 1
        return self._documents[key]


__all__ = [
    "DEFAULT_ALLOWED_BASE_DIRS",
    "DocumentReadError",
    "DocumentResolver",
    "FilesystemDocumentResolver",
    "InMemoryDocumentResolver",
    "ResolvedDocument",
]
