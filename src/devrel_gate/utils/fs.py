"""
devrel-gate — filesystem utilities

File: src/devrel_gate/utils/fs.py

Purpose
- Containment checks used by the filesystem document resolver to refuse
  directory traversal out of the allowed base directories.

Non-functional requirements
- Standard library only; symlinks are resolved before comparison.
"""

from __future__ import annotations

import os
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = ["resolve_within"]


def resolve_within(base: PathLike, relative: str) -> Path | None:
    """Resolve ``relative`` against ``base``; ``None`` when the result escapes ``base``."""

    if not relative or "\x00" in relative:
        return None
    if Path(relative).is_absolute():
        return None
    resolved_base = Path(base).resolve()
    candidate = (resolved_base / relative).resolve()
    try:
        candidate.relative_to(resolved_base)
    except ValueError:
        return None
    return candidate
