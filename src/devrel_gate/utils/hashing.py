"""
devrel-gate — hashing utilities

File: src/devrel_gate/utils/hashing.py

Purpose
- Deterministic SHA-256 digests used as stable cache keys for sanitized
  content and as document fingerprints in audit details.

Non-functional requirements
- Standard library only.
"""

from __future__ import annotations

import hashlib

__all__ = [
    "sha256_bytes",
    "sha256_text",
    "short_fingerprint",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def short_fingerprint(text: str, *, length: int = 12) -> str:
    """Return a truncated digest suitable for log fields."""

    if length <= 0:
        raise ValueError("length must be > 0")
    return sha256_text(text)[:length]
