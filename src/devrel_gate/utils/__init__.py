"""Utility exports for filesystem containment, hashing, and async fan-out helpers."""

from devrel_gate.utils.concurrency import BoundedSemaphore, gather_bounded
from devrel_gate.utils.fs import resolve_within
from devrel_gate.utils.hashing import sha256_bytes, sha256_text, short_fingerprint

__all__ = [
    "BoundedSemaphore",
    "gather_bounded",
    "resolve_within",
    "sha256_bytes",
    "sha256_text",
    "short_fingerprint",
]
