"""
devrel-gate — content security gate for developer-relations publishing

File: src/devrel_gate/__init__.py

Purpose
- Package root. Internal documents pass through a sanitizer, a
  sensitivity-enforcing context assembler, a secret scanner, and a
  pre-distribution validator before anything is published externally.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
- Keep the import-time surface small; components live in their subpackages.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
