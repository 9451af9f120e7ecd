"""
devrel-gate — integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker for tests that drive several gates together or run
  the CLI as a subprocess.

Functional requirements
- Must not trigger network access.
"""
