"""Process boundary for the ``devrel-gate`` console script.

Every outcome is folded into one of the :class:`ExitCode` values; unexpected
exceptions print a traceback and exit with ``INTERNAL_ERROR``.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    BLOCKED = 1
    CONFIG_ERROR = 2
    DOCUMENT_ERROR = 3
    INTERNAL_ERROR = 4


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Walk explicit causes, then implicit context, stopping on cycles."""
    visited: set[int] = set()
    node: BaseException | None = exc
    while node is not None and id(node) not in visited:
        visited.add(id(node))
        yield node
        if node.__cause__ is not None:
            node = node.__cause__
        elif node.__suppress_context__:
            node = None
        else:
            node = node.__context__


def classify_exception(exc: BaseException) -> ExitCode:
    from devrel_gate.config import ConfigLoadError, ConfigValidationError
    from devrel_gate.errors import (
        DocumentNotFoundError,
        FrontmatterValidationError,
        SecurityException,
    )

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((SecurityException,), ExitCode.BLOCKED),
        ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
        (
            (DocumentNotFoundError, FrontmatterValidationError, FileNotFoundError,
             NotADirectoryError, PermissionError),
            ExitCode.DOCUMENT_ERROR,
        ),
        ((ValueError,), ExitCode.CONFIG_ERROR),
    )
    for link in _exception_chain(exc):
        for kinds, code in routes:
            if isinstance(link, kinds):
                return code
    return ExitCode.INTERNAL_ERROR


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return ExitCode.SUCCESS.value
    if isinstance(raw, int) and raw in ExitCode._value2member_map_:
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return ExitCode.INTERNAL_ERROR.value


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return a process exit code; never raises."""
    try:
        from devrel_gate.ui.cli import run_cli

        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _as_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - process boundary
        code = classify_exception(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return code.value


__all__ = ["ExitCode", "classify_exception", "cli_entrypoint"]
