"""Plain-text output for the human-readable CLI mode.

Only types, counts, offsets and redaction markers reach this layer; secret
values are never passed in. ANSI color is applied to verdicts and warnings
when stdout is a terminal, unless ``--no-color`` or ``NO_COLOR`` is set.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, Final, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

_ANSI: Final[dict[str, str]] = {
    "pass": "\033[32m",
    "block": "\033[31m",
    "warn": "\033[33m",
}
_RESET: Final[str] = "\033[0m"
_INDENT: Final[str] = "  "
_COLUMN_GAP: Final[str] = "  "


def supports_color(stream: TextIO, *, disabled: bool = False) -> bool:
    if disabled or os.environ.get("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class CLIRenderer:
    """Line-oriented writer used by every CLI command."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream
        self._color = supports_color(self.out, disabled=no_color)

    @property
    def out(self) -> TextIO:
        # Resolved lazily so redirected stdout (pytest capture, pipes) is honored.
        return self._stream if self._stream is not None else sys.stdout

    def _emit(self, line: str = "") -> None:
        self.out.write(line + "\n")

    def text(self, line: str) -> None:
        self._emit(line)

    def kv(self, key: str, value: object) -> None:
        self._emit(f"{key}: {value}")

    def section(self, title: str) -> None:
        self._emit()
        self._emit(title)

    def warning(self, text: str) -> None:
        self._emit(f"{_INDENT}Warning: {self._paint(text, _ANSI['warn'])}")

    def items(self, entries: Iterable[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._emit(f"{_INDENT}{prefix}{entry}")

    def verdict(self, label: str, *, passed: bool) -> None:
        tone = "pass" if passed else "block"
        word = "PASS" if passed else "BLOCKED"
        self._emit(f"{label}: {self._paint(word, _ANSI[tone])}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Left-aligned columns sized to the widest cell; nothing is printed for no rows."""
        if not rows:
            return
        grid = [[str(cell) for cell in headers]]
        grid.extend([str(cell) for cell in row[: len(headers)]] for row in rows)
        widths = [
            max(len(line[col]) for line in grid if col < len(line))
            for col in range(len(headers))
        ]

        if title:
            self.section(title)
        self._emit(_INDENT + self._row(grid[0], widths))
        self._emit(_INDENT + _COLUMN_GAP.join("-" * width for width in widths))
        for line in grid[1:]:
            self._emit(_INDENT + self._row(line, widths))

    @staticmethod
    def _row(cells: Sequence[str], widths: Sequence[int]) -> str:
        padded = [
            (cells[col] if col < len(cells) else "").ljust(width)
            for col, width in enumerate(widths)
        ]
        return _COLUMN_GAP.join(padded).rstrip()

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{_RESET}" if self._color else text


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer", "supports_color"]
