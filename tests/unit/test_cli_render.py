"""
devrel-gate — unit tests for CLI routing and plain-text rendering

File: tests/unit/test_cli_render.py

Purpose
- Exercise ``run_cli`` in-process for the human-readable output paths and
  the renderer's color handling.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from devrel_gate.main import ExitCode, cli_entrypoint
from devrel_gate.ui.cli import CLIError, build_parser, run_cli
from devrel_gate.ui.render import CLIRenderer, create_renderer

GITHUB_PAT = "ghp_" + "aB3dE5gH7j" * 3 + "kL9mN1"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    for name in ("DEVREL_GATE_PROFILE", "DEVREL_GATE_DISTRIBUTION_STRICT_MODE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    structlog.reset_defaults()


def test_renderer_plain_output_without_color(capsys: pytest.CaptureFixture[str]) -> None:
    renderer = create_renderer(no_color=True)

    renderer.verdict("Secret scan", passed=False)
    renderer.table(("TYPE", "OFFSET"), [("GITHUB_PAT", "8")], title="Findings:")
    renderer.table(("TYPE",), [])
    renderer.warning("Context document not found: ghost.md")

    out = capsys.readouterr().out
    assert "Secret scan: BLOCKED\n" in out
    assert "\033[" not in out
    assert "  TYPE        OFFSET\n" in out
    assert "  GITHUB_PAT  8\n" in out
    assert "  Warning: Context document not found: ghost.md" in out


def test_renderer_respects_no_color_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NO_COLOR", "1")

    assert CLIRenderer()._paint("PASS", "\033[32m") == "PASS"


def test_scan_human_output_shows_types_not_values(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "notes.md").write_text(f"CI uses {GITHUB_PAT}.\n", encoding="utf-8")

    exit_code = run_cli(["scan", "notes.md", "--no-color"])

    captured = capsys.readouterr()
    assert exit_code == int(ExitCode.BLOCKED)
    assert "Secret scan: BLOCKED" in captured.out
    assert "GITHUB_PAT" in captured.out
    assert GITHUB_PAT not in captured.out
    assert GITHUB_PAT not in captured.err


def test_validate_human_output_prints_review_summary(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "summary.md").write_text(f"Deploy with {GITHUB_PAT}.\n", encoding="utf-8")

    exit_code = run_cli(["validate", "summary.md", "--no-color", "--channel", "blog"])

    captured = capsys.readouterr()
    assert exit_code == int(ExitCode.BLOCKED)
    assert "Distribution of summary.md: BLOCKED" in captured.out
    assert "Distribution BLOCKED pending manual review" in captured.err
    assert "Target Channel: blog" in captured.err


def test_sanitize_writes_cleaned_text_to_stdout(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "input.md").write_text("Hello\u200bworld\n", encoding="utf-8")

    exit_code = run_cli(["sanitize", "input.md"])

    captured = capsys.readouterr()
    assert exit_code == int(ExitCode.SUCCESS)
    assert captured.out == "Helloworld\n"
    assert "flagged: Hidden text detected" in captured.err


def test_negative_max_context_is_a_config_error(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = run_cli(["assemble", "guide.md", "--max-context", "-1"])

    assert exit_code == int(ExitCode.CONFIG_ERROR)
    assert "--max-context must be >= 0" in capsys.readouterr().err


def test_entrypoint_normalizes_argparse_exit() -> None:
    assert cli_entrypoint(["--help"]) == int(ExitCode.SUCCESS)
    assert cli_entrypoint(["no-such-command"]) == int(ExitCode.CONFIG_ERROR)


def test_parser_registers_every_command() -> None:
    parser = build_parser()

    for command in ("sanitize", "scan", "assemble", "validate", "patterns", "config"):
        argv = [command] if command in {"patterns", "config"} else [command, "x.md"]
        namespace = parser.parse_args(argv)
        assert callable(namespace.handler)


def test_cli_error_keeps_exit_code() -> None:
    error = CLIError("input not found: x.md", exit_code=int(ExitCode.DOCUMENT_ERROR))

    assert str(error) == "input not found: x.md"
    assert error.exit_code == 3
