"""Command-line interface router for devrel-gate."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Final

from devrel_gate.config import (
    ConfigLoadError,
    ConfigValidationError,
    LoadedConfig,
    effective_config,
    load_layered_config,
)
from devrel_gate.constants import UNKNOWN_IDENTITY
from devrel_gate.context.assembler import AssemblyOptions
from devrel_gate.domain.ids import generate_ulid
from devrel_gate.errors import DocumentNotFoundError, FrontmatterValidationError, SecurityException
from devrel_gate.main import ExitCode
from devrel_gate.observability.logging import (
    configure_console_logging,
    correlation_scope,
    setup_logging,
    shutdown_logging,
)
from devrel_gate.pipeline import SecurityPipeline
from devrel_gate.security.distribution import (
    DistributionMetadata,
    InMemoryReviewQueue,
    format_review_summary,
)
from devrel_gate.security.secret_scanner import ScanOptions
from devrel_gate.ui.render import CLIRenderer, create_renderer

STDIN_MARKER: Final[str] = "-"


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = int(ExitCode.BLOCKED)) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="devrel-gate",
        description=(
            "devrel-gate — content security gate for documents leaving the organization.\n\n"
            "Common workflows:\n"
            "  devrel-gate sanitize input.md        Strip hidden text and injection payloads\n"
            "  devrel-gate assemble guide.md        Build sensitivity-safe context\n"
            "  devrel-gate scan draft.md            Detect and redact secrets\n"
            "  devrel-gate validate summary.md      Final pre-distribution check\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to devrel-gate TOML config (default: ./devrel-gate.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (strict, permissive, production).",
    )
    common.add_argument(
        "--requested-by",
        default=None,
        help="Identity recorded on security events (default: unknown).",
    )
    common.add_argument(
        "--log-dir",
        default=None,
        help="Write JSON-lines logs under this directory instead of stderr.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and debug logs.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # sanitize ------------------------------------------------------------
    sanitize_parser = subparsers.add_parser(
        "sanitize",
        parents=[common],
        help="Remove hidden text and prompt-injection payloads from input",
    )
    sanitize_parser.add_argument("input", help="File to sanitize, or '-' for stdin")
    sanitize_parser.set_defaults(handler=_cmd_sanitize)

    # scan ----------------------------------------------------------------
    scan_parser = subparsers.add_parser(
        "scan",
        parents=[common],
        help="Detect secrets and print the redacted text",
        description=(
            "Scan text for credentials and print a redacted copy.\n"
            "Exits 1 when any secret is found.\n\n"
            "Examples:\n"
            "  devrel-gate scan notes.md\n"
            "  cat notes.md | devrel-gate scan - --json\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    scan_parser.add_argument("input", help="File to scan, or '-' for stdin")
    scan_parser.add_argument(
        "--no-false-positive-filter",
        action="store_true",
        help="Report every raw match, including entropy/placeholder suppressions",
    )
    scan_parser.set_defaults(handler=_cmd_scan)

    # assemble ------------------------------------------------------------
    assemble_parser = subparsers.add_parser(
        "assemble",
        parents=[common],
        help="Assemble context documents declared by a primary document",
    )
    assemble_parser.add_argument("primary", help="Primary document path relative to an allowed dir")
    assemble_parser.add_argument("--root", default=None, help="Project root for document lookup")
    assemble_parser.add_argument(
        "--max-context", type=int, default=None, help="Maximum context documents to consider"
    )
    assemble_parser.add_argument(
        "--allow-circular", action="store_true", help="Admit circular references"
    )
    assemble_parser.add_argument(
        "--fail-on-validation-error",
        action="store_true",
        help="Reject documents with invalid frontmatter",
    )
    assemble_parser.set_defaults(handler=_cmd_assemble)

    # validate ------------------------------------------------------------
    validate_parser = subparsers.add_parser(
        "validate",
        parents=[common],
        help="Run the pre-distribution gate over generated content",
    )
    validate_parser.add_argument("input", help="File to validate, or '-' for stdin")
    validate_parser.add_argument(
        "--strict", action="store_true", help="Require manual review when warnings are present"
    )
    validate_parser.add_argument(
        "--allow-warnings", action="store_true", help="Do not escalate warnings in strict mode"
    )
    validate_parser.add_argument("--document-id", default=None, help="Document identifier")
    validate_parser.add_argument("--author", default=None, help="Content author")
    validate_parser.add_argument("--channel", default=None, help="Target distribution channel")
    validate_parser.set_defaults(handler=_cmd_validate)

    # patterns ------------------------------------------------------------
    patterns_parser = subparsers.add_parser(
        "patterns",
        parents=[common],
        help="List the active secret pattern registry",
    )
    patterns_parser.set_defaults(handler=_cmd_patterns)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show effective configuration (redacted)",
        description=(
            "Display the effective config after merging defaults, file, env, and profile.\n\n"
            "Examples:\n"
            "  devrel-gate config\n"
            "  devrel-gate config --json\n"
            "  devrel-gate config --profile strict\n"
            "  devrel-gate config --sources\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    config_parser.add_argument(
        "--sources",
        action="store_true",
        help="Show which layer (default, file, profile, env, cli) set each value",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_sanitize(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    content = _read_input(args.input)
    with _logging_session(args, config):
        pipeline = SecurityPipeline.from_config(config)
        result = pipeline.sanitize(content, requested_by=_requested_by(args))

    if _flag(args, "json"):
        _emit_json({"command": "sanitize", "input": args.input, **result.to_dict()})
        return int(ExitCode.SUCCESS)

    if result.flagged:
        _write_stderr(f"flagged: {result.reason}")
        if _flag(args, "verbose"):
            for description in result.removed_descriptions:
                _write_stderr(f"  - {description}")
    sys.stdout.write(result.sanitized_text)
    if result.sanitized_text and not result.sanitized_text.endswith("\n"):
        sys.stdout.write("\n")
    return int(ExitCode.SUCCESS)


def _cmd_scan(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    content = _read_input(args.input)
    options = ScanOptions(skip_false_positives=not _flag(args, "no_false_positive_filter"))
    with _logging_session(args, config):
        result = SecurityPipeline.from_config(config).scan(content, options)

    exit_code = ExitCode.BLOCKED if result.has_secrets else ExitCode.SUCCESS
    if _flag(args, "json"):
        _emit_json({"command": "scan", "input": args.input, **result.to_dict()})
        return int(exit_code)

    renderer = _get_renderer(args)
    renderer.verdict("Secret scan", passed=not result.has_secrets)
    renderer.kv("Secrets found", f"{result.total_count} ({result.critical_count} critical)")
    if result.secrets:
        renderer.table(
            ("TYPE", "SEVERITY", "OFFSET"),
            [(item.type, item.severity.value, str(item.offset)) for item in result.secrets],
            title="Findings:",
        )
    renderer.section("Redacted text:")
    renderer.text(result.redacted_text)
    return int(exit_code)


def _cmd_assemble(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    root = _optional_str(getattr(args, "root", None))
    if root is not None:
        overrides["resolver.root"] = str(Path(root).expanduser().resolve())
    config = _load_effective_config(args, overrides)

    assembler_settings = config["assembler"]
    max_context = getattr(args, "max_context", None)
    if max_context is not None and max_context < 0:
        raise CLIError("--max-context must be >= 0", exit_code=int(ExitCode.CONFIG_ERROR))
    options = AssemblyOptions(
        max_context_documents=(
            max_context if max_context is not None else assembler_settings["max_context_documents"]
        ),
        fail_on_validation_error=_flag(args, "fail_on_validation_error")
        or assembler_settings["fail_on_validation_error"],
        allow_circular_references=_flag(args, "allow_circular")
        or assembler_settings["allow_circular_references"],
        requested_by=_requested_by(args),
    )

    with _logging_session(args, config):
        pipeline = SecurityPipeline.from_config(config)
        try:
            result = pipeline.assemble(args.primary, options)
        except (DocumentNotFoundError, FrontmatterValidationError) as exc:
            raise CLIError(str(exc), exit_code=int(ExitCode.DOCUMENT_ERROR)) from exc

    if _flag(args, "json"):
        _emit_json({"command": "assemble", **result.to_dict()})
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    primary = result.primary_document
    renderer.kv("Primary", f"{primary.path} ({primary.metadata.sensitivity_label})")
    renderer.section(f"Admitted context ({len(result.admitted_context_documents)}):")
    renderer.items(
        [f"{doc.path} ({doc.metadata.sensitivity_label})" for doc in result.admitted_context_documents]
    )
    if result.rejected_contexts:
        renderer.table(
            ("PATH", "REASON"),
            [(item.path, item.reason) for item in result.rejected_contexts],
            title="Rejected:",
        )
    for warning in result.warnings:
        renderer.warning(warning)
    return int(ExitCode.SUCCESS)


def _cmd_validate(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if _flag(args, "strict"):
        overrides["distribution.strict_mode"] = True
    if _flag(args, "allow_warnings"):
        overrides["distribution.allow_warnings"] = True
    config = _load_effective_config(args, overrides)
    content = _read_input(args.input)

    metadata = DistributionMetadata(
        document_id=_optional_str(getattr(args, "document_id", None)),
        document_name=None if args.input == STDIN_MARKER else args.input,
        author=_optional_str(getattr(args, "author", None)),
        channel=_optional_str(getattr(args, "channel", None)),
        requested_by=_requested_by(args),
    )

    queue = InMemoryReviewQueue()
    with _logging_session(args, config):
        pipeline = SecurityPipeline.from_config(config, review_queue=queue)
        try:
            result = pipeline.validate(content, metadata)
        except SecurityException as exc:
            if exc.result is None:
                raise
            result = exc.result

    review = [format_review_summary(item) for item in queue.pending()]
    exit_code = ExitCode.SUCCESS if result.valid else ExitCode.BLOCKED
    if _flag(args, "json"):
        _emit_json(
            {
                "command": "validate",
                "input": args.input,
                "document_id": metadata.label,
                "review": review,
                **result.to_dict(),
            }
        )
        return int(exit_code)

    renderer = _get_renderer(args)
    renderer.verdict(f"Distribution of {metadata.label}", passed=result.valid)
    if result.errors:
        renderer.section("Errors:")
        renderer.items(list(result.errors))
    for warning in result.warnings:
        renderer.warning(warning)
    for summary in review:
        _write_stderr(summary)
    return int(exit_code)


def _cmd_patterns(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    scanner = SecurityPipeline.from_config(config).scanner
    stats = scanner.statistics()

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "patterns",
                "statistics": stats.to_dict(),
                "patterns": [
                    {
                        "type": entry.type_name,
                        "severity": entry.severity.value,
                        "description": entry.description,
                    }
                    for entry in scanner.patterns
                ],
            }
        )
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.table(
        ("TYPE", "SEVERITY", "DESCRIPTION"),
        [(entry.type_name, entry.severity.value, entry.description) for entry in scanner.patterns],
        title="Secret patterns:",
    )
    renderer.section("Totals:")
    for key, value in stats.to_dict().items():
        renderer.kv(f"  {key}", value)
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    loaded = _load_layered(args)
    redacted = effective_config(loaded.config)
    sources = loaded.sources() if _flag(args, "sources") else None

    if _flag(args, "json"):
        payload: dict[str, object] = {
            "command": "config",
            "active_profile": loaded.profile,
            "config_path": loaded.config_path.as_posix(),
            "config": redacted,
        }
        if sources is not None:
            payload["sources"] = sources
        _emit_json(payload)
        return int(ExitCode.SUCCESS)

    renderer = _get_renderer(args)
    renderer.kv("Active profile", loaded.profile or "(default)")
    if sources is not None:
        renderer.table(("KEY", "SOURCE"), sorted(sources.items()), title="Sources:")
        return int(ExitCode.SUCCESS)
    renderer.text(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _load_effective_config(
    args: argparse.Namespace, overrides: Mapping[str, object] | None = None
) -> dict[str, Any]:
    return _load_layered(args, overrides).config


def _load_layered(
    args: argparse.Namespace, overrides: Mapping[str, object] | None = None
) -> LoadedConfig:
    config_path = _optional_str(getattr(args, "config_path", None))
    profile = _optional_str(getattr(args, "profile", None))

    try:
        return load_layered_config(config_path, profile=profile, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=int(ExitCode.CONFIG_ERROR)) from exc


@contextmanager
def _logging_session(args: argparse.Namespace, config: Mapping[str, Any]) -> Iterator[None]:
    """JSON-lines logs when ``--log-dir`` is given, otherwise stderr console logs."""

    observability = config["observability"]
    log_dir = _optional_str(getattr(args, "log_dir", None))
    run_id = generate_ulid()
    if log_dir is None:
        configure_console_logging("DEBUG" if _flag(args, "verbose") else "WARNING")
        with correlation_scope(run_id=run_id):
            yield
        return

    handle_logger = setup_logging(observability, run_id=run_id, log_dir=log_dir)
    try:
        with correlation_scope(run_id=run_id, command=args.command):
            yield
    finally:
        handle_logger.debug("cli_session_complete")
        shutdown_logging()


def _read_input(raw: object) -> str:
    source = _require_str(raw, "input")
    if source == STDIN_MARKER:
        return sys.stdin.read()
    path = Path(source).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise CLIError(f"input not found: {path}", exit_code=int(ExitCode.DOCUMENT_ERROR)) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise CLIError(
            f"unable to read input {path}: {exc}", exit_code=int(ExitCode.DOCUMENT_ERROR)
        ) from exc


def _requested_by(args: argparse.Namespace) -> str:
    return _optional_str(getattr(args, "requested_by", None)) or UNKNOWN_IDENTITY


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise CLIError(f"invalid {name}: expected string", exit_code=int(ExitCode.CONFIG_ERROR))
    cleaned = value.strip()
    if not cleaned:
        raise CLIError(
            f"invalid {name}: value cannot be empty", exit_code=int(ExitCode.CONFIG_ERROR)
        )
    return cleaned


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise CLIError("invalid optional string argument", exit_code=int(ExitCode.CONFIG_ERROR))
    cleaned = value.strip()
    return cleaned or None


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
