"""
devrel-gate — input sanitizer

File: src/devrel_gate/security/sanitizer.py

Purpose
- Neutralize hidden-text and prompt-injection payloads in untrusted document
  text before it reaches generation.

Functional requirements
- NFC normalization, then removal of zero-width code points and replacement
  of typographic spaces, then instruction-override redaction, then whitespace
  normalization, in that order.
- Every removal is described in ``removed_descriptions``; any hit flags the
  result and names the technique in ``reason``.

Non-functional requirements
- Never raises on string input; the rule library is immutable module data.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Final

import structlog

from devrel_gate.domain.models import SanitizationResult
from devrel_gate.utils.hashing import sha256_text, short_fingerprint

INJECTION_REPLACEMENT: Final[str] = "[REDACTED]"

REASON_HIDDEN_TEXT: Final[str] = "Hidden text detected"
REASON_PROMPT_INJECTION: Final[str] = "Prompt injection keywords detected"
REASON_INSTRUCTION_DENSITY: Final[str] = "Excessive instructional content"
COLOR_HIDING_DESCRIPTION: Final[str] = "Potential color-based hiding"

ZERO_WIDTH_CODEPOINTS: Final[dict[str, str]] = {
    "\u200b": "Zero-width space",
    "\u200c": "Zero-width non-joiner",
    "\u200d": "Zero-width joiner",
    "\u2060": "Word joiner",
    "\ufeff": "Zero-width no-break space",
}

# Replaced with a plain space rather than dropped.
INVISIBLE_SPACE_CODEPOINTS: Final[dict[str, str]] = {
    "\u00a0": "No-break space",
    "\u2000": "En quad",
    "\u2001": "Em quad",
    "\u2002": "En space",
    "\u2003": "Em space",
    "\u2004": "Three-per-em space",
    "\u2005": "Four-per-em space",
    "\u2006": "Six-per-em space",
    "\u2007": "Figure space",
    "\u2008": "Punctuation space",
    "\u2009": "Thin space",
    "\u200a": "Hair space",
    "\u202f": "Narrow no-break space",
    "\u205f": "Medium mathematical space",
    "\u3000": "Ideographic space",
}

INSTRUCTION_VOCABULARY: Final[frozenset[str]] = frozenset(
    {
        "must",
        "always",
        "never",
        "should",
        "required",
        "mandatory",
        "instruction",
        "instructions",
        "command",
        "commands",
        "directive",
        "directives",
        "rule",
        "rules",
        "policy",
        "ignore",
        "override",
        "obey",
    }
)

_CSS_HIDING_RE: Final[re.Pattern[str]] = re.compile(
    r"(?<![-\w])color\s*:\s*(?:white|#fff(?:fff)?)\b"
    r"|opacity\s*:\s*0(?:\.0+)?(?![.\d])"
    r"|display\s*:\s*none\b"
    r"|visibility\s*:\s*hidden\b"
    r"|font-size\s*:\s*0(?:px|pt|em|rem|%)?(?![.\d])",
    re.IGNORECASE,
)
_WORD_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z']+")
_HORIZONTAL_WS_RE: Final[re.Pattern[str]] = re.compile(r"[ \t]+")
_TRAILING_WS_RE: Final[re.Pattern[str]] = re.compile(r"[ \t]+$", re.MULTILINE)
_EXCESS_NEWLINES_RE: Final[re.Pattern[str]] = re.compile(r"\n{3,}")


@dataclass(frozen=True, slots=True)
class InjectionRule:
    name: str
    pattern: re.Pattern[str]


def _rule(name: str, regex: str) -> InjectionRule:
    return InjectionRule(name=name, pattern=re.compile(regex, re.IGNORECASE))


DEFAULT_INJECTION_RULES: Final[tuple[InjectionRule, ...]] = (
    _rule("system_code_fence", r"```\s*system\b"),
    _rule("system_bracket_tag", r"\[\s*system\s*\]"),
    _rule("system_xml_tag", r"</?\s*system\s*>"),
    _rule("system_role_marker", r"\bsystem\s*:"),
    _rule(
        "ignore_instructions",
        r"\bignore\s+(?:all\s+)?(?:(?:the\s+)?(?:previous|prior|above)\s+)?instructions?\b",
    ),
    _rule("disregard_previous", r"\bdisregard\s+(?:all\s+)?(?:the\s+)?(?:above|previous|prior)\b"),
    _rule("forget_previous", r"\bforget\s+(?:all\s+)?(?:the\s+)?(?:previous|prior|above)\b"),
    _rule("you_are_now", r"\byou\s+are\s+now\b"),
    _rule("new_instructions", r"\bnew\s+instructions?\s*:"),
    _rule("override_instructions", r"\boverride\s+(?:all\s+)?(?:the\s+)?(?:instructions?|rules?|security)\b"),
    _rule("your_new_role", r"\byour\s+new\s+role\b"),
    _rule("developer_mode", r"\bdeveloper\s+mode\b"),
    _rule("you_must", r"\byou\s+must\b"),
    _rule("execute_command", r"\bexecute\s+commands?\b"),
    _rule("run_script", r"\brun\s+scripts?\b"),
    _rule("eval_call", r"\beval\s*\("),
    _rule("exec_call", r"\bexec\s*\("),
)


@dataclass(frozen=True, slots=True)
class SanitizerConfig:
    """Thresholds for the sanitizer heuristics."""

    injection_rules: tuple[InjectionRule, ...] = DEFAULT_INJECTION_RULES
    instruction_density_threshold: float = 0.10
    instruction_density_min_words: int = 20
    max_removal_ratio: float = 0.9
    detect_css_hiding: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.instruction_density_threshold <= 1.0:
            raise ValueError("instruction_density_threshold must be within [0, 1]")
        if self.instruction_density_min_words < 1:
            raise ValueError("instruction_density_min_words must be >= 1")
        if not 0.0 <= self.max_removal_ratio <= 1.0:
            raise ValueError("max_removal_ratio must be within [0, 1]")


class InputSanitizer:
    """Stateless hidden-text and prompt-injection filter."""

    def __init__(self, config: SanitizerConfig | None = None, *, logger: Any | None = None) -> None:
        self._config = config or SanitizerConfig()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> SanitizerConfig:
        return self._config

    def sanitize(self, text: str) -> SanitizationResult:
        removed: list[str] = []
        reasons: list[str] = []

        working = unicodedata.normalize("NFC", text)

        working, hidden = _strip_hidden_codepoints(working)
        if self._config.detect_css_hiding:
            css_hits = [match.group(0) for match in _CSS_HIDING_RE.finditer(working)]
            if css_hits:
                hidden.append(f"{COLOR_HIDING_DESCRIPTION}: {', '.join(dict.fromkeys(css_hits))}")
        if hidden:
            removed.extend(hidden)
            reasons.append(REASON_HIDDEN_TEXT)

        density = instruction_density(working)
        word_count = len(_WORD_RE.findall(working))

        working, injections = self._redact_injections(working)
        if injections:
            removed.extend(injections)
            reasons.append(REASON_PROMPT_INJECTION)

        if (
            word_count >= self._config.instruction_density_min_words
            and density > self._config.instruction_density_threshold
        ):
            reasons.append(REASON_INSTRUCTION_DENSITY)

        working = normalize_whitespace(working)
        flagged = bool(reasons)

        if flagged:
            self._logger.warning(
                "input_sanitized",
                reasons=reasons,
                removed_count=len(removed),
                instruction_density=round(density, 4),
                content_fingerprint=short_fingerprint(working),
            )

        return SanitizationResult(
            sanitized_text=working,
            flagged=flagged,
            removed_descriptions=tuple(removed),
            reason="; ".join(reasons) if reasons else None,
            content_hash=sha256_text(working),
        )

    def validate(self, original: str, sanitized: str) -> bool:
        """Check that no override phrase survived and that removal was not excessive."""

        for rule in self._config.injection_rules:
            if rule.pattern.search(sanitized):
                self._logger.warning("sanitization_incomplete", rule=rule.name)
                return False

        if original:
            removed_ratio = (len(original) - len(sanitized)) / len(original)
            if removed_ratio > self._config.max_removal_ratio:
                self._logger.warning(
                    "sanitization_excessive",
                    removed_ratio=round(removed_ratio, 4),
                    max_removal_ratio=self._config.max_removal_ratio,
                )
                return False
        return True

    def _redact_injections(self, text: str) -> tuple[str, list[str]]:
        descriptions: list[str] = []
        working = text
        for rule in self._config.injection_rules:

            def _replace(match: re.Match[str], *, name: str = rule.name) -> str:
                descriptions.append(f"Prompt injection pattern ({name}): {match.group(0)}")
                return INJECTION_REPLACEMENT

            working = rule.pattern.sub(_replace, working)
        return working, list(dict.fromkeys(descriptions))


def instruction_density(text: str) -> float:
    """Fraction of words that belong to the instructional vocabulary."""

    words = _WORD_RE.findall(text)
    if not words:
        return 0.0
    hits = sum(1 for word in words if word.lower() in INSTRUCTION_VOCABULARY)
    return hits / len(words)


def normalize_whitespace(text: str) -> str:
    collapsed = text.replace("\r\n", "\n").replace("\r", "\n")
    collapsed = _HORIZONTAL_WS_RE.sub(" ", collapsed)
    collapsed = _TRAILING_WS_RE.sub("", collapsed)
    collapsed = _EXCESS_NEWLINES_RE.sub("\n\n", collapsed)
    return collapsed.strip()


def _strip_hidden_codepoints(text: str) -> tuple[str, list[str]]:
    descriptions: list[str] = []
    working = text
    for char, label in ZERO_WIDTH_CODEPOINTS.items():
        count = working.count(char)
        if count:
            descriptions.append(f"{label} (U+{ord(char):04X}) x{count}")
            working = working.replace(char, "")
    for char, label in INVISIBLE_SPACE_CODEPOINTS.items():
        count = working.count(char)
        if count:
            descriptions.append(f"{label} (U+{ord(char):04X}) x{count}")
            working = working.replace(char, " ")
    return working, descriptions


__all__ = [
    "COLOR_HIDING_DESCRIPTION",
    "DEFAULT_INJECTION_RULES",
    "INJECTION_REPLACEMENT",
    "INSTRUCTION_VOCABULARY",
    "INVISIBLE_SPACE_CODEPOINTS",
    "REASON_HIDDEN_TEXT",
    "REASON_INSTRUCTION_DENSITY",
    "REASON_PROMPT_INJECTION",
    "ZERO_WIDTH_CODEPOINTS",
    "InjectionRule",
    "InputSanitizer",
    "SanitizerConfig",
    "instruction_density",
    "normalize_whitespace",
]
