"""YAML frontmatter parsing and metadata validation for documents."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

import yaml

from devrel_gate.domain.models import (
    DEFAULT_SENSITIVITY,
    Document,
    DocumentMetadata,
    SensitivityLevel,
    SensitivitySource,
)

_FRONTMATTER_RE: Final[re.Pattern[str]] = re.compile(
    r"\A---[ \t]*\r?\n(?:(.*?)\r?\n)?---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL,
)

_LIST_FIELDS: Final[tuple[str, ...]] = ("context_documents", "tags", "allowed_audiences")
_BOOL_FIELDS: Final[tuple[str, ...]] = ("requires_approval", "pii_present")
_TEXT_FIELDS: Final[tuple[str, ...]] = (
    "title",
    "description",
    "version",
    "owner",
    "department",
    "created",
    "updated",
)

MISSING_SENSITIVITY_ERROR: Final[str] = "Missing required field: sensitivity"


class MissingSensitivityPolicy(StrEnum):
    """What to do with a document that declares no sensitivity."""

    DEFAULT = "default"
    REJECT = "reject"


@dataclass(frozen=True, slots=True)
class FrontmatterBlock:
    fields: dict[str, object]
    body: str
    present: bool
    parse_error: str | None = None


def split_frontmatter(content: str) -> FrontmatterBlock:
    """Split a leading ``---`` fenced YAML block from the document body."""

    match = _FRONTMATTER_RE.match(content)
    if match is None:
        return FrontmatterBlock(fields={}, body=content, present=False)

    body = content[match.end() :]
    raw_block = match.group(1) or ""
    try:
        loaded = yaml.safe_load(raw_block)
    except yaml.YAMLError as exc:
        detail = str(exc).splitlines()[0] if str(exc) else type(exc).__name__
        return FrontmatterBlock(
            fields={}, body=body, present=True, parse_error=f"Invalid YAML frontmatter: {detail}"
        )

    if loaded is None:
        return FrontmatterBlock(fields={}, body=body, present=True)
    if not isinstance(loaded, Mapping):
        return FrontmatterBlock(
            fields={},
            body=body,
            present=True,
            parse_error=f"Frontmatter must be a mapping, got {type(loaded).__name__}",
        )
    return FrontmatterBlock(
        fields={str(key): value for key, value in loaded.items()},
        body=body,
        present=True,
    )


def build_metadata(
    fields: Mapping[str, object],
    *,
    missing_sensitivity_policy: MissingSensitivityPolicy = MissingSensitivityPolicy.DEFAULT,
    parse_error: str | None = None,
) -> DocumentMetadata:
    """Validate raw frontmatter fields into ``DocumentMetadata``.

    Validation problems never raise here; they are collected on
    ``validation_errors`` and the caller decides whether they are fatal.
    Absent or malformed frontmatter falls back to the default level unless the
    policy is ``reject``. An unknown level, or a missing one under ``reject``,
    is left as ``None`` so it can never be ranked.
    """

    errors: list[str] = []
    if parse_error is not None:
        errors.append(parse_error)

    sensitivity: SensitivityLevel | None
    raw_value = fields.get("sensitivity")
    raw_sensitivity: str | None = None
    if parse_error is not None or raw_value is None:
        if missing_sensitivity_policy is MissingSensitivityPolicy.REJECT:
            if parse_error is None:
                errors.append(MISSING_SENSITIVITY_ERROR)
            sensitivity = None
            source = SensitivitySource.INVALID
        else:
            sensitivity = DEFAULT_SENSITIVITY
            source = SensitivitySource.DEFAULTED
    else:
        raw_sensitivity = str(raw_value)
        sensitivity = SensitivityLevel.parse(raw_value)
        if sensitivity is None:
            allowed = ", ".join(member.value for member in SensitivityLevel)
            errors.append(f"Invalid sensitivity level: {raw_sensitivity}. Must be one of: {allowed}")
            source = SensitivitySource.INVALID
        else:
            source = SensitivitySource.DECLARED

    lists: dict[str, tuple[str, ...]] = {}
    for name in _LIST_FIELDS:
        value = fields.get(name)
        if value is None:
            lists[name] = ()
        elif isinstance(value, list) and all(isinstance(item, str) for item in value):
            lists[name] = tuple(value)
        else:
            errors.append(f"{name} must be an array of strings")
            lists[name] = ()

    flags: dict[str, bool | None] = {}
    for name in _BOOL_FIELDS:
        value = fields.get(name)
        if value is None or isinstance(value, bool):
            flags[name] = value
        else:
            errors.append(f"{name} must be a boolean")
            flags[name] = None

    retention_days: int | None = None
    raw_retention = fields.get("retention_days")
    if raw_retention is not None:
        if isinstance(raw_retention, bool) or not isinstance(raw_retention, int) or raw_retention < 0:
            errors.append("retention_days must be a non-negative integer")
        else:
            retention_days = raw_retention

    texts = {name: _as_text(fields.get(name)) for name in _TEXT_FIELDS}

    return DocumentMetadata(
        sensitivity=sensitivity,
        sensitivity_source=source,
        raw_sensitivity=raw_sensitivity,
        context_documents=lists["context_documents"],
        tags=lists["tags"],
        allowed_audiences=lists["allowed_audiences"],
        requires_approval=flags["requires_approval"],
        retention_days=retention_days,
        pii_present=flags["pii_present"],
        validation_errors=tuple(errors),
        **texts,
    )


def parse_document(
    path: str,
    content: str,
    *,
    missing_sensitivity_policy: MissingSensitivityPolicy = MissingSensitivityPolicy.DEFAULT,
) -> Document:
    block = split_frontmatter(content)
    metadata = build_metadata(
        block.fields,
        missing_sensitivity_policy=missing_sensitivity_policy,
        parse_error=block.parse_error,
    )
    return Document(path=path, metadata=metadata, body=block.body, raw_content=content)


def _as_text(value: object) -> str | None:
    if value is None:
        return None
    # YAML turns unquoted dates into ``datetime.date``.
    return str(value)


__all__ = [
    "MISSING_SENSITIVITY_ERROR",
    "FrontmatterBlock",
    "MissingSensitivityPolicy",
    "build_metadata",
    "parse_document",
    "split_frontmatter",
]
