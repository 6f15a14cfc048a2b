"""Staged JSON extraction from free-text LLM replies."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Literal

ExtractionKind = Literal["direct", "fenced", "scanned", "unparseable"]

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """Outcome of JSON extraction, tagged with the stage that succeeded."""

    kind: ExtractionKind
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind != "unparseable"


def _try_parse(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, RecursionError):
        return False, None


def _balanced_object_end(text: str, start: int) -> int | None:
    """Index one past the brace closing the object opened at ``start``."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def _scan_objects(text: str) -> tuple[bool, Any]:
    start = text.find("{")
    while start != -1:
        end = _balanced_object_end(text, start)
        if end is not None:
            ok, value = _try_parse(text[start:end])
            if ok:
                return True, value
        start = text.find("{", start + 1)
    return False, None


def extract_json(content: str) -> ExtractionResult:
    """Extract a JSON value: whole body, then fenced block, then first parseable object.

    Never guesses at a partial object; anything else is ``unparseable``.
    """
    stripped = content.strip()

    ok, value = _try_parse(stripped)
    if ok:
        return ExtractionResult(kind="direct", value=value)

    fenced = _FENCED_RE.search(stripped)
    if fenced:
        ok, value = _try_parse(fenced.group(1).strip())
        if ok:
            return ExtractionResult(kind="fenced", value=value)

    ok, value = _scan_objects(stripped)
    if ok:
        return ExtractionResult(kind="scanned", value=value)

    return ExtractionResult(
        kind="unparseable",
        error=f"Invalid JSON in response: {stripped[:200]}",
    )
