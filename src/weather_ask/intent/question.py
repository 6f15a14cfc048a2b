"""Input validation for end-user questions."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import InputError

INVALID_REQUEST = "Invalid request"

_HTML_TAG_RE = re.compile(r"<[^>]*>")
# Apostrophes stay allowed for contractions (What's, it's).
_FORBIDDEN_CHARS_RE = re.compile(r'[<>";]')
_SQL_COMMENT = "--"

INJECTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"ignore\s+(all\s+)?(previous|above|prior)",
        r"disregard\s+(all\s+)?(previous|above|prior|your)",
        r"forget\s+(all\s+)?(previous|above|prior|your)",
        r"pretend\s+(you\s+are|to\s+be|you're)",
        r"act\s+as\s+(if|a|an|though)",
        r"you\s+are\s+now",
        r"new\s+instructions",
        r"system\s*prompt",
        r"reveal\s+(your|the)\s+(instructions|prompt|rules)",
        r"what\s+are\s+your\s+(instructions|rules)",
        r"repeat\s+(your|the|back)\s+(instructions|prompt|rules)",
        r"override\s+(your|the|all)",
        r"bypass\s+(your|the|all)",
        r"jailbreak",
        r"DAN\s*mode",
        r"developer\s*mode",
        r"\bbase64\b",
        r"\bhex\s*encode",
        r"\brot13\b",
    )
)


def looks_like_injection(text: str) -> bool:
    """True when text matches any known prompt-injection pattern."""
    return any(pattern.search(text) for pattern in INJECTION_PATTERNS)


class QuestionInput(BaseModel):
    """Validated ask request body."""

    model_config = ConfigDict(extra="ignore")

    question: str = Field(min_length=3, max_length=500)

    @field_validator("question")
    @classmethod
    def check_content(cls, value: str) -> str:
        if _HTML_TAG_RE.search(value) or _FORBIDDEN_CHARS_RE.search(value):
            raise ValueError(INVALID_REQUEST)
        if _SQL_COMMENT in value:
            raise ValueError(INVALID_REQUEST)
        if looks_like_injection(value):
            raise ValueError(INVALID_REQUEST)
        return value


def _first_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return INVALID_REQUEST
    error = errors[0]
    error_type = error.get("type", "")
    if error_type == "string_too_short":
        return "Question too short"
    if error_type == "string_too_long":
        return "Question too long"
    if error_type == "value_error":
        return INVALID_REQUEST
    return error.get("msg", INVALID_REQUEST)


def validate_question(body: Any) -> str:
    """Validate an ask request body and return the question text."""
    if not isinstance(body, dict):
        raise InputError("Invalid JSON body", code="invalid_request")
    question = body.get("question")
    if not isinstance(question, str) or not question:
        raise InputError("Question is required", code="invalid_request")
    try:
        return QuestionInput.model_validate(body).question
    except ValidationError as exc:
        raise InputError(_first_message(exc)) from exc
