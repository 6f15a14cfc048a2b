"""Redaction of API keys and bearer tokens before values reach logs or the journal."""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

_SENSITIVE_KEY_RE = re.compile(
    r"(authorization|token|secret|password|api[_-]?key)",
    re.IGNORECASE,
)
_BEARER_RE = re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-._~+/]+=*")
_OPENAI_STYLE_KEY_RE = re.compile(r"\b(sk|vn)-[A-Za-z0-9_\-]{12,}")
_KEY_VALUE_SECRET_RE = re.compile(
    r"""(?ix)
    \b
    (authorization|token|secret|password|api[_-]?key)
    \s*[:=]\s*
    ([^\s,;]+)
    """
)
_DB_CREDENTIALS_RE = re.compile(r"(?i)(\w+(?:\+\w+)?://)([^:@\s/]+):([^@\s]+)@")


def sanitize_text(text: str) -> str:
    """Redact sensitive content embedded in plain text."""
    sanitized = _BEARER_RE.sub(r"\1 " + REDACTED, text)
    sanitized = _OPENAI_STYLE_KEY_RE.sub(REDACTED, sanitized)
    sanitized = _KEY_VALUE_SECRET_RE.sub(lambda m: f"{m.group(1)}={REDACTED}", sanitized)
    sanitized = _DB_CREDENTIALS_RE.sub(r"\1***:***@", sanitized)
    return sanitized


def sanitize_for_logging(value: Any) -> Any:
    """Recursively redact sensitive values in nested structures."""
    if isinstance(value, dict):
        sanitized: dict[Any, Any] = {}
        for key, child in value.items():
            if _SENSITIVE_KEY_RE.search(str(key)):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = sanitize_for_logging(child)
        return sanitized
    if isinstance(value, (list, tuple)):
        return [sanitize_for_logging(item) for item in value]
    if isinstance(value, str):
        return sanitize_text(value)
    return value
