"""Application exception classes."""

from __future__ import annotations

from typing import Any


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""


class JournalError(Exception):
    """Raised when writing to journal files fails."""


class InputError(Exception):
    """Raised when a user question fails input validation."""

    def __init__(self, message: str, *, code: str = "invalid_question") -> None:
        super().__init__(message)
        self.code = code


class DateParseError(ValueError):
    """Raised when a free-text forecast date cannot be resolved."""


class LLMRequestError(Exception):
    """Raised for LLM endpoint failures with category/status metadata."""

    def __init__(
        self,
        message: str,
        *,
        category: str = "unknown",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


class LLMTimeoutError(LLMRequestError):
    """Raised when the LLM call exceeded its hard timeout and was cancelled."""

    def __init__(self, message: str = "LLM request timeout") -> None:
        super().__init__(message, category="timeout")


class LLMAuthError(LLMRequestError):
    """Raised on 401/403 from the LLM endpoint."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message, category="auth", status_code=status_code)


class LLMRateLimitError(LLMRequestError):
    """Raised on 429 from the LLM endpoint; never retried."""

    def __init__(self, message: str, *, reset_time: str | None = None) -> None:
        super().__init__(message, category="rate_limit", status_code=429)
        self.reset_time = reset_time


class LLMServerError(LLMRequestError):
    """Raised on 5xx from the LLM endpoint once retries are exhausted."""

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message, category="server", status_code=status_code)


class LLMResponseError(LLMRequestError):
    """Raised when the LLM returned an empty or unparseable body."""

    def __init__(self, message: str) -> None:
        super().__init__(message, category="response")


class SchemaError(Exception):
    """Raised when an LLM payload does not satisfy the intent schema."""

    def __init__(self, message: str, *, problems: list[str], payload: Any = None) -> None:
        super().__init__(message)
        self.problems = problems
        self.payload = payload


class CompileError(Exception):
    """Raised when a validated intent cannot be compiled. Indicates a bug."""


class DatabaseError(Exception):
    """Raised when the forecast store fails to execute a statement."""


class AnswerGenerationError(Exception):
    """Raised when natural-language answer generation fails."""
