"""Validation of raw LLM JSON into intents, the sole trust boundary before SQL."""

from __future__ import annotations

from typing import Any, assert_never

from pydantic import ValidationError

from ..exceptions import SchemaError
from .models import QueryIntent, RejectedResponse, UnanswerableResponse

LLMResponse = RejectedResponse | UnanswerableResponse | QueryIntent


def missing_required_fields(intent: QueryIntent) -> list[str]:
    """Return names of fields the intent's query type requires but lacks."""
    query_type = intent.query_type
    missing: list[str] = []
    if query_type == "forecast_for_date":
        if intent.target_date is None:
            missing.append("target_date")
    elif query_type == "compare_dates":
        if intent.compare_dates is None:
            missing.append("compare_dates")
    elif query_type in (
        "average_over_range",
        "count_days_with",
        "list_days_with",
        "period_summary",
    ):
        if intent.date_range is None:
            missing.append("date_range")
    elif query_type == "extreme_value":
        if intent.date_range is None:
            missing.append("date_range")
        if not intent.fields:
            missing.append("fields")
        if intent.extreme is None:
            missing.append("extreme")
    elif query_type == "max_streak":
        if intent.date_range is None:
            missing.append("date_range")
        if not intent.conditions:
            missing.append("conditions")
    elif query_type in (
        "current_conditions",
        "last_day_with",
        "last_day_without",
        "first_day_with",
    ):
        pass
    else:
        assert_never(query_type)
    return missing


def _format_problems(exc: ValidationError) -> list[str]:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
        problems.append(f"{location}: {error.get('msg', 'invalid')}")
    return problems


def validate_intent(payload: Any) -> QueryIntent:
    """Validate an arbitrary JSON value as a QueryIntent or raise SchemaError."""
    if not isinstance(payload, dict):
        raise SchemaError(
            f"Intent must be a JSON object, got {type(payload).__name__}.",
            problems=["<root>: expected object"],
            payload=payload,
        )
    try:
        intent = QueryIntent.model_validate(payload)
    except ValidationError as exc:
        raise SchemaError(
            "LLM intent failed schema validation.",
            problems=_format_problems(exc),
            payload=payload,
        ) from exc

    missing = missing_required_fields(intent)
    if missing:
        raise SchemaError(
            f"Missing required fields for query type {intent.query_type}.",
            problems=[f"{name}: required for {intent.query_type}" for name in missing],
            payload=payload,
        )
    return intent


def classify_llm_response(payload: Any) -> LLMResponse:
    """Classify LLM output as rejected, unanswerable, or a validated intent.

    Order matters: a rejection-shaped object must never reach intent
    validation, so it is matched first, then the unanswerable shape.
    """
    if isinstance(payload, dict) and "error" in payload:
        try:
            return RejectedResponse.model_validate(payload)
        except ValidationError:
            pass
        try:
            return UnanswerableResponse.model_validate(payload)
        except ValidationError:
            pass
    return validate_intent(payload)
