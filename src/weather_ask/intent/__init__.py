"""Intent whitelist, models and validation."""

from .models import Condition, DateRange, QueryIntent, RejectedResponse, UnanswerableResponse
from .question import QuestionInput, looks_like_injection, validate_question
from .validator import classify_llm_response, missing_required_fields, validate_intent

__all__ = [
    "Condition",
    "DateRange",
    "QueryIntent",
    "QuestionInput",
    "RejectedResponse",
    "UnanswerableResponse",
    "classify_llm_response",
    "looks_like_injection",
    "missing_required_fields",
    "validate_intent",
    "validate_question",
]
