"""Ask orchestration: question in, verified query and answer out.

Gates run in a fixed order and each one either passes the request on or
terminates it with a failure response:

    rate limit -> input -> intent request -> rejected -> unanswerable
    -> schema -> compile + execute -> answer generation -> success

Answer generation is the only stage that recovers: when it fails, a template
answer is built from the rows already fetched.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import date
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from .answers.citations import DEFAULT_MAX_CITATIONS, Citation, build_citations
from .answers.fallback import build_fallback_answer
from .dates import utc_today
from .exceptions import (
    AnswerGenerationError,
    CompileError,
    DatabaseError,
    InputError,
    JournalError,
    LLMAuthError,
    LLMRateLimitError,
    LLMRequestError,
    LLMResponseError,
    LLMTimeoutError,
    SchemaError,
)
from .intent.models import QueryIntent, RejectedResponse, UnanswerableResponse
from .intent.question import validate_question
from .intent.validator import classify_llm_response
from .journal import AskJournal, question_fingerprint
from .llm.prompts import (
    ANSWER_SYSTEM_PROMPT,
    INTENT_SYSTEM_PROMPT,
    build_answer_prompt,
    build_intent_prompt,
    inject_dates,
)
from .query.compiler import compile_intent
from .ratelimit import RateLimiter
from .store import ForecastStore

AskErrorCode = Literal[
    "rate_limit_exceeded",
    "invalid_request",
    "invalid_question",
    "llm_timeout",
    "service_busy",
    "llm_error",
    "rejected",
    "unanswerable",
    "llm_invalid_response",
    "internal_error",
]

UNANSWERABLE_PREFIX = "I can only answer questions about Isle of Man weather forecasts."


class IntentLLM(Protocol):
    """The two LLM operations the orchestrator needs."""

    def request_intent(self, system_prompt: str, user_prompt: str) -> Any: ...

    def generate_text(self, system_prompt: str, user_prompt: str) -> str: ...


class AskSuccess(BaseModel):
    """Successful answer with supporting citations."""

    success: Literal[True] = True
    answer: str
    citations: list[Citation] = Field(default_factory=list)
    query_type: str
    used_fallback: bool = False
    status: int = 200

    def to_payload(self) -> dict[str, Any]:
        return {
            "success": True,
            "answer": self.answer,
            "citations": [citation.as_payload() for citation in self.citations],
            "query_type": self.query_type,
        }


class AskFailure(BaseModel):
    """Terminal failure with a fixed error code and a user-safe message."""

    success: Literal[False] = False
    error: AskErrorCode
    message: str
    status: int

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "error": self.error, "message": self.message}


AskResponse = AskSuccess | AskFailure


class AskService:
    """Runs one ask request through every gate, strictly in sequence."""

    def __init__(
        self,
        *,
        llm: IntentLLM,
        store: ForecastStore,
        rate_limiter: RateLimiter,
        logger: logging.Logger,
        journal: AskJournal | None = None,
        max_citations: int = DEFAULT_MAX_CITATIONS,
        today_fn: Callable[[], date] = utc_today,
    ) -> None:
        self.llm = llm
        self.store = store
        self.rate_limiter = rate_limiter
        self.logger = logger
        self.journal = journal
        self.max_citations = max_citations
        self._today = today_fn

    def ask(self, body: Any, caller_id: str) -> AskResponse:
        started = time.monotonic()
        response = self._run(body, caller_id)
        self._record_outcome(body, response, time.monotonic() - started)
        return response

    def _run(self, body: Any, caller_id: str) -> AskResponse:
        decision = self.rate_limiter.check(caller_id)
        if not decision.allowed:
            return AskFailure(
                error="rate_limit_exceeded",
                message="You've reached your daily question limit. Please try again tomorrow.",
                status=429,
            )

        try:
            question = validate_question(body)
        except InputError as exc:
            error: AskErrorCode = "invalid_request" if exc.code == "invalid_request" else "invalid_question"
            return AskFailure(error=error, message=str(exc), status=400)

        today = self._today()

        try:
            raw_intent = self.llm.request_intent(
                inject_dates(INTENT_SYSTEM_PROMPT, today),
                build_intent_prompt(question),
            )
        except LLMResponseError as exc:
            self.logger.error("LLM intent was not parseable JSON: %s", exc)
            self._snapshot("unparseable_intent", {"question": question, "error": str(exc)})
            return _rephrase_failure()
        except LLMRequestError as exc:
            return self._upstream_failure(exc)

        try:
            classified = classify_llm_response(raw_intent)
        except SchemaError as exc:
            self.logger.error(
                "Intent validation failed: %s",
                "; ".join(exc.problems),
                extra={"problems": exc.problems},
            )
            self._snapshot("invalid_intent", {"question": question, "payload": exc.payload})
            return _rephrase_failure()

        if isinstance(classified, RejectedResponse):
            self.logger.warning("LLM rejected question as manipulation attempt")
            return AskFailure(
                error="rejected",
                message="Sorry, I can't process that request.",
                status=400,
            )
        if isinstance(classified, UnanswerableResponse):
            message = f"{UNANSWERABLE_PREFIX} {classified.reason or ''}".strip()
            return AskFailure(error="unanswerable", message=message, status=400)

        intent: QueryIntent = classified
        try:
            plan = compile_intent(intent, today)
        except CompileError:
            self.logger.exception("Validated intent failed to compile: %s", intent.query_type)
            return _internal_failure()

        try:
            rows = self.store.execute(plan)
        except DatabaseError:
            self.logger.exception("Database query failed for %s", intent.query_type)
            return _internal_failure()
        self.logger.info(
            "Query %s returned %d rows", intent.query_type, len(rows),
            extra={"params": list(plan.params)},
        )

        try:
            answer = self._generate_answer(question, intent, rows, today)
        except AnswerGenerationError as exc:
            self.logger.warning("Answer generation failed; using fallback: %s", exc)
            fallback_answer, fallback_citations = build_fallback_answer(
                intent, rows, max_citations=self.max_citations
            )
            return AskSuccess(
                answer=fallback_answer,
                citations=fallback_citations,
                query_type=intent.query_type,
                used_fallback=True,
            )

        return AskSuccess(
            answer=answer,
            citations=build_citations(intent.query_type, rows, max_citations=self.max_citations),
            query_type=intent.query_type,
        )

    def _generate_answer(
        self,
        question: str,
        intent: QueryIntent,
        rows: list[dict[str, Any]],
        today: date,
    ) -> str:
        try:
            answer = self.llm.generate_text(
                inject_dates(ANSWER_SYSTEM_PROMPT, today),
                build_answer_prompt(question, intent.query_type, rows),
            )
        except Exception as exc:
            self.logger.exception("Answer generation raised for %s", intent.query_type)
            raise AnswerGenerationError(str(exc)) from exc
        if not isinstance(answer, str) or not answer.strip():
            raise AnswerGenerationError("LLM returned an empty answer")
        return answer.strip()

    def _upstream_failure(self, exc: LLMRequestError) -> AskFailure:
        self.logger.error("LLM intent request failed (%s): %s", exc.category, exc)
        if isinstance(exc, LLMTimeoutError):
            return AskFailure(
                error="llm_timeout",
                message="Request timed out. Please try again.",
                status=504,
            )
        if isinstance(exc, LLMRateLimitError):
            return AskFailure(
                error="service_busy",
                message="Service is temporarily busy. Please try again later.",
                status=503,
            )
        if isinstance(exc, LLMAuthError):
            self.logger.error("LLM API auth failed; check LLM_API_KEY")
            return AskFailure(
                error="llm_error",
                message="Service configuration error. Please try again later.",
                status=502,
            )
        return AskFailure(
            error="llm_error",
            message="Failed to process question. Please try again.",
            status=502,
        )

    def _snapshot(self, name: str, payload: dict[str, Any]) -> None:
        if self.journal is None:
            return
        try:
            path = self.journal.write_raw_snapshot(name, payload)
        except JournalError as exc:
            self.logger.warning("Could not journal raw LLM payload: %s", exc)
            return
        self.logger.info("Raw LLM payload journaled to %s", path)

    def _record_outcome(self, body: Any, response: AskResponse, elapsed: float) -> None:
        if self.journal is None:
            return
        question = body.get("question") if isinstance(body, dict) else None
        event: dict[str, Any] = {
            "question_hash": question_fingerprint(question) if isinstance(question, str) else None,
            "success": response.success,
            "latency_ms": int(elapsed * 1000),
        }
        if isinstance(response, AskSuccess):
            event["query_type"] = response.query_type
            event["used_fallback"] = response.used_fallback
            event["citation_count"] = len(response.citations)
        else:
            event["error"] = response.error
        try:
            self.journal.write_event("ask_outcome", event)
        except JournalError as exc:
            self.logger.warning("Could not journal ask outcome: %s", exc)


def _rephrase_failure() -> AskFailure:
    return AskFailure(
        error="llm_invalid_response",
        message="I couldn't understand that question. Please try rephrasing it.",
        status=500,
    )


def _internal_failure() -> AskFailure:
    return AskFailure(
        error="internal_error",
        message="Database query failed. Please try again.",
        status=500,
    )
