"""Chat-completion client with hard timeout, bounded 5xx retry and JSON extraction."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx

from ..config import LLMConfig
from ..exceptions import (
    LLMAuthError,
    LLMRateLimitError,
    LLMRequestError,
    LLMResponseError,
    LLMServerError,
    LLMTimeoutError,
)
from ..redaction import sanitize_text
from .extraction import extract_json

_PROMPT_LOG_CHARS = 500


class LLMClient:
    """Thin adapter over an OpenAI-style chat completions endpoint."""

    def __init__(
        self,
        config: LLMConfig,
        api_key: str | None,
        logger: logging.Logger,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.logger = logger
        self._sleep = sleep_fn
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.Client(
            timeout=config.timeout_seconds,
            headers=headers,
            transport=transport,
        )

    def __enter__(self) -> LLMClient:
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request_intent(self, system_prompt: str, user_prompt: str) -> Any:
        """Ask for a structured JSON intent and return the extracted value."""
        content = self._execute_with_retry(
            system_prompt,
            user_prompt,
            temperature=self.config.temperature_structured,
            max_tokens=self.config.max_tokens_structured,
            label="intent",
        )
        result = extract_json(content)
        if not result.ok:
            raise LLMResponseError(result.error or "Invalid JSON in response")
        self.logger.debug("LLM intent JSON extracted via %s stage", result.kind)
        return result.value

    def generate_text(self, system_prompt: str, user_prompt: str) -> str:
        """Ask for a natural-language answer."""
        return self._execute_with_retry(
            system_prompt,
            user_prompt,
            temperature=self.config.temperature_natural,
            max_tokens=self.config.max_tokens_natural,
            label="answer",
        ).strip()

    def _execute_with_retry(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_tokens: int,
        label: str,
    ) -> str:
        for attempt in range(self.config.max_retries + 1):
            try:
                content = self._request(system_prompt, user_prompt, temperature, max_tokens)
            except LLMServerError as exc:
                self._log_interaction(label, system_prompt, user_prompt, error=exc)
                if attempt < self.config.max_retries:
                    self.logger.warning(
                        "LLM %s request failed (HTTP %s); retrying",
                        label,
                        exc.status_code,
                        extra={"attempt": attempt + 1, "max_retries": self.config.max_retries},
                    )
                    self._sleep(self.config.retry_delay_seconds)
                    continue
                raise
            except LLMRequestError as exc:
                self._log_interaction(label, system_prompt, user_prompt, error=exc)
                raise
            self._log_interaction(label, system_prompt, user_prompt, response=content)
            return content

        raise LLMRequestError(f"LLM {label} request failed after retries")

    def _request(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        body = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        try:
            response = self._client.post(self.config.api_url, json=body)
        except httpx.TimeoutException as exc:
            raise LLMTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise LLMRequestError(
                f"LLM request failed: {sanitize_text(str(exc))}",
                category="network",
            ) from exc

        status = response.status_code
        if status == 429:
            reset_time = response.headers.get("x-ratelimit-reset-requests")
            self.logger.error("LLM rate limit hit; reset=%s", reset_time)
            raise LLMRateLimitError("LLM API rate limit exceeded", reset_time=reset_time)
        if status in (401, 403):
            raise LLMAuthError(
                f"LLM API authentication failed with status {status}.",
                status_code=status,
            )
        if status >= 500:
            raise LLMServerError(f"LLM API server error: {status}", status_code=status)
        if status >= 400:
            raise LLMRequestError(
                f"LLM API error {status}: {sanitize_text(response.text[:300])}",
                category="client",
                status_code=status,
            )

        try:
            payload = response.json()
        except (ValueError, RecursionError) as exc:
            raise LLMResponseError("LLM API returned a non-JSON body.") from exc
        content = self._message_content(payload)
        if not content:
            raise LLMResponseError("Empty response from LLM API")
        return content

    @staticmethod
    def _message_content(payload: Any) -> str | None:
        if not isinstance(payload, dict):
            return None
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        if not isinstance(first, dict):
            return None
        message = first.get("message")
        if not isinstance(message, dict):
            return None
        content = message.get("content")
        return content if isinstance(content, str) and content.strip() else None

    def _log_interaction(
        self,
        label: str,
        system_prompt: str,
        user_prompt: str,
        *,
        response: str | None = None,
        error: Exception | None = None,
    ) -> None:
        if not self.logger.isEnabledFor(logging.DEBUG):
            return
        shown_prompt = (
            system_prompt[:_PROMPT_LOG_CHARS] + "..."
            if len(system_prompt) > _PROMPT_LOG_CHARS
            else system_prompt
        )
        self.logger.debug(
            "LLM %s interaction",
            label,
            extra={
                "system_prompt": shown_prompt,
                "user_prompt": user_prompt,
                "response": response,
                "error": str(error) if error else None,
            },
        )
