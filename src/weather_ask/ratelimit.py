"""Soft per-caller rate limiting over an external counter store."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .config import RateLimitConfig

KEY_PREFIX = "ratelimit:ask:"


class CounterStore(ABC):
    """Key/value store with TTL expiry, owned outside this package."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the stored value or None when missing/expired."""

    @abstractmethod
    def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        """Store value, expiring after ttl_seconds."""


class InMemoryCounterStore(CounterStore):
    """Process-local counter store, suitable for the CLI and tests."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._items: dict[str, tuple[dict[str, Any], float]] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return dict(value)

    def put(self, key: str, value: dict[str, Any], ttl_seconds: int) -> None:
        self._items[key] = (dict(value), self._clock() + ttl_seconds)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    remaining: int


class RateLimiter:
    """Fixed-window counter per caller.

    Get-then-put is not atomic, so concurrent bursts may under-count. Store
    failures allow the request.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: CounterStore,
        logger: logging.Logger,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.store = store
        self.logger = logger
        self._clock = clock

    def check(self, caller_id: str) -> RateLimitDecision:
        key = f"{KEY_PREFIX}{caller_id or 'unknown'}"
        limit = self.config.max_requests
        window = self.config.window_seconds
        now = int(self._clock())
        try:
            data = self.store.get(key)
            if data is None or now - int(data.get("window_start", 0)) >= window:
                self.store.put(key, {"count": 1, "window_start": now}, window)
                return RateLimitDecision(allowed=True, remaining=limit - 1)

            count = int(data.get("count", 0))
            if count >= limit:
                return RateLimitDecision(allowed=False, remaining=0)

            self.store.put(
                key,
                {"count": count + 1, "window_start": int(data["window_start"])},
                window,
            )
            return RateLimitDecision(allowed=True, remaining=limit - count - 1)
        except Exception:
            self.logger.exception("Rate limit check failed; allowing request")
            return RateLimitDecision(allowed=True, remaining=limit - 1)
