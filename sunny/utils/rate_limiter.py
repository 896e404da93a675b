"""Token-bucket rate limiting for outbound API calls."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..models.agent import Provider

logger = logging.getLogger(__name__)


@dataclass
class RateLimiterStats:
    total_requests: int = 0
    total_waits: int = 0
    total_wait_time: float = 0.0
    max_wait_time: float = 0.0

    @property
    def average_wait_time(self) -> float:
        if not self.total_waits:
            return 0.0
        return self.total_wait_time / self.total_waits


class RateLimiter:
    """Token bucket refilled continuously from a monotonic clock.

    The bucket holds up to ``max_burst`` tokens and regains
    ``tokens_per_interval`` tokens every ``interval`` seconds. Refill and
    consumption happen without an ``await`` in between, so interleaved callers
    on the same event loop never double-spend a token.
    """

    def __init__(
        self,
        tokens_per_interval: float,
        interval: float = 1.0,
        max_burst: Optional[float] = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if tokens_per_interval <= 0:
            raise ValueError("tokens_per_interval must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.tokens_per_interval = tokens_per_interval
        self.interval = interval
        self.max_burst = max_burst if max_burst is not None else tokens_per_interval
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.max_burst)
        self._last_refill = clock()
        self._stats = RateLimiterStats()

    @property
    def refill_rate(self) -> float:
        """Tokens regained per second."""
        return self.tokens_per_interval / self.interval

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.max_burst, self._tokens + elapsed * self.refill_rate)
            self._last_refill = now

    def _check_count(self, count: float) -> None:
        if count <= 0:
            raise ValueError("Token count must be positive")
        if count > self.max_burst:
            raise ValueError(
                f"Requested {count} tokens exceeds max burst of {self.max_burst} for {self.name}"
            )

    def try_remove_tokens(self, count: float = 1) -> bool:
        """Take ``count`` tokens if they are available right now."""

        self._check_count(count)
        self._refill()
        if self._tokens >= count:
            self._tokens -= count
            self._stats.total_requests += 1
            return True
        return False

    async def remove_tokens(self, count: float = 1) -> None:
        """Take ``count`` tokens, suspending until enough have regenerated."""

        self._check_count(count)
        waited = 0.0
        while True:
            self._refill()
            if self._tokens >= count:
                self._tokens -= count
                break
            wait_time = (count - self._tokens) / self.refill_rate
            if not waited:
                logger.warning(
                    "Rate limiter %s exhausted, waiting %.3fs for %s token(s)",
                    self.name,
                    wait_time,
                    count,
                )
            started = self._clock()
            await self._sleep(wait_time)
            waited += max(self._clock() - started, 0.0)

        self._stats.total_requests += 1
        if waited:
            self._stats.total_waits += 1
            self._stats.total_wait_time += waited
            self._stats.max_wait_time = max(self._stats.max_wait_time, waited)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "available_tokens": round(self.available_tokens, 3),
            "max_burst": self.max_burst,
            "tokens_per_interval": self.tokens_per_interval,
            "interval": self.interval,
            "total_requests": self._stats.total_requests,
            "total_waits": self._stats.total_waits,
            "total_wait_time": round(self._stats.total_wait_time, 3),
            "max_wait_time": round(self._stats.max_wait_time, 3),
            "average_wait_time": round(self._stats.average_wait_time, 3),
        }

    def reset(self) -> None:
        self._tokens = float(self.max_burst)
        self._last_refill = self._clock()
        self._stats = RateLimiterStats()


TOOL_EXECUTION_BUCKET = "tool_execution"


class RateLimiterRegistry:
    """Named, independent buckets shared by every agent run in the process."""

    def __init__(self) -> None:
        self._limiters: Dict[str, RateLimiter] = {}

    def register(self, name: str, tokens_per_interval: float, interval: float = 1.0, **kwargs: Any) -> RateLimiter:
        limiter = RateLimiter(tokens_per_interval, interval, name=name, **kwargs)
        self._limiters[name] = limiter
        return limiter

    def get(self, name: str) -> RateLimiter:
        try:
            return self._limiters[name]
        except KeyError:
            raise KeyError(f"No rate limiter registered under '{name}'") from None

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: limiter.get_stats() for name, limiter in self._limiters.items()}

    def reset(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()

    @classmethod
    def from_settings(cls, settings) -> "RateLimiterRegistry":
        registry = cls()
        for provider in Provider:
            # Groq's free tier allows 30 requests per minute
            per_minute = 30 if provider == Provider.GROQ else settings.llm_requests_per_minute
            registry.register(
                provider.value,
                per_minute,
                60.0,
                max_burst=min(settings.llm_max_burst, per_minute),
            )
        registry.register(
            TOOL_EXECUTION_BUCKET,
            settings.tool_calls_per_second,
            1.0,
            max_burst=settings.tool_max_burst,
        )
        return registry
