"""Retry with exponential backoff and jitter, built on tenacity."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from ..errors import error_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_JITTER = 0.25
MAX_ALLOWED_ATTEMPTS = 10

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504, 529})
RETRYABLE_ERROR_KINDS = frozenset({"rate_limit_error", "overloaded_error"})
# Discord: missing permissions, unknown message, unknown channel
NON_RETRYABLE_DISCORD_CODES = frozenset({50013, 10008, 10003})

OnRetry = Callable[[int, BaseException, float], Any]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = DEFAULT_JITTER


def _error_kind(exc: BaseException) -> Optional[str]:
    kind = getattr(exc, "type", None)
    if isinstance(kind, str):
        return kind
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("type"), str):
            return error["type"]
        if isinstance(body.get("type"), str):
            return body["type"]
    return None


def is_retryable_error(exc: BaseException) -> bool:
    """Return True for transient failures worth another attempt."""

    if getattr(exc, "code", None) in NON_RETRYABLE_DISCORD_CODES:
        return False
    if isinstance(exc, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    if error_status(exc) in RETRYABLE_STATUS_CODES:
        return True
    return _error_kind(exc) in RETRYABLE_ERROR_KINDS


def calculate_backoff(
    attempt: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    rng: Any = random,
) -> float:
    """Delay before retrying after the 0-indexed ``attempt``.

    The capped exponential delay is spread by +/- ``jitter / 2`` of itself.
    """

    capped = min(max_delay, base_delay * (2**attempt))
    spread = capped * jitter * (rng.random() - 0.5)
    return max(0.0, capped + spread)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    jitter: float = DEFAULT_JITTER,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    on_retry: Optional[OnRetry] = None,
    operation_name: str = "Operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Any = random,
) -> T:
    """Await ``operation`` until it succeeds, fails permanently or attempts run out.

    The last error is re-raised unchanged. ``on_retry(attempt, error, delay)``
    runs before each wait with the 1-indexed number of the upcoming attempt;
    it may be sync or async and its failures are logged, never raised.
    """

    if not 1 <= max_attempts <= MAX_ALLOWED_ATTEMPTS:
        raise ValueError(f"max_attempts must be between 1 and {MAX_ALLOWED_ATTEMPTS}")

    pending: dict = {}

    def _wait(retry_state: RetryCallState) -> float:
        return calculate_backoff(
            retry_state.attempt_number - 1, base_delay, max_delay, jitter, rng
        )

    def _before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        pending["call"] = (retry_state.attempt_number + 1, error, delay)
        logger.warning(
            "%s failed (attempt %d/%d), retrying in %.2fs: %s",
            operation_name,
            retry_state.attempt_number,
            max_attempts,
            delay,
            error,
        )

    async def _sleep(delay: float) -> None:
        call = pending.pop("call", None)
        if on_retry is not None and call is not None:
            try:
                result = on_retry(*call)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("on_retry callback failed for %s", operation_name)
        await sleep(delay)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=_wait,
        retry=retry_if_exception(is_retryable),
        before_sleep=_before_sleep,
        sleep=_sleep,
        reraise=True,
    )
    async def _attempt() -> T:
        return await operation()

    return await retrying(_attempt)


def with_retry(**options: Any) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Decorator form of :func:`retry_with_backoff`."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        merged = {"operation_name": func.__name__, **options}

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await retry_with_backoff(lambda: func(*args, **kwargs), **merged)

        return wrapper

    return decorator
