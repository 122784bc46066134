# src/content_guard/services/retry.py
"""Bounded exponential backoff for network-bound operations."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from content_guard.core.errors import (
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_TOO_MANY_REQUESTS,
    ModerationModelError,
    TransientError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]
RandFn = Callable[[float, float], float]


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Values are clamped on construction: at least one attempt, non-negative
    delay, a multiplier of at least 1 and a jitter fraction within [0, 1].
    """

    max_attempts: int = 3
    initial_delay: float = 0.6
    multiplier: float = 2.0
    jitter_fraction: float = 0.25

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_attempts", max(1, int(self.max_attempts)))
        object.__setattr__(self, "initial_delay", max(0.0, float(self.initial_delay)))
        object.__setattr__(self, "multiplier", max(1.0, float(self.multiplier)))
        object.__setattr__(
            self, "jitter_fraction", max(0.0, min(1.0, float(self.jitter_fraction)))
        )

    @classmethod
    def from_settings(cls, config: Any) -> RetryPolicy:
        return cls(
            max_attempts=config.retry_max_attempts,
            initial_delay=config.retry_initial_delay_seconds,
            multiplier=config.retry_multiplier,
            jitter_fraction=config.retry_jitter_fraction,
        )

    def base_delay(self, attempt: int) -> float:
        """Return the un-jittered delay after the given failed attempt (1-based)."""
        return self.initial_delay * self.multiplier ** (attempt - 1)

    def delay_for(self, attempt: int, rand: RandFn = random.uniform) -> float:
        jitter = rand(-self.jitter_fraction, self.jitter_fraction)
        return max(0.0, self.base_delay(attempt) * (1.0 + jitter))

    def max_total_delay(self) -> float:
        """Upper bound on the time spent sleeping across all retries."""
        return sum(
            self.base_delay(attempt) * (1.0 + self.jitter_fraction)
            for attempt in range(1, self.max_attempts)
        )


def is_transient(exc: BaseException) -> bool:
    """Return True if the error is expected to resolve on retry."""
    if isinstance(exc, TransientError):
        return True
    if isinstance(exc, ModerationModelError):
        return exc.is_transient
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
        return (
            status_code >= HTTP_INTERNAL_SERVER_ERROR
            or status_code == HTTP_TOO_MANY_REQUESTS
        )
    if isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError)):
        return True
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    should_retry: Callable[[BaseException], bool] = is_transient,
    sleep: SleepFn = asyncio.sleep,
    rand: RandFn = random.uniform,
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, fails permanently, or attempts run out.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Backoff configuration. Defaults to ``RetryPolicy()``.
        should_retry: Classifier deciding whether an error is worth retrying.
        sleep: Awaitable sleep used between attempts.
        rand: Uniform random source used for jitter.
        description: Label used in log messages.

    Returns:
        The operation's result.

    Raises:
        The last error raised by the operation.
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not should_retry(exc):
                if attempt > 1:
                    logger.warning(
                        "%s failed after %d attempt(s): %s", description, attempt, exc
                    )
                raise
            delay = policy.delay_for(attempt, rand)
            logger.info(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                description,
                attempt,
                policy.max_attempts,
                delay,
                exc,
            )
            await sleep(delay)
