"""Retry policy values and an outcome-returning retry helper."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempts with capped exponential backoff and a per-attempt timeout."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 5.0
    attempt_timeout: float = 30.0

    def backoff(self, attempt: int) -> float:
        """Delay after a failed 1-based ``attempt``."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    value: T | None
    error: BaseException | None
    attempts: int

    @property
    def ok(self) -> bool:
        return self.error is None


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: SleepFn = asyncio.sleep,
    logger: logging.Logger | None = None,
    label: str = "call",
) -> RetryOutcome[T]:
    """Run ``operation`` until it succeeds or the policy is exhausted.

    Never raises for failures of ``operation``; the last error is returned in
    the outcome instead. Cancellation of the caller still propagates.
    """
    last_error: BaseException | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            value = await asyncio.wait_for(operation(), timeout=policy.attempt_timeout)
            return RetryOutcome(value=value, error=None, attempts=attempt)
        except asyncio.TimeoutError as exc:
            last_error = TimeoutError(f"{label} timed out after {policy.attempt_timeout}s")
            last_error.__cause__ = exc
        except Exception as exc:
            last_error = exc

        if attempt < policy.max_attempts:
            delay = policy.backoff(attempt)
            if logger is not None:
                logger.warning(
                    "%s attempt %d failed, retrying in %.1fs: %s", label, attempt, delay, last_error
                )
            await sleep(delay)
    return RetryOutcome(value=None, error=last_error, attempts=policy.max_attempts)
