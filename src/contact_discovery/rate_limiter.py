"""Per-user, per-endpoint quota enforcement with store failover."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from threading import Lock
from typing import TypeVar

from .config import DEFAULT_RATE_LIMIT_POLICIES, RateLimitPolicy
from .counter_store import Clock, MemoryCounterStore
from .errors import DiscoveryError, RateLimitError, StoreUnavailableError, ValidationError
from .logging_utils import get_logger
from .models import CounterSnapshot, CounterStore, HealthReport, RateLimitState

T = TypeVar("T")

HEALTH_CHECK_USER = "health_check_test"
KEY_PREFIX = "ai_rate_limit"


class RateLimiter:
    """Fixed-window limiter backed by a distributed store with in-process fallback.

    The distributed store is optional. When it raises ``StoreUnavailableError``
    the limiter flips its failover flag, logs a warning and serves the call
    from the in-process store; callers never see the store failure.
    ``health_check`` restores the distributed store once it answers again.
    """

    def __init__(
        self,
        *,
        primary: CounterStore | None = None,
        fallback: MemoryCounterStore | None = None,
        policies: Mapping[str, RateLimitPolicy] = DEFAULT_RATE_LIMIT_POLICIES,
        clock: Clock = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._primary = primary
        self._fallback = fallback or MemoryCounterStore(clock=clock)
        self._policies = dict(policies)
        self._clock = clock
        self._logger = logger or get_logger()
        self._failover_lock = Lock()
        self._failed_over = primary is None

    @property
    def using_fallback(self) -> bool:
        return self._failed_over

    def policy(self, endpoint_type: str) -> RateLimitPolicy:
        try:
            return self._policies[endpoint_type]
        except KeyError:
            raise ValidationError(f"Unknown rate limiter: {endpoint_type}") from None

    async def check_limit(self, user_id: str, endpoint_type: str, cost: int = 1) -> RateLimitState:
        """Consume ``cost`` points or raise RateLimitError when the quota is spent."""
        policy = self.policy(endpoint_type)
        if cost < 0:
            raise ValidationError("Rate limit cost must be >= 0.")
        key = _counter_key(user_id, endpoint_type)
        snapshot = await self._with_store(
            lambda store: store.consume(
                key,
                cost,
                limit=policy.points,
                window_seconds=policy.window_seconds,
                block_seconds=policy.block_seconds,
            )
        )
        now = self._clock()
        if snapshot.consumed > policy.points:
            ms_before_next = snapshot.ms_before_next or policy.window_seconds * 1000
            raise RateLimitError(
                limit=policy.points,
                remaining=0,
                reset_time=now + ms_before_next / 1000,
                retry_after_seconds=math.ceil(ms_before_next / 1000),
            )
        return self._state(user_id, endpoint_type, policy, snapshot, now)

    async def get_status(self, user_id: str, endpoint_type: str) -> RateLimitState:
        """Return remaining quota without consuming points."""
        policy = self.policy(endpoint_type)
        key = _counter_key(user_id, endpoint_type)
        snapshot = await self._with_store(lambda store: store.get(key))
        now = self._clock()
        if snapshot is None:
            return RateLimitState(
                user_id=user_id,
                endpoint_type=endpoint_type,
                limit=policy.points,
                remaining=policy.points,
                window_reset_at=now,
            )
        return self._state(user_id, endpoint_type, policy, snapshot, now)

    async def reset_user(self, user_id: str, endpoint_type: str | None = None) -> None:
        """Clear a user's counters and blocks immediately."""
        endpoint_types = [endpoint_type] if endpoint_type else list(self._policies)
        for name in endpoint_types:
            self.policy(name)
            key = _counter_key(user_id, name)
            await self._with_store(lambda store: store.delete(key))
        self._logger.info("Rate limits reset for user %s (%s).", user_id, ", ".join(endpoint_types))

    async def is_rate_limited(self, user_id: str, endpoint_type: str) -> bool:
        try:
            await self.check_limit(user_id, endpoint_type, 0)
        except RateLimitError:
            return True
        return False

    async def health_check(self) -> HealthReport:
        """Probe with a zero-cost consumption and report backend health."""
        started = time.perf_counter()
        if self._failed_over and self._primary is not None and await self._primary.ping():
            with self._failover_lock:
                self._failed_over = False
            self._logger.info("Counter store reachable again, restoring distributed rate limiting.")
        try:
            await self.check_limit(HEALTH_CHECK_USER, "health", 0)
        except DiscoveryError as exc:
            self._logger.error("Rate limiter health probe failed: %s", exc)
            return HealthReport(
                status="unhealthy",
                distributed=False,
                latency_ms=_elapsed_ms(started),
            )
        distributed = not self._failed_over
        return HealthReport(
            status="healthy" if distributed else "degraded",
            distributed=distributed,
            latency_ms=_elapsed_ms(started),
        )

    async def close(self) -> None:
        if self._primary is not None:
            await self._primary.close()
        await self._fallback.close()

    async def _with_store(self, operation: Callable[[CounterStore], Awaitable[T]]) -> T:
        primary = None if self._failed_over else self._primary
        if primary is not None:
            try:
                return await operation(primary)
            except StoreUnavailableError as exc:
                self._fail_over(exc)
        return await operation(self._fallback)

    def _fail_over(self, exc: StoreUnavailableError) -> None:
        with self._failover_lock:
            if self._failed_over:
                return
            self._failed_over = True
        self._logger.warning(
            "Counter store unavailable, falling back to in-process rate limiting: %s", exc
        )

    def _state(
        self,
        user_id: str,
        endpoint_type: str,
        policy: RateLimitPolicy,
        snapshot: CounterSnapshot,
        now: float,
    ) -> RateLimitState:
        return RateLimitState(
            user_id=user_id,
            endpoint_type=endpoint_type,
            limit=policy.points,
            remaining=max(policy.points - snapshot.consumed, 0),
            window_reset_at=now + snapshot.ms_before_next / 1000,
        )


def _counter_key(user_id: str, endpoint_type: str) -> str:
    return f"{KEY_PREFIX}:{endpoint_type}:user:{user_id}"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
