"""Counter store backends used by the rate limiter."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from threading import Lock
from typing import Any

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from .errors import StoreUnavailableError
from .models import CounterSnapshot

Clock = Callable[[], float]

# INCRBY and expiry handling run server side so concurrent consumers on the
# same key never interleave between the read and the write.
CONSUME_SCRIPT = """
local points = tonumber(ARGV[1])
local window_ms = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local block_ms = tonumber(ARGV[4])
local consumed = redis.call('INCRBY', KEYS[1], points)
local ttl = redis.call('PTTL', KEYS[1])
if ttl < 0 then
  redis.call('PEXPIRE', KEYS[1], window_ms)
  ttl = window_ms
end
if points > 0 and block_ms > 0 and consumed > limit and consumed - points <= limit then
  redis.call('PEXPIRE', KEYS[1], block_ms)
  ttl = block_ms
end
return {consumed, ttl}
"""


class MemoryCounterStore:
    """In-process counters with fixed windows."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}
        self._lock = Lock()

    async def consume(
        self, key: str, points: int, *, limit: int, window_seconds: int, block_seconds: int
    ) -> CounterSnapshot:
        now = self._clock()
        with self._lock:
            consumed, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                consumed, expires_at = 0, now + window_seconds
            consumed += points
            first_overflow = consumed > limit and consumed - points <= limit
            if points > 0 and block_seconds > 0 and first_overflow:
                expires_at = now + block_seconds
            self._counters[key] = (consumed, expires_at)
        return CounterSnapshot(consumed=consumed, ms_before_next=_ms_until(expires_at, now))

    async def get(self, key: str) -> CounterSnapshot | None:
        now = self._clock()
        with self._lock:
            entry = self._counters.get(key)
            if entry is None:
                return None
            consumed, expires_at = entry
            if expires_at <= now:
                del self._counters[key]
                return None
        return CounterSnapshot(consumed=consumed, ms_before_next=_ms_until(expires_at, now))

    async def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        with self._lock:
            self._counters.clear()


class RedisCounterStore:
    """Shared counters in Redis, consumed through one Lua script."""

    def __init__(self, client: Any, *, logger: logging.Logger) -> None:
        self._client = client
        self._logger = logger
        self._consume_script = client.register_script(CONSUME_SCRIPT)

    async def consume(
        self, key: str, points: int, *, limit: int, window_seconds: int, block_seconds: int
    ) -> CounterSnapshot:
        try:
            consumed, ttl_ms = await self._consume_script(
                keys=[key],
                args=[points, window_seconds * 1000, limit, block_seconds * 1000],
            )
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis consume failed for {key}: {exc}") from exc
        return CounterSnapshot(consumed=int(consumed), ms_before_next=max(int(ttl_ms), 0))

    async def get(self, key: str) -> CounterSnapshot | None:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.get(key)
                pipe.pttl(key)
                raw, ttl_ms = await pipe.execute()
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis read failed for {key}: {exc}") from exc
        if raw is None:
            return None
        return CounterSnapshot(consumed=int(raw), ms_before_next=max(int(ttl_ms), 0))

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except (RedisError, OSError) as exc:
            raise StoreUnavailableError(f"Redis delete failed for {key}: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            self._logger.debug("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as exc:
            self._logger.debug("Redis close failed: %s", exc)


def _ms_until(expires_at: float, now: float) -> int:
    return max(int(math.ceil((expires_at - now) * 1000)), 0)


def build_counter_store(
    redis_url: str | None, *, logger: logging.Logger, socket_timeout: float = 2.0
) -> RedisCounterStore | None:
    """Return the distributed store when a URL is configured, else None."""
    if not redis_url:
        logger.warning("No Redis URL configured, rate limiting runs in-process only.")
        return None
    client = redis_asyncio.from_url(
        redis_url,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    logger.info("Rate limiter using Redis counter store.")
    return RedisCounterStore(client, logger=logger)
