import asyncio
import logging

from contact_discovery.retry import RetryPolicy, call_with_retry


def test_backoff_doubles_and_caps() -> None:
    policy = RetryPolicy()
    assert [policy.backoff(attempt) for attempt in range(1, 5)] == [1.0, 2.0, 4.0, 5.0]


def test_returns_value_after_transient_failures() -> None:
    sleeps: list[float] = []
    calls = {"count": 0}

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise ConnectionError("temporary")
        return "ok"

    outcome = asyncio.run(
        call_with_retry(flaky, RetryPolicy(), sleep=fake_sleep, logger=logging.getLogger("test"))
    )
    assert outcome.ok is True
    assert outcome.value == "ok"
    assert outcome.attempts == 3
    assert sleeps == [1.0, 2.0]


def test_exhausted_policy_returns_last_error_without_raising() -> None:
    async def fake_sleep(_seconds: float) -> None:
        return None

    async def always_fails() -> str:
        raise ValueError("nope")

    outcome = asyncio.run(call_with_retry(always_fails, RetryPolicy(max_attempts=2), sleep=fake_sleep))
    assert outcome.ok is False
    assert isinstance(outcome.error, ValueError)
    assert outcome.attempts == 2


def test_attempt_timeout_counts_as_failure() -> None:
    async def fake_sleep(_seconds: float) -> None:
        return None

    async def hangs() -> str:
        await asyncio.sleep(5)
        return "late"

    policy = RetryPolicy(max_attempts=1, attempt_timeout=0.01)
    outcome = asyncio.run(call_with_retry(hangs, policy, sleep=fake_sleep, label="slow call"))
    assert isinstance(outcome.error, TimeoutError)
    assert "slow call timed out" in str(outcome.error)
