from __future__ import annotations

import time

import pytest

from news_agent.config import RetryPolicy
from news_agent.engine import RunContext, retry_call
from news_agent.errors import AppError, ErrorKind, InvalidURLError, RunCancelled


class Flaky:
    def __init__(self, failures: int, error_factory=lambda n: ConnectionError(f"connection refused #{n}")) -> None:
        self.failures = failures
        self.error_factory = error_factory
        self.calls = 0
        self.raised: list[BaseException] = []

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            error = self.error_factory(self.calls)
            self.raised.append(error)
            raise error
        return "ok"


def test_succeeds_after_max_attempts_minus_one_failures(fast_policy: RetryPolicy) -> None:
    flaky = Flaky(failures=fast_policy.max_attempts - 1)
    retries: list[int] = []
    started = time.monotonic()

    result = retry_call(flaky, fast_policy, RunContext(), "fetch rss", on_retry=lambda n, e: retries.append(n))

    assert result == "ok"
    assert flaky.calls == fast_policy.max_attempts
    assert retries == [1, 2]
    assert time.monotonic() - started <= fast_policy.max_elapsed


def test_exhaustion_surfaces_last_error(fast_policy: RetryPolicy) -> None:
    flaky = Flaky(failures=10)
    with pytest.raises(AppError) as excinfo:
        retry_call(flaky, fast_policy, RunContext(), "fetch rss https://a.test", on_retry=lambda n, e: None)

    assert flaky.calls == 3
    assert excinfo.value.error is flaky.raised[-1]
    assert excinfo.value.kind is ErrorKind.NETWORK
    assert str(excinfo.value).startswith("fetch rss https://a.test: ")


def test_non_retryable_error_fails_fast(fast_policy: RetryPolicy) -> None:
    flaky = Flaky(failures=10, error_factory=lambda n: InvalidURLError("not-a-url"))
    with pytest.raises(AppError) as excinfo:
        retry_call(flaky, fast_policy, RunContext(), "extract content")
    assert flaky.calls == 1
    assert excinfo.value.retryable is False


def test_single_attempt_policy_calls_once() -> None:
    flaky = Flaky(failures=1)
    with pytest.raises(AppError):
        retry_call(flaky, RetryPolicy(max_attempts=1, base_delay=0, max_delay=0), None, "once")
    assert flaky.calls == 1


def test_elapsed_budget_stops_before_overrunning_wait() -> None:
    policy = RetryPolicy(max_attempts=10, base_delay=0.5, max_delay=1.0, max_elapsed=0.2)
    flaky = Flaky(failures=10)
    started = time.monotonic()
    with pytest.raises(AppError):
        retry_call(flaky, policy, RunContext(), "fetch")
    assert flaky.calls == 1
    assert time.monotonic() - started < 0.5


def test_backoff_wait_is_capped_and_grows(monkeypatch) -> None:
    waits: list[float] = []
    monkeypatch.setattr(RunContext, "wait", lambda self, seconds: waits.append(seconds))
    policy = RetryPolicy(max_attempts=5, base_delay=0.25, max_delay=0.6, multiplier=2.0, max_elapsed=60)
    retry_call(Flaky(failures=4), policy, RunContext(), "fetch", on_retry=lambda n, e: None)
    assert waits == [0.25, 0.5, 0.6, 0.6]


def test_cancellation_during_backoff_is_not_retried() -> None:
    ctx = RunContext()
    flaky = Flaky(failures=10)
    policy = RetryPolicy(max_attempts=5, base_delay=5.0, max_delay=5.0, max_elapsed=60)

    with pytest.raises(RunCancelled):
        retry_call(flaky, policy, ctx, "fetch", on_retry=lambda n, e: ctx.cancel())
    assert flaky.calls == 1


def test_cancelled_context_short_circuits(fast_policy: RetryPolicy) -> None:
    ctx = RunContext()
    ctx.cancel()
    flaky = Flaky(failures=0)
    with pytest.raises(RunCancelled):
        retry_call(flaky, fast_policy, ctx, "fetch")
    assert flaky.calls == 0
