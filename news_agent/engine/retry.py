"""Bounded exponential-backoff executor gated by error classification."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from ..config import RetryPolicy
from ..errors import AppError, RunCancelled, wrap
from ..logging_conf import log_retry
from .context import RunContext

T = TypeVar("T")

RetryCallback = Callable[[int, AppError], None]


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    ctx: RunContext | None,
    operation: str,
    on_retry: RetryCallback | None = None,
) -> T:
    """Run ``fn`` until it succeeds or the policy gives up.

    Each failure is wrapped into an :class:`AppError` named after
    ``operation``. Retrying stops at the first of: success, a non-retryable
    error, ``max_attempts`` calls, or a wait that would overrun
    ``max_elapsed``. The last wrapped error is raised as-is. Cancellation of
    ``ctx`` is never retried and surfaces as :class:`RunCancelled`.
    """

    ctx = ctx or RunContext()
    callback = on_retry or (lambda attempt, error: log_retry(operation, attempt, error))
    started = time.monotonic()
    delay = policy.base_delay
    attempt = 0
    while True:
        ctx.check()
        attempt += 1
        try:
            return fn()
        except RunCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            if ctx.cancelled:
                raise ctx.error() from exc
            error = wrap(operation, exc)

        if attempt >= policy.max_attempts or not error.retryable:
            raise error
        wait = min(delay, policy.max_delay)
        if policy.max_elapsed > 0 and (time.monotonic() - started) + wait > policy.max_elapsed:
            raise error
        callback(attempt, error)
        ctx.wait(wait)
        delay *= policy.multiplier


__all__ = ["RetryCallback", "retry_call"]
