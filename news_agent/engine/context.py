"""Cancellable run context shared by every call made during one run."""

from __future__ import annotations

import threading
import time

from ..errors import RunCancelled

# 等待时的轮询粒度，保证取消信号能及时穿透子上下文
_WAIT_SLICE = 0.05


class RunContext:
    """Cancellation flag plus optional deadline, with derived child contexts.

    A child is cancelled whenever its parent is, and its deadline never
    extends beyond the parent's.
    """

    def __init__(self, timeout: float | None = None, parent: "RunContext | None" = None) -> None:
        self._event = threading.Event()
        self._parent = parent
        deadline = time.monotonic() + timeout if timeout is not None and timeout > 0 else None
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline

    def child(self, timeout: float | None = None) -> "RunContext":
        return RunContext(timeout=timeout, parent=self)

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_passed(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.deadline_passed:
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def bounded_timeout(self, timeout: float) -> float:
        """Clamp a per-request ``timeout`` to what is left of the deadline."""

        remaining = self.remaining()
        if remaining is None:
            return timeout
        return max(0.001, min(timeout, remaining))

    def error(self) -> RunCancelled:
        if self.deadline_passed and not self._explicitly_cancelled():
            return RunCancelled("context deadline exceeded", deadline=True)
        return RunCancelled("context cancelled")

    def _explicitly_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent._explicitly_cancelled()

    def check(self) -> None:
        if self.cancelled:
            raise self.error()

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless the context is cancelled first."""

        end = time.monotonic() + max(0.0, seconds)
        while True:
            self.check()
            left = end - time.monotonic()
            if left <= 0:
                return
            self._event.wait(min(left, _WAIT_SLICE))


__all__ = ["RunContext"]
