"""Bounded progress channel forwarding events to a single sink thread."""

from __future__ import annotations

import queue
import threading

import structlog

from ..logging_conf import get_logger
from ..models import ProgressEvent, ProgressSink

_CLOSE = object()


class ProgressChannel:
    """Queue workers publish into; one reader thread hands events to ``sink``.

    ``emit`` blocks while the queue is full, so events are never dropped and a
    slow sink throttles the producers.
    """

    def __init__(
        self,
        sink: ProgressSink,
        capacity: int = 64,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError("progress capacity must be at least 1")
        self.sink = sink
        self.capacity = capacity
        self.logger = logger or get_logger("progress")
        self._queue: queue.Queue[object] = queue.Queue(maxsize=capacity)
        self._reader: threading.Thread | None = None
        self._closed = False

    def start(self) -> "ProgressChannel":
        if self._reader is None:
            self._reader = threading.Thread(target=self._forward, name="news-agent-progress", daemon=True)
            self._reader.start()
        return self

    def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("progress channel is closed")
        self._queue.put(event)

    __call__ = emit

    def close(self) -> None:
        """Stop accepting events, deliver what is queued, then stop the reader."""

        if self._closed:
            return
        self._closed = True
        if self._reader is None:
            return
        self._queue.put(_CLOSE)
        self._reader.join()

    def _forward(self) -> None:
        while True:
            event = self._queue.get()
            if event is _CLOSE:
                return
            try:
                self.sink(event)  # type: ignore[arg-type]
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("progress_sink_failed", error=str(exc))

    def __enter__(self) -> "ProgressChannel":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["ProgressChannel"]
