"""Bounded worker pool running one pipeline per source."""

from __future__ import annotations

import os
import queue
import threading
from typing import Callable, Sequence, cast

from ..config import Source
from ..logging_conf import get_logger
from ..models import Outcome, ProgressSink
from .context import RunContext

SourceProcessor = Callable[[Source, RunContext, ProgressSink], tuple[int, BaseException | None]]


def resolve_worker_count(workers: int, source_count: int | None = None) -> int:
    """``workers <= 0`` means one worker per CPU; never more workers than sources."""

    count = workers if workers > 0 else (os.cpu_count() or 1)
    if source_count is not None and source_count > 0:
        count = min(count, source_count)
    return max(1, count)


class WorkerPool:
    """Fixed set of worker threads draining a pre-filled index queue.

    Each source index is handed out exactly once; outcomes land in a list slot
    owned by that index, so no lock guards the results. A ``KeyboardInterrupt``
    while waiting cancels ``ctx`` and lets the workers wind down before it is
    re-raised, so nothing emits progress after the caller unwinds.
    """

    def __init__(self, workers: int = 0, thread_name_prefix: str = "news-agent") -> None:
        self.workers = workers
        self.thread_name_prefix = thread_name_prefix
        self.logger = get_logger("worker_pool")

    def map(
        self,
        sources: Sequence[Source],
        process: SourceProcessor,
        progress: ProgressSink,
        ctx: RunContext,
    ) -> list[Outcome]:
        if not sources:
            return []
        indices: queue.Queue[int] = queue.Queue(maxsize=len(sources))
        for index in range(len(sources)):
            indices.put_nowait(index)
        results: list[Outcome | None] = [None] * len(sources)

        def worker() -> None:
            while True:
                try:
                    index = indices.get_nowait()
                except queue.Empty:
                    return
                source = sources[index]
                try:
                    added, error = process(source, ctx, progress)
                except BaseException as exc:  # noqa: BLE001
                    # 单个来源的任何异常都记录为该来源的结果，工作线程继续取下一个
                    self.logger.error("source_crashed", source=source.name, error=str(exc))
                    added, error = 0, exc
                results[index] = Outcome(source=source, added=added, error=error)

        count = resolve_worker_count(self.workers, len(sources))
        self.logger.debug("worker_pool_start", workers=count, sources=len(sources))
        threads = [
            threading.Thread(target=worker, name=f"{self.thread_name_prefix}-{n}", daemon=True)
            for n in range(count)
        ]
        for thread in threads:
            thread.start()
        try:
            self._join(threads)
        except KeyboardInterrupt:
            ctx.cancel()
            self.logger.warning("worker_pool_interrupted", workers=count)
            self._join(threads)
            raise
        missing = [sources[index].name for index, outcome in enumerate(results) if outcome is None]
        if missing:
            raise RuntimeError(f"sources left without an outcome: {', '.join(missing)}")
        return cast("list[Outcome]", results)

    def _join(self, threads: Sequence[threading.Thread]) -> None:
        for thread in threads:
            thread.join()


def process_sources_concurrently(
    sources: Sequence[Source],
    workers: int,
    process: SourceProcessor,
    progress: ProgressSink,
    ctx: RunContext,
) -> list[Outcome]:
    """Run ``process`` for every source on at most ``workers`` threads.

    Outcomes are returned in the order of ``sources``.
    """

    return WorkerPool(workers).map(sources, process, progress, ctx)


__all__ = ["SourceProcessor", "WorkerPool", "process_sources_concurrently", "resolve_worker_count"]
