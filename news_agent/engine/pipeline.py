"""Per-source ingestion: fetch, dedup, optional enrichment, persist."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from ..config import RetryPolicy, Source
from ..errors import AppError, DuplicateLinkError, RunCancelled, find
from ..infra.storage import ItemStore
from ..logging_conf import log_error, log_retry, source_logger
from ..models import (
    AnalysisStatus,
    CandidateItem,
    Phase,
    ProgressEvent,
    ProgressSink,
    StoredItem,
)
from .analyzer import Analyzer
from .context import RunContext
from .dedup import DeduplicationGate
from .extractor import ContentExtractor
from .feed_reader import FeedReader, read_source
from .retry import retry_call


def _discard(_event: ProgressEvent) -> None:
    return


@dataclass(slots=True)
class PipelineDeps:
    """Collaborators and limits shared by every source of a run."""

    reader: FeedReader
    store: ItemStore
    policy: RetryPolicy
    extractor: ContentExtractor | None = None
    analyzer: Analyzer | None = None
    network_timeout: float = 8.0
    fetch_limit: int = 0
    storage_policy: RetryPolicy | None = None


class SourcePipeline:
    """Run the ingestion state machine for one source at a time.

    Items of a source are handled strictly in order. Enrichment only runs
    when both an extractor and an analyzer are configured, and its failures
    downgrade the item's ``analysis_status`` instead of failing it.
    """

    def __init__(self, deps: PipelineDeps) -> None:
        self.deps = deps
        self.dedup = DeduplicationGate(deps.store, deps.storage_policy or deps.policy)

    @property
    def enrichment_enabled(self) -> bool:
        return self.deps.extractor is not None and self.deps.analyzer is not None

    def run(
        self,
        source: Source,
        ctx: RunContext,
        progress: ProgressSink | None = None,
    ) -> tuple[int, BaseException | None]:
        """Process ``source`` and return ``(added, error)``."""

        emit = progress or _discard
        logger = source_logger(source.name)
        emit(ProgressEvent(source.name, Phase.FETCH))
        try:
            items = read_source(
                self.deps.reader,
                source,
                self.deps.policy,
                ctx,
                network_timeout=self.deps.network_timeout,
                limit=self.deps.fetch_limit,
                logger=logger,
            )
        except Exception as exc:  # noqa: BLE001
            emit(ProgressEvent(source.name, Phase.FETCH, error=exc))
            emit(ProgressEvent(source.name, Phase.DONE, error=exc))
            return 0, exc

        total = len(items)
        added = 0
        for index, item in enumerate(items, start=1):
            emit(
                ProgressEvent(
                    source.name, Phase.EXTRACT, current=index, total=total, item_title=item.title
                )
            )
            try:
                added += self.process_item(source, item, ctx, emit, index, total, logger)
            except Exception as exc:  # noqa: BLE001
                log_error("store_item", exc, logger)
                emit(ProgressEvent(source.name, Phase.DONE, current=index, total=total, error=exc))
                return added, exc

        logger.info("source_done", added=added, fetched=total)
        emit(ProgressEvent(source.name, Phase.DONE, current=total, total=total))
        return added, None

    def process_item(
        self,
        source: Source,
        item: CandidateItem,
        ctx: RunContext,
        emit: ProgressSink,
        index: int,
        total: int,
        logger: structlog.BoundLogger,
    ) -> int:
        """Return 1 when ``item`` was stored, 0 when it was skipped."""

        ctx.check()
        on_retry = lambda attempt, error: log_retry("check_item", attempt, error, logger)  # noqa: E731
        if not self.dedup.is_new(item.link, ctx, on_retry=on_retry):
            logger.debug("item_skipped", link=item.link)
            return 0

        record = StoredItem.from_candidate(item, source.name)
        extractor, analyzer = self.deps.extractor, self.deps.analyzer
        if extractor is not None and analyzer is not None:
            self._enrich(record, extractor, analyzer, ctx, emit, index, total, logger)
        return self._persist(record, ctx, logger)

    def _enrich(
        self,
        record: StoredItem,
        extractor: ContentExtractor,
        analyzer: Analyzer,
        ctx: RunContext,
        emit: ProgressSink,
        index: int,
        total: int,
        logger: structlog.BoundLogger,
    ) -> None:
        policy = self.deps.policy
        record.analysis_status = AnalysisStatus.PENDING

        try:
            content = retry_call(
                lambda: extractor.extract(record.link, ctx),
                policy,
                ctx,
                f"extract content {record.link}",
                on_retry=lambda attempt, error: log_retry("scrape_article", attempt, error, logger),
            )
        except RunCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("scrape_article_failed", link=record.link, error=str(exc))
            return
        record.raw_content = content

        emit(
            ProgressEvent(
                record.source_name,
                Phase.ANALYZE,
                current=index,
                total=total,
                item_title=record.title,
            )
        )
        try:
            result = retry_call(
                lambda: analyzer.analyze(content, ctx),
                policy,
                ctx,
                "analyze content",
                on_retry=lambda attempt, error: log_retry("ai_analysis", attempt, error, logger),
            )
        except RunCancelled:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("ai_analysis_failed", link=record.link, error=str(exc))
            return
        record.apply_analysis(result)

    def _persist(self, record: StoredItem, ctx: RunContext, logger: structlog.BoundLogger) -> int:
        try:
            retry_call(
                lambda: self.deps.store.insert(record),
                self.deps.storage_policy or self.deps.policy,
                ctx,
                "create item",
                on_retry=lambda attempt, error: log_retry("create_item", attempt, error, logger),
            )
        except AppError as exc:
            if find(exc, DuplicateLinkError) is None:
                raise
            # 另一个并发运行抢先写入了同一链接
            logger.info("insert_conflict_skipped", link=record.link)
            return 0
        logger.debug(
            "item_stored",
            link=record.link,
            analysis_status=record.analysis_status.value,
        )
        return 1


__all__ = ["PipelineDeps", "SourcePipeline"]
