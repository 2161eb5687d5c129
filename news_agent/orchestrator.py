"""Run orchestrator wiring feed reading, dedup, enrichment, storage and progress."""

from __future__ import annotations

from typing import Sequence

from .config import AppConfig, Source
from .engine import (
    Analyzer,
    ContentExtractor,
    FeedReader,
    GeminiAnalyzer,
    HttpFeedReader,
    PipelineDeps,
    ProgressChannel,
    ReaderExtractor,
    RunContext,
    SourcePipeline,
    process_sources_concurrently,
)
from .errors import MissingAPIKeyError
from .infra import ItemStore, SQLiteManager
from .logging_conf import get_logger
from .models import Outcome, ProgressEvent, ProgressSink, RunSummary


def _discard(_event: ProgressEvent) -> None:
    return


class Orchestrator:
    """Central coordinator for one ingestion run over the configured sources."""

    def __init__(
        self,
        config: AppConfig,
        store: ItemStore,
        reader: FeedReader | None = None,
        extractor: ContentExtractor | None = None,
        analyzer: Analyzer | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.reader = reader or HttpFeedReader(network_timeout=config.network_timeout)
        self.extractor = extractor
        self.analyzer = analyzer
        self.logger = get_logger("orchestrator")

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        storage: SQLiteManager,
        enable_ai: bool = True,
        reader: FeedReader | None = None,
    ) -> "Orchestrator":
        """Build the production wiring; enrichment needs both services and an API key."""

        logger = get_logger("orchestrator")
        store = storage.open_store(config.dsn)
        extractor: ContentExtractor | None = None
        analyzer: Analyzer | None = None
        if enable_ai and config.extractor.enabled and config.analyzer.enabled:
            try:
                analyzer = GeminiAnalyzer(config.analyzer)
            except MissingAPIKeyError as exc:
                # 缺少密钥时仍然抓取，只是不做分析
                logger.warning("ai_analysis_disabled", reason=str(exc))
            else:
                extractor = ReaderExtractor(config.extractor)
        return cls(config, store, reader=reader, extractor=extractor, analyzer=analyzer)

    def build_pipeline(self, fetch_limit: int | None = None, enrich: bool = True) -> SourcePipeline:
        deps = PipelineDeps(
            reader=self.reader,
            store=self.store,
            policy=self.config.retry_policy(),
            storage_policy=self.config.storage_retry_policy(),
            extractor=self.extractor if enrich else None,
            analyzer=self.analyzer if enrich else None,
            network_timeout=self.config.network_timeout,
            fetch_limit=self.config.fetch_limit if fetch_limit is None else fetch_limit,
        )
        return SourcePipeline(deps)

    def run_source(
        self,
        source_name: str,
        ctx: RunContext | None = None,
        sink: ProgressSink | None = None,
    ) -> Outcome:
        """Process a single configured source on the calling thread."""

        source = self.config.source(source_name)
        added, error = self.build_pipeline().run(source, ctx or RunContext(), sink)
        return Outcome(source=source, added=added, error=error)

    def run(
        self,
        sources: Sequence[Source] | None = None,
        workers: int | None = None,
        fetch_limit: int | None = None,
        sink: ProgressSink | None = None,
        ctx: RunContext | None = None,
        enrich: bool = True,
    ) -> RunSummary:
        selected = list(self.config.sources if sources is None else sources)
        if not selected:
            self.logger.warning("no_sources_configured")
            return RunSummary()
        ctx = ctx or RunContext()
        pipeline = self.build_pipeline(fetch_limit=fetch_limit, enrich=enrich)
        pool_size = self.config.workers if workers is None else workers
        self.logger.info(
            "run_started",
            sources=len(selected),
            workers=pool_size,
            enrichment=pipeline.enrichment_enabled,
        )
        with ProgressChannel(sink or _discard, capacity=self.config.progress_capacity) as channel:
            try:
                outcomes = process_sources_concurrently(selected, pool_size, pipeline.run, channel, ctx)
            except KeyboardInterrupt:
                # 先取消，再关闭进度通道
                ctx.cancel()
                self.logger.warning("run_interrupted", sources=len(selected))
                raise
        summary = RunSummary.from_outcomes(outcomes)
        self.logger.info(
            "run_finished",
            added=summary.total_added,
            succeeded=summary.success_count,
            failed=summary.error_count,
        )
        return summary

    def close(self) -> None:
        for collaborator in (self.reader, self.extractor, self.analyzer):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()


__all__ = ["Orchestrator"]
