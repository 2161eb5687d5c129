"""Engine components orchestrating fetch → dedup → enrich → store."""

from .analyzer import AnalysisResult, Analyzer, GeminiAnalyzer
from .context import RunContext
from .dedup import DeduplicationGate
from .extractor import ContentExtractor, ReaderExtractor
from .feed_reader import FeedReader, HttpFeedReader, parse_feed, read_source
from .pipeline import PipelineDeps, SourcePipeline
from .progress import ProgressChannel
from .retry import retry_call
from .worker_pool import WorkerPool, process_sources_concurrently, resolve_worker_count

__all__ = [
    "AnalysisResult",
    "Analyzer",
    "ContentExtractor",
    "DeduplicationGate",
    "FeedReader",
    "GeminiAnalyzer",
    "HttpFeedReader",
    "PipelineDeps",
    "ProgressChannel",
    "ReaderExtractor",
    "RunContext",
    "SourcePipeline",
    "WorkerPool",
    "parse_feed",
    "process_sources_concurrently",
    "read_source",
    "resolve_worker_count",
    "retry_call",
]
