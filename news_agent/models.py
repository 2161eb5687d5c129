"""Runtime records flowing through the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from .config import Source
    from .engine.analyzer import AnalysisResult


class ReadStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"


class AnalysisStatus(str, Enum):
    """Enrichment lifecycle, independent of :class:`ReadStatus`."""

    UNPROCESSED = "unprocessed"
    PENDING = "pending"
    COMPLETED = "completed"


class Phase(str, Enum):
    FETCH = "fetch"
    EXTRACT = "extract"
    ANALYZE = "analyze"
    DONE = "done"


@dataclass(slots=True)
class CandidateItem:
    """One feed entry as parsed; never stored directly."""

    title: str
    link: str
    published_at: datetime


@dataclass(slots=True)
class StoredItem:
    """Row shape of the ``items`` table."""

    title: str
    link: str
    source_name: str
    published_at: datetime | None = None
    id: int | None = None
    summary: str | None = None
    entities: dict[str, Any] | None = None
    topics: list[str] | None = None
    content_type: str | None = None
    raw_content: str | None = None
    read_status: ReadStatus = ReadStatus.UNREAD
    analysis_status: AnalysisStatus = AnalysisStatus.UNPROCESSED
    story_group_id: str | None = None

    @classmethod
    def from_candidate(cls, item: CandidateItem, source_name: str) -> "StoredItem":
        return cls(
            title=item.title,
            link=item.link,
            source_name=source_name,
            published_at=item.published_at,
        )

    def apply_analysis(self, result: "AnalysisResult") -> None:
        self.summary = result.summary
        self.entities = result.entities
        self.topics = result.topics
        self.content_type = result.content_type
        self.story_group_id = result.story_group_id
        self.analysis_status = AnalysisStatus.COMPLETED


@dataclass(slots=True)
class ProgressEvent:
    """Progress notification for one source; ordered only within that source."""

    source_name: str
    phase: Phase
    current: int = 0
    total: int = 0
    item_title: str | None = None
    error: BaseException | None = None


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(slots=True)
class Outcome:
    source: "Source"
    added: int = 0
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class SourceFailure:
    source_name: str
    error: BaseException

    def __str__(self) -> str:
        return f"source {self.source_name}: {self.error}"


@dataclass(slots=True)
class RunSummary:
    total_added: int = 0
    total_sources: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[SourceFailure] = field(default_factory=list)
    outcomes: list[Outcome] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: list[Outcome]) -> "RunSummary":
        summary = cls(total_sources=len(outcomes), outcomes=list(outcomes))
        for outcome in outcomes:
            summary.total_added += outcome.added
            if outcome.error is None:
                summary.success_count += 1
            else:
                summary.error_count += 1
                summary.errors.append(SourceFailure(outcome.source.name, outcome.error))
        return summary


__all__ = [
    "AnalysisStatus",
    "CandidateItem",
    "Outcome",
    "Phase",
    "ProgressEvent",
    "ProgressSink",
    "ReadStatus",
    "RunSummary",
    "SourceFailure",
    "StoredItem",
]
