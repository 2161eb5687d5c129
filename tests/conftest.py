"""Shared fixtures: fast retry policies, temporary stores and fake collaborators."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable

import pytest

from news_agent.config import AppConfig, RetryPolicy, Source
from news_agent.engine import AnalysisResult, RunContext
from news_agent.engine.analyzer import story_group_id
from news_agent.infra import SQLiteItemStore, SQLiteManager
from news_agent.models import CandidateItem, ProgressEvent

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeFeedReader:
    """Serve canned items (or raise canned errors) per feed URL.

    A value may also be a callable, invoked on every fetch, to script
    flaky behaviour.
    """

    def __init__(self, feeds: dict[str, Any] | None = None) -> None:
        self.feeds: dict[str, Any] = dict(feeds or {})
        self.calls: list[str] = []
        self._lock = Lock()

    def fetch(self, url: str, ctx: RunContext) -> list[CandidateItem]:
        ctx.check()
        with self._lock:
            self.calls.append(url)
        result = self.feeds[url]
        if callable(result):
            result = result()
        if isinstance(result, BaseException):
            raise result
        return [CandidateItem(item.title, item.link, item.published_at) for item in result]


class FakeExtractor:
    def __init__(self, content: str = "# Article\n\nBody text", error: BaseException | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[str] = []

    def extract(self, link: str, ctx: RunContext) -> str:
        self.calls.append(link)
        if self.error is not None:
            raise self.error
        return f"{self.content} ({link})"


class FakeAnalyzer:
    def __init__(self, error: BaseException | None = None) -> None:
        self.error = error
        self.calls: list[str] = []

    def analyze(self, text: str, ctx: RunContext) -> AnalysisResult:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return AnalysisResult(
            summary="• point one\n• point two",
            entities={"organizations": ["OpenAI"], "products": [], "people": []},
            topics=["LLM"],
            content_type="News Article",
            story_group_id=story_group_id(text),
        )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.001, max_delay=0.005, multiplier=2.0, max_elapsed=5.0)


@pytest.fixture
def make_items() -> Callable[..., list[CandidateItem]]:
    def _builder(prefix: str, count: int, start: datetime = BASE_TIME) -> list[CandidateItem]:
        return [
            CandidateItem(
                title=f"{prefix} story {index}",
                link=f"https://{prefix}.example.com/articles/{index}",
                published_at=start + timedelta(hours=index),
            )
            for index in range(count)
        ]

    return _builder


@pytest.fixture
def source_builder() -> Callable[..., Source]:
    def _builder(name: str = "Example", **overrides: Any) -> Source:
        payload = {"name": name, "url": f"https://{name.lower()}.example.com/rss"}
        payload.update(overrides)
        return Source(**payload)

    return _builder


@pytest.fixture
def sqlite_manager() -> Iterable[SQLiteManager]:
    manager = SQLiteManager(busy_timeout_ms=1000)
    yield manager
    manager.close_all()


@pytest.fixture
def store(tmp_path: Path, sqlite_manager: SQLiteManager) -> SQLiteItemStore:
    return sqlite_manager.open_store(tmp_path / "news.db")


@pytest.fixture
def app_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[..., AppConfig]:
    for name in ("NETWORK_TIMEOUT", "MAX_RETRIES", "BACKOFF_BASE_MS", "BACKOFF_MAX_MS", "LOG_FILE"):
        monkeypatch.delenv(name, raising=False)

    def _builder(sources: list[Source], **overrides: Any) -> AppConfig:
        payload: dict[str, Any] = {
            "dsn": str(tmp_path / "news.db"),
            "sources": [source.model_dump() for source in sources],
            "network_timeout": 5,
            "backoff_base_ms": 1,
            "backoff_max_ms": 5,
            "log_file": str(tmp_path / "agent.log"),
        }
        payload.update(overrides)
        return AppConfig.model_validate(payload)

    return _builder


@pytest.fixture
def recorder() -> Callable[[], tuple[list[ProgressEvent], Callable[[ProgressEvent], None]]]:
    def _make() -> tuple[list[ProgressEvent], Callable[[ProgressEvent], None]]:
        events: list[ProgressEvent] = []
        lock = Lock()

        def sink(event: ProgressEvent) -> None:
            with lock:
                events.append(event)

        return events, sink

    return _make


@pytest.fixture
def fake_reader() -> Callable[..., FakeFeedReader]:
    return FakeFeedReader


@pytest.fixture
def fake_extractor() -> Callable[..., FakeExtractor]:
    return FakeExtractor


@pytest.fixture
def fake_analyzer() -> Callable[..., FakeAnalyzer]:
    return FakeAnalyzer
