"""Feed retrieval and parsing for one source."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol
from urllib.parse import urlparse

import feedparser
import httpx
import structlog

from ..config import RetryPolicy, Source
from ..errors import FeedParseError, FeedStatusError, InvalidURLError, RunCancelled, wrap
from ..logging_conf import log_error, log_retry
from ..models import CandidateItem
from .context import RunContext
from .retry import retry_call

DEFAULT_USER_AGENT = "news-agent/0.1 (+https://github.com/news-agent)"


class FeedReader(Protocol):
    """Capability: turn a feed endpoint into candidate items."""

    def fetch(self, url: str, ctx: RunContext) -> list[CandidateItem]:
        ...


def validate_http_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(url)
    return url


def _entry_datetime(entry: feedparser.FeedParserDict) -> datetime | None:
    for key in ("published_parsed", "updated_parsed", "created_parsed"):
        value = entry.get(key)
        if value:
            return datetime(*value[:6], tzinfo=timezone.utc)
    return None


def parse_feed(content: bytes, now: datetime | None = None) -> list[CandidateItem]:
    """Parse RSS/Atom ``content``; undated entries get ``now``."""

    feed = feedparser.parse(content)
    entries = feed.get("entries", [])
    if feed.get("bozo") and not entries:
        reason = feed.get("bozo_exception") or "unrecognised document"
        raise FeedParseError(f"malformed feed: {reason}")
    now = now or datetime.now(timezone.utc)
    items: list[CandidateItem] = []
    for entry in entries:
        link = (entry.get("link") or "").strip()
        if not link:
            continue
        items.append(
            CandidateItem(
                title=(entry.get("title") or "").strip() or link,
                link=link,
                published_at=_entry_datetime(entry) or now,
            )
        )
    return items


class HttpFeedReader:
    """Retrieve feeds with httpx and parse them with feedparser."""

    def __init__(
        self,
        network_timeout: float = 8.0,
        client: httpx.Client | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.network_timeout = network_timeout
        self._owns_client = client is None
        self._client = client or httpx.Client(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )

    def fetch(self, url: str, ctx: RunContext) -> list[CandidateItem]:
        validate_http_url(url)
        ctx.check()
        try:
            response = self._client.get(url, timeout=ctx.bounded_timeout(self.network_timeout))
        except httpx.HTTPError:
            # 截止时间触发的超时优先报告为取消
            ctx.check()
            raise
        ctx.check()
        if not response.is_success:
            raise FeedStatusError(response.status_code, url)
        return parse_feed(response.content)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def read_source(
    reader: FeedReader,
    source: Source,
    policy: RetryPolicy,
    ctx: RunContext,
    *,
    network_timeout: float,
    limit: int = 0,
    logger: structlog.BoundLogger | None = None,
) -> list[CandidateItem]:
    """Fetch ``source`` under the retry policy, newest first, at most ``limit`` items.

    The whole fetch, retries included, shares one ``network_timeout`` budget.
    """

    fetch_ctx = ctx.child(network_timeout)
    operation = f"fetch rss {source.url}"
    try:
        items = retry_call(
            lambda: reader.fetch(source.url, fetch_ctx),
            policy,
            fetch_ctx,
            operation,
            on_retry=lambda attempt, error: log_retry("fetch_rss", attempt, error, logger),
        )
    except RunCancelled as exc:
        if ctx.cancelled:
            log_error("fetch_rss", exc, logger)
            raise
        # only the fetch budget ran out; report it against the fetch itself
        error = wrap(operation, exc)
        log_error("fetch_rss", error, logger)
        raise error from exc
    except Exception as exc:
        log_error("fetch_rss", exc, logger)
        raise
    items.sort(key=lambda item: item.published_at, reverse=True)
    if limit > 0:
        items = items[:limit]
    if logger is not None:
        logger.info("fetch_rss", fetched=len(items), url=source.url)
    return items


__all__ = ["FeedReader", "HttpFeedReader", "parse_feed", "read_source", "validate_http_url"]
