from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from news_agent.engine import HttpFeedReader, RunContext, parse_feed, read_source
from news_agent.errors import AppError, ErrorKind, FeedParseError, RunCancelled, user_friendly_message

RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example AI News</title>
    <item>
      <title>Older story</title>
      <link>https://news.example.com/older</link>
      <pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Newer story</title>
      <link>https://news.example.com/newer</link>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Undated story</title>
      <link>https://news.example.com/undated</link>
    </item>
    <item>
      <title>Story without link</title>
    </item>
  </channel>
</rss>
"""

FEED_URL = "https://feeds.example.com/rss"


def _reader(handler) -> HttpFeedReader:
    return HttpFeedReader(network_timeout=5, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_parse_feed_assigns_now_to_undated_entries() -> None:
    now = datetime(2025, 1, 1, tzinfo=timezone.utc)
    items = parse_feed(RSS, now=now)

    assert [item.link for item in items] == [
        "https://news.example.com/older",
        "https://news.example.com/newer",
        "https://news.example.com/undated",
    ]
    assert items[0].published_at == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
    assert items[2].published_at == now


def test_parse_feed_rejects_garbage() -> None:
    with pytest.raises(FeedParseError):
        parse_feed(b"definitely not a feed <<<")


def test_read_source_sorts_newest_first_and_limits(source_builder, fast_policy) -> None:
    reader = _reader(lambda request: httpx.Response(200, content=RSS))
    source = source_builder("Example", url=FEED_URL)

    items = read_source(reader, source, fast_policy, RunContext(), network_timeout=5, limit=2)

    assert [item.title for item in items] == ["Undated story", "Newer story"]


def test_read_source_retries_server_errors(source_builder, fast_policy) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, content=RSS)

    items = read_source(
        _reader(handler), source_builder("Example", url=FEED_URL), fast_policy, RunContext(), network_timeout=5
    )

    assert len(calls) == 3
    assert len(items) == 3


def test_read_source_does_not_retry_client_errors(source_builder, fast_policy) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(404)

    with pytest.raises(AppError) as excinfo:
        read_source(
            _reader(handler), source_builder("Example", url=FEED_URL), fast_policy, RunContext(), network_timeout=5
        )

    assert len(calls) == 1
    assert str(excinfo.value).startswith(f"fetch rss {FEED_URL}: ")
    assert excinfo.value.kind is ErrorKind.NETWORK


def test_read_source_rejects_invalid_url_without_request(source_builder, fast_policy) -> None:
    calls: list[str] = []
    reader = _reader(lambda request: calls.append("hit") or httpx.Response(200, content=RSS))

    with pytest.raises(AppError) as excinfo:
        read_source(reader, source_builder("Bad", url="ftp://feeds.example.com/rss"), fast_policy, RunContext(), network_timeout=5)

    assert calls == []
    assert "Invalid URL" in user_friendly_message(excinfo.value)


def test_connection_errors_are_classified_as_network(source_builder, fast_policy) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(AppError) as excinfo:
        read_source(
            _reader(handler), source_builder("Down", url=FEED_URL), fast_policy, RunContext(), network_timeout=5
        )
    assert excinfo.value.kind is ErrorKind.NETWORK
    assert excinfo.value.retryable is True


def test_fetch_reports_cancellation_after_response() -> None:
    ctx = RunContext()

    def handler(request: httpx.Request) -> httpx.Response:
        ctx.cancel()
        return httpx.Response(200, content=RSS)

    with pytest.raises(RunCancelled):
        _reader(handler).fetch(FEED_URL, ctx)
