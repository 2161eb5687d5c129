from __future__ import annotations

from structlog.testing import capture_logs

from news_agent.errors import FeedStatusError, wrap
from news_agent.logging_conf import get_logger, log_error, log_retry


def test_log_error_includes_classification() -> None:
    with capture_logs() as logs:
        log_error("fetch_rss", wrap("fetch rss https://a.test/rss", FeedStatusError(503)))

    assert logs[0]["event"] == "fetch_rss"
    assert logs[0]["log_level"] == "error"
    assert logs[0]["kind"] == "network"
    assert logs[0]["retryable"] is True


def test_log_retry_records_attempt() -> None:
    with capture_logs() as logs:
        log_retry("create_item", 2, RuntimeError("database is locked"), logger=get_logger("pipeline"))

    entry = logs[0]
    assert entry["event"] == "retry"
    assert entry["operation"] == "create_item"
    assert entry["attempt"] == 2
    assert entry["component"] == "pipeline"
    assert "kind" not in entry
