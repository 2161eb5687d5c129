from __future__ import annotations

import httpx
import pytest
from typer.testing import CliRunner

from news_agent.app import AppState, app
from news_agent.config import ConfigRepository
from news_agent.infra import SQLiteManager


@pytest.fixture
def cli_state(monkeypatch, app_config, source_builder, make_items, fake_reader):
    def _install(feeds_factory=None, sources=None):
        sources = sources or [source_builder("Alpha"), source_builder("Beta")]
        feeds = feeds_factory(sources) if feeds_factory else {
            source.url: make_items(source.name.lower(), 2) for source in sources
        }
        config = app_config(sources)
        calls: list[tuple] = []

        def _build_state(config_path, verbose):
            calls.append((config_path, verbose))
            return AppState(config=config, storage=SQLiteManager(), reader=fake_reader(feeds))

        monkeypatch.setattr("news_agent.app.build_state", _build_state)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        return calls

    return _install


def test_fetch_reports_added_articles(cli_state) -> None:
    calls = cli_state()
    runner = CliRunner()

    result = runner.invoke(app, ["--verbose", "fetch", "--quiet", "--no-ai", "--config", "cfg.yaml"])

    assert result.exit_code == 0, result.output
    assert "Added 4 new articles from 2 sources" in result.output
    assert calls[0][1] is True
    assert str(calls[0][0]) == "cfg.yaml"


def test_fetch_second_run_is_idempotent(cli_state) -> None:
    cli_state()
    runner = CliRunner()
    runner.invoke(app, ["fetch", "--quiet", "--no-ai"])
    result = runner.invoke(app, ["fetch", "--quiet", "--no-ai"])
    assert "Added 0 new articles from 2 sources" in result.output


def test_fetch_exits_non_zero_on_source_errors(cli_state, make_items) -> None:
    cli_state(
        feeds_factory=lambda sources: {
            sources[0].url: make_items("alpha", 1),
            sources[1].url: httpx.ConnectError("connection refused"),
        }
    )
    result = CliRunner().invoke(app, ["fetch", "--quiet", "--workers", "2"])

    assert result.exit_code == 1
    assert "Added 1 new articles from 2 sources" in result.output
    assert "1 errors occurred:" in result.output
    assert "source Beta" in result.output
    assert "Network connection failed" in result.output


def test_fetch_rejects_negative_limit(cli_state) -> None:
    cli_state()
    result = CliRunner().invoke(app, ["fetch", "--limit", "-1"])
    assert result.exit_code != 0


def test_sources_lists_configuration(cli_state) -> None:
    cli_state()
    result = CliRunner().invoke(app, ["sources"])
    assert result.exit_code == 0, result.output
    assert "Alpha" in result.output and "Beta" in result.output


def test_items_and_mark_read(cli_state) -> None:
    cli_state(sources=None)
    runner = CliRunner()
    runner.invoke(app, ["fetch", "--quiet", "--no-ai", "--limit", "1"])

    listed = runner.invoke(app, ["items", "--unread"])
    assert listed.exit_code == 0, listed.output
    assert "alpha story 1" in listed.output

    marked = runner.invoke(app, ["mark-read", "1"])
    assert marked.exit_code == 0, marked.output
    assert "marked as read" in marked.output
    missing = runner.invoke(app, ["mark-read", "999"])
    assert missing.exit_code == 1


def test_missing_config_is_reported(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("NEWS_AGENT_CONFIG", raising=False)
    result = CliRunner().invoke(app, ["sources"])
    assert result.exit_code == 1


def test_add_source_writes_config_file(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("dsn: ./news.db\nsources:\n  - name: Alpha\n    url: https://alpha.example.com/rss\n", encoding="utf-8")
    runner = CliRunner()

    result = runner.invoke(
        app, ["add-source", "Beta", "https://beta.example.com/rss", "--priority", "2", "--config", str(path)]
    )

    assert result.exit_code == 0, result.output
    assert "Source `Beta` added" in result.output
    config = ConfigRepository().load(path)
    assert [source.name for source in config.sources] == ["Alpha", "Beta"]
    assert config.source("Beta").priority == 2


def test_add_source_rejects_bad_input(tmp_path) -> None:
    path = tmp_path / "config.yaml"
    original = "sources:\n  - name: Alpha\n    url: https://alpha.example.com/rss\n"
    path.write_text(original, encoding="utf-8")
    runner = CliRunner()

    duplicate = runner.invoke(app, ["add-source", "Alpha", "https://other.example.com/rss", "-c", str(path)])
    bad_url = runner.invoke(app, ["add-source", "Gamma", "ftp://gamma.example.com/rss", "-c", str(path)])
    missing = runner.invoke(app, ["add-source", "Gamma", "https://g.example.com/rss", "-c", str(tmp_path / "nope.yaml")])

    assert duplicate.exit_code == 1
    assert bad_url.exit_code == 1
    assert missing.exit_code == 1
    assert path.read_text(encoding="utf-8") == original
