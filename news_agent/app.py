"""Typer CLI entrypoint for news-agent."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import AppConfig, ConfigRepository, Source
from .engine import FeedReader, RunContext
from .engine.feed_reader import validate_http_url
from .errors import InvalidURLError, user_friendly_message
from .infra import SQLiteManager
from .logging_conf import configure_logging, get_logger
from .models import ReadStatus
from .orchestrator import Orchestrator
from .ui import MultiSourceProgress, render_summary

app = typer.Typer(
    help="news-agent: fetch, enrich and store AI news from RSS sources",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    config: AppConfig
    storage: SQLiteManager = field(default_factory=SQLiteManager)
    reader: FeedReader | None = None

    def orchestrator(self, enable_ai: bool = True) -> Orchestrator:
        return Orchestrator.from_config(
            self.config, self.storage, enable_ai=enable_ai, reader=self.reader
        )

    def close(self) -> None:
        self.storage.close_all()


def build_state(config_path: Optional[Path], verbose: bool) -> AppState:
    config = ConfigRepository().load(config_path)
    configure_logging(verbose=verbose, log_file=config.log_file)
    return AppState(config=config)


def _load_state(ctx: typer.Context, config_path: Optional[Path]) -> AppState:
    verbose = bool((ctx.obj or {}).get("verbose", False))
    try:
        return build_state(config_path, verbose)
    except FileNotFoundError as exc:
        console.print(f"配置文件不存在：{exc}", style="red")
        raise typer.Exit(code=1) from exc
    except (ValidationError, ValueError) as exc:
        console.print(f"配置文件无效：{exc}", style="red")
        raise typer.Exit(code=1) from exc


ConfigOption = typer.Option(None, "--config", "-c", help="Path to config file")


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="开启调试日志", is_flag=True),
) -> None:
    ctx.obj = {"verbose": verbose}


@app.command("fetch", help="Fetch every configured source and store new articles.")
def fetch(
    ctx: typer.Context,
    config_path: Optional[Path] = ConfigOption,
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Worker threads (0 = CPU count)"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Newest items per source (0 = all)"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="静默模式，不显示进度条", is_flag=True),
    no_ai: bool = typer.Option(False, "--no-ai", help="Skip content extraction and AI analysis", is_flag=True),
) -> None:
    if limit is not None and limit < 0:
        raise typer.BadParameter("--limit must be >= 0", param_hint="--limit")
    state = _load_state(ctx, config_path)
    logger = get_logger("cli")
    orchestrator = state.orchestrator(enable_ai=not no_ai)
    run_ctx = RunContext()
    try:
        with MultiSourceProgress(enabled=not quiet, console=console) as progress:
            summary = orchestrator.run(
                workers=workers,
                fetch_limit=limit,
                sink=progress,
                ctx=run_ctx,
            )
    except KeyboardInterrupt:
        run_ctx.cancel()
        logger.warning("fetch_interrupted")
        console.print("Interrupted.", style="yellow")
        raise typer.Exit(code=130)
    finally:
        orchestrator.close()
        state.close()

    if not quiet and summary.outcomes:
        console.print(render_summary(summary))
    console.print(f"Added {summary.total_added} new articles from {summary.total_sources} sources")
    if summary.errors:
        console.print(f"{summary.error_count} errors occurred:")
        for failure in summary.errors:
            console.print(
                f"  - source {failure.source_name}: {user_friendly_message(failure.error)}",
                markup=False,
            )
        raise typer.Exit(code=1)


@app.command("sources", help="List configured sources.")
def sources(ctx: typer.Context, config_path: Optional[Path] = ConfigOption) -> None:
    state = _load_state(ctx, config_path)
    state.close()
    if not state.config.sources:
        console.print("No sources configured.", style="yellow")
        return
    table = Table(title=f"Sources · {len(state.config.sources)}", box=box.SIMPLE_HEAD)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Priority", justify="right")
    table.add_column("URL", overflow="fold")
    for source in state.config.sources:
        table.add_row(source.name, source.type, str(source.priority), source.url)
    console.print(table)


@app.command("add-source", help="Append an RSS source to the config file.")
def add_source(
    name: str = typer.Argument(..., help="Source name"),
    url: str = typer.Argument(..., help="Feed URL (http or https)"),
    priority: int = typer.Option(0, "--priority", "-p", help="Display priority"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    try:
        source = Source(name=name, url=validate_http_url(url.strip()), priority=priority)
        path = ConfigRepository().add_source(source, config_path)
    except FileNotFoundError as exc:
        console.print(f"配置文件不存在：{exc}", style="red")
        raise typer.Exit(code=1) from exc
    except (InvalidURLError, ValidationError, ValueError) as exc:
        console.print(f"无法添加信息源：{exc}", style="red", markup=False)
        raise typer.Exit(code=1) from exc
    console.print(f"Source `{source.name}` added to {path}.", style="green")


@app.command("items", help="List stored articles, newest first.")
def items(
    ctx: typer.Context,
    config_path: Optional[Path] = ConfigOption,
    unread: bool = typer.Option(False, "--unread", help="Only unread articles", is_flag=True),
    source: Optional[str] = typer.Option(None, "--source", help="Only articles from this source"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum rows to show"),
) -> None:
    state = _load_state(ctx, config_path)
    try:
        store = state.storage.open_store(state.config.dsn)
        rows = store.list_items(
            read_status=ReadStatus.UNREAD if unread else None,
            source_name=source,
            limit=limit,
        )
    finally:
        state.close()
    if not rows:
        console.print("No articles stored.", style="dim")
        return
    table = Table(title=f"Articles · {len(rows)}", box=box.SIMPLE_HEAD)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Source", style="magenta")
    table.add_column("Published", style="green")
    table.add_column("Status")
    table.add_column("Title", overflow="fold")
    for item in rows:
        published = item.published_at.strftime("%Y-%m-%d %H:%M") if item.published_at else "-"
        status = "●" if item.read_status is ReadStatus.UNREAD else " "
        table.add_row(str(item.id), item.source_name, published, f"{status} {item.analysis_status.value}", item.title)
    console.print(table)


@app.command("mark-read", help="Mark an article as read.")
def mark_read(
    ctx: typer.Context,
    item_id: int = typer.Argument(..., help="Article ID"),
    config_path: Optional[Path] = ConfigOption,
) -> None:
    state = _load_state(ctx, config_path)
    try:
        updated = state.storage.open_store(state.config.dsn).mark_read(item_id)
    finally:
        state.close()
    if not updated:
        console.print(f"Article {item_id} not found.", style="red")
        raise typer.Exit(code=1)
    console.print(f"Article {item_id} marked as read.")


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
