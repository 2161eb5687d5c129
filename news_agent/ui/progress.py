"""Terminal progress and run summary rendering with Rich."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from ..errors import user_friendly_message
from ..models import Phase, ProgressEvent, RunSummary

_PHASE_LABELS = {
    Phase.FETCH: "fetching feed",
    Phase.EXTRACT: "extracting",
    Phase.ANALYZE: "analyzing",
    Phase.DONE: "done",
}


@dataclass
class SourceState:
    task_id: TaskID
    total: int = 0
    current: int = 0
    phase: Phase = Phase.FETCH
    failed: bool = False


class RateColumn(ProgressColumn):
    """
    显示处理速率的自定义列

    渲染每秒处理的条目数，格式为 "X.X item/s"
    """

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} item/s", style="progress.percentage")


def _shorten(text: str | None, width: int = 50) -> str:
    if not text:
        return ""
    return text[: width - 3] + "..." if len(text) > width else text


class MultiSourceProgress:
    """
    每个信息源一行进度条，完全由 ProgressEvent 驱动

    事件由进度通道的单一读取线程送达；锁只保护任务表。
    非 TTY 环境或控制台已被占用时退化为静默模式。
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console or Console()
        if enabled and not self.console.is_terminal:
            self.enabled = False
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[source]:<18}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green", pulse_style="cyan"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("{task.fields[status]}", justify="left"),
            console=self.console,
            transient=True,
            refresh_per_second=12,
            expand=True,
            disable=not self.enabled,
        )
        self._lock = Lock()
        self._entered = False
        self.sources: dict[str, SourceState] = {}

    def __enter__(self) -> "MultiSourceProgress":
        if self.enabled and not self._entered:
            try:
                self._progress.__enter__()
                self._entered = True
            except LiveError:
                # 已有其它 Live 占用同一控制台
                self.enabled = False
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._entered:
            self._progress.__exit__(exc_type, exc, tb)
            self._entered = False

    def __call__(self, event: ProgressEvent) -> None:
        self.handle(event)

    def handle(self, event: ProgressEvent) -> None:
        """Apply one event to the row of ``event.source_name``."""

        with self._lock:
            state = self.sources.get(event.source_name)
            if state is None:
                task_id = self._progress.add_task(
                    event.source_name,
                    total=None,
                    source=event.source_name,
                    status="[dim]waiting…[/dim]",
                )
                state = self.sources[event.source_name] = SourceState(task_id=task_id)

            state.phase = event.phase
            if event.total:
                state.total = event.total
            if event.current:
                state.current = event.current
            if event.error is not None:
                state.failed = True

            if event.phase is Phase.DONE:
                if state.failed:
                    status = f"[red]✗ {_shorten(str(event.error))}[/red]"
                else:
                    status = "[green]✓ done[/green]"
                total = state.total or 1
                self._progress.update(state.task_id, total=total, completed=total, status=status)
                return

            label = _PHASE_LABELS[event.phase]
            if event.error is not None:
                status = f"[red]{label} failed[/red]"
            elif event.item_title:
                status = f"[dim]{label}: {_shorten(event.item_title)}[/dim]"
            else:
                status = f"[dim]{label}…[/dim]"
            self._progress.update(
                state.task_id,
                total=state.total or None,
                completed=max(0, state.current - 1),
                status=status,
            )


def render_summary(summary: RunSummary) -> Table:
    """Per-source results table followed by a totals row."""

    table = Table(title="Fetch summary", show_lines=False)
    table.add_column("Source", style="bold")
    table.add_column("Added", justify="right")
    table.add_column("Result")
    for outcome in summary.outcomes:
        if outcome.ok:
            result = Text("ok", style="green")
        else:
            result = Text(user_friendly_message(outcome.error), style="red")  # type: ignore[arg-type]
        table.add_row(outcome.source.name, str(outcome.added), result)
    table.add_section()
    table.add_row(
        "Total",
        str(summary.total_added),
        f"{summary.success_count}/{summary.total_sources} sources succeeded",
    )
    return table


__all__ = ["MultiSourceProgress", "RateColumn", "SourceState", "render_summary"]
