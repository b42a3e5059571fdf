"""Terminal progress for sync runs with Rich-based rendering."""

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
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text

from ..models import PageReport


@dataclass
class ProgressState:
    pages: int = 0
    failed_pages: int = 0
    upserted: int = 0
    failed_records: int = 0
    last_page: int | None = None


class PageRateColumn(ProgressColumn):
    """Pages handled per second."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} page/s", style="progress.percentage")


class SyncProgress:
    """Callable page listener rendering a pulsing bar; silent outside a TTY."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console or Console()
        if enabled and not self.console.is_terminal:
            self.enabled = False
        self.state = ProgressState()
        self._lock = Lock()
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None

    def __enter__(self) -> "SyncProgress":
        if not self.enabled:
            return self
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]sync"),
            BarColumn(bar_width=None, pulse_style="cyan"),
            TimeElapsedColumn(),
            PageRateColumn(),
            TextColumn("[green]✓{task.fields[upserted]:>5}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[dim]page {task.fields[page]}", justify="left"),
            console=self.console,
            transient=True,
            refresh_per_second=10,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            # another live display owns the console
            self.enabled = False
            self._progress = None
            return self
        self._task_id = self._progress.add_task("sync", total=None, upserted=0, failed=0, page="-")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc, tb)
            self._progress = None
            self._task_id = None

    def __call__(self, report: PageReport) -> None:
        with self._lock:
            self.state.pages += 1
            self.state.last_page = report.page_index
            self.state.upserted += report.upserted
            self.state.failed_records += report.failed
            if report.error:
                self.state.failed_pages += 1
            if self._progress is not None and self._task_id is not None:
                self._progress.update(
                    self._task_id,
                    advance=1,
                    upserted=self.state.upserted,
                    failed=self.state.failed_pages + self.state.failed_records,
                    page=report.page_index,
                )


__all__ = ["PageRateColumn", "ProgressState", "SyncProgress"]
