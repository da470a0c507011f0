"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass

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
from rich.status import Status
from rich.text import Text


@dataclass
class ProgressState:
    total: int
    completed: int = 0
    failed: int = 0
    jobs: int = 0
    last_page: int | None = None


class RateColumn(ProgressColumn):
    """Pages completed per second."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.2f} page/s", style="progress.percentage")


class ProgressReporter:
    """Render page progress and keep counters for the run summary."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: ProgressState | None = None

    def start(self, total: int, label: str = "Job Bank") -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            # non-interactive output: counters only
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<12}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]jobs {task.fields[jobs]:>5}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[last_page]}", justify="left"),
            refresh_per_second=8,
            expand=True,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.start()
        except LiveError:
            # another live display owns the console
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "scrape", total=total, label=label, jobs=0, failed=0, last_page="waiting"
        )

    def advance(self, page: int, jobs: int = 0, failed: bool = False) -> None:
        if self.state is None:
            raise RuntimeError("ProgressReporter.start must be called before advance")
        self.state.completed += 1
        self.state.jobs += jobs
        self.state.last_page = page
        if failed:
            self.state.failed += 1
        if self._progress is not None and self._task_id is not None:
            self._progress.update(
                self._task_id,
                advance=1,
                jobs=self.state.jobs,
                failed=self.state.failed,
                last_page=f"page {page}",
            )

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
        self._task_id = None


class ProgressActivity:
    """Indeterminate activity indicator using a Rich Status spinner."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self.console = console or Console()
        self._status: Status | None = None

    def start(self, message: str) -> None:
        if not self.enabled or self._status is not None or not self.console.is_terminal:
            return
        self._status = self.console.status(message)
        self._status.start()

    def close(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None


__all__ = ["ProgressActivity", "ProgressReporter", "ProgressState", "RateColumn"]
