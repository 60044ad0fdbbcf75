"""Console rendering and progress helpers for upload-sim CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Iterable, Optional, Sequence

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.table import Table

from .models import UploadStatus, UploadTask
from .summary import UploadSummary, format_bytes, sort_by_status


console = Console()

STATUS_STYLE = {
    UploadStatus.WAITING: "dim",
    UploadStatus.UPLOADING: "blue",
    UploadStatus.COMPLETED: "green",
    UploadStatus.ERROR: "red",
}


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]upload-sim[/bold green]",
        subtitle="[dim]simulated uploads[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_task_table(tasks: Iterable[UploadTask]) -> Table:
    """Table of tasks grouped by status; the input order is left untouched."""
    table = Table(title="Uploads", expand=False)
    table.add_column("File", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    for task in sort_by_status(tasks):
        style = STATUS_STYLE[task.status]
        table.add_row(
            task.name,
            format_bytes(task.file.size),
            f"[{style}]{task.status.value}[/{style}]",
            f"{task.percent}%",
        )
    return table


class UploadProgressDisplay:
    """Snapshot-driven console display for simulated uploads."""

    def __init__(self, target: Optional[Console] = None):
        self._console = target or console
        self._rows: Dict[str, TaskID] = {}
        self._last_status: Dict[str, UploadStatus] = {}
        self._summary = UploadSummary()
        self._live: Optional[Live] = None
        self._overall_task_id: Optional[TaskID] = None
        self._meta_progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=28),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[detail]}", justify="left"),
            expand=False,
            console=self._console,
        )
        self._file_progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            expand=False,
            console=self._console,
        )

    @property
    def summary(self) -> UploadSummary:
        return self._summary

    def _emit_timeline(
        self,
        status: str,
        name: str,
        size_bytes: Optional[int] = None,
    ) -> None:
        stamp = time.strftime("%H:%M:%S")
        size_label = f" {format_bytes(size_bytes)}" if size_bytes and size_bytes > 0 else ""
        palette = {
            "DONE": "green",
            "FAIL": "red",
            "RTRY": "yellow",
            "INFO": "blue",
        }
        color = palette.get(status, "white")
        self._console.print(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] file: {name}{size_label}"
        )

    def start(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            Group(self._meta_progress, self._file_progress),
            console=self._console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._overall_task_id = self._meta_progress.add_task(
            "overall",
            label="Overall",
            total=100,
            completed=0,
            detail="waiting...",
        )

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def _label(self, task: UploadTask) -> str:
        style = STATUS_STYLE[task.status]
        return f"[{style}]{task.name[:48]}[/{style}]"

    def _update_overall_task(self) -> None:
        if self._overall_task_id is None:
            return
        summary = self._summary
        self._meta_progress.update(
            self._overall_task_id,
            completed=round(summary.average_progress * 100),
            detail=(
                f"uploading={summary.uploading} completed={summary.completed} "
                f"failed={summary.failed}"
            ),
        )

    def _track_transition(self, task: UploadTask) -> None:
        previous = self._last_status.get(task.id)
        self._last_status[task.id] = task.status
        if previous == task.status:
            return
        if task.status == UploadStatus.COMPLETED:
            self._emit_timeline("DONE", task.name, size_bytes=task.file.size)
        elif task.status == UploadStatus.ERROR:
            self._emit_timeline("FAIL", task.name, size_bytes=task.file.size)
        elif task.status == UploadStatus.WAITING and previous is not None:
            self._emit_timeline("RTRY", task.name)

    def on_snapshot(self, snapshot: Sequence[UploadTask]) -> None:
        """Apply one published snapshot."""
        self.start()
        for task in snapshot:
            total = max(task.file.size, 1)
            row = self._rows.get(task.id)
            if row is None:
                row = self._file_progress.add_task(
                    "upload",
                    label=self._label(task),
                    total=total,
                )
                self._rows[task.id] = row
            self._file_progress.update(
                row,
                label=self._label(task),
                completed=int(total * task.progress),
            )
            self._track_transition(task)

        self._summary = UploadSummary.from_tasks(snapshot)
        self._update_overall_task()

    def on_finish(self, snapshot: Sequence[UploadTask]) -> None:
        self.stop()
        self._console.print(render_task_table(snapshot))
        summary = UploadSummary.from_tasks(snapshot)
        self._console.print(
            f"[bold]Finished[/bold] completed={summary.completed} "
            f"failed={summary.failed} total={summary.total}"
        )
