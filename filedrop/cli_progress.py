"""Console rendering and progress helpers for the filedrop CLI."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional
import time

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.table import Table
from rich.tree import Tree

from .models import FolderNode, Item, LibraryStats, UploadSession
from .utils.formatting import format_file_size


console = Console()


def _echo(message: str) -> None:
    console.print(message)


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
        title="[bold green]filedrop[/bold green]",
        subtitle="[dim]upload[/dim]",
        border_style="blue",
    )
    console.print(panel)


def _add_branch(parent: Tree, node: FolderNode, show_ids: bool) -> None:
    marker = "▾" if node.is_expanded else "▸"
    label = f"{marker} [bold]{node.name}[/bold]"
    if show_ids:
        label += f" [dim]{node.id}[/dim]"
    branch = parent.add(label)
    for child in node.children:
        _add_branch(branch, child, show_ids)


def render_folder_tree(roots: List[FolderNode], show_ids: bool = True) -> None:
    """Print the folder forest. Collapsed folders still list their children."""
    tree = Tree("[bold blue]All files[/bold blue]")
    for node in roots:
        _add_branch(tree, node, show_ids)
    console.print(tree)


def render_items(items: Iterable[Item], folder_label=None) -> None:
    """
    Print items as a table.

    folder_label: optional callable folder_id -> display path
    """
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Size", justify="right")
    table.add_column("Type")
    table.add_column("Folder")
    table.add_column("Status")
    table.add_column("Uploaded")

    count = 0
    for item in items:
        folder = folder_label(item.folder_id) if folder_label else (item.folder_id or "-")
        status_color = "green" if item.status.value == "completed" else "red"
        table.add_row(
            item.id,
            item.name,
            format_file_size(item.size),
            item.type,
            folder,
            f"[{status_color}]{item.status.value}[/{status_color}]",
            item.uploaded_at.strftime("%Y-%m-%d %H:%M"),
        )
        count += 1

    if count == 0:
        _echo("[dim]No items.[/dim]")
        return
    console.print(table)


def render_stats(stats: LibraryStats) -> None:
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")
    table.add_row("Total Files", str(stats.total_items))
    table.add_row("Total Size", format_file_size(stats.total_size))
    table.add_row("Today", str(stats.today_uploads))
    console.print(Panel(table, title="[bold green]filedrop[/bold green]", border_style="blue"))


def render_sessions(sessions: Iterable[UploadSession]) -> None:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Started")
    table.add_column("Total", justify="right")
    table.add_column("Stored", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Done")
    for session in sessions:
        table.add_row(
            session.id,
            session.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(session.total_items),
            str(session.stored_items),
            str(session.failed_items),
            str(session.rejected_items),
            "yes" if session.completed else "no",
        )
    console.print(table)


class BatchUploadProgressDisplay:
    """Event-based console display for an upload batch."""

    def __init__(self, live: bool = True):
        self._active_tasks: Dict[str, TaskID] = {}
        self._sizes: Dict[str, int] = {}
        self._live: Optional[Live] = None
        self._use_live = live
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            expand=False,
            console=console,
        )

    def _emit_timeline(
        self,
        status: str,
        name: str,
        size_bytes: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        stamp = time.strftime("%H:%M:%S")
        size_label = f" {format_file_size(size_bytes)}" if size_bytes else ""
        error_label = f" cause={error}" if error else ""
        palette = {
            "DONE": "green",
            "FAIL": "red",
            "SKIP": "yellow",
        }
        color = palette.get(status, "white")
        _echo(f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {name}{size_label}{error_label}")

    def _start_live(self) -> None:
        if not self._use_live or self._live is not None:
            return
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()

    def _stop_live(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def _drop_task(self, upload_id: str) -> None:
        task_id = self._active_tasks.pop(upload_id, None)
        if task_id is not None:
            self._progress.remove_task(task_id)

    def on_rejected(self, errors: Iterable[str]) -> None:
        for error in errors:
            name, _, reason = error.partition(": ")
            self._emit_timeline("SKIP", name, error=reason or None)

    def on_item_start(self, progress: Any) -> None:
        self._start_live()
        self._sizes[progress.upload_id] = progress.size
        self._active_tasks[progress.upload_id] = self._progress.add_task(
            "upload",
            label=progress.name[:60],
            total=100,
        )

    def on_item_progress(self, progress: Any) -> None:
        task_id = self._active_tasks.get(progress.upload_id)
        if task_id is not None:
            self._progress.update(task_id, completed=progress.progress)

    def on_item_complete(self, item: Item, progress: Any) -> None:
        self._drop_task(progress.upload_id)
        self._sizes.pop(progress.upload_id, None)
        self._emit_timeline("DONE", item.name, size_bytes=item.size)

    def on_item_fail(self, progress: Any) -> None:
        self._drop_task(progress.upload_id)
        size_bytes = self._sizes.pop(progress.upload_id, None)
        self._emit_timeline("FAIL", progress.name, size_bytes=size_bytes, error=progress.error)

    def close(self) -> None:
        self._stop_live()

    def on_finish(self, result: Any) -> None:
        self._stop_live()
        stored = len(getattr(result, "stored", []))
        failed = getattr(result, "transient_failures", 0)
        rejected = len(getattr(result, "validation_errors", []))
        _echo(f"[bold]Finished[/bold] stored={stored} failed={failed} rejected={rejected}")
