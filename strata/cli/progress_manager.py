"""
Manages a Rich Live display that mirrors the session's notifications.

Loading notifications that carry a percentage become progress bars; every other
notification is printed once when it first appears.
"""

import asyncio
import logging
from typing import Callable

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
from rich.text import Text

from strata.core.store import StateStore
from strata.models.state import Notification, SessionState

log = logging.getLogger(__name__)

TYPE_STYLES = {
    "info": ("cyan", "ℹ"),
    "success": ("green", "✓"),
    "warning": ("yellow", "⚠️ "),
    "error": ("red", "✗"),
    "loading": ("blue", "…"),
}


class ProgressManager:
    """
    Renders notifications from a `StateStore` while a session is running.

    Use as an async context manager around the work that produces the
    notifications.
    """

    def __init__(self, console: Console, store: StateStore[SessionState]):
        self.console = console
        self.store = store

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=console,
            transient=False,
        )

        self._live: Live | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: dict[str, TaskID] = {}
        self._printed: set[tuple[str, str]] = set()
        self._stats = {"success": 0, "error": 0, "warning": 0}

    def _on_state(self, state: SessionState, prev: SessionState) -> None:
        if state.notifications is prev.notifications:
            return
        current = {n.id: n for n in state.notifications}

        for notification in state.notifications:
            if notification.type == "loading":
                self._update_task(notification)
            else:
                self._finish_task(notification.id)
                self._print_once(notification)

        for notification_id in list(self._tasks):
            if notification_id not in current:
                self._finish_task(notification_id)

        self._update_display()

    def _update_task(self, notification: Notification) -> None:
        description = notification.message
        if len(description) > 70:
            description = description[:67] + "..."
        task_id = self._tasks.get(notification.id)
        if task_id is None:
            self._tasks[notification.id] = self.progress.add_task(
                description, total=100, completed=notification.progress or 0
            )
        else:
            self.progress.update(
                task_id,
                description=description,
                completed=notification.progress or 0,
            )

    def _finish_task(self, notification_id: str) -> None:
        task_id = self._tasks.pop(notification_id, None)
        if task_id is not None:
            self.progress.remove_task(task_id)

    def _print_once(self, notification: Notification) -> None:
        key = (notification.id, notification.message)
        if key in self._printed:
            return
        self._printed.add(key)
        if notification.type in self._stats:
            self._stats[notification.type] += 1
        style, icon = TYPE_STYLES.get(notification.type, ("white", ""))
        self.console.print(f"[{style}]{icon} {notification.message}[/{style}]")

    def _generate_panel(self) -> Panel:
        if not self._tasks:
            return Panel(
                Text("Waiting for downloads to start...", style="dim italic"),
                title="[bold]📥 Active Downloads[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]📥 Active Downloads ({len(self._tasks)})[/bold]",
            border_style="green",
        )

    def _update_display(self) -> None:
        if self._live is not None:
            self._live.update(self._generate_panel())

    def summary(self) -> Table:
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column(style="bold cyan", justify="right")
        table.add_column()
        table.add_row("✓ Completed:", f"[green]{self._stats['success']}[/green]")
        if self._stats["warning"]:
            table.add_row("⚠ Warnings:", f"[yellow]{self._stats['warning']}[/yellow]")
        if self._stats["error"]:
            table.add_row("✗ Failed:", f"[red]{self._stats['error']}[/red]")
        return table

    def get_statistics(self) -> dict:
        return self._stats.copy()

    async def __aenter__(self):
        self._unsubscribe = self.store.subscribe(self._on_state)
        self._live = Live(
            self._generate_panel(),
            console=self.console,
            refresh_per_second=12,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()
            self._live = None
