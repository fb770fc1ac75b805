# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Terminal rendering helpers for the command line front end, built on rich."""

import re

from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console, RenderableType
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskID, TaskProgressColumn, TextColumn
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from ..types.agent_types import TaskStatus
from ..types.event_types import LogEvent, LogLevel

STEP_PATTERN = re.compile(r"Step (\d+)/(\d+)")
BAR_WIDTH = 20
MESSAGE_WIDTH = 50

STATUS_ICONS = {
    TaskStatus.PENDING: "[grey50]○[/]",
    TaskStatus.RUNNING: "[yellow]◐[/]",
    TaskStatus.COMPLETED: "[green]●[/]",
    TaskStatus.FAILED: "[red]✕[/]",
}

LEVEL_ICONS = {
    LogLevel.DEBUG: ("·", "grey50"),
    LogLevel.INFO: ("ℹ", "blue"),
    LogLevel.WARNING: ("⚠", "yellow"),
    LogLevel.ERROR: ("✕", "red"),
}


def format_tokens(n: int) -> str:
    """Compact token count: 999, 1.2K, 3.40M."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.2f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return str(n)


def format_log_line(event: LogEvent) -> Text:
    icon, style = LEVEL_ICONS.get(event.level, ("·", "grey50"))
    return Text.assemble((icon, style), " ", event.message)


def step_line(current: int, total: int) -> Table:
    """A one row bar for "Step N/M" progress lines."""
    grid = Table.grid(padding=(0, 1))
    grid.add_row(
        " ",
        ProgressBar(total=max(total, 1), completed=min(current, total), width=BAR_WIDTH),
        f"Step {current}/{total}",
    )
    return grid


def summary_panel(title: str, lines: list[str], success: bool = True) -> Panel:
    """The boxed summary printed at the end of a run."""
    return Panel(
        "\n".join(escape(line) for line in lines),
        title=f"[bold]{escape(title)}[/]",
        title_align="left",
        border_style="green" if success else "red",
        expand=False,
    )


@dataclass
class TaskProgress:
    label: str
    status: TaskStatus = TaskStatus.PENDING
    current_step: int = 0
    max_steps: int = 0
    last_message: str = "Waiting..."

    @property
    def ratio(self) -> float:
        if self.max_steps <= 0:
            return 0.0
        return min(self.current_step / self.max_steps, 1.0)


@dataclass
class ProgressDisplay:
    """
    Live per-task progress for concurrent runs.

    Progress is driven by "Step N/M" log lines; every event also becomes the
    task's last message. The rows are kept in a rich `Progress`; `render`
    returns the panel, and `start`/`stop` redraw it in place while tasks run.
    """

    title: str = "Agents running"
    console: Optional[Console] = None
    tasks: dict[str, TaskProgress] = field(default_factory=dict)

    def __post_init__(self):
        self.progress = Progress(
            TextColumn("{task.fields[icon]}"),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=BAR_WIDTH),
            TaskProgressColumn(),
            TextColumn("[dim]{task.fields[message]}"),
            console=self.console,
            auto_refresh=False,
        )
        self._rows: dict[str, TaskID] = {}
        self._live: Optional[Live] = None

    def add_task(self, task_id: str, label: str, max_steps: int = 0) -> None:
        self.tasks[task_id] = TaskProgress(label=label, max_steps=max_steps)
        self._rows[task_id] = self.progress.add_task(
            escape(label[:16]),
            total=max_steps or None,
            icon=STATUS_ICONS[TaskStatus.PENDING],
            message="Waiting...",
        )

    def set_status(self, task_id: str, status: TaskStatus) -> None:
        progress = self.tasks.get(task_id)
        if progress is not None:
            progress.status = status
            self._sync(task_id)

    def add_log(self, task_id: str, event: LogEvent) -> None:
        progress = self.tasks.get(task_id)
        if progress is None:
            return
        match = STEP_PATTERN.search(event.message)
        if match:
            progress.current_step = int(match.group(1))
            progress.max_steps = int(match.group(2))
        if progress.status == TaskStatus.PENDING:
            progress.status = TaskStatus.RUNNING
        progress.last_message = event.message[:MESSAGE_WIDTH]
        self._sync(task_id)

    def _sync(self, task_id: str) -> None:
        progress = self.tasks[task_id]
        self.progress.update(
            self._rows[task_id],
            total=progress.max_steps or None,
            completed=progress.current_step,
            icon=STATUS_ICONS[progress.status],
            message=escape(progress.last_message),
        )
        if self._live is not None:
            self._live.refresh()

    def render(self) -> RenderableType:
        return Panel(
            self.progress.get_renderable(),
            title=f"[bold cyan]{escape(self.title)}[/]",
            title_align="left",
            border_style="cyan",
        )

    def start(self) -> None:
        self._live = Live(
            console=self.console,
            get_renderable=self.render,
            refresh_per_second=4,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def __enter__(self) -> "ProgressDisplay":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
