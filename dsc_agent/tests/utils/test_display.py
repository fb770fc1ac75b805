# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import io

from rich.console import Console

from dsc_agent.src.types.agent_types import TaskStatus
from dsc_agent.src.types.event_types import LogEvent, LogLevel
from dsc_agent.src.utils import ProgressDisplay, format_tokens
from dsc_agent.src.utils.display import format_log_line, step_line, summary_panel


def info(message: str) -> LogEvent:
    return LogEvent(level=LogLevel.INFO, message=message)


def plain_console() -> Console:
    return Console(file=io.StringIO(), width=120, force_terminal=False, color_system=None)


def rendered(renderable) -> str:
    console = plain_console()
    console.print(renderable)
    return console.file.getvalue()


class TestFormatting:
    def test_format_tokens(self):
        assert format_tokens(999) == "999"
        assert format_tokens(1_234) == "1.2K"
        assert format_tokens(3_400_000) == "3.40M"

    def test_log_line_carries_message(self):
        line = format_log_line(LogEvent(level=LogLevel.WARNING, message="careful [bold]x[/bold]"))
        assert line.plain == "⚠ careful [bold]x[/bold]"

    def test_step_line(self):
        text = rendered(step_line(3, 12))
        assert "Step 3/12" in text

    def test_summary_panel_keeps_brackets(self):
        text = rendered(summary_panel("Done!", ["Tokens: 1.5K", "[task_1] ok"]))
        assert "Done!" in text
        assert "[task_1] ok" in text
        assert "╭" in text


class TestProgressDisplay:
    def test_step_lines_drive_progress(self):
        display = ProgressDisplay()
        display.add_task("task_1", "build a parser")

        display.add_log("task_1", info("Step 3/12"))

        progress = display.tasks["task_1"]
        assert progress.status == TaskStatus.RUNNING
        assert (progress.current_step, progress.max_steps) == (3, 12)
        assert progress.ratio == 0.25

    def test_last_message_is_truncated(self):
        display = ProgressDisplay()
        display.add_task("task_1", "x")
        display.add_log("task_1", info("a" * 80))
        assert display.tasks["task_1"].last_message == "a" * 50

    def test_unknown_task_is_ignored(self):
        display = ProgressDisplay()
        display.add_log("task_9", info("Step 1/2"))
        display.set_status("task_9", TaskStatus.FAILED)
        assert display.tasks == {}

    def test_finished_status_is_kept(self):
        display = ProgressDisplay()
        display.add_task("task_1", "x")
        display.set_status("task_1", TaskStatus.COMPLETED)
        display.add_log("task_1", info("late line"))
        assert display.tasks["task_1"].status == TaskStatus.COMPLETED

    def test_render(self):
        display = ProgressDisplay(title="Agents")
        display.add_task("task_1", "first", max_steps=4)
        display.add_task("task_2", "second", max_steps=4)
        display.add_log("task_1", info("Step 2/4 [red]not markup[/red]"))

        text = rendered(display.render())

        assert "Agents" in text
        lines = text.splitlines()
        assert any("first" in line and " 50%" in line for line in lines)
        assert any("second" in line and "  0%" in line for line in lines)
        assert "[red]not markup" in text

    def test_live_display_draws_the_final_frame(self):
        console = plain_console()
        display = ProgressDisplay(console=console)
        display.add_task("task_1", "first", max_steps=2)

        with display:
            display.add_log("task_1", info("Step 2/2"))
            display.set_status("task_1", TaskStatus.COMPLETED)

        assert "first" in console.file.getvalue()
        assert "100%" in console.file.getvalue()
