# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The front end of the system: one function per command line mode, plus the
interactive session. Everything is printed through a rich Console.
"""

import time
import asyncio
import logging

from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule

from .src.config import settings
from .src.events import LogSink
from .src.llm.models import AVAILABLE_MODELS, ModelSession, get_model, has_api_key
from .src.agents.implementations.coder import run_coding_task
from .src.agents.implementations.general import run_general_task
from .src.orchestration import (
    DEFAULT_STAGES,
    PipelineOrchestrator,
    PipelineStage,
    StageResult,
    Task,
    TaskSupervisor,
    override_stages,
)
from .src.types.agent_types import TaskResult, TaskStatus
from .src.types.event_types import LogEvent
from .src.utils.display import (
    ProgressDisplay,
    STATUS_ICONS,
    STEP_PATTERN,
    format_log_line,
    format_tokens,
    step_line,
    summary_panel,
)
from .src.utils.history import DirectoryHistory, TaskHistoryLog

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.captureWarnings(True)
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler()],
        force=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def resolve_session(
    model_id: Optional[str], console: Optional[Console] = None
) -> Optional[ModelSession]:
    """Build the session for a run, or explain why it cannot be built."""
    console = console or Console()
    model_id = model_id or settings.MODEL
    model = get_model(model_id)
    if model is None:
        console.print(f"[red]✕[/] Unknown model: {escape(model_id)}")
        return None
    if not has_api_key(model.provider):
        console.print(f"[red]✕[/] {model.provider.api_key_env} is required for {model.name}")
        console.print(f"[dim]  export {model.provider.api_key_env}=your-api-key[/]")
        return None
    return ModelSession(model=model)


# ----------------------------------------------------------------------
# Single task
# ----------------------------------------------------------------------


async def _run_one(
    runner,
    prompt: str,
    model_id: Optional[str],
    project_path: Path | str | None,
    max_steps: Optional[int],
    console: Console,
) -> int:
    session = resolve_session(model_id, console)
    if session is None:
        return 1

    console.print(f"\n[cyan]▶[/] [bold]{session.model.name}[/] running...\n")
    sink = LogSink()
    sink.subscribe(lambda source, event: console.print(format_log_line(event)))
    channel = sink.open_channel("single")

    started = time.time()
    try:
        result: TaskResult = await runner(
            prompt,
            session=session,
            project_path=project_path,
            max_steps=max_steps,
            channel=channel,
        )
    finally:
        await sink.aclose()
    elapsed = time.time() - started

    console.print()
    if not result.success:
        console.print(f"[red]✕[/] Failed: {escape(result.result)}")
        return 1

    console.print(
        summary_panel(
            "Done!",
            [
                f"Model:  {session.model.name}",
                f"Time:   {elapsed:.1f}s",
                f"Tokens: {format_tokens(result.usage.total_tokens)}",
                f"Cost:   ${result.cost:.4f}",
            ],
        )
    )
    console.print(f"\n[dim]{escape(result.result)}[/]")
    return 0


async def run_single(
    prompt: str,
    model_id: Optional[str] = None,
    project_path: Path | str | None = None,
    max_steps: Optional[int] = None,
    console: Optional[Console] = None,
) -> int:
    """Run one coding task, printing every log line. Returns the exit status."""
    return await _run_one(
        run_coding_task, prompt, model_id, project_path, max_steps, console or Console()
    )


async def run_ask(
    prompt: str,
    model_id: Optional[str] = None,
    project_path: Path | str | None = None,
    max_steps: Optional[int] = None,
    console: Optional[Console] = None,
) -> int:
    """Answer a general request with the web research agent."""
    return await _run_one(
        run_general_task, prompt, model_id, project_path, max_steps, console or Console()
    )


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------


async def run_pipeline(
    prompt: str,
    project_path: Path | str | None = None,
    model_id: Optional[str] = None,
    max_steps: Optional[int] = None,
    console: Optional[Console] = None,
) -> int:
    """Run the analysis -> implementation -> review pipeline.

    `model_id` and `max_steps` replace the default of every stage.
    """
    console = console or Console()
    if model_id is not None and get_model(model_id) is None:
        console.print(f"[red]✕[/] Unknown model: {escape(model_id)}")
        return 1
    try:
        stages = override_stages(DEFAULT_STAGES, model_id=model_id, max_steps=max_steps)
    except ValueError as e:
        console.print(f"[red]✕[/] {e}")
        return 1

    orchestrator = PipelineOrchestrator(stages=stages, project_path=project_path)
    for stage in orchestrator.stages:
        model = get_model(stage.model_id)
        if model is not None and not has_api_key(model.provider):
            console.print(f"[red]✕[/] {model.provider.api_key_env} is required")
            return 1

    total = len(orchestrator.stages)
    console.print("\n[bold cyan]Pipeline mode[/]")
    console.print(
        "  " + " → ".join(f"[blue]{s.role}[/] ({s.max_steps} steps)" for s in orchestrator.stages)
    )

    sink = LogSink()

    def show_step(source: str, event: LogEvent) -> None:
        match = STEP_PATTERN.search(event.message)
        if match:
            console.print(step_line(int(match.group(1)), int(match.group(2))))

    def stage_started(index: int, stage: PipelineStage) -> None:
        model = get_model(stage.model_id)
        name = model.name if model is not None else stage.model_id
        console.print(f"\n[cyan]\\[{index + 1}/{total}][/] [bold]{stage.role}[/] - {name}")
        console.print(Rule(style="dim"))

    def stage_finished(index: int, stage_result: StageResult) -> None:
        if stage_result.success:
            console.print(
                f"  [green]✓[/] Done ({stage_result.duration_seconds:.1f}s) - "
                f"{format_tokens(stage_result.usage.total_tokens)} tokens"
            )
        else:
            console.print(f"  [red]✕[/] Failed: {escape(stage_result.result)}")

    sink.subscribe(show_step)
    orchestrator.sink = sink
    orchestrator.on_stage_start = stage_started
    orchestrator.on_stage_end = stage_finished

    started = time.time()
    try:
        result = await orchestrator.run(prompt)
    finally:
        await sink.aclose()
    elapsed = time.time() - started

    console.print()
    console.print(
        summary_panel(
            "Pipeline finished" if result.success else "Pipeline stopped",
            [
                f"Time:   {elapsed:.1f}s",
                f"Tokens: {format_tokens(result.usage.total_tokens)} "
                f"(in: {format_tokens(result.usage.prompt_tokens)}, "
                f"out: {format_tokens(result.usage.completion_tokens)})",
                f"Cost:   ${result.cost:.4f}",
            ],
            success=result.success,
        )
    )
    console.print("\n  [dim]Per stage:[/]")
    for stage_result in result.stages:
        icon = "[green]●[/]" if stage_result.success else "[red]✕[/]"
        console.print(
            f"  {icon} {stage_result.role}: {stage_result.duration_seconds:.1f}s, "
            f"{format_tokens(stage_result.usage.total_tokens)} tokens, ${stage_result.cost:.4f}"
        )

    if result.final_result is not None:
        console.print("\n[dim]Final result:[/]")
        console.print(escape(result.final_result[:500]))
        if len(result.final_result) > 500:
            console.print("[dim]... (truncated)[/]")
    return 0 if result.success else 1


# ----------------------------------------------------------------------
# Multiple independent tasks
# ----------------------------------------------------------------------


async def run_multi(
    prompts: list[str],
    model_id: Optional[str] = None,
    project_path: Path | str | None = None,
    max_steps: Optional[int] = None,
    console: Optional[Console] = None,
    live: bool = True,
) -> int:
    """Run independent prompts concurrently with a live progress display."""
    console = console or Console()
    session = resolve_session(model_id, console)
    if session is None:
        return 1

    console.print(
        f"\n[bold cyan]Multi-task mode[/]: [bold]{len(prompts)}[/] tasks "
        f"on [blue]{session.model.name}[/]"
    )

    sink = LogSink()
    display = ProgressDisplay(console=console)
    supervisor = TaskSupervisor(session, sink=sink, max_steps=max_steps)

    sink.subscribe(display.add_log)
    supervisor.on_complete(lambda task: display.set_status(task.id, task.status))

    started = time.time()
    tasks = [supervisor.submit(prompt, project_path=project_path) for prompt in prompts]
    for index, task in enumerate(tasks):
        display.add_task(task.id, f"Task {index + 1}", max_steps or settings.MAX_STEPS)
        display.set_status(task.id, TaskStatus.RUNNING)

    if live:
        display.start()
    try:
        await supervisor.wait_all()
    finally:
        await sink.aclose()
        display.stop()
    summary = supervisor.summary(tasks)
    elapsed = time.time() - started

    console.print()
    console.print(
        summary_panel(
            "Multi-task finished",
            [
                f"Result: {summary.success_ratio} succeeded",
                f"Time:   {elapsed:.1f}s (parallel)",
                f"Tokens: {format_tokens(summary.usage.total_tokens)} "
                f"(in: {format_tokens(summary.usage.prompt_tokens)}, "
                f"out: {format_tokens(summary.usage.completion_tokens)})",
                f"Cost:   ${summary.cost:.4f}",
            ],
            success=summary.failed == 0,
        )
    )
    console.print("[dim]Task results:[/]")
    for index, task in enumerate(summary.tasks):
        mark = "[green]✓[/]" if task.success else "[red]✕[/]"
        ellipsis = "..." if len(task.prompt) > 40 else ""
        console.print(f"  {mark} \\[{index + 1}] {escape(task.prompt[:40])}{ellipsis}")
        if task.result:
            ellipsis = "..." if len(task.result) > 80 else ""
            console.print(f"     [dim]{escape(task.result[:80])}{ellipsis}[/]")
    return 0 if summary.failed == 0 else 1


# ----------------------------------------------------------------------
# Model catalogue
# ----------------------------------------------------------------------


def list_models(console: Optional[Console] = None) -> None:
    console = console or Console()
    console.print("\n[bold]Available models[/]\n")
    for model in AVAILABLE_MODELS:
        has_key = has_api_key(model.provider)
        status = "[green]●[/]" if has_key else "[grey50]○[/]"
        key_hint = "" if has_key else f" [dim]({model.provider.api_key_env} required)[/]"
        console.print(f"{status} [bold]{model.id}[/]{key_hint}")
        console.print(f"  {model.name} - {escape(model.description)}")
        console.print(
            f"  [dim]Price: ${model.input_price}/M input, ${model.output_price}/M output[/]"
        )
        console.print()


# ----------------------------------------------------------------------
# Interactive queue
# ----------------------------------------------------------------------


class InteractiveSession:
    """
    Reads task prompts line by line and runs each one in the background on
    the supervisor, so new tasks can be entered while earlier ones run.
    """

    def __init__(
        self,
        supervisor: TaskSupervisor,
        directories: Optional[DirectoryHistory] = None,
        cwd: Path | str | None = None,
        console: Optional[Console] = None,
    ):
        self.supervisor = supervisor
        self.directories = directories or DirectoryHistory()
        self.cwd = Path(cwd or Path.cwd()).resolve()
        self.console = console or Console()
        self.directories.add(self.cwd)
        self.supervisor.on_complete(self.report_completion)

    def report_completion(self, task: Task) -> None:
        mark = "[green]✓[/]" if task.success else "[red]✕[/]"
        elapsed = task.duration_seconds or 0.0
        line = f"{mark} \\[{task.id}] {elapsed:.1f}s {format_tokens(task.usage.total_tokens)}"
        if not task.success and task.result:
            line += f" [dim]{escape(task.result[:60])}[/]"
        self.console.print(line)

    def print_status(self) -> None:
        running = len(self.supervisor.running())
        done = sum(1 for t in self.supervisor.completed() if t.success)
        tokens = format_tokens(self.supervisor.total_usage.total_tokens)
        self.console.print(
            f"[yellow]Running:{running}[/] [green]Completed:{done}[/] Tokens:{tokens}"
        )
        for task in self.supervisor.statuses()[-5:]:
            self.console.print(
                f"  {STATUS_ICONS[task.status]} \\[{task.id}] {escape(task.prompt[:35])}"
            )

    def print_directories(self) -> None:
        self.console.print("\n[cyan]Directory history[/]")
        if not len(self.directories):
            self.console.print("[dim]  (empty)[/]")
            return
        for index, directory in enumerate(self.directories.entries()):
            current = " [green]← current[/]" if directory == str(self.cwd) else ""
            self.console.print(f"  [yellow]{index}[/]) {escape(directory)}{current}")
        self.console.print("[dim]  /cd <number> or /cd <path> to switch[/]")

    def change_directory(self, arg: str) -> bool:
        target: Optional[str] = arg
        if arg.isdigit():
            target = self.directories.get(int(arg))
            if target is None:
                self.console.print(f"[red]✕[/] Invalid number: {arg}")
                return False

        path = (self.cwd / Path(target).expanduser()).resolve()
        if not path.is_dir():
            self.console.print(f"[red]✕[/] Cannot change to: {escape(target)}")
            return False
        self.cwd = path
        self.directories.add(path)
        self.console.print(f"[green]✓[/] {escape(str(path))}")
        return True

    async def quit(self) -> None:
        cancelled = await self.supervisor.cancel_all()
        if cancelled:
            self.console.print(f"[dim]Cancelled {cancelled} running task(s)[/]")
        self.console.print("[dim]Bye[/]")

    async def handle_line(self, line: str) -> bool:
        """Handle one input line. Returns False when the session should end."""
        text = line.strip()
        if not text:
            return True
        command = text.lower()

        if command in ("q", "exit"):
            await self.quit()
            return False
        if command == "s":
            self.print_status()
            return True
        if command in ("/hd", "hd"):
            self.print_directories()
            return True
        if command in ("/pwd", "pwd"):
            self.console.print(f"[cyan]📍[/] {escape(str(self.cwd))}")
            return True
        if text.startswith("/cd ") or text.startswith("cd "):
            self.change_directory(text.split(None, 1)[1].strip())
            return True

        task = self.supervisor.submit(text, project_path=self.cwd)
        self.console.print(f"[blue]▶[/] \\[{task.id}] {escape(text[:40])}")
        return True

    async def run(self) -> None:
        self.console.print(Rule("Interactive mode", style="cyan"))
        self.console.print("[dim]Enter a task | s=status /hd=directories /cd=switch q=quit[/]")
        self.console.print(f"[dim]Current: {escape(str(self.cwd))}[/]")
        while True:
            try:
                line = await asyncio.to_thread(self.console.input, "> ")
            except EOFError:
                await self.quit()
                return
            if not await self.handle_line(line):
                return


async def run_interactive(
    model_id: Optional[str] = None,
    project_path: Path | str | None = None,
    max_steps: Optional[int] = None,
    console: Optional[Console] = None,
) -> int:
    console = console or Console()
    session = resolve_session(model_id, console)
    if session is None:
        return 1
    supervisor = TaskSupervisor(session, history=TaskHistoryLog(), max_steps=max_steps)
    await InteractiveSession(supervisor, cwd=project_path, console=console).run()
    return 0
