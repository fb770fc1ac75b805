# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Persistent records kept by the interactive front end: a daily markdown log of
finished tasks, and the list of recently visited directories.
"""

import asyncio
import logging

from pathlib import Path
from datetime import datetime
from typing import Optional

from .display import format_tokens
from ..config import settings
from ..types.agent_types import TaskStatus

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

MAX_DIRECTORY_HISTORY = 20


def format_history_entry(
    prompt: str,
    success: bool,
    cwd: str,
    elapsed_seconds: float,
    total_tokens: int = 0,
    finished_at: Optional[datetime] = None,
) -> str:
    finished_at = finished_at or datetime.now()
    mark = "✓" if success else "✕"
    tokens = f" | {format_tokens(total_tokens)} tokens" if total_tokens else ""
    return (
        f"## {finished_at.strftime('%H:%M:%S')} {mark}\n"
        f"- **Task**: {prompt}\n"
        f"- **Path**: {cwd}\n"
        f"- **Elapsed**: {elapsed_seconds:.1f}s{tokens}\n\n"
    )


class TaskHistoryLog:
    """Appends one markdown entry per finished task to `<dir>/YYYY-MM-DD.md`.

    Write failures are logged and never propagate into the task that
    triggered them.
    """

    def __init__(self, directory: Path | str | None = None):
        self.directory = Path(directory or settings.HISTORY_DIR).expanduser()
        self._lock = asyncio.Lock()

    def path_for(self, day: datetime) -> Path:
        return self.directory / f"{day.strftime('%Y-%m-%d')}.md"

    def _write(self, entry: str, day: datetime) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(day)
        content = ""
        if not path.exists():
            content += f"# Task history - {day.strftime('%Y-%m-%d')}\n\n"
        content += entry
        with open(path, "a", encoding="utf-8") as f:
            f.write(content)
        return path

    async def record(
        self,
        prompt: str,
        success: bool,
        cwd: str,
        elapsed_seconds: float,
        total_tokens: int = 0,
    ) -> Optional[Path]:
        now = datetime.now()
        entry = format_history_entry(prompt, success, cwd, elapsed_seconds, total_tokens, now)
        async with self._lock:
            try:
                return await asyncio.to_thread(self._write, entry, now)
            except OSError as e:
                logger.warning(f"Could not write task history to {self.directory}: {e}")
                return None

    async def append(self, task) -> Optional[Path]:
        """Record a settled supervisor task."""
        return await self.record(
            prompt=task.prompt,
            success=task.status == TaskStatus.COMPLETED,
            cwd=task.project_path or str(Path.cwd()),
            elapsed_seconds=task.duration_seconds or 0.0,
            total_tokens=task.usage.total_tokens,
        )


class DirectoryHistory:
    """Recently visited directories, newest first, without duplicates."""

    def __init__(self, max_entries: int = MAX_DIRECTORY_HISTORY):
        self.max_entries = max_entries
        self._dirs: list[str] = []

    def add(self, directory: Path | str) -> None:
        directory = str(directory)
        if directory in self._dirs:
            self._dirs.remove(directory)
        self._dirs.insert(0, directory)
        del self._dirs[self.max_entries :]

    def get(self, index: int) -> Optional[str]:
        if 0 <= index < len(self._dirs):
            return self._dirs[index]
        return None

    def entries(self) -> list[str]:
        return list(self._dirs)

    def __len__(self) -> int:
        return len(self._dirs)
