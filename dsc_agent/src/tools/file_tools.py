# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
import re
import shutil
import logging

from pathlib import Path
from typing import Optional
from pydantic import Field

from .base_tool import BaseTool
from ..types.tool_types import ToolResult

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

SEARCH_RESULT_LIMIT = 50
SEARCH_SKIP_DIRS = {"node_modules", ".git", ".next", "dist", "__pycache__", ".venv"}


def create_backup(path: Path) -> Path | None:
    """Copy a file to `.backup/<name>.bak` beside it, keeping only the last copy."""
    if not path.is_file():
        return None
    backup_dir = path.parent / ".backup"
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        backup_path = backup_dir / f"{path.name}.bak"
        shutil.copy2(path, backup_path)
        return backup_path
    except OSError as e:
        logger.warning(f"Could not back up {path}: {e}")
        return None


class ReadFile(BaseTool):
    TOOL_NAME = "read_file"
    TOOL_DESCRIPTION = """Read the contents of a text file.

Optionally restrict the output to a range of lines; line numbers start at 1 and the end line is inclusive.
Relative paths are resolved against the project directory.
"""

    path: str = Field(..., description="The path of the file to read")
    start_line: Optional[int] = Field(
        None, description="First line to return (1-based, optional)", ge=1
    )
    end_line: Optional[int] = Field(
        None, description="Last line to return (inclusive, optional)", ge=1
    )

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        if not path.is_file():
            return self.fail(f"File not found: {path}")

        content = path.read_text()
        if self.start_line is None and self.end_line is None:
            return self.ok(content)

        lines = content.split("\n")
        start = (self.start_line or 1) - 1
        end = self.end_line or len(lines)
        return self.ok("\n".join(lines[start:end]))


class WriteFile(BaseTool):
    TOOL_NAME = "write_file"
    TOOL_DESCRIPTION = """Write content to a file, creating it (and any missing parent directories) if needed.

Any existing content is overwritten.
"""

    path: str = Field(..., description="The path of the file to write")
    content: str = Field(..., description="The full content to write to the file")

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.content)
        return self.ok(f"File written successfully: {path}")


class EditFile(BaseTool):
    TOOL_NAME = "edit_file"
    TOOL_DESCRIPTION = """Replace one exact occurrence of a string in a file.

The old string must appear exactly once in the file; include enough surrounding context to make it unique.
A backup of the previous version is saved to .backup/<name>.bak before editing.
"""

    path: str = Field(..., description="The path of the file to edit")
    old_string: str = Field(
        ..., description="The exact text to find (must match exactly once)", min_length=1
    )
    new_string: str = Field(..., description="The replacement text")

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        if not path.is_file():
            return self.fail(f"File not found: {path}")

        content = path.read_text()
        matches = content.count(self.old_string)
        if matches == 0:
            return self.fail("The given string was not found. Check the file content.")
        if matches > 1:
            return self.fail(
                f"Found {matches} matches. Provide a more specific string."
            )

        create_backup(path)
        path.write_text(content.replace(self.old_string, self.new_string, 1))
        return self.ok(f"File edited successfully: {path}")


class ListDirectory(BaseTool):
    TOOL_NAME = "list_directory"
    TOOL_DESCRIPTION = """List the files and folders in a directory.

Entries are prefixed with [DIR] or [FILE]. With recursive set, sub-directories are listed too, with paths relative to the given directory.
"""

    path: str = Field(".", description="The directory to list")
    recursive: bool = Field(False, description="Whether to include sub-directories")

    def _list_recursive(self, base: Path, relative: Path) -> list[str]:
        results = []
        for item in sorted((base / relative).iterdir()):
            item_relative = relative / item.name
            if item.is_dir():
                results.append(f"[DIR] {item_relative}")
                results.extend(self._list_recursive(base, item_relative))
            else:
                results.append(f"[FILE] {item_relative}")
        return results

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        if not path.is_dir():
            return self.fail(f"Directory not found: {path}")

        if self.recursive:
            return self.ok("\n".join(self._list_recursive(path, Path())))

        entries = [
            f"{'[DIR]' if item.is_dir() else '[FILE]'} {item.name}"
            for item in sorted(path.iterdir())
        ]
        return self.ok("\n".join(entries))


class CreateDirectory(BaseTool):
    TOOL_NAME = "create_directory"
    TOOL_DESCRIPTION = """Create a new directory, including any missing parents."""

    path: str = Field(..., description="The directory to create")

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        path.mkdir(parents=True, exist_ok=True)
        return self.ok(f"Directory created: {path}")


class DeleteFile(BaseTool):
    TOOL_NAME = "delete_file"
    TOOL_DESCRIPTION = """Delete a file or an empty directory.

Files are backed up to .backup/<name>.bak before deletion. Non-empty directories are refused.
"""

    path: str = Field(..., description="The file or empty directory to delete")

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        if not path.exists():
            return self.fail(f"File or directory not found: {path}")

        if path.is_dir():
            if any(path.iterdir()):
                return self.fail(f"Directory is not empty: {path}")
            path.rmdir()
            return self.ok(f"Directory deleted: {path}")

        create_backup(path)
        path.unlink()
        return self.ok(f"Deleted: {path}")


class SearchFiles(BaseTool):
    TOOL_NAME = "search_files"
    TOOL_DESCRIPTION = f"""Search file contents for a regular expression.

Returns up to {SEARCH_RESULT_LIMIT} matching lines as path:line: text. Dependency and build folders
({', '.join(sorted(SEARCH_SKIP_DIRS))}) are skipped. Restrict the search to one file extension
with file_pattern, e.g. "*.py".
"""

    path: str = Field(".", description="The directory to search in")
    pattern: str = Field(..., description="The text or regular expression to search for")
    file_pattern: Optional[str] = Field(
        None, description="Only search files with this extension, e.g. *.py"
    )

    def _search(self, directory: Path, regex: re.Pattern, extension: str | None, results: list[str]):
        for item in sorted(directory.iterdir()):
            if len(results) >= SEARCH_RESULT_LIMIT:
                return
            if item.is_dir():
                if item.name not in SEARCH_SKIP_DIRS:
                    self._search(item, regex, extension, results)
                continue
            if extension is not None and item.suffix != extension:
                continue
            try:
                lines = item.read_text().split("\n")
            except (UnicodeDecodeError, OSError):
                continue
            for i, line in enumerate(lines):
                if regex.search(line):
                    results.append(f"{item}:{i + 1}: {line.strip()}")
                    if len(results) >= SEARCH_RESULT_LIMIT:
                        return

    async def run(self) -> ToolResult:
        path = self.resolve_path(self.path)
        if not path.is_dir():
            return self.fail(f"Directory not found: {path}")
        try:
            regex = re.compile(self.pattern)
        except re.error as e:
            return self.fail(f"Invalid regular expression: {e}")

        extension = self.file_pattern.replace("*", "") if self.file_pattern else None
        results: list[str] = []
        self._search(path, regex, extension, results)

        if not results:
            return self.ok("No matches found.")
        return self.ok("\n\n".join(results))
