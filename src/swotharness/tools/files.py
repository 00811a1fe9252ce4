"""Workspace file tools: read_file, list_files (read) and write_file (write).

Every path is resolved against a workspace root and must stay inside it.
Relative paths only; ``..`` segments, absolute paths and drive letters are
refused before touching the filesystem.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from swotharness.tools.handlers import ToolHandler
from swotharness.types.tools import ToolDefinition

_MAX_LINE_LENGTH = 2000
_DEFAULT_LIMIT = 2000
_MAX_RESULTS = 200

_IGNORED_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv"})
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:")

READ_FILE_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="read_file",
        description=(
            "Read a text file from the workspace. Optionally pass an offset "
            "(1-based line number) and a limit (number of lines). Returns the "
            "content with line numbers."
        ),
        parameters={
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Workspace-relative file path"},
                "offset": {"type": "integer", "description": "1-based line to start from"},
                "limit": {
                    "type": "integer",
                    "description": f"Maximum number of lines (default {_DEFAULT_LIMIT})",
                },
            },
            "required": ["path"],
        },
    ),
    ToolDefinition(
        name="list_files",
        description=(
            "List workspace files matching a glob pattern, newest first, up to "
            f"{_MAX_RESULTS} matches."
        ),
        parameters={
            "type": "object",
            "properties": {
                "pattern": {
                    "type": "string",
                    "description": "Glob pattern, e.g. '**/*.md' (default '**/*')",
                },
            },
        },
    ),
)

WRITE_FILE_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="write_file",
        description=(
            "Write a file into the workspace, creating parent directories. "
            "Existing files are overwritten. Requires user approval."
        ),
        parameters={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Workspace-relative path, e.g. 'reports/swot.md'",
                },
                "content": {"type": "string", "description": "Full file content"},
            },
            "required": ["path", "content"],
        },
    ),
)


class WorkspacePathError(ValueError):
    """A tool asked for a path outside the workspace."""


class WorkspaceFiles:
    """File tools bound to one workspace root."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def read_handlers(self) -> dict[str, ToolHandler]:
        return {"read_file": self.read_file, "list_files": self.list_files}

    def write_handlers(self) -> dict[str, ToolHandler]:
        return {"write_file": self.write_file}

    def resolve(self, raw_path: str) -> Path:
        """Map a workspace-relative path to an absolute one inside the root."""
        if not raw_path:
            raise WorkspacePathError("path is required")
        if ".." in Path(raw_path).parts or ".." in raw_path.split("\\"):
            raise WorkspacePathError("Path traversal is not allowed")
        if raw_path.startswith(("/", "\\")) or _DRIVE_LETTER.match(raw_path):
            raise WorkspacePathError("Absolute paths are not allowed")
        path = (self.root / raw_path).resolve()
        if not path.is_relative_to(self.root):
            raise WorkspacePathError("Path escapes the workspace")
        return path

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def read_file(self, args: dict[str, Any]) -> str:
        try:
            path = self.resolve(args.get("path", ""))
        except WorkspacePathError as exc:
            return _error(str(exc))

        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return _error(f"File not found: {args['path']}")
        except IsADirectoryError:
            return _error(f"Path is a directory, not a file: {args['path']}")
        except PermissionError:
            return _error(f"Permission denied: {args['path']}")
        except UnicodeDecodeError:
            return _error(f"Cannot read file as text: {args['path']}")

        lines = text.splitlines()
        offset: int | None = args.get("offset")
        limit: int | None = args.get("limit")
        start = max(0, (offset - 1) if offset is not None else 0)
        end = start + (limit if limit is not None else _DEFAULT_LIMIT)

        numbered: list[str] = []
        for i, line in enumerate(lines[start:end], start=start + 1):
            if len(line) > _MAX_LINE_LENGTH:
                line = line[:_MAX_LINE_LENGTH] + " [truncated]"
            numbered.append(f"{i:>6}\t{line}")

        content = "\n".join(numbered)
        if end < len(lines):
            content += f"\n[...{len(lines) - end} more lines not shown (offset={end + 1})]"
        return content

    async def list_files(self, args: dict[str, Any]) -> str:
        pattern: str = args.get("pattern") or "**/*"
        if ".." in pattern.split("/") or pattern.startswith("/"):
            return _error("Pattern must stay inside the workspace")
        if not self.root.is_dir():
            return _error("Workspace does not exist")

        matched = [
            p
            for p in self.root.glob(pattern)
            if p.is_file()
            and not any(part in _IGNORED_DIRS for part in p.relative_to(self.root).parts)
        ]
        matched.sort(key=lambda p: p.stat().st_mtime, reverse=True)

        results = matched[:_MAX_RESULTS]
        if not results:
            return f"No files matched pattern '{pattern}'"
        lines = [p.relative_to(self.root).as_posix() for p in results]
        if len(matched) > len(results):
            lines.append(f"[...{len(matched) - len(results)} more results not shown]")
        return "\n".join(lines)

    async def write_file(self, args: dict[str, Any]) -> str:
        content = args.get("content")
        if not isinstance(content, str):
            return _error("content is required")
        try:
            path = self.resolve(args.get("path", ""))
        except WorkspacePathError as exc:
            return _error(str(exc))

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except PermissionError:
            return _error(f"Permission denied writing to: {args['path']}")
        except OSError as exc:
            return _error(f"OS error writing file: {exc}")

        return json.dumps({
            "success": True,
            "path": path.relative_to(self.root).as_posix(),
            "bytes": len(content.encode("utf-8")),
        })


def _error(message: str) -> str:
    return json.dumps({"error": message})
