"""Tool catalog, dispatch and built-in executors."""

from swotharness.tools.files import (
    READ_FILE_TOOLS,
    WRITE_FILE_TOOLS,
    WorkspaceFiles,
    WorkspacePathError,
)
from swotharness.tools.handlers import HandlerExecutor, ToolHandler
from swotharness.tools.registry import ToolRegistry
from swotharness.tools.render import RENDER_TOOL_NAMES, RENDER_TOOLS, RenderExecutor
from swotharness.tools.router import ToolExecutorRouter

__all__ = [
    "HandlerExecutor",
    "READ_FILE_TOOLS",
    "RENDER_TOOLS",
    "RENDER_TOOL_NAMES",
    "RenderExecutor",
    "ToolExecutorRouter",
    "ToolHandler",
    "ToolRegistry",
    "WRITE_FILE_TOOLS",
    "WorkspaceFiles",
    "WorkspacePathError",
]
