"""Composition root: wires registry, executors, router and loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from swotharness.approval.broker import ApprovalBroker
from swotharness.core.loop import AgentLoop
from swotharness.tools.files import READ_FILE_TOOLS, WRITE_FILE_TOOLS, WorkspaceFiles
from swotharness.tools.handlers import HandlerExecutor
from swotharness.tools.registry import ToolRegistry
from swotharness.tools.render import RENDER_TOOLS, ComparisonFn, RenderExecutor
from swotharness.tools.router import ToolExecutorRouter
from swotharness.types.providers import LlmTransport
from swotharness.types.tools import ToolCategory, ToolDefinition

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AgentHarness:
    """Everything a caller needs to run turns and answer approvals."""

    loop: AgentLoop
    registry: ToolRegistry
    router: ToolExecutorRouter
    broker: ApprovalBroker


def create_agent_harness(
    transport: LlmTransport,
    *,
    workspace: str | Path | None = None,
    compare: ComparisonFn | None = None,
    read_executor: HandlerExecutor | None = None,
    write_executor: HandlerExecutor | None = None,
    read_tools: list[ToolDefinition] | None = None,
    write_tools: list[ToolDefinition] | None = None,
    approval_timeout_ms: int | None = None,
) -> AgentHarness:
    """Build a ready-to-use harness.

    Render tools are always registered. With a ``workspace`` the file tools
    join the read and write categories. Extra read/write tools are offered
    only when definitions are given; their handlers go on the matching
    executor.
    """
    registry = ToolRegistry()
    registry.register_all(RENDER_TOOLS, ToolCategory.RENDER)

    if workspace is not None:
        files = WorkspaceFiles(workspace)
        read_executor = read_executor or HandlerExecutor()
        write_executor = write_executor or HandlerExecutor()
        read_executor.update(files.read_handlers())
        write_executor.update(files.write_handlers())
        registry.register_all(READ_FILE_TOOLS, ToolCategory.READ)
        registry.register_all(WRITE_FILE_TOOLS, ToolCategory.WRITE)

    if read_tools:
        registry.register_all(read_tools, ToolCategory.READ)
    if write_tools:
        registry.register_all(write_tools, ToolCategory.WRITE)

    router = ToolExecutorRouter(
        RenderExecutor(compare),
        read_executor=read_executor,
        write_executor=write_executor,
    )
    broker = ApprovalBroker() if approval_timeout_ms is None else ApprovalBroker(approval_timeout_ms)
    logger.debug("Created harness with %r", registry)
    return AgentHarness(
        loop=AgentLoop(transport, registry, router),
        registry=registry,
        router=router,
        broker=broker,
    )
