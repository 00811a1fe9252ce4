"""CLI entry point for swot-harness."""

from __future__ import annotations

import asyncio
import logging
import signal
import uuid

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from swotharness.approval.gate import ApprovalGate
from swotharness.approval.prompt import RichApprovalPrompt
from swotharness.cli.output import BlockPrinter
from swotharness.core.config import load_config
from swotharness.core.factory import AgentHarness, create_agent_harness
from swotharness.errors import TransportError
from swotharness.providers import create_transport, default_model
from swotharness.types.config import HarnessConfig
from swotharness.types.messages import AgentMessage, TurnCallbacks

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.option("--cwd", default=None, help="Directory to look for .swot-harness/config.toml")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, cwd: str | None) -> None:
    """swot-harness -- tool-calling SWOT analysis agent.

    \b
    Usage:
      swot-harness ask "Summarise the open Jira risks as a SWOT"
      swot-harness ask --workspace ./reports "Write the SWOT to swot.md"
      swot-harness tools
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["cwd"] = cwd


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--provider", "-p", default=None, help="LLM provider (anthropic, openai)")
@click.option("--model", "-m", default=None, help="Model ID")
@click.option("--api-key", default=None, help="Provider API key")
@click.option("--base-url", default=None, help="Provider base URL")
@click.option("--workspace", "-w", default=None, help="Enable file tools rooted here")
@click.option("--thinking-budget", type=int, default=None, help="Thinking tokens (0 disables)")
@click.option("--system", "system_prompt", default=None, help="System prompt")
@click.pass_context
def ask(
    ctx: click.Context,
    prompt: tuple[str, ...],
    provider: str | None,
    model: str | None,
    api_key: str | None,
    base_url: str | None,
    workspace: str | None,
    thinking_budget: int | None,
    system_prompt: str | None,
) -> None:
    """Run one agent turn for PROMPT."""
    config = load_config(
        ctx.obj.get("cwd"),
        provider=provider,
        model=model,
        api_key=api_key,
        base_url=base_url,
        workspace=workspace,
        thinking_budget=thinking_budget,
        system_prompt=system_prompt,
    )
    if not config.api_key:
        raise click.UsageError(
            f"No API key for {config.provider}. Pass --api-key or set the environment variable."
        )
    try:
        transport = create_transport(config)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    harness = create_agent_harness(
        transport,
        workspace=config.workspace,
        approval_timeout_ms=config.approval_timeout_ms,
    )
    code = asyncio.run(_run_turn(harness, config, " ".join(prompt)))
    ctx.exit(code)


async def _run_turn(harness: AgentHarness, config: HarnessConfig, prompt: str) -> int:
    err_console = Console(stderr=True)
    printer = BlockPrinter(err_console=err_console)
    gate = ApprovalGate(
        harness.broker,
        conversation_id=str(uuid.uuid4()),
        timeout_ms=config.approval_timeout_ms,
    )
    gate.on_block = RichApprovalPrompt(err_console).listener(gate)

    messages: list[AgentMessage] = []
    if config.system_prompt:
        messages.append(AgentMessage(role="system", content=config.system_prompt))
    messages.append(AgentMessage(role="user", content=prompt))

    callbacks = TurnCallbacks(
        on_chunk=printer.print_chunk,
        on_block=printer.print_block,
        on_approval_request=gate,
        on_tool_activity=printer.print_tool_activity,
    )

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, harness.loop.interrupt)
    except NotImplementedError:
        logger.debug("Signal handlers unsupported; Ctrl+C will abort instead of interrupt")

    try:
        result = await harness.loop.run_turn(
            config.api_key or "",
            config.model or default_model(config.provider),
            messages,
            callbacks,
            config.thinking_budget,
        )
    except TransportError as exc:
        err_console.print(f"[red]{exc.code.value}[/red] {exc.message}")
        return 1
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    printer.print_summary(result)
    return 0


@cli.command("tools")
@click.option("--workspace", "-w", default=None, help="Include file tools rooted here")
@click.option("--provider", "-p", default=None, help="LLM provider")
@click.pass_context
def tools_cmd(ctx: click.Context, workspace: str | None, provider: str | None) -> None:
    """List the tools offered to the model."""
    config = load_config(ctx.obj.get("cwd"), provider=provider, workspace=workspace)
    try:
        transport = create_transport(config)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    harness = create_agent_harness(transport, workspace=config.workspace)

    table = Table(title="Tools")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Approval")
    for name in harness.registry.get_all_names():
        category = harness.registry.get_category(name)
        table.add_row(
            name,
            category.value if category else "?",
            "required" if harness.registry.requires_approval(name) else "",
        )
    Console().print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
