"""Terminal rendering of streamed text, content blocks and turn results."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from swotharness.types.blocks import BlockType, ContentBlock
from swotharness.types.messages import AgentTurnResult, ToolActivity

_QUADRANT_STYLES = {
    "strengths": "green",
    "weaknesses": "red",
    "opportunities": "cyan",
    "threats": "yellow",
}


class BlockPrinter:
    """Prints what a turn produces; text to stdout, status to stderr."""

    def __init__(self, console: Console | None = None, err_console: Console | None = None) -> None:
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)

    def print_chunk(self, text: str) -> None:
        self.console.print(text, end="", markup=False, highlight=False)

    def print_tool_activity(
        self, tool_name: str, activity: ToolActivity, message: str | None,
    ) -> None:
        match activity:
            case ToolActivity.STARTED:
                self.err_console.print(f"[#7c7c8a]\\[tool] {escape(tool_name)}…[/#7c7c8a]")
            case ToolActivity.ERROR:
                self.err_console.print(
                    f"[red]\\[tool] {escape(tool_name)} failed:[/red] {escape(message or '')}"
                )
            case ToolActivity.COMPLETED:
                pass

    def print_block(self, block: ContentBlock) -> None:
        data = block.data
        match block.type:
            case BlockType.THINKING:
                self.err_console.print(Panel(
                    Text(data.get("thinking", ""), style="italic #7c7c8a"),
                    title="thinking",
                    border_style="#7c7c8a",
                ))
            case BlockType.SWOT_ANALYSIS:
                self.console.print(self._swot_table(data))
            case BlockType.SUMMARY_CARDS:
                table = Table(title="Data sources", show_header=False)
                for source in ("profiles", "jira", "confluence", "github", "codebase"):
                    if data.get(source):
                        table.add_row(Text(source, style="bold"), data[source])
                self.console.print(table)
            case BlockType.QUALITY_METRICS:
                table = Table(title="Evidence quality", show_header=False)
                for key, value in data.items():
                    table.add_row(Text(key, style="bold"), _cell(value))
                self.console.print(table)
            case BlockType.MERMAID:
                self.console.print(Panel(data.get("source", ""), title=data.get("title")))
            case BlockType.CHART:
                self.console.print(self._chart_table(data))
            case BlockType.DATA_TABLE:
                table = Table(title=data.get("title"))
                for header in data.get("headers", []):
                    table.add_column(str(header))
                for row in data.get("rows", []):
                    table.add_row(*(_cell(c) for c in row))
                self.console.print(table)
            case BlockType.APPROVAL | BlockType.ACTION_STATUS:
                pass  # handled by the approval prompt
            case _:
                self.console.print(Panel(
                    json.dumps(data, indent=2, default=str), title=block.type.value,
                ))

    def print_summary(self, result: AgentTurnResult) -> None:
        self.console.print()
        parts = [f"Blocks: {len(result.blocks)}"]
        if result.input_tokens or result.output_tokens:
            parts.append(f"Tokens: {result.input_tokens:,} in / {result.output_tokens:,} out")
        if result.interrupted:
            parts.append("[yellow]interrupted[/yellow]")
        self.err_console.print(" | ".join(parts))

    @staticmethod
    def _swot_table(data: dict[str, Any]) -> Table:
        table = Table(title="SWOT analysis", show_lines=True)
        table.add_column("Quadrant")
        table.add_column("Claim")
        table.add_column("Confidence")
        for quadrant, style in _QUADRANT_STYLES.items():
            for item in data.get(quadrant, []):
                if isinstance(item, dict):
                    claim, confidence = item.get("claim", ""), item.get("confidence", "")
                else:
                    claim, confidence = item, ""
                table.add_row(Text(quadrant, style=style), _cell(claim), _cell(confidence))
        return table

    @staticmethod
    def _chart_table(data: dict[str, Any]) -> Table:
        chart_data = data.get("spec", {}).get("data", {})
        labels = chart_data.get("labels", [])
        table = Table(title=f"{data.get('title', '')} ({data.get('chartType', '')})")
        table.add_column("")
        for label in labels:
            table.add_column(_cell(label))
        for dataset in chart_data.get("datasets", []):
            values = dataset.get("data", []) if isinstance(dataset, dict) else []
            name = dataset.get("label", "") if isinstance(dataset, dict) else ""
            table.add_row(_cell(name), *(_cell(v) for v in values[: len(labels)]))
        return table


def _cell(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)
