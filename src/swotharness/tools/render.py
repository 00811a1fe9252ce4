"""Render tools — turn validated model input into content blocks.

Render tools never perform I/O (``render_comparison`` aside, which asks an
injected comparison service for the diff) and never need approval. Invalid
input is reported back to the model as ``{"error": ...}`` content, never
raised.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

from swotharness.types.blocks import CHART_TYPES, BlockType, ContentBlock
from swotharness.types.tools import ToolDefinition, ToolExecutionOutput

ComparisonFn = Callable[[str, str], Awaitable[Any]]

_SWOT_QUADRANTS = ("strengths", "weaknesses", "opportunities", "threats")

RENDER_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="render_swot_analysis",
        description=(
            "Display SWOT analysis results as interactive cards in the chat. Use this "
            "to present strengths, weaknesses, opportunities, and threats with evidence."
        ),
        parameters={
            "type": "object",
            "properties": {
                "strengths": {
                    "type": "array",
                    "items": {"type": "object"},
                    "description": (
                        "Array of strength items with claim, evidence, impact, "
                        "recommendation, confidence"
                    ),
                },
                "weaknesses": {
                    "type": "array",
                    "items": {"type": "object"},
                    "description": "Array of weakness items",
                },
                "opportunities": {
                    "type": "array",
                    "items": {"type": "object"},
                    "description": "Array of opportunity items",
                },
                "threats": {
                    "type": "array",
                    "items": {"type": "object"},
                    "description": "Array of threat items",
                },
            },
            "required": list(_SWOT_QUADRANTS),
        },
    ),
    ToolDefinition(
        name="render_summary_cards",
        description=(
            "Display data source summaries as cards in the chat. Shows a summary for "
            "each data source (profiles, Jira, Confluence, GitHub, codebase)."
        ),
        parameters={
            "type": "object",
            "properties": {
                "profiles": {"type": "string", "description": "Summary of stakeholder profile data"},
                "jira": {"type": "string", "description": "Summary of Jira data"},
                "confluence": {
                    "type": ["string", "null"],
                    "description": "Summary of Confluence data (null if not used)",
                },
                "github": {
                    "type": ["string", "null"],
                    "description": "Summary of GitHub data (null if not used)",
                },
                "codebase": {
                    "type": ["string", "null"],
                    "description": "Summary of codebase analysis data (null if not used)",
                },
            },
            "required": ["profiles", "jira"],
        },
    ),
    ToolDefinition(
        name="render_quality_metrics",
        description=(
            "Display evidence quality metrics in the chat. Shows total items, "
            "multi-source items, confidence distribution, and quality score."
        ),
        parameters={
            "type": "object",
            "properties": {
                "totalItems": {"type": "number", "description": "Total number of SWOT items"},
                "multiSourceItems": {
                    "type": "number",
                    "description": "Number of items backed by multiple sources",
                },
                "sourceTypeCoverage": {
                    "type": "object",
                    "description": "Map of source type to count of items citing it",
                },
                "confidenceDistribution": {
                    "type": "object",
                    "properties": {
                        "high": {"type": "number"},
                        "medium": {"type": "number"},
                        "low": {"type": "number"},
                    },
                    "required": ["high", "medium", "low"],
                    "description": "Distribution of confidence levels across items",
                },
                "averageEvidencePerItem": {
                    "type": "number",
                    "description": "Average number of evidence entries per item",
                },
                "qualityScore": {"type": "number", "description": "Overall quality score (0-100)"},
                "sourceCoverage": {
                    "type": "array",
                    "items": {"type": "object"},
                    "description": "Per-source coverage entries (optional)",
                },
            },
            "required": [
                "totalItems",
                "multiSourceItems",
                "sourceTypeCoverage",
                "confidenceDistribution",
                "averageEvidencePerItem",
                "qualityScore",
            ],
        },
    ),
    ToolDefinition(
        name="render_mermaid",
        description=(
            "Render a Mermaid diagram inline in the chat. Use this for architecture "
            "diagrams, flowcharts, sequence diagrams, etc."
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Title displayed above the diagram"},
                "source": {"type": "string", "description": "Mermaid diagram syntax"},
            },
            "required": ["title", "source"],
        },
    ),
    ToolDefinition(
        name="render_chart",
        description=(
            "Render a chart (bar, line, pie, radar, doughnut) inline in the chat. "
            "Use for data visualizations."
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Chart title"},
                "chartType": {
                    "type": "string",
                    "enum": list(CHART_TYPES),
                    "description": "Type of chart to render",
                },
                "spec": {
                    "type": "object",
                    "description": (
                        "Chart specification. spec.data holds labels and datasets; "
                        "spec.options is optional."
                    ),
                },
            },
            "required": ["title", "chartType", "spec"],
        },
    ),
    ToolDefinition(
        name="render_data_table",
        description=(
            "Render a data table inline in the chat. Use for tabular data such as "
            "issue lists, comparison tables, metrics breakdowns."
        ),
        parameters={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Table title"},
                "headers": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Column headers",
                },
                "rows": {
                    "type": "array",
                    "items": {"type": "array", "items": {"type": "string"}},
                    "description": "Table rows (array of arrays of cell values)",
                },
            },
            "required": ["title", "headers", "rows"],
        },
    ),
    ToolDefinition(
        name="render_comparison",
        description=(
            "Render a side-by-side comparison of two analyses in the chat. Use when "
            "the user asks to compare analysis runs."
        ),
        parameters={
            "type": "object",
            "properties": {
                "baseAnalysisId": {
                    "type": "string",
                    "description": "ID of the base analysis (left side)",
                },
                "compareAnalysisId": {
                    "type": "string",
                    "description": "ID of the analysis to compare against (right side)",
                },
            },
            "required": ["baseAnalysisId", "compareAnalysisId"],
        },
    ),
)

RENDER_TOOL_NAMES: tuple[str, ...] = tuple(t.name for t in RENDER_TOOLS)


class RenderExecutor:
    """Maps render tool calls onto content blocks."""

    def __init__(self, compare: ComparisonFn | None = None) -> None:
        self._compare = compare
        self._handlers: dict[
            str, Callable[[dict[str, Any]], Awaitable[ToolExecutionOutput]]
        ] = {
            "render_swot_analysis": self._render_swot_analysis,
            "render_summary_cards": self._render_summary_cards,
            "render_quality_metrics": self._render_quality_metrics,
            "render_mermaid": self._render_mermaid,
            "render_chart": self._render_chart,
            "render_data_table": self._render_data_table,
            "render_comparison": self._render_comparison,
        }

    async def execute(
        self, tool_name: str, tool_input: dict[str, Any],
    ) -> ToolExecutionOutput:
        handler = self._handlers.get(tool_name)
        if handler is None:
            return _error(f"Unknown render tool: {tool_name}")
        return await handler(tool_input)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _render_swot_analysis(self, args: dict[str, Any]) -> ToolExecutionOutput:
        if not all(isinstance(args.get(q), list) for q in _SWOT_QUADRANTS):
            return _error(
                "render_swot_analysis requires strengths, weaknesses, "
                "opportunities, and threats arrays"
            )
        return _block(BlockType.SWOT_ANALYSIS, {q: args[q] for q in _SWOT_QUADRANTS})

    async def _render_summary_cards(self, args: dict[str, Any]) -> ToolExecutionOutput:
        if not isinstance(args.get("profiles"), str) or not isinstance(args.get("jira"), str):
            return _error("render_summary_cards requires profiles and jira strings")
        return _block(BlockType.SUMMARY_CARDS, {
            "profiles": args["profiles"],
            "jira": args["jira"],
            "confluence": args.get("confluence"),
            "github": args.get("github"),
            "codebase": args.get("codebase"),
        })

    async def _render_quality_metrics(self, args: dict[str, Any]) -> ToolExecutionOutput:
        if not _is_number(args.get("totalItems")) or not _is_number(args.get("qualityScore")):
            return _error("render_quality_metrics requires totalItems and qualityScore numbers")
        data: dict[str, Any] = {
            "totalItems": args["totalItems"],
            "multiSourceItems": args.get("multiSourceItems", 0),
            "sourceTypeCoverage": args.get("sourceTypeCoverage", {}),
            "confidenceDistribution": args.get(
                "confidenceDistribution", {"high": 0, "medium": 0, "low": 0},
            ),
            "averageEvidencePerItem": args.get("averageEvidencePerItem", 0),
            "qualityScore": args["qualityScore"],
        }
        if "sourceCoverage" in args:
            data["sourceCoverage"] = args["sourceCoverage"]
        return _block(BlockType.QUALITY_METRICS, data)

    async def _render_mermaid(self, args: dict[str, Any]) -> ToolExecutionOutput:
        title, source = args.get("title"), args.get("source")
        if not isinstance(title, str) or not isinstance(source, str):
            return _error("render_mermaid requires title and source strings")
        if not source.strip():
            return _error("render_mermaid source cannot be empty")
        return _block(BlockType.MERMAID, {"title": title, "source": source})

    async def _render_chart(self, args: dict[str, Any]) -> ToolExecutionOutput:
        title, chart_type, spec = args.get("title"), args.get("chartType"), args.get("spec")
        if not isinstance(title, str) or not isinstance(chart_type, str) or not spec:
            return _error("render_chart requires title, chartType, and spec")
        if chart_type not in CHART_TYPES:
            return _error(f"render_chart chartType must be one of: {', '.join(CHART_TYPES)}")
        if not isinstance(spec, dict):
            return _error("render_chart spec must be an object")
        spec_data = spec.get("data")
        if not isinstance(spec_data, dict):
            return _error(
                "render_chart spec.data is required and must be an object "
                "with labels and datasets"
            )
        if not isinstance(spec_data.get("labels"), list):
            return _error("render_chart spec.data.labels must be an array")
        datasets = spec_data.get("datasets")
        if not isinstance(datasets, list) or not datasets:
            return _error("render_chart spec.data.datasets must be a non-empty array")
        return _block(BlockType.CHART, {"title": title, "chartType": chart_type, "spec": spec})

    async def _render_data_table(self, args: dict[str, Any]) -> ToolExecutionOutput:
        title, headers, rows = args.get("title"), args.get("headers"), args.get("rows")
        if not isinstance(title, str) or not isinstance(headers, list) or not isinstance(rows, list):
            return _error("render_data_table requires title string, headers array, and rows array")
        return _block(BlockType.DATA_TABLE, {"title": title, "headers": headers, "rows": rows})

    async def _render_comparison(self, args: dict[str, Any]) -> ToolExecutionOutput:
        base_id, compare_id = args.get("baseAnalysisId"), args.get("compareAnalysisId")
        if not isinstance(base_id, str) or not isinstance(compare_id, str):
            return _error(
                "render_comparison requires baseAnalysisId and compareAnalysisId strings"
            )
        if self._compare is None:
            return _error("Comparison service not available")
        diff = await self._compare(base_id, compare_id)
        return _block(BlockType.COMPARISON, {
            "baseAnalysisId": base_id,
            "compareAnalysisId": compare_id,
            "diff": diff,
        })


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _block(block_type: BlockType, data: dict[str, Any]) -> ToolExecutionOutput:
    return ToolExecutionOutput(block=ContentBlock.create(block_type, data))


def _error(message: str) -> ToolExecutionOutput:
    return ToolExecutionOutput(content=json.dumps({"error": message}))
