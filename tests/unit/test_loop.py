"""Tests for swotharness.core.loop — the agent turn loop."""

from __future__ import annotations

import asyncio
import json
from dataclasses import fields
from typing import Any

import pytest

from swotharness.approval.broker import ApprovalBroker
from swotharness.approval.gate import ApprovalGate
from swotharness.core.loop import (
    DECLINED_MESSAGE,
    INTERRUPTED_MESSAGE,
    MAX_ITERATIONS_NOTICE,
    MAX_LOOP_ITERATIONS,
    AgentLoop,
)
from swotharness.errors import ErrorCode, TransportError
from swotharness.tools.handlers import HandlerExecutor
from swotharness.tools.registry import ToolRegistry
from swotharness.tools.render import RENDER_TOOLS, RenderExecutor
from swotharness.tools.router import ToolExecutorRouter
from swotharness.types.blocks import BlockType, ContentBlock
from swotharness.types.messages import (
    AgentMessage,
    AgentState,
    ToolActivity,
    TurnCallbacks,
)
from swotharness.types.providers import LlmResponse, LlmUsage
from swotharness.types.tools import ToolCategory, ToolDefinition
from tests.conftest import MockTransport, call, text_response, tool_response

MERMAID_ARGS = {"title": "Flow", "source": "graph TD; A-->B"}
JIRA_ISSUE_ARGS = {"projectKey": "PROJ", "summary": "Fix login", "issueType": "Bug"}


class _Tools:
    """Registry plus recording read/write handlers."""

    def __init__(self) -> None:
        self.write_calls: list[dict[str, Any]] = []
        self.read_calls: list[dict[str, Any]] = []
        self.read_hook: Any = None

        self.registry = ToolRegistry()
        self.registry.register_all(RENDER_TOOLS, ToolCategory.RENDER)
        self.registry.register(
            ToolDefinition("fetch_jira_data", "Read cached Jira data"), ToolCategory.READ,
        )
        self.registry.register(
            ToolDefinition("create_jira_issue", "Create a Jira issue"), ToolCategory.WRITE,
        )
        self.registry.register(
            ToolDefinition("explode", "Always fails"), ToolCategory.READ,
        )

        self.router = ToolExecutorRouter(
            RenderExecutor(),
            read_executor=HandlerExecutor({
                "fetch_jira_data": self._fetch,
                "explode": self._explode,
            }),
            write_executor=HandlerExecutor({"create_jira_issue": self._create}),
        )

    async def _fetch(self, args: dict[str, Any]) -> str:
        self.read_calls.append(args)
        if self.read_hook is not None:
            self.read_hook()
        return json.dumps({"issues": [{"key": "PROJ-1", "summary": "Login broken"}]})

    async def _create(self, args: dict[str, Any]) -> str:
        self.write_calls.append(args)
        return json.dumps({"success": True, "key": "PROJ-42"})

    async def _explode(self, args: dict[str, Any]) -> str:
        raise RuntimeError("boom")


def _make_loop(steps: list[Any], **transport_kwargs: Any) -> tuple[AgentLoop, MockTransport, _Tools]:
    tools = _Tools()
    transport = MockTransport(steps, **transport_kwargs)
    return AgentLoop(transport, tools.registry, tools.router), transport, tools


def _user(text: str = "Analyse the backlog") -> list[AgentMessage]:
    return [AgentMessage(role="user", content=text)]


def _tool_messages(messages: tuple[AgentMessage, ...] | list[AgentMessage]) -> dict[str, str]:
    return {m.tool_call_id: m.content for m in messages if m.role == "tool"}


async def _approve(tool_name: str, tool_input: dict[str, Any]) -> bool:
    return True


async def _decline(tool_name: str, tool_input: dict[str, Any]) -> bool:
    return False


class TestBasicTurn:
    @pytest.mark.asyncio
    async def test_text_only_response(self):
        loop, transport, _ = _make_loop([text_response("Hello! Ready to analyse.")])
        states: list[AgentState] = []
        chunks: list[str] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_state_change=states.append, on_chunk=chunks.append),
        )

        assert result.content == "Hello! Ready to analyse."
        assert result.blocks == ()
        assert result.interrupted is False
        assert (result.input_tokens, result.output_tokens) == (100, 50)
        assert transport.call_count == 1
        assert states == [AgentState.THINKING, AgentState.IDLE]
        assert chunks == ["Hello! Ready to analyse."]

    @pytest.mark.asyncio
    async def test_request_carries_full_catalog_and_credentials(self):
        loop, transport, tools = _make_loop([text_response("ok")])

        await loop.run_turn("sk-test", "model-x", _user())

        request = transport.requests[0]
        assert request.api_key == "sk-test"
        assert request.model_id == "model-x"
        assert [t.name for t in request.tools] == tools.registry.get_all_names()
        assert request.messages[0].content == "Analyse the backlog"

    @pytest.mark.asyncio
    async def test_caller_messages_not_mutated(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "fetch_jira_data")),
            text_response("done"),
        ])
        messages = _user()

        result = await loop.run_turn("key", "model-x", messages)

        assert len(messages) == 1
        assert len(result.messages) == 3  # user, assistant, tool

    @pytest.mark.asyncio
    async def test_not_running_after_turn(self):
        loop, _, _ = _make_loop([text_response("ok")])
        assert loop.is_running is False
        await loop.run_turn("key", "model-x", _user())
        assert loop.is_running is False

    def test_callbacks_are_all_optional_hooks(self):
        callbacks = TurnCallbacks()
        assert [f.name for f in fields(callbacks)] == [
            "on_chunk", "on_thinking", "on_block", "on_state_change",
            "on_approval_request", "on_token_count", "on_tool_activity",
        ]
        assert all(getattr(callbacks, f.name) is None for f in fields(callbacks))

    @pytest.mark.asyncio
    async def test_interrupt_when_idle_is_noop(self):
        loop, _, _ = _make_loop([text_response("ok")])
        loop.interrupt()
        result = await loop.run_turn("key", "model-x", _user())
        assert result.interrupted is False


class TestThinkingBudget:
    @pytest.mark.asyncio
    async def test_default_budget_sent(self):
        loop, transport, _ = _make_loop([text_response("ok")])
        await loop.run_turn("key", "model-x", _user())
        assert transport.requests[0].thinking_budget == 10_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize("budget", [0, -5])
    async def test_non_positive_budget_omitted(self, budget: int):
        loop, transport, _ = _make_loop([text_response("ok")])
        await loop.run_turn("key", "model-x", _user(), thinking_budget=budget)
        assert transport.requests[0].thinking_budget is None


class TestThinking:
    @pytest.mark.asyncio
    async def test_structured_thinking_becomes_block(self):
        loop, _, _ = _make_loop([text_response("Answer", thinking="Let me weigh the risks")])
        thoughts: list[str] = []
        blocks: list[ContentBlock] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_thinking=thoughts.append, on_block=blocks.append),
        )

        assert result.content == "Answer"
        assert len(result.blocks) == 1
        assert result.blocks[0].type is BlockType.THINKING
        assert result.blocks[0].data == {"thinking": "Let me weigh the risks"}
        assert thoughts == ["Let me weigh the risks"]
        assert blocks == [result.blocks[0]]

    @pytest.mark.asyncio
    async def test_tag_fallback_strips_thinking_from_content(self):
        loop, _, _ = _make_loop([text_response("<thinking>hmm</thinking>\nThe answer.")])
        result = await loop.run_turn("key", "model-x", _user())
        assert result.content == "The answer."
        assert result.blocks[0].data["thinking"] == "hmm"


class TestRenderTools:
    @pytest.mark.asyncio
    async def test_render_block_and_compact_result(self):
        loop, transport, _ = _make_loop([
            tool_response(call("c1", "render_mermaid", MERMAID_ARGS)),
            text_response("Here is the diagram."),
        ])
        seen: list[ContentBlock] = []

        result = await loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_block=seen.append),
        )

        assert len(result.blocks) == 1
        block = result.blocks[0]
        assert block.type is BlockType.MERMAID
        assert block.data == MERMAID_ARGS
        assert seen == [block]

        second = transport.requests[1].messages
        tool_msg = second[-1]
        assert tool_msg.role == "tool"
        assert tool_msg.tool_call_id == "c1"
        assert json.loads(tool_msg.content) == {"rendered": "mermaid", "blockId": block.id}
        assert "graph TD" not in tool_msg.content

    @pytest.mark.asyncio
    async def test_chart_scenario_yields_one_chart_block(self):
        chart = {
            "title": "Velocity",
            "chartType": "bar",
            "spec": {
                "data": {
                    "labels": ["Q1", "Q2", "Q3"],
                    "datasets": [{"label": "Points", "data": [21, 34, 29]}],
                },
            },
        }
        loop, _, _ = _make_loop([
            tool_response(call("c1", "render_chart", chart)),
            text_response("Velocity dipped in Q3."),
        ])

        result = await loop.run_turn("key", "model-x", _user())

        assert result.interrupted is False
        assert [b.type for b in result.blocks] == [BlockType.CHART]
        assert result.blocks[0].data == chart
        assert json.loads(_tool_messages(result.messages)["c1"]) == {
            "rendered": "chart", "blockId": result.blocks[0].id,
        }

    @pytest.mark.asyncio
    async def test_large_payload_still_gets_compact_receipt(self):
        rows = [[f"PROJ-{n}", "Open", "x" * 50] for n in range(2000)]
        table = {"title": "Backlog", "headers": ["Key", "Status", "Notes"], "rows": rows}
        loop, transport, _ = _make_loop([
            tool_response(call("c1", "render_data_table", table)),
            text_response("Table rendered."),
        ])

        result = await loop.run_turn("key", "model-x", _user())

        block = result.blocks[0]
        assert block.type is BlockType.DATA_TABLE
        assert len(block.data["rows"]) == 2000
        tool_msg = transport.requests[1].messages[-1]
        assert json.loads(tool_msg.content) == {"rendered": "data_table", "blockId": block.id}
        assert len(tool_msg.content) < 100
        assert "PROJ-1999" not in tool_msg.content

    @pytest.mark.asyncio
    async def test_render_validation_error_is_tool_result(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "render_mermaid", {"title": "x", "source": "  "})),
            text_response("Sorry."),
        ])

        result = await loop.run_turn("key", "model-x", _user())

        assert result.blocks == ()
        payload = json.loads(_tool_messages(result.messages)["c1"])
        assert "error" in payload

    @pytest.mark.asyncio
    async def test_assistant_message_keeps_text_and_calls(self):
        loop, transport, _ = _make_loop([
            tool_response(call("c1", "render_mermaid", MERMAID_ARGS), content="Drawing it. "),
            text_response("Done."),
        ])

        result = await loop.run_turn("key", "model-x", _user())

        assistant = transport.requests[1].messages[1]
        assert assistant.role == "assistant"
        assert assistant.content == "Drawing it. "
        assert [tc.id for tc in assistant.tool_calls] == ["c1"]
        assert result.content == "Drawing it. Done."


class TestReadTools:
    @pytest.mark.asyncio
    async def test_read_result_passed_through(self):
        loop, transport, tools = _make_loop([
            tool_response(call("c1", "fetch_jira_data", {"projectKey": "PROJ"})),
            text_response("PROJ-1 is the main risk."),
        ])
        activity: list[tuple[str, ToolActivity, str | None]] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_tool_activity=lambda *a: activity.append(a)),
        )

        assert tools.read_calls == [{"projectKey": "PROJ"}]
        content = _tool_messages(transport.requests[1].messages)["c1"]
        assert json.loads(content)["issues"][0]["key"] == "PROJ-1"
        assert activity == [
            ("fetch_jira_data", ToolActivity.STARTED, None),
            ("fetch_jira_data", ToolActivity.COMPLETED, None),
        ]
        assert result.content == "PROJ-1 is the main risk."

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_error_result(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "explode")),
            text_response("That failed."),
        ])
        activity: list[tuple[str, ToolActivity, str | None]] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_tool_activity=lambda *a: activity.append(a)),
        )

        assert json.loads(_tool_messages(result.messages)["c1"]) == {"error": "boom"}
        assert activity[-1] == ("explode", ToolActivity.ERROR, "boom")
        assert result.content == "That failed."

    @pytest.mark.asyncio
    async def test_unconfigured_read_executor(self):
        registry = ToolRegistry()
        registry.register(ToolDefinition("search_profiles", "Search"), ToolCategory.READ)
        transport = MockTransport([
            tool_response(call("c1", "search_profiles")),
            text_response("ok"),
        ])
        loop = AgentLoop(transport, registry, ToolExecutorRouter(RenderExecutor()))

        result = await loop.run_turn("key", "model-x", _user())

        assert json.loads(_tool_messages(result.messages)["c1"]) == {
            "error": "Read tool 'search_profiles' not yet configured",
        }


class TestToolLocalErrors:
    @pytest.mark.asyncio
    async def test_invalid_json_arguments(self):
        loop, _, tools = _make_loop([
            tool_response(call("c1", "fetch_jira_data", "{not json")),
            text_response("ok"),
        ])

        result = await loop.run_turn("key", "model-x", _user())

        assert json.loads(_tool_messages(result.messages)["c1"]) == {
            "error": "Invalid tool arguments: failed to parse JSON",
        }
        assert tools.read_calls == []

    @pytest.mark.asyncio
    async def test_non_object_arguments(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "fetch_jira_data", "[1, 2]")),
            text_response("ok"),
        ])
        result = await loop.run_turn("key", "model-x", _user())
        assert "Invalid tool arguments" in _tool_messages(result.messages)["c1"]

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "delete_everything")),
            text_response("ok"),
        ])
        result = await loop.run_turn("key", "model-x", _user())
        assert json.loads(_tool_messages(result.messages)["c1"]) == {
            "error": "Unknown tool: delete_everything",
        }

    @pytest.mark.asyncio
    async def test_calls_run_in_emitted_order(self):
        loop, _, tools = _make_loop([
            tool_response(
                call("c1", "fetch_jira_data", {"n": 1}),
                call("c2", "fetch_jira_data", {"n": 2}),
                call("c3", "fetch_jira_data", {"n": 3}),
            ),
            text_response("ok"),
        ])
        result = await loop.run_turn("key", "model-x", _user())
        assert tools.read_calls == [{"n": 1}, {"n": 2}, {"n": 3}]
        assert [m.tool_call_id for m in result.messages if m.role == "tool"] == ["c1", "c2", "c3"]


class TestWriteApproval:
    @pytest.mark.asyncio
    async def test_no_callback_fails_closed(self):
        loop, transport, tools = _make_loop([
            tool_response(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS)),
            text_response("Okay, I won't."),
        ])

        result = await loop.run_turn("key", "model-x", _user())

        assert tools.write_calls == []
        assert _tool_messages(transport.requests[1].messages)["c1"] == DECLINED_MESSAGE
        assert result.content == "Okay, I won't."

    @pytest.mark.asyncio
    async def test_declined_write_scenario(self):
        loop, transport, tools = _make_loop([
            tool_response(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS)),
            text_response("Understood, I did not create the issue."),
        ])
        asked: list[tuple[str, dict[str, Any]]] = []

        async def decline(name: str, args: dict[str, Any]) -> bool:
            asked.append((name, args))
            return False

        result = await loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_approval_request=decline),
        )

        assert asked == [("create_jira_issue", JIRA_ISSUE_ARGS)]
        assert tools.write_calls == []
        assert transport.call_count == 2
        assert _tool_messages(transport.requests[1].messages)["c1"] == DECLINED_MESSAGE
        assert result.content == "Understood, I did not create the issue."
        assert result.interrupted is False

    @pytest.mark.asyncio
    async def test_approved_write_executes(self):
        loop, transport, tools = _make_loop([
            tool_response(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS)),
            text_response("Created PROJ-42."),
        ])
        states: list[AgentState] = []

        await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_approval_request=_approve, on_state_change=states.append),
        )

        assert tools.write_calls == [JIRA_ISSUE_ARGS]
        content = _tool_messages(transport.requests[1].messages)["c1"]
        assert json.loads(content)["key"] == "PROJ-42"
        assert states == [
            AgentState.THINKING,
            AgentState.EXECUTING_TOOL,
            AgentState.AWAITING_APPROVAL,
            AgentState.EXECUTING_TOOL,
            AgentState.THINKING,
            AgentState.IDLE,
        ]

    @pytest.mark.asyncio
    async def test_failing_callback_counts_as_declined(self):
        loop, _, tools = _make_loop([
            tool_response(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS)),
            text_response("ok"),
        ])

        async def broken(name: str, args: dict[str, Any]) -> bool:
            raise ConnectionError("approval UI went away")

        result = await loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_approval_request=broken),
        )

        assert tools.write_calls == []
        assert _tool_messages(result.messages)["c1"] == DECLINED_MESSAGE

    @pytest.mark.asyncio
    async def test_read_and_render_never_ask(self):
        loop, _, _ = _make_loop([
            tool_response(
                call("c1", "fetch_jira_data"),
                call("c2", "render_mermaid", MERMAID_ARGS),
            ),
            text_response("ok"),
        ])
        asked: list[str] = []

        async def ask(name: str, args: dict[str, Any]) -> bool:
            asked.append(name)
            return True

        await loop.run_turn("key", "model-x", _user(), TurnCallbacks(on_approval_request=ask))
        assert asked == []

    @pytest.mark.asyncio
    async def test_gate_and_broker_round_trip(self):
        loop, _, tools = _make_loop([
            tool_response(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS)),
            text_response("Created."),
        ])
        broker = ApprovalBroker()
        gate = ApprovalGate(broker, "conv-1")
        gate.on_block = lambda block: asyncio.get_running_loop().call_soon(
            gate.decide, block.data["id"], True,
        )

        result = await loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_approval_request=gate),
        )

        assert tools.write_calls == [JIRA_ISSUE_ARGS]
        assert broker.pending_count() == 0
        assert result.content == "Created."


class TestIterationsAndTokens:
    @pytest.mark.asyncio
    async def test_three_rounds_then_text(self):
        loop, transport, _ = _make_loop([
            tool_response(call("c1", "fetch_jira_data"), usage=(100, 10)),
            tool_response(call("c2", "fetch_jira_data"), usage=(200, 20)),
            tool_response(call("c3", "render_mermaid", MERMAID_ARGS), usage=(300, 30)),
            text_response("Final answer.", usage=(400, 40)),
        ])
        reported: list[tuple[int, int]] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_token_count=lambda i, o: reported.append((i, o))),
        )

        assert transport.call_count == 4
        assert result.input_tokens == 1000
        assert result.output_tokens == 100
        assert reported[-1] == (1000, 100)
        inputs = [i for i, _ in reported]
        outputs = [o for _, o in reported]
        assert inputs == sorted(inputs)
        assert outputs == sorted(outputs)

    @pytest.mark.asyncio
    async def test_iteration_cap(self):
        loop, transport, _ = _make_loop(
            [], default=tool_response(call("c1", "fetch_jira_data")),
        )

        result = await loop.run_turn("key", "model-x", _user())

        assert transport.call_count == MAX_LOOP_ITERATIONS == 25
        assert result.interrupted is True
        assert result.content.endswith(MAX_ITERATIONS_NOTICE)

    @pytest.mark.asyncio
    async def test_estimate_used_without_usage(self):
        loop, _, _ = _make_loop([text_response("x" * 40, usage=None)])
        reported: list[tuple[int, int]] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_token_count=lambda i, o: reported.append((i, o))),
        )

        assert result.input_tokens == 0
        assert result.output_tokens == 10
        assert reported[-1] == (0, 10)

    @pytest.mark.asyncio
    async def test_missing_usage_does_not_reset_counts(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "fetch_jira_data"), usage=(120, 30)),
            text_response("done", usage=None),
        ])
        result = await loop.run_turn("key", "model-x", _user())
        assert result.input_tokens == 120
        # 30 reported plus the streamed estimate for "done".
        assert result.output_tokens == 31

    @pytest.mark.asyncio
    async def test_estimate_kept_when_later_call_reports_usage(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "fetch_jira_data"), content="x" * 400, usage=None),
            text_response("ok", usage=(10, 5)),
        ])
        reported: list[tuple[int, int]] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_token_count=lambda i, o: reported.append((i, o))),
        )

        outputs = [o for _, o in reported]
        assert outputs == sorted(outputs)
        assert result.input_tokens == 10
        assert result.output_tokens == 105
        assert reported[-1] == (10, 105)

    @pytest.mark.asyncio
    async def test_usage_below_estimate_never_lowers_count(self):
        loop, _, _ = _make_loop([text_response("x" * 400, usage=(10, 5))])
        reported: list[tuple[int, int]] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_token_count=lambda i, o: reported.append((i, o))),
        )

        outputs = [o for _, o in reported]
        assert outputs == sorted(outputs)
        assert result.output_tokens == 100


class TestCancellation:
    @pytest.mark.asyncio
    async def test_interrupt_during_llm_call(self):
        def respond(request):
            loop.interrupt()
            return LlmResponse(
                content="Partial reply",
                thinking="half a thought",
                tool_calls=(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS),),
                usage=LlmUsage(10, 5),
            )

        loop, transport, tools = _make_loop([respond])

        result = await loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_approval_request=_approve),
        )

        assert result.interrupted is True
        assert result.content == "Partial reply"
        assert [b.type for b in result.blocks] == [BlockType.THINKING]
        assert tools.write_calls == []
        assert transport.call_count == 1
        assert not result.content.endswith(MAX_ITERATIONS_NOTICE)

    @pytest.mark.asyncio
    async def test_interrupt_mid_batch_keeps_pairing(self):
        loop, transport, tools = _make_loop([
            tool_response(
                call("c1", "fetch_jira_data"),
                call("c2", "render_mermaid", MERMAID_ARGS),
                call("c3", "create_jira_issue", JIRA_ISSUE_ARGS),
            ),
        ])
        tools.read_hook = loop.interrupt

        result = await loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_approval_request=_approve),
        )

        assert result.interrupted is True
        assert transport.call_count == 1
        answers = _tool_messages(result.messages)
        assert set(answers) == {"c1", "c2", "c3"}
        assert "PROJ-1" in answers["c1"]
        assert answers["c2"] == INTERRUPTED_MESSAGE
        assert answers["c3"] == INTERRUPTED_MESSAGE
        assert result.blocks == ()
        assert tools.write_calls == []

    @pytest.mark.asyncio
    async def test_interrupt_while_awaiting_approval(self):
        loop, transport, tools = _make_loop([
            tool_response(
                call("c1", "create_jira_issue", JIRA_ISSUE_ARGS),
                call("c2", "render_mermaid", MERMAID_ARGS),
            ),
        ])
        broker = ApprovalBroker()
        gate = ApprovalGate(broker, "conv-1", timeout_ms=60_000)
        gate.on_block = lambda block: asyncio.get_running_loop().call_soon(loop.interrupt)
        states: list[AgentState] = []

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(on_approval_request=gate, on_state_change=states.append),
        )

        assert result.interrupted is True
        assert tools.write_calls == []
        answers = _tool_messages(result.messages)
        assert answers == {"c1": INTERRUPTED_MESSAGE, "c2": INTERRUPTED_MESSAGE}
        # The pending approval outlives the turn.
        assert broker.pending_count() == 1
        assert AgentState.AWAITING_APPROVAL in states
        assert states[-1] is AgentState.IDLE

    @pytest.mark.asyncio
    async def test_concurrent_turn_rejected(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "create_jira_issue", JIRA_ISSUE_ARGS)),
        ])
        started = asyncio.Event()

        async def wait_forever(name: str, args: dict[str, Any]) -> bool:
            started.set()
            await asyncio.Event().wait()
            return True

        task = asyncio.create_task(loop.run_turn(
            "key", "model-x", _user(), TurnCallbacks(on_approval_request=wait_forever),
        ))
        await started.wait()

        assert loop.is_running is True
        with pytest.raises(RuntimeError):
            await loop.run_turn("key", "model-x", _user())

        loop.interrupt()
        result = await task
        assert result.interrupted is True
        assert loop.is_running is False


class TestFailures:
    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        error = TransportError(ErrorCode.LLM_RATE_LIMITED, "slow down")
        loop, _, _ = _make_loop([error])
        states: list[AgentState] = []

        with pytest.raises(TransportError) as exc_info:
            await loop.run_turn(
                "key", "model-x", _user(), TurnCallbacks(on_state_change=states.append),
            )

        assert exc_info.value is error
        assert states[-1] is AgentState.ERROR
        assert loop.is_running is False

    @pytest.mark.asyncio
    async def test_other_exceptions_wrapped(self):
        cause = ConnectionError("socket closed")
        loop, _, _ = _make_loop([cause])

        with pytest.raises(TransportError) as exc_info:
            await loop.run_turn("key", "model-x", _user())

        assert exc_info.value.code is ErrorCode.LLM_REQUEST_FAILED
        assert exc_info.value.message == "Agent turn failed"
        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_failure_after_interrupt_returns_partial_result(self):
        def fail(request):
            loop.interrupt()
            raise ConnectionError("aborted")

        loop, _, _ = _make_loop([
            tool_response(call("c1", "render_mermaid", MERMAID_ARGS)),
            fail,
        ])

        result = await loop.run_turn("key", "model-x", _user())

        assert result.interrupted is True
        assert len(result.blocks) == 1
        assert result.input_tokens == 100

    @pytest.mark.asyncio
    async def test_callback_errors_are_swallowed(self):
        loop, _, _ = _make_loop([
            tool_response(call("c1", "render_mermaid", MERMAID_ARGS)),
            text_response("Still fine."),
        ])

        def bad(*args: Any) -> None:
            raise ValueError("listener bug")

        result = await loop.run_turn(
            "key", "model-x", _user(),
            TurnCallbacks(
                on_chunk=bad,
                on_block=bad,
                on_state_change=bad,
                on_token_count=bad,
                on_tool_activity=bad,
            ),
        )

        assert result.content == "Still fine."
        assert len(result.blocks) == 1
