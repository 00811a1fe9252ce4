"""The agent turn loop — LLM calls, tool routing and approval gating."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from swotharness.core.cancellation import CancellationToken, TurnCancelled
from swotharness.core.thinking import extract_thinking
from swotharness.errors import ErrorCode, TransportError
from swotharness.observability.metrics import (
    record_approval,
    record_tokens,
    record_tool_call,
    timed_operation,
)
from swotharness.observability.tracing import span
from swotharness.tools.registry import ToolRegistry
from swotharness.types.blocks import ContentBlock, thinking_block
from swotharness.types.config import DEFAULT_THINKING_BUDGET
from swotharness.types.messages import (
    AgentMessage,
    AgentState,
    AgentTurnResult,
    ToolActivity,
    ToolCallRecord,
    TurnCallbacks,
)
from swotharness.types.providers import LlmRequest, LlmResponse, LlmToolCall, LlmTransport
from swotharness.types.tools import CategoryExecutor, ToolCategory, ToolDefinition

logger = logging.getLogger(__name__)

MAX_LOOP_ITERATIONS = 25

DECLINED_MESSAGE = (
    "User declined this action. Do not retry. "
    "Continue the conversation without performing it."
)
INTERRUPTED_MESSAGE = "[Interrupted by user before this tool could execute.]"
MAX_ITERATIONS_NOTICE = (
    "\n\n[Agent reached the maximum number of iterations and stopped. "
    "Some work may be incomplete.]"
)


@dataclass(slots=True)
class _Turn:
    """Mutable accumulators for a single turn."""

    callbacks: TurnCallbacks
    conversation: list[AgentMessage]
    content: str = ""
    blocks: list[ContentBlock] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_output: int = 0

    @property
    def final_output_tokens(self) -> int:
        return max(self.output_tokens, self.estimated_output)

    def result(self, interrupted: bool) -> AgentTurnResult:
        return AgentTurnResult(
            content=self.content,
            blocks=tuple(self.blocks),
            interrupted=interrupted,
            input_tokens=self.input_tokens,
            output_tokens=self.final_output_tokens,
            messages=tuple(self.conversation),
        )


class AgentLoop:
    """Runs one conversational turn at a time.

    A turn: call the model with the full history and every registered tool,
    run the tool calls it asks for (one by one, in order), feed the results
    back, and repeat until the model answers with text only. Write tools
    wait for ``callbacks.on_approval_request`` and are declined when none is
    given. At most ``MAX_LOOP_ITERATIONS`` model calls happen per turn.
    """

    def __init__(
        self,
        transport: LlmTransport,
        registry: ToolRegistry,
        executor: CategoryExecutor,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._executor = executor
        self._token: CancellationToken | None = None

    @property
    def is_running(self) -> bool:
        return self._token is not None

    def interrupt(self) -> None:
        """Ask the running turn to stop at its next checkpoint."""
        if self._token is not None:
            logger.info("Interrupt requested")
            self._token.cancel()

    async def run_turn(
        self,
        api_key: str,
        model_id: str,
        messages: Sequence[AgentMessage],
        callbacks: TurnCallbacks | None = None,
        thinking_budget: int = DEFAULT_THINKING_BUDGET,
    ) -> AgentTurnResult:
        """Run a turn to completion, interruption or the iteration cap.

        Raises :class:`TransportError` when the model call fails.
        """
        if self._token is not None:
            raise RuntimeError("A turn is already running on this agent loop")

        token = CancellationToken()
        self._token = token
        turn = _Turn(callbacks=callbacks or TurnCallbacks(), conversation=list(messages))
        try:
            with span("swotharness.turn", {
                "transport": self._transport.name, "model": model_id,
            }):
                return await self._run(turn, token, api_key, model_id, thinking_budget)
        except Exception as exc:
            self._notify(turn.callbacks.on_state_change, AgentState.ERROR)
            if token.cancelled:
                logger.info("Turn failed after interrupt; returning partial result")
                return turn.result(interrupted=True)
            if isinstance(exc, TransportError):
                raise
            logger.error("Agent turn failed: %s", exc)
            raise TransportError(
                ErrorCode.LLM_REQUEST_FAILED, "Agent turn failed", exc,
            ) from exc
        finally:
            self._token = None

    # ------------------------------------------------------------------
    # Turn body
    # ------------------------------------------------------------------

    async def _run(
        self,
        turn: _Turn,
        token: CancellationToken,
        api_key: str,
        model_id: str,
        thinking_budget: int,
    ) -> AgentTurnResult:
        cb = turn.callbacks
        self._notify(cb.on_state_change, AgentState.THINKING)
        tools = self._registry.get_all_definitions()
        interrupted = False

        for iteration in range(MAX_LOOP_ITERATIONS):
            if token.cancelled:
                interrupted = True
                break

            response = await self._call_llm(turn, api_key, model_id, tools, thinking_budget)

            clean = self._take_thinking(turn, response)
            if token.cancelled:
                turn.content += clean
                interrupted = True
                break

            turn.content += clean
            if not response.tool_calls:
                break

            logger.debug(
                "Iteration %d: %d tool call(s)", iteration + 1, len(response.tool_calls),
            )
            self._notify(cb.on_state_change, AgentState.EXECUTING_TOOL)
            turn.conversation.append(AgentMessage(
                role="assistant",
                content=clean or None,
                tool_calls=[
                    ToolCallRecord(tc.id, tc.name, tc.arguments) for tc in response.tool_calls
                ],
            ))

            results = await self._execute_tool_calls(turn, token, response.tool_calls)
            for tool_call_id, text in results:
                turn.conversation.append(
                    AgentMessage(role="tool", content=text, tool_call_id=tool_call_id),
                )

            if token.cancelled:
                answered = {tool_call_id for tool_call_id, _ in results}
                for tc in response.tool_calls:
                    if tc.id not in answered:
                        turn.conversation.append(AgentMessage(
                            role="tool", content=INTERRUPTED_MESSAGE, tool_call_id=tc.id,
                        ))
                interrupted = True
                break

            self._notify(cb.on_state_change, AgentState.THINKING)
        else:
            logger.warning(
                "Agent loop reached %d iterations without a final response",
                MAX_LOOP_ITERATIONS,
            )
            turn.content += MAX_ITERATIONS_NOTICE
            interrupted = True

        self._notify(cb.on_state_change, AgentState.IDLE)
        result = turn.result(interrupted)
        self._notify(cb.on_token_count, result.input_tokens, result.output_tokens)
        return result

    async def _call_llm(
        self,
        turn: _Turn,
        api_key: str,
        model_id: str,
        tools: list[ToolDefinition],
        thinking_budget: int,
    ) -> LlmResponse:
        cb = turn.callbacks
        call_estimate = 0

        def on_token(count: int) -> None:
            nonlocal call_estimate
            call_estimate += count
            turn.estimated_output += count
            self._notify(cb.on_token_count, turn.input_tokens, turn.estimated_output)

        on_chunk: Callable[[str], None] | None = None
        if cb.on_chunk is not None:
            on_chunk = lambda text: self._notify(cb.on_chunk, text)  # noqa: E731

        request = LlmRequest(
            api_key=api_key,
            model_id=model_id,
            messages=list(turn.conversation),
            tools=tools,
            thinking_budget=thinking_budget if thinking_budget > 0 else None,
            on_chunk=on_chunk,
            on_token=on_token,
        )
        with timed_operation(transport=self._transport.name, model=model_id):
            response = await self._transport.create_chat_completion(request)

        if response.usage is not None:
            turn.input_tokens += response.usage.input_tokens
            turn.output_tokens += response.usage.output_tokens
            record_tokens(
                response.usage.input_tokens,
                response.usage.output_tokens,
                transport=self._transport.name,
                model=model_id,
            )
        else:
            turn.output_tokens += call_estimate
        # The displayed count only moves up, even when usage undercuts the estimate.
        turn.estimated_output = max(turn.estimated_output, turn.output_tokens)
        self._notify(cb.on_token_count, turn.input_tokens, turn.estimated_output)
        return response

    def _take_thinking(self, turn: _Turn, response: LlmResponse) -> str:
        """Emit a thinking block if the response has one; return the clean text."""
        thinking, clean = extract_thinking(response.content, response.thinking)
        if thinking:
            block = thinking_block(thinking)
            turn.blocks.append(block)
            self._notify(turn.callbacks.on_thinking, thinking)
            self._notify(turn.callbacks.on_block, block)
        return clean

    # ------------------------------------------------------------------
    # Tool calls
    # ------------------------------------------------------------------

    async def _execute_tool_calls(
        self,
        turn: _Turn,
        token: CancellationToken,
        tool_calls: Sequence[LlmToolCall],
    ) -> list[tuple[str, str]]:
        """Run calls in order; stops early (returning what it has) on cancel."""
        results: list[tuple[str, str]] = []

        for tc in tool_calls:
            if token.cancelled:
                break

            tool_input = _parse_arguments(tc.arguments)
            if tool_input is None:
                results.append((tc.id, _error("Invalid tool arguments: failed to parse JSON")))
                continue

            category = self._registry.get_category(tc.name)
            if category is None:
                results.append((tc.id, _error(f"Unknown tool: {tc.name}")))
                continue

            if category is ToolCategory.WRITE:
                try:
                    approved = await self._request_approval(turn, token, tc.name, tool_input)
                except TurnCancelled:
                    break
                if token.cancelled:
                    break
                if not approved:
                    results.append((tc.id, DECLINED_MESSAGE))
                    continue

            results.append((tc.id, await self._execute_one(turn, tc.name, category, tool_input)))

        return results

    async def _request_approval(
        self,
        turn: _Turn,
        token: CancellationToken,
        tool_name: str,
        tool_input: dict[str, Any],
    ) -> bool:
        cb = turn.callbacks
        if cb.on_approval_request is None:
            logger.info("No approval callback; declining write tool %s", tool_name)
            record_approval(tool_name, approved=False)
            return False

        self._notify(cb.on_state_change, AgentState.AWAITING_APPROVAL)
        try:
            approved = bool(await token.race(cb.on_approval_request, tool_name, tool_input))
        except TurnCancelled:
            raise
        except Exception as exc:
            logger.error("Approval request for %s failed, declining: %s", tool_name, exc)
            approved = False

        record_approval(tool_name, approved=approved)
        if not token.cancelled:
            self._notify(cb.on_state_change, AgentState.EXECUTING_TOOL)
        return approved

    async def _execute_one(
        self,
        turn: _Turn,
        tool_name: str,
        category: ToolCategory,
        tool_input: dict[str, Any],
    ) -> str:
        cb = turn.callbacks
        self._notify(cb.on_tool_activity, tool_name, ToolActivity.STARTED, None)
        try:
            with span("swotharness.tool", {"tool": tool_name, "category": category.value}):
                output = await self._executor.execute(tool_name, category, tool_input)
        except Exception as exc:
            message = str(exc) or "Tool execution failed"
            logger.error("Tool %s (%s) failed: %s", tool_name, category.value, message)
            record_tool_call(tool_name, category.value, is_error=True)
            self._notify(cb.on_tool_activity, tool_name, ToolActivity.ERROR, message)
            return _error(message)

        record_tool_call(tool_name, category.value)
        self._notify(cb.on_tool_activity, tool_name, ToolActivity.COMPLETED, None)

        if category is ToolCategory.RENDER and output.block is not None:
            block = output.block
            turn.blocks.append(block)
            self._notify(cb.on_block, block)
            # Only a receipt goes back to the model; the payload lives in the block.
            return json.dumps({"rendered": block.type.value, "blockId": block.id})
        if output.content is not None:
            return output.content
        return _error("No result")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Turn callback %r raised", getattr(callback, "__name__", callback))


def _parse_arguments(raw: str) -> dict[str, Any] | None:
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _error(message: str) -> str:
    return json.dumps({"error": message})
