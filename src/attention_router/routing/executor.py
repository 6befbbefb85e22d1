"""LLM tool-calling loop over registered tools."""

from __future__ import annotations

import json
from typing import Any, Protocol

from loguru import logger
from pydantic import ValidationError

from attention_router.attention.personality import Personality
from attention_router.config import ExecutorConfig
from attention_router.exceptions import ToolExecutionError, UnknownToolError
from attention_router.llm.provider import LLMProvider, Message
from attention_router.routing.registry import ToolRegistry, ToolSpec
from attention_router.types import ExecutionResult, ToolCall, ToolResult, ToolTrace


class Executor(Protocol):
    def execute(
        self,
        personality: Personality,
        utterance: str,
        tools: list[ToolSpec],
        context: dict[str, Any],
        correlation_id: str,
    ) -> ExecutionResult: ...


class ToolCallingExecutor:
    """Runs the model with the filtered tools until it stops calling them.

    LLM failures propagate as `LLMError` so the router can classify them.
    Tool failures are reported back to the model as tool messages and recorded
    as unsuccessful `ToolResult`s.
    """

    def __init__(
        self,
        *,
        provider: LLMProvider,
        tool_registry: ToolRegistry,
        config: ExecutorConfig | None = None,
    ) -> None:
        self.provider = provider
        self.tool_registry = tool_registry
        self.config = config or ExecutorConfig()

    def execute(
        self,
        personality: Personality,
        utterance: str,
        tools: list[ToolSpec],
        context: dict[str, Any],
        correlation_id: str,
    ) -> ExecutionResult:
        lc_tools = self.tool_registry.as_langchain_tools([spec.full_name for spec in tools])
        allowed = {spec.full_name for spec in tools}
        messages: list[Message] = [
            {"role": "system", "content": _system_prompt(personality, context)},
            {"role": "user", "content": utterance},
        ]

        calls: list[ToolCall] = []
        results: list[ToolResult] = []
        observed: list[ToolTrace] = []
        for _ in range(self.config.max_turns):
            response = self.provider.chat_with_tools(
                personality.base_model, messages, lc_tools, self.config.temperature
            )
            if not response.tool_calls:
                return ExecutionResult(
                    success=True,
                    final_response=response.content,
                    tool_calls=calls,
                    tool_results=results,
                    traces=observed,
                )

            messages.append(
                {
                    "role": "assistant",
                    "content": response.content or "",
                    "tool_calls": [
                        {"name": call.tool_name, "args": call.params, "id": call.call_id}
                        for call in response.tool_calls
                    ],
                }
            )
            for call in response.tool_calls:
                result = self._run_tool(call, allowed, observed)
                calls.append(
                    ToolCall(
                        tool_name=result.tool_name,
                        params=call.params,
                        call_id=call.call_id,
                        confidence=call.confidence,
                    )
                )
                results.append(result)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.call_id,
                        "content": result.data if result.success else f"ERROR: {result.error}",
                    }
                )

        logger.warning("[{}] Tool loop stopped after {} turns", correlation_id, self.config.max_turns)
        return ExecutionResult(
            success=False,
            tool_calls=calls,
            tool_results=results,
            error=f"no final response after {self.config.max_turns} turns",
            error_type="execution_error",
            traces=observed,
        )

    def _run_tool(self, call: ToolCall, allowed: set[str], observed: list[ToolTrace]) -> ToolResult:
        try:
            spec = self.tool_registry.get(call.tool_name)
        except UnknownToolError as exc:
            return ToolResult(call.tool_name, call.call_id, success=False, error=str(exc))
        if spec.full_name not in allowed:
            return ToolResult(
                spec.full_name, call.call_id, success=False, error="tool not offered for this turn"
            )
        try:
            output = self.tool_registry.execute(spec.full_name, call.params, observed.append)
        except (ValidationError, ToolExecutionError) as exc:
            logger.info("Tool {} failed: {}", spec.full_name, exc)
            return ToolResult(spec.full_name, call.call_id, success=False, error=str(exc))
        return ToolResult(spec.full_name, call.call_id, success=True, data=output)


def _system_prompt(personality: Personality, context: dict[str, Any]) -> str:
    if not context:
        return personality.system_prompt
    return (
        f"{personality.system_prompt}\n\nContext:\n"
        f"{json.dumps(context, ensure_ascii=False, default=str, indent=2)}"
    )
