"""LLM provider contract and the LangChain chat-model adapter."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage

from attention_router.exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMServerError,
    LLMTimeoutError,
)
from attention_router.types import LLMResponse, ToolCall

Message = dict[str, Any]
ChatModelFactory = Callable[[str, float], Any]


class LLMProvider(Protocol):
    """Anything that can run one chat completion with optional tools."""

    def chat_with_tools(
        self,
        model: str,
        messages: Sequence[Message],
        tools: Sequence[Any],
        temperature: float,
    ) -> LLMResponse: ...


class LangChainChatProvider:
    """Adapts a LangChain chat model to `LLMProvider`.

    `factory(model, temperature)` must return a chat model; tools are attached
    with `bind_tools`. Provider exceptions are translated into the `LLMError`
    hierarchy so callers can classify failures.
    """

    def __init__(self, factory: ChatModelFactory) -> None:
        self._factory = factory

    def chat_with_tools(
        self,
        model: str,
        messages: Sequence[Message],
        tools: Sequence[Any],
        temperature: float,
    ) -> LLMResponse:
        try:
            llm = self._factory(model, temperature)
            if tools:
                llm = llm.bind_tools(list(tools))
            result = llm.invoke(to_langchain_messages(messages))
        except LLMError:
            raise
        except Exception as exc:
            raise map_llm_exception(exc) from exc
        return _to_response(result)


def to_langchain_messages(messages: Sequence[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        role = message.get("role", "user")
        content = message.get("content") or ""
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(
                AIMessage(
                    content=content,
                    tool_calls=[
                        {"name": call["name"], "args": call.get("args", {}), "id": call.get("id", "")}
                        for call in message.get("tool_calls", [])
                    ],
                )
            )
        elif role == "tool":
            converted.append(
                ToolMessage(content=content, tool_call_id=message.get("tool_call_id", ""))
            )
        else:
            converted.append(HumanMessage(content=content))
    return converted


def map_llm_exception(exc: BaseException) -> LLMError:
    """Classify a provider exception by type name and HTTP status."""

    message = str(exc) or exc.__class__.__name__
    name = exc.__class__.__name__.lower()
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)

    if isinstance(exc, TimeoutError) or "timeout" in name:
        return LLMTimeoutError(message)
    if status == 429 or "ratelimit" in name:
        return LLMRateLimitError(message)
    if isinstance(status, int) and status >= 500:
        return LLMServerError(message)
    return LLMError(message)


def _to_response(result: Any) -> LLMResponse:
    content = getattr(result, "content", result)
    if isinstance(content, list):
        parts = [
            str(item.get("text", "")) if isinstance(item, dict) else str(item) for item in content
        ]
        content = " ".join(part for part in parts if part).strip()

    tool_calls = [
        ToolCall(
            tool_name=str(call.get("name", "")),
            params=dict(call.get("args") or {}),
            call_id=str(call.get("id") or ""),
        )
        for call in getattr(result, "tool_calls", None) or []
    ]

    usage = getattr(result, "usage_metadata", None) or {}
    return LLMResponse(
        content=str(content) if content is not None else None,
        tool_calls=tool_calls,
        tokens_used=int(usage.get("total_tokens", 0)),
    )
