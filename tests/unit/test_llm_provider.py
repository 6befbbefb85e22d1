import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from attention_router.exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMServerError,
    LLMTimeoutError,
)
from attention_router.llm.fallback import DeterministicChatProvider
from attention_router.llm.provider import (
    LangChainChatProvider,
    map_llm_exception,
    to_langchain_messages,
)


class _StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class APITimeoutError(Exception):
    pass


class _FakeChatModel:
    def __init__(self, reply: AIMessage | Exception) -> None:
        self.reply = reply
        self.bound_tools: list[object] = []
        self.received: list[object] = []

    def bind_tools(self, tools: list[object]) -> "_FakeChatModel":
        self.bound_tools = tools
        return self

    def invoke(self, messages: list[object]) -> AIMessage:
        self.received = messages
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def test_exception_mapping() -> None:
    assert isinstance(map_llm_exception(TimeoutError("slow")), LLMTimeoutError)
    assert isinstance(map_llm_exception(APITimeoutError("slow")), LLMTimeoutError)
    assert isinstance(map_llm_exception(_StatusError(429)), LLMRateLimitError)
    assert isinstance(map_llm_exception(_StatusError(503)), LLMServerError)
    mapped = map_llm_exception(_StatusError(400))
    assert type(mapped) is LLMError


def test_langchain_provider_normalizes_tool_calls() -> None:
    model = _FakeChatModel(
        AIMessage(
            content="",
            tool_calls=[{"name": "task_create", "args": {"title": "milk"}, "id": "call-1"}],
            usage_metadata={"input_tokens": 7, "output_tokens": 5, "total_tokens": 12},
        )
    )
    seen: list[tuple[str, float]] = []

    def _factory(name: str, temperature: float) -> _FakeChatModel:
        seen.append((name, temperature))
        return model

    provider = LangChainChatProvider(_factory)
    response = provider.chat_with_tools(
        "gpt-test", [{"role": "user", "content": "add milk"}], ["tool-a"], 0.0
    )

    assert seen == [("gpt-test", 0.0)]
    assert model.bound_tools == ["tool-a"]
    assert response.tool_calls[0].tool_name == "task_create"
    assert response.tool_calls[0].params == {"title": "milk"}
    assert response.tool_calls[0].call_id == "call-1"
    assert response.tokens_used == 12


def test_langchain_provider_translates_failures() -> None:
    provider = LangChainChatProvider(lambda name, temperature: _FakeChatModel(_StatusError(429)))

    with pytest.raises(LLMRateLimitError):
        provider.chat_with_tools("gpt-test", [{"role": "user", "content": "hi"}], [], 0.0)


def test_message_conversion() -> None:
    messages = to_langchain_messages(
        [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "", "tool_calls": [{"name": "t", "args": {}, "id": "1"}]},
            {"role": "tool", "tool_call_id": "1", "content": "done"},
        ]
    )

    assert [type(message) for message in messages] == [
        SystemMessage,
        HumanMessage,
        AIMessage,
        ToolMessage,
    ]
    assert messages[2].tool_calls[0]["name"] == "t"


def test_deterministic_provider_never_calls_tools() -> None:
    provider = DeterministicChatProvider(reply="ok")

    response = provider.chat_with_tools("m", [{"role": "user", "content": "x"}], ["tool"], 0.2)

    assert response.content == "ok"
    assert response.tool_calls == []
    assert provider.calls == 1
