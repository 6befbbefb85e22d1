import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel

from attention_router.attention.personality import Personality
from attention_router.config import ExecutorConfig
from attention_router.ingest.embedder import HashingEmbedder
from attention_router.routing.context import ContextInjector
from attention_router.routing.executor import ToolCallingExecutor
from attention_router.routing.registry import NamespaceSpec, ToolRegistry, ToolSpec
from attention_router.tools.builtin import register_builtin_context, register_builtin_tools
from attention_router.types import LLMResponse, RoutingEvent, ToolCall

_NOW = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class _ScriptedProvider:
    def __init__(self, responses: list[LLMResponse]) -> None:
        self.responses = list(responses)
        self.calls: list[dict[str, object]] = []

    def chat_with_tools(self, model, messages, tools, temperature) -> LLMResponse:
        self.calls.append(
            {"model": model, "messages": list(messages), "tools": [tool.name for tool in tools]}
        )
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


def _registry(tmp_path) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        sqlite_path=tmp_path / "tools.db",
        embedder=HashingEmbedder(),
        clock=lambda: _NOW,
    )
    return registry


def _call(name: str, params: dict, call_id: str = "c1") -> LLMResponse:
    return LLMResponse(content="", tool_calls=[ToolCall(tool_name=name, params=params, call_id=call_id)])


def test_builtin_namespaces_and_tools_registered(tmp_path) -> None:
    registry = _registry(tmp_path)

    assert [spec.name for spec in registry.namespaces()] == ["task", "timer"]
    assert all(spec.centroid and len(spec.centroid) == 384 for spec in registry.namespaces())
    assert all(spec.centroid and len(spec.centroid) == 384 for spec in registry.specs())
    assert [spec.full_name for spec in registry.tools_in("timer")] == [
        "timer.set",
        "timer.cancel",
        "timer.list",
    ]


def test_executor_runs_tool_loop_until_final_answer(tmp_path) -> None:
    registry = _registry(tmp_path)
    provider = _ScriptedProvider(
        [_call("task_create", {"title": "buy milk"}), LLMResponse(content="Added buy milk.")]
    )
    executor = ToolCallingExecutor(provider=provider, tool_registry=registry)
    personality = Personality.create("p", base_model="gpt-test")

    result = executor.execute(
        personality, "add buy milk", registry.tools_in("task"), {"incomplete_tasks": []}, "turn-1"
    )

    assert result.success
    assert result.final_response == "Added buy milk."
    assert [call.tool_name for call in result.tool_calls] == ["task.create"]
    assert result.tool_results[0].success
    assert result.tool_results[0].data.startswith("CREATED")
    assert [trace.name for trace in result.traces] == ["task.create"]
    assert provider.calls[0]["model"] == "gpt-test"
    assert provider.calls[0]["tools"] == ["task_create", "task_complete", "task_list"]
    assert "incomplete_tasks" in provider.calls[0]["messages"][0]["content"]
    assert provider.calls[1]["messages"][-1]["role"] == "tool"

    listing = registry.execute("task.list", {})
    assert "buy milk" in listing


def test_tool_failures_are_reported_to_the_model(tmp_path) -> None:
    registry = _registry(tmp_path)
    provider = _ScriptedProvider(
        [
            LLMResponse(
                content="",
                tool_calls=[
                    ToolCall("task_create", {}, call_id="bad-args"),
                    ToolCall("task_complete", {"task_id": "missing"}, call_id="not-found"),
                    ToolCall("timer_set", {"duration_seconds": 60}, call_id="not-offered"),
                    ToolCall("weather_get", {}, call_id="unknown"),
                ],
            ),
            LLMResponse(content="Sorry."),
        ]
    )
    executor = ToolCallingExecutor(provider=provider, tool_registry=registry)

    result = executor.execute(Personality.create("p"), "do things", registry.tools_in("task"), {}, "t")

    assert result.success
    assert [item.success for item in result.tool_results] == [False, False, False, False]
    assert [call.tool_name for call in result.tool_calls] == [
        "task.create",
        "task.complete",
        "timer.set",
        "weather_get",
    ]
    tool_messages = [m for m in provider.calls[1]["messages"] if m["role"] == "tool"]
    assert all(message["content"].startswith("ERROR") for message in tool_messages)
    assert registry.execute("timer.list", {}) == "NO_TIMERS"


def test_executor_stops_after_max_turns(tmp_path) -> None:
    registry = _registry(tmp_path)
    provider = _ScriptedProvider([_call("task_list", {})])
    executor = ToolCallingExecutor(
        provider=provider, tool_registry=registry, config=ExecutorConfig(max_turns=2)
    )

    result = executor.execute(Personality.create("p"), "list", registry.tools_in("task"), {}, "t")

    assert not result.success
    assert result.error_type == "execution_error"
    assert len(provider.calls) == 2
    assert len(result.tool_calls) == 2


def test_timer_tools_and_context(tmp_path) -> None:
    registry = _registry(tmp_path)
    injector = ContextInjector()
    register_builtin_context(injector, sqlite_path=tmp_path / "tools.db", clock=lambda: _NOW)

    first = registry.execute("timer.set", {"duration_seconds": 300, "label": "pasta"})
    second = registry.execute("timer.set", {"duration_seconds": 60})
    timer_id = second.split()[1]
    registry.execute("timer.cancel", {"timer_id": timer_id})

    context = injector.inject("timer", RoutingEvent("turn-1", {"transcription": "timers?"}))

    assert first.startswith("TIMER")
    assert [timer["label"] for timer in context["active_timers"]] == ["pasta"]
    assert context["active_timers"][0]["fire_at"] == (_NOW + timedelta(seconds=300)).isoformat()
    assert injector.item_counts(context) == {"active_timers": 1}
    assert injector.inject("task", RoutingEvent("turn-1")) == {"incomplete_tasks": []}


class _NoArgs(BaseModel):
    pass


def test_overlapping_executions_keep_their_own_traces() -> None:
    registry = ToolRegistry()
    registry.register_namespace(NamespaceSpec(name="ns"))
    slow_started = threading.Event()
    release_slow = threading.Event()

    def _slow(data: _NoArgs) -> str:
        slow_started.set()
        release_slow.wait(timeout=5)
        return "slow done"

    for name, handler in (("slow", _slow), ("fast", lambda data: "fast done")):
        registry.register(
            ToolSpec(name=name, namespace="ns", description=name, args_schema=_NoArgs, handler=handler)
        )

    def _executor(tool: str) -> ToolCallingExecutor:
        provider = _ScriptedProvider([_call(tool, {}), LLMResponse(content="done")])
        return ToolCallingExecutor(provider=provider, tool_registry=registry)

    outcome: dict[str, Any] = {}

    def _run_slow() -> None:
        outcome["slow"] = _executor("ns_slow").execute(
            Personality.create("p"), "slow", registry.tools_in("ns"), {}, "a"
        )

    worker = threading.Thread(target=_run_slow)
    worker.start()
    assert slow_started.wait(timeout=5)
    fast = _executor("ns_fast").execute(Personality.create("p"), "fast", registry.tools_in("ns"), {}, "b")
    release_slow.set()
    worker.join(timeout=5)

    assert [trace.name for trace in fast.traces] == ["ns.fast"]
    assert [trace.name for trace in outcome["slow"].traces] == ["ns.slow"]
