import pytest
from pydantic import BaseModel, Field, ValidationError

from attention_router.exceptions import UnknownToolError
from attention_router.routing.registry import NamespaceSpec, ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    value: int = Field(ge=1)


def _echo_spec(name: str = "echo", namespace: str = "util") -> ToolSpec:
    def _handler(data: EchoInput) -> str:
        return str(data.value)

    return ToolSpec(
        name=name,
        namespace=namespace,
        description="echo positive int",
        args_schema=EchoInput,
        handler=_handler,
    )


def _registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register_namespace(NamespaceSpec(name="util", description="utilities"))
    return registry


def test_tool_registry_validation() -> None:
    registry = _registry()
    registry.register(_echo_spec())

    assert registry.execute("util.echo", {"value": 3}) == "3"
    assert registry.execute("util_echo", {"value": 4}) == "4"

    with pytest.raises(ValidationError):
        registry.execute("util.echo", {"value": 0})


def test_duplicate_registration_rejected() -> None:
    registry = _registry()
    spec = _echo_spec()

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)
    with pytest.raises(ValueError):
        registry.register_namespace(NamespaceSpec(name="util"))


def test_tool_requires_registered_namespace() -> None:
    registry = _registry()

    with pytest.raises(ValueError):
        registry.register(_echo_spec(namespace="missing"))


def test_unknown_tool_raises_key_error() -> None:
    registry = _registry()

    with pytest.raises(UnknownToolError):
        registry.execute("util.nope", {})
    with pytest.raises(KeyError):
        registry.get("nope")


def test_tools_grouped_by_namespace_and_exported() -> None:
    registry = _registry()
    registry.register_namespace(NamespaceSpec(name="other"))
    registry.register(_echo_spec("a"))
    registry.register(_echo_spec("b"))
    registry.register(_echo_spec("c", namespace="other"))

    assert [spec.full_name for spec in registry.tools_in("util")] == ["util.a", "util.b"]
    assert registry.tools_in("empty") == []

    tools = registry.as_langchain_tools(["util.b"])
    assert [tool.name for tool in tools] == ["util_b"]
    assert tools[0].invoke({"value": 7}) == "7"
