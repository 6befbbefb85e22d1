"""Namespace and tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field

from attention_router.exceptions import UnknownToolError
from attention_router.types import ToolTrace


class NamespaceSpec(BaseModel):
    """A routing target grouping related tools (e.g. `task`, `timer`)."""

    name: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_-]+$")
    description: str = ""
    centroid: list[float] | None = None


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation.

    Tools are addressed by `namespace.name`. `centroid` is the vector the router
    compares utterances against; a tool without one scores 0 semantically.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(min_length=1, pattern=r"^[A-Za-z0-9_-]+$")
    namespace: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], str]
    tags: list[str] = Field(default_factory=list)
    centroid: list[float] | None = None

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}"

    @property
    def export_name(self) -> str:
        """Name used for LLM function calling, which rejects dots."""
        return f"{self.namespace}_{self.name}"

    def invoke(self, payload: dict[str, Any]) -> str:
        data = self.args_schema.model_validate(payload)
        return self.handler(data)


class ToolRegistry:
    """Stores namespaces and tool specs and exports LangChain tool objects."""

    def __init__(self, *, output_preview_chars: int = 320) -> None:
        self._namespaces: dict[str, NamespaceSpec] = {}
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None
        self._preview_chars = output_preview_chars

    def register_namespace(self, spec: NamespaceSpec) -> None:
        if spec.name in self._namespaces:
            raise ValueError(f"Namespace already registered: {spec.name}")
        self._namespaces[spec.name] = spec

    def register(self, spec: ToolSpec) -> None:
        if spec.namespace not in self._namespaces:
            raise ValueError(f"Unknown namespace for tool {spec.full_name}: {spec.namespace}")
        if spec.full_name in self._tools:
            raise ValueError(f"Tool already registered: {spec.full_name}")
        self._tools[spec.full_name] = spec

    def namespaces(self) -> list[NamespaceSpec]:
        return list(self._namespaces.values())

    def get_namespace(self, name: str) -> NamespaceSpec | None:
        return self._namespaces.get(name)

    def tools_in(self, namespace: str) -> list[ToolSpec]:
        return [spec for spec in self._tools.values() if spec.namespace == namespace]

    def get(self, name: str) -> ToolSpec:
        """Look up a tool by full name (`task.create`) or export name (`task_create`)."""
        spec = self._tools.get(name)
        if spec is None:
            spec = next((item for item in self._tools.values() if item.export_name == name), None)
        if spec is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        return spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def execute(
        self,
        name: str,
        payload: dict[str, Any],
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> str:
        """Run a tool; `observer`, if given, receives only this call's trace."""
        return self._execute_spec(self.get(name), payload, observer)

    def as_langchain_tools(self, names: list[str] | None = None) -> list[StructuredTool]:
        specs = self.specs() if names is None else [self.get(name) for name in names]
        return [
            StructuredTool.from_function(
                name=spec.export_name,
                description=spec.description,
                args_schema=spec.args_schema,
                func=self._build_function(spec),
            )
            for spec in specs
        ]

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def _build_function(self, spec: ToolSpec) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            return self._execute_spec(spec, kwargs)

        return _callable

    def _execute_spec(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        observer: Callable[[ToolTrace], None] | None = None,
    ) -> str:
        start = perf_counter()
        output = spec.invoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        trace = ToolTrace(
            name=spec.full_name,
            input_payload=payload,
            output_preview=output[: self._preview_chars],
            latency_ms=latency_ms,
        )
        for callback in (self._observer, observer):
            if callback is not None:
                callback(trace)
        return output
