"""Tagged routing outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from attention_router.types import ExecutionResult


class ErrorKind(str, Enum):
    NO_PERSONALITY = "no_personality"
    EMPTY_INPUT = "empty_input"
    NO_NAMESPACE = "no_namespace"
    NO_TOOLS = "no_tools"
    LLM_TIMEOUT = "llm_timeout"
    LLM_RATE_LIMIT = "llm_rate_limit"
    LLM_SERVER_ERROR = "llm_server_error"
    LLM_ERROR = "llm_error"
    EXECUTION_ERROR = "execution_error"
    UNKNOWN_ERROR = "unknown_error"


@dataclass(slots=True)
class RoutingResult:
    """Outcome of one routed event. `error_type is None` means success."""

    invocation_id: str
    correlation_id: str
    selected_namespace: str | None = None
    tools_called: list[str] = field(default_factory=list)
    confidence: float = 0.0
    final_response: str | None = None
    execution: ExecutionResult | None = None
    error_type: str | None = None
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_type is None
