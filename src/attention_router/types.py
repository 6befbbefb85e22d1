"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

ChunkLevel = Literal["parent", "child"]
_CHUNK_LEVELS = ("parent", "child")


@dataclass(slots=True, frozen=True)
class Segment:
    """A span of whitespace tokens produced by the segmenter."""

    text: str
    start_token: int
    end_token: int

    def __post_init__(self) -> None:
        if self.end_token <= self.start_token:
            raise ValueError(
                f"end_token ({self.end_token}) must be greater than start_token ({self.start_token})"
            )

    @property
    def token_count(self) -> int:
        return self.end_token - self.start_token


@dataclass(slots=True, frozen=True)
class Chunk:
    """A bounded span of an entity's text stored in the vector index.

    Chunks carry positions rather than text; the text is reconstructed from the
    source entity when needed.
    """

    id: str
    source_entity_id: str
    source_entity_type: str
    start_token: int
    end_token: int
    level: ChunkLevel

    def __post_init__(self) -> None:
        if self.end_token <= self.start_token:
            raise ValueError(
                f"end_token ({self.end_token}) must be greater than start_token ({self.start_token})"
            )
        if self.level not in _CHUNK_LEVELS:
            raise ValueError(f'level must be "parent" or "child", got "{self.level}"')

    @property
    def token_count(self) -> int:
        return self.end_token - self.start_token

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_entity_id": self.source_entity_id,
            "source_entity_type": self.source_entity_type,
            "start_token": self.start_token,
            "end_token": self.end_token,
            "level": self.level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chunk":
        return cls(
            id=str(data["id"]),
            source_entity_id=str(data["source_entity_id"]),
            source_entity_type=str(data["source_entity_type"]),
            start_token=int(data["start_token"]),
            end_token=int(data["end_token"]),
            level=data["level"],
        )


@dataclass(slots=True)
class SearchHit:
    """A semantic search result with similarity score."""

    chunk: Chunk
    score: float
    rank: int = 0


@runtime_checkable
class SemanticIndexable(Protocol):
    """Entity whose text can be chunked into the vector index."""

    @property
    def entity_id(self) -> str: ...

    @property
    def entity_type(self) -> str: ...

    def chunkable_text(self) -> str: ...


@dataclass(slots=True)
class TextEntity:
    """Minimal indexable entity (notes, transcripts, task descriptions)."""

    entity_id: str
    text: str
    title: str = ""
    entity_type: str = "note"

    def chunkable_text(self) -> str:
        if self.title:
            return f"{self.title}\n{self.text}".strip()
        return self.text.strip()


@dataclass(slots=True)
class RoutingEvent:
    """An inbound user turn. The utterance lives in `payload["transcription"]`."""

    correlation_id: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def utterance(self) -> str:
        value = self.payload.get("transcription")
        return value if isinstance(value, str) else ""


@dataclass(slots=True)
class ToolCall:
    """A tool call requested by the LLM."""

    tool_name: str
    params: dict[str, Any]
    call_id: str = ""
    confidence: float = 0.0


@dataclass(slots=True)
class ToolResult:
    """Outcome of a single tool handler invocation."""

    tool_name: str
    call_id: str
    success: bool
    data: str | None = None
    error: str | None = None


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class LLMResponse:
    """Normalized chat completion returned by an LLM provider."""

    content: str | None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tokens_used: int = 0


@dataclass(slots=True)
class ExecutionResult:
    """Result of the delegated tool-calling loop."""

    success: bool
    final_response: str | None = None
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    traces: list[ToolTrace] = field(default_factory=list)
