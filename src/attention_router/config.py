"""Configuration models for the routing and indexing engine."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class SegmenterConfig(BaseModel):
    """Configures sentence splitting and the sliding-window fallback."""

    window_size: int = Field(default=200, ge=2)
    overlap: int = Field(default=50, ge=0)
    min_punctuation_ratio: float = Field(default=0.05, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "SegmenterConfig":
        if self.overlap >= self.window_size:
            raise ValueError("overlap must be less than window_size")
        return self


class ChunkingConfig(BaseModel):
    """Configures one level of semantic chunking (parent or child)."""

    name: str = "custom"
    window_size: int = Field(default=200, ge=2)
    overlap: int = Field(default=50, ge=0)
    min_chunk_size: int = Field(default=128, ge=1)
    target_chunk_size: int = Field(default=200, ge=1)
    max_chunk_size: int = Field(default=400, ge=1)
    similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChunkingConfig":
        if self.overlap >= self.window_size:
            raise ValueError("overlap must be less than window_size")
        if not self.min_chunk_size <= self.target_chunk_size <= self.max_chunk_size:
            raise ValueError("chunk sizes must satisfy min <= target <= max")
        return self

    @classmethod
    def parent(cls) -> "ChunkingConfig":
        """Broad topic chunks, about 200 tokens each."""
        return cls(
            name="parent",
            window_size=200,
            overlap=50,
            min_chunk_size=128,
            target_chunk_size=200,
            max_chunk_size=400,
            similarity_threshold=0.5,
        )

    @classmethod
    def child(cls) -> "ChunkingConfig":
        """Fine-grained chunks inside a parent, about 25 tokens each."""
        return cls(
            name="child",
            window_size=30,
            overlap=10,
            min_chunk_size=10,
            target_chunk_size=25,
            max_chunk_size=60,
            similarity_threshold=0.5,
        )


class IndexConfig(BaseModel):
    """Configures the HNSW vector index."""

    dimension: int = Field(default=384, ge=1)
    max_connections: int = Field(default=16, ge=2)
    ef_construction: int = Field(default=200, ge=1)
    ef_search: int = Field(default=50, ge=1)
    seed: int | None = 42


class AttentionConfig(BaseModel):
    """Learning parameters for namespace attention.

    `step_decay` of 0 keeps the fixed-step behaviour; positive values shrink the
    threshold step as training samples accumulate. `min_threshold_delta` is the
    smallest move a single correction makes.
    """

    default_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    threshold_step: float = Field(default=0.05, gt=0.0, lt=1.0)
    centroid_learning_rate: float = Field(default=0.1, gt=0.0, le=1.0)
    step_decay: float = Field(default=0.0, ge=0.0)
    min_threshold_delta: float = Field(default=0.001, gt=0.0, lt=1.0)


class RoutingConfig(BaseModel):
    """Tool scoring weights and the tool filter threshold.

    The 0.6/0.4 weights and the 0.5 threshold are provisional defaults.
    """

    semantic_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    statistical_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    tool_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    disambiguation_temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    min_keyword_length: int = Field(default=3, ge=1)


class TrainingConfig(BaseModel):
    """Step sizes applied by the feedback trainer."""

    success_rate_step: float = Field(default=0.1, gt=0.0, le=1.0)
    keyword_reward: float = Field(default=0.2, gt=0.0, le=1.0)
    keyword_penalty: float = Field(default=0.1, gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_asymmetry(self) -> "TrainingConfig":
        if self.keyword_reward < self.keyword_penalty:
            raise ValueError("keyword_reward must be >= keyword_penalty")
        return self


class LLMConfig(BaseModel):
    """Chat model settings used by the LangChain provider."""

    model: str = "gpt-4o-mini"
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    max_retries: int = Field(default=0, ge=0)


class ExecutorConfig(BaseModel):
    """Configures the tool-calling loop."""

    max_turns: int = Field(default=5, ge=1)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
