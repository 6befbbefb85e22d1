"""Learned attention state: namespace thresholds/centroids and tool statistics."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from attention_router.config import AttentionConfig

NEUTRAL_SUCCESS_RATE = 0.5
NEUTRAL_KEYWORD_WEIGHT = 0.5


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NamespaceAttentionState(BaseModel):
    """Per-namespace selection thresholds and semantic centroids.

    Thresholds move multiplicatively: a false positive raises the selected
    namespace's threshold by `threshold_step`, a miss lowers the correct one's.
    With `step_decay > 0` the effective step shrinks as
    `step / (1 + step_decay * training_sample_count)`. Every move is at least
    `min_threshold_delta`, so a threshold at 0.0 can still rise. Thresholds stay
    in [0, 1]; raising one already at 1.0 leaves it there.
    """

    default_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    thresholds: dict[str, float] = Field(default_factory=dict)
    centroids: dict[str, list[float]] = Field(default_factory=dict)
    centroid_learning_rate: float = Field(default=0.1, gt=0.0, le=1.0)
    threshold_step: float = Field(default=0.05, gt=0.0, lt=1.0)
    step_decay: float = Field(default=0.0, ge=0.0)
    min_threshold_delta: float = Field(default=0.001, gt=0.0, lt=1.0)
    version: int = 0
    last_trained_at: str | None = None
    training_sample_count: int = 0

    @classmethod
    def from_config(cls, config: AttentionConfig) -> "NamespaceAttentionState":
        return cls(
            default_threshold=config.default_threshold,
            centroid_learning_rate=config.centroid_learning_rate,
            threshold_step=config.threshold_step,
            step_decay=config.step_decay,
            min_threshold_delta=config.min_threshold_delta,
        )

    @property
    def effective_step(self) -> float:
        return self.threshold_step / (1.0 + self.step_decay * self.training_sample_count)

    def get_threshold(self, namespace: str) -> float:
        return self.thresholds.get(namespace, self.default_threshold)

    def set_threshold(self, namespace: str, value: float) -> None:
        self.thresholds[namespace] = _clamp(value)

    def raise_threshold(self, namespace: str) -> float:
        value = _clamp(self.get_threshold(namespace) + self._delta(namespace))
        self.thresholds[namespace] = value
        return value

    def lower_threshold(self, namespace: str) -> float:
        value = _clamp(self.get_threshold(namespace) - self._delta(namespace))
        self.thresholds[namespace] = value
        return value

    def _delta(self, namespace: str) -> float:
        return max(self.get_threshold(namespace) * self.effective_step, self.min_threshold_delta)

    def get_centroid(self, namespace: str) -> list[float] | None:
        centroid = self.centroids.get(namespace)
        return list(centroid) if centroid else None

    def set_centroid(self, namespace: str, centroid: Sequence[float]) -> None:
        self.centroids[namespace] = [float(value) for value in centroid]

    def update_centroid(self, namespace: str, embedding: Sequence[float]) -> list[float]:
        """Exponential moving average toward `embedding`.

        A missing centroid, or one whose dimension differs from the sample, is
        replaced by the sample.
        """
        sample = [float(value) for value in embedding]
        current = self.centroids.get(namespace)
        if not current or len(current) != len(sample):
            self.centroids[namespace] = sample
            return list(sample)

        rate = self.centroid_learning_rate
        updated = [(1.0 - rate) * old + rate * new for old, new in zip(current, sample, strict=True)]
        self.centroids[namespace] = updated
        return list(updated)

    def record_training(self) -> None:
        self.training_sample_count += 1
        self.version += 1
        self.last_trained_at = _now()


class ToolAttentionState(BaseModel):
    """Success rates and keyword affinities for the tools of one namespace."""

    namespace: str
    success_rates: dict[str, float] = Field(default_factory=dict)
    keyword_weights: dict[str, dict[str, float]] = Field(default_factory=dict)
    version: int = 0
    last_trained_at: str | None = None
    training_sample_count: int = 0

    def get_success_rate(self, tool: str) -> float:
        return self.success_rates.get(tool, NEUTRAL_SUCCESS_RATE)

    def set_success_rate(self, tool: str, value: float) -> None:
        self.success_rates[tool] = _clamp(value)

    def get_keyword_weight(self, tool: str, keyword: str) -> float:
        return self.keyword_weights.get(tool, {}).get(keyword, NEUTRAL_KEYWORD_WEIGHT)

    def set_keyword_weight(self, tool: str, keyword: str, value: float) -> None:
        self.keyword_weights.setdefault(tool, {})[keyword] = _clamp(value)

    def score_tool(self, tool: str, keywords: Sequence[str]) -> float:
        """Mean of the tool's success rate and its mean keyword weight, in [0, 1]."""
        if keywords:
            keyword_score = sum(self.get_keyword_weight(tool, kw) for kw in keywords) / len(keywords)
        else:
            keyword_score = NEUTRAL_KEYWORD_WEIGHT
        return _clamp((self.get_success_rate(tool) + keyword_score) / 2.0)

    def rank_tools(self, tools: Sequence[str], keywords: Sequence[str]) -> list[tuple[str, float]]:
        scored = [(tool, self.score_tool(tool, keywords)) for tool in tools]
        return sorted(scored, key=lambda item: item[1], reverse=True)

    def record_training(self) -> None:
        self.training_sample_count += 1
        self.version += 1
        self.last_trained_at = _now()
