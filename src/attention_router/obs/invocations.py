"""Routing invocation records, the append-only log and latency timing."""

from __future__ import annotations

import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any


@dataclass(slots=True)
class RoutingInvocation:
    """Everything the router decided for one event.

    Fixed schema: `from_dict` ignores unknown keys and fills missing ones with
    defaults, so older log dumps stay readable.
    """

    correlation_id: str
    personality_id: str | None = None
    utterance: str = ""
    event_embedding: list[float] = field(default_factory=list)
    namespaces_considered: list[str] = field(default_factory=list)
    namespace_scores: dict[str, float] = field(default_factory=dict)
    selected_namespace: str | None = None
    tools_available: list[str] = field(default_factory=list)
    tool_scores: dict[str, float] = field(default_factory=dict)
    tools_filtered: list[str] = field(default_factory=list)
    tools_passed_to_llm: list[str] = field(default_factory=list)
    tools_called: list[str] = field(default_factory=list)
    confidence: float = 0.0
    context_item_counts: dict[str, int] = field(default_factory=dict)
    error_type: str | None = None
    error_message: str | None = None
    latency_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def success(self) -> bool:
        return self.error_type is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "correlation_id": self.correlation_id,
            "personality_id": self.personality_id,
            "utterance": self.utterance,
            "event_embedding": list(self.event_embedding),
            "namespaces_considered": list(self.namespaces_considered),
            "namespace_scores": dict(self.namespace_scores),
            "selected_namespace": self.selected_namespace,
            "tools_available": list(self.tools_available),
            "tool_scores": dict(self.tool_scores),
            "tools_filtered": list(self.tools_filtered),
            "tools_passed_to_llm": list(self.tools_passed_to_llm),
            "tools_called": list(self.tools_called),
            "confidence": self.confidence,
            "context_item_counts": dict(self.context_item_counts),
            "error_type": self.error_type,
            "error_message": self.error_message,
            "latency_ms": self.latency_ms,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoutingInvocation":
        known = {item.name for item in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})


class InvocationLog:
    """In-memory append-only invocation storage for API-level observability."""

    def __init__(self) -> None:
        self._records: dict[str, RoutingInvocation] = {}
        self._lock = threading.Lock()

    def save(self, invocation: RoutingInvocation) -> RoutingInvocation:
        with self._lock:
            if invocation.id in self._records:
                raise ValueError(f"Invocation already recorded: {invocation.id}")
            self._records[invocation.id] = invocation
        return invocation

    def get(self, invocation_id: str) -> RoutingInvocation:
        record = self._records.get(invocation_id)
        if record is None:
            raise KeyError(f"Invocation not found: {invocation_id}")
        return record

    def find_by_correlation_id(self, correlation_id: str) -> list[RoutingInvocation]:
        return [record for record in self._records.values() if record.correlation_id == correlation_id]

    def list_recent(self, limit: int = 20) -> list[RoutingInvocation]:
        if limit <= 0:
            return []
        return list(self._records.values())[-limit:]

    def __len__(self) -> int:
        return len(self._records)

    def summary(self) -> dict[str, Any]:
        """Aggregate routing metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_invocations": 0,
                "successful": 0,
                "errors": {},
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_confidence": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        errors = Counter(record.error_type for record in records if record.error_type)

        return {
            "total_invocations": total,
            "successful": total - sum(errors.values()),
            "errors": dict(errors),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_confidence": sum(record.confidence for record in records) / total,
        }


class Timer:
    """Simple context timer used by the router."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
