"""Semantic router: namespace selection, tool filtering and the event queue."""

from __future__ import annotations

import asyncio
import re
import threading
from collections import deque

from loguru import logger

from attention_router.attention.personality import ConfigurationStore, Personality
from attention_router.config import RoutingConfig
from attention_router.exceptions import (
    LLMError,
    LLMRateLimitError,
    LLMServerError,
    LLMTimeoutError,
)
from attention_router.ingest.embedder import Embedder
from attention_router.llm.provider import LLMProvider
from attention_router.obs.invocations import InvocationLog, RoutingInvocation, Timer
from attention_router.retrieval.vector_index import cosine_similarity
from attention_router.routing.context import ContextInjector
from attention_router.routing.executor import Executor
from attention_router.routing.registry import ToolRegistry, ToolSpec
from attention_router.routing.results import ErrorKind, RoutingResult
from attention_router.types import RoutingEvent

_PUNCTUATION = re.compile(r"[^\w\s]")

_DISAMBIGUATION_PROMPT = (
    "Choose the category that best matches the user's request. "
    "Answer with exactly one of these names and nothing else: {names}."
)


def extract_keywords(text: str, min_length: int = 3) -> list[str]:
    """Lowercased words without punctuation, at least `min_length` characters."""
    cleaned = _PUNCTUATION.sub("", text.lower())
    return [word for word in cleaned.split() if len(word) >= min_length]


def classify_llm_error(exc: LLMError) -> ErrorKind:
    if isinstance(exc, LLMTimeoutError):
        return ErrorKind.LLM_TIMEOUT
    if isinstance(exc, LLMRateLimitError):
        return ErrorKind.LLM_RATE_LIMIT
    if isinstance(exc, LLMServerError):
        return ErrorKind.LLM_SERVER_ERROR
    return ErrorKind.LLM_ERROR


class _RoutingFailure(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class SemanticRouter:
    """Routes utterances to a namespace and a filtered set of tools.

    Per event: load the active configuration, embed the utterance, select a
    namespace, filter its tools, inject context, execute, record. Every path,
    successful or not, saves exactly one `RoutingInvocation`; `handle_event`
    never raises.

    Events are processed strictly one at a time. `publish_event` and `submit`
    share one FIFO queue drained by a background task; direct `handle_event`
    calls wait on the same lock, so no two events overlap.
    """

    def __init__(
        self,
        *,
        config_store: ConfigurationStore,
        tool_registry: ToolRegistry,
        embedder: Embedder,
        provider: LLMProvider,
        executor: Executor,
        invocation_log: InvocationLog,
        context_injector: ContextInjector | None = None,
        config: RoutingConfig | None = None,
    ) -> None:
        self.config_store = config_store
        self.tool_registry = tool_registry
        self.embedder = embedder
        self.provider = provider
        self.executor = executor
        self.invocation_log = invocation_log
        self.context_injector = context_injector or ContextInjector()
        self.config = config or RoutingConfig()
        self._queue: deque[tuple[RoutingEvent, asyncio.Future[RoutingResult] | None]] = deque()
        self._lock = threading.Lock()
        self._drain_task: asyncio.Task[None] | None = None

    # Synchronous path

    def handle_event(self, event: RoutingEvent) -> RoutingResult:
        with self._lock:
            return self._handle(event)

    def _handle(self, event: RoutingEvent) -> RoutingResult:
        invocation = RoutingInvocation(correlation_id=event.correlation_id, utterance=event.utterance)
        log = logger.bind(correlation_id=event.correlation_id)
        result = RoutingResult(invocation_id=invocation.id, correlation_id=event.correlation_id)

        with Timer() as timer:
            try:
                self._route(event, invocation, result)
            except _RoutingFailure as failure:
                self._fail(invocation, failure.kind, str(failure))
            except LLMError as exc:
                self._fail(invocation, classify_llm_error(exc), str(exc))
            except Exception as exc:
                log.exception("Routing failed unexpectedly")
                self._fail(invocation, ErrorKind.UNKNOWN_ERROR, f"{type(exc).__name__}: {exc}")
        invocation.latency_ms = timer.elapsed_ms

        try:
            self.invocation_log.save(invocation)
        except Exception:
            log.exception("Failed to persist invocation {}", invocation.id)

        result.selected_namespace = invocation.selected_namespace
        result.tools_called = list(invocation.tools_called)
        result.confidence = invocation.confidence
        result.error_type = invocation.error_type
        result.error_message = invocation.error_message
        return result

    def _route(self, event: RoutingEvent, invocation: RoutingInvocation, result: RoutingResult) -> None:
        personality = self.config_store.get_active()
        if personality is None:
            raise _RoutingFailure(ErrorKind.NO_PERSONALITY, "no active configuration")
        invocation.personality_id = personality.id

        utterance = event.utterance.strip()
        if not utterance:
            raise _RoutingFailure(ErrorKind.EMPTY_INPUT, "utterance is empty")
        embedding = self.embedder.generate(utterance)
        invocation.event_embedding = list(embedding)

        namespace = self._select_namespace(personality, utterance, embedding, invocation)

        specs = self.tool_registry.tools_in(namespace)
        invocation.tools_available = [spec.full_name for spec in specs]
        if not specs:
            raise _RoutingFailure(ErrorKind.NO_TOOLS, f"namespace {namespace} has no tools")
        selected_tools = self._filter_tools(personality, namespace, specs, utterance, embedding, invocation)
        if not selected_tools:
            raise _RoutingFailure(ErrorKind.NO_TOOLS, "no tool passed the score threshold")

        context = self.context_injector.inject(namespace, event)
        invocation.context_item_counts = self.context_injector.item_counts(context)

        invocation.tools_passed_to_llm = [spec.full_name for spec in selected_tools]
        execution = self.executor.execute(
            personality, utterance, selected_tools, context, event.correlation_id
        )
        result.execution = execution
        result.final_response = execution.final_response

        invocation.tools_called = [call.tool_name for call in execution.tool_calls]
        called_scores = [
            invocation.tool_scores[name] for name in invocation.tools_called if name in invocation.tool_scores
        ]
        invocation.confidence = sum(called_scores) / len(called_scores) if called_scores else 0.0

        if not execution.success:
            kind = execution.error_type or ErrorKind.EXECUTION_ERROR.value
            self._fail(invocation, kind, execution.error or "execution failed")
            return
        logger.bind(correlation_id=event.correlation_id).info(
            "Routed to {} with {} tool call(s), confidence {:.2f}",
            namespace,
            len(invocation.tools_called),
            invocation.confidence,
        )

    def _select_namespace(
        self,
        personality: Personality,
        utterance: str,
        embedding: list[float],
        invocation: RoutingInvocation,
    ) -> str:
        attention = personality.namespace_attention
        scores: dict[str, float] = {}
        for spec in self.tool_registry.namespaces():
            centroid = attention.get_centroid(spec.name) or spec.centroid
            scores[spec.name] = cosine_similarity(embedding, centroid) if centroid else 0.0
        invocation.namespaces_considered = list(scores)
        invocation.namespace_scores = scores

        candidates = sorted(
            (name for name, score in scores.items() if score >= attention.get_threshold(name)),
            key=lambda name: scores[name],
            reverse=True,
        )
        if not candidates:
            raise _RoutingFailure(ErrorKind.NO_NAMESPACE, "no namespace reached its threshold")

        selected = candidates[0] if len(candidates) == 1 else self._disambiguate(
            personality, utterance, candidates
        )
        invocation.selected_namespace = selected
        return selected

    def _disambiguate(self, personality: Personality, utterance: str, candidates: list[str]) -> str:
        """One LLM call over the candidate names; falls back to the top score."""
        response = self.provider.chat_with_tools(
            personality.base_model,
            [
                {"role": "system", "content": _DISAMBIGUATION_PROMPT.format(names=", ".join(candidates))},
                {"role": "user", "content": utterance},
            ],
            [],
            self.config.disambiguation_temperature,
        )
        answer = (response.content or "").strip().lower()
        for name in candidates:
            if name.lower() == answer:
                return name
        logger.debug("Disambiguation answer {!r} matched no candidate; using {}", answer, candidates[0])
        return candidates[0]

    def _filter_tools(
        self,
        personality: Personality,
        namespace: str,
        specs: list[ToolSpec],
        utterance: str,
        embedding: list[float],
        invocation: RoutingInvocation,
    ) -> list[ToolSpec]:
        keywords = extract_keywords(utterance, self.config.min_keyword_length)
        tool_attention = personality.get_tool_attention(namespace)
        kept: list[ToolSpec] = []
        for spec in specs:
            semantic = cosine_similarity(embedding, spec.centroid) if spec.centroid else 0.0
            statistical = tool_attention.score_tool(spec.name, keywords)
            combined = self.config.semantic_weight * semantic + self.config.statistical_weight * statistical
            invocation.tool_scores[spec.full_name] = combined
            if combined >= self.config.tool_threshold:
                kept.append(spec)
        invocation.tools_filtered = [spec.full_name for spec in kept]
        return kept

    @staticmethod
    def _fail(invocation: RoutingInvocation, kind: ErrorKind | str, message: str) -> None:
        invocation.error_type = kind.value if isinstance(kind, ErrorKind) else kind
        invocation.error_message = message

    # Queue

    async def publish_event(self, event: RoutingEvent) -> None:
        """Enqueue an event; starts the drain task when none is running."""
        self._enqueue(event, None)

    async def submit(self, event: RoutingEvent) -> RoutingResult:
        """Enqueue an event and wait for its result."""
        future: asyncio.Future[RoutingResult] = asyncio.get_running_loop().create_future()
        self._enqueue(event, future)
        return await future

    def _enqueue(self, event: RoutingEvent, future: asyncio.Future[RoutingResult] | None) -> None:
        self._queue.append((event, future))
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = asyncio.create_task(self._drain())

    async def wait_idle(self) -> None:
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    @property
    def pending(self) -> int:
        return len(self._queue)

    async def _drain(self) -> None:
        while self._queue:
            event, future = self._queue.popleft()
            log = logger.bind(correlation_id=event.correlation_id)
            try:
                result = await asyncio.to_thread(self.handle_event, event)
            except Exception as exc:
                log.exception("Queued event crashed the router")
                if future is not None and not future.done():
                    future.set_exception(exc)
                continue
            if future is not None and not future.done():
                future.set_result(result)
            if result.ok:
                log.info("Event handled: namespace={} tools={}", result.selected_namespace, result.tools_called)
            else:
                log.warning("Event failed: {} ({})", result.error_type, result.error_message)
