"""FastAPI entrypoint for routing, indexing, feedback and invocation endpoints."""

from __future__ import annotations

import json
import os
import uuid
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from attention_router.attention.personality import ConfigurationStore, Personality
from attention_router.config import IndexConfig, LLMConfig
from attention_router.ingest.embedder import HashingEmbedder
from attention_router.ingest.indexer import ChunkEmbeddingIndexer
from attention_router.ingest.segmenter import tokenize
from attention_router.llm.fallback import DeterministicChatProvider
from attention_router.llm.provider import LangChainChatProvider, LLMProvider
from attention_router.obs.invocations import InvocationLog
from attention_router.obs.logging import setup_logger
from attention_router.retrieval.index_store import IndexStore
from attention_router.retrieval.vector_index import HnswIndex
from attention_router.routing.context import ContextInjector
from attention_router.routing.executor import ToolCallingExecutor
from attention_router.routing.registry import ToolRegistry
from attention_router.routing.router import SemanticRouter
from attention_router.tools.builtin import register_builtin_context, register_builtin_tools
from attention_router.training.feedback import Feedback, FeedbackStore
from attention_router.training.trainer import FeedbackTrainer
from attention_router.types import RoutingEvent, TextEntity


def _create_provider(config: LLMConfig) -> LLMProvider | None:
    if not os.getenv("OPENAI_API_KEY"):
        return None

    from langchain_openai import ChatOpenAI

    def _factory(model: str, temperature: float) -> Any:
        return ChatOpenAI(
            model=model,
            temperature=temperature,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        )

    return LangChainChatProvider(_factory)


class EventRequest(BaseModel):
    transcription: str
    correlation_id: str | None = None


class EntityRequest(BaseModel):
    entity_id: str = Field(min_length=1)
    text: str
    title: str = ""
    entity_type: str = "note"


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    k: int = Field(default=5, ge=1, le=50)
    level: Literal["parent", "child"] | None = None
    entity_type: str | None = None


class NamespaceFeedbackRequest(BaseModel):
    invocation_id: str
    namespace: str = Field(min_length=1)


class ToolFeedbackRequest(BaseModel):
    invocation_id: str
    tool: str = Field(min_length=1)
    keywords: list[str] | None = None


class FeedbackRequest(BaseModel):
    turn_id: str = Field(min_length=1)
    invocation_id: str
    component: str = "context_manager"
    corrected_data: dict[str, Any] | str


setup_logger(os.getenv("ATTENTION_ROUTER_LOG_LEVEL", "INFO"))

app = FastAPI(title="Attention Router", version="0.1.0")

_db_path = os.getenv("ATTENTION_ROUTER_DB", "attention_router.db")
_llm_config = LLMConfig(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"))

_embedder = HashingEmbedder()
_indexer = ChunkEmbeddingIndexer(
    HnswIndex.from_config(IndexConfig(dimension=_embedder.dimension)), _embedder
)
_index_store = IndexStore(_db_path)
_entities: dict[str, TextEntity] = {}

_snapshot = _index_store.load()
if _snapshot is not None:
    logger.info("Restored {} chunks from the index store", _indexer.restore(_snapshot))

_registry = ToolRegistry()
register_builtin_tools(_registry, sqlite_path=_db_path, embedder=_embedder)
_context = ContextInjector()
register_builtin_context(_context, sqlite_path=_db_path)

_config_store = ConfigurationStore(_db_path)
if _config_store.get_active() is None:
    _default = Personality.create("default", base_model=_llm_config.model)
    _config_store.save(_default)
    _config_store.set_active(_default.id)

_external_provider = _create_provider(_llm_config)
_provider: LLMProvider = _external_provider or DeterministicChatProvider()
_invocations = InvocationLog()
_router = SemanticRouter(
    config_store=_config_store,
    tool_registry=_registry,
    embedder=_embedder,
    provider=_provider,
    executor=ToolCallingExecutor(provider=_provider, tool_registry=_registry),
    invocation_log=_invocations,
    context_injector=_context,
)
_feedback = FeedbackStore(_db_path)
_trainer = FeedbackTrainer(
    config_store=_config_store, invocation_log=_invocations, feedback_store=_feedback
)


def _event(request: EventRequest) -> RoutingEvent:
    return RoutingEvent(
        correlation_id=request.correlation_id or str(uuid.uuid4()),
        payload={"transcription": request.transcription},
    )


def _require_invocation(invocation_id: str) -> None:
    try:
        _invocations.get(invocation_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "ok",
        "llm_configured": _external_provider is not None,
        "provider_mode": "langchain" if _external_provider is not None else "deterministic",
        "invocation_count": len(_invocations),
        "indexed_vectors": _indexer.index.size,
    }


@app.post("/events")
async def publish_event(request: EventRequest, wait: bool = False) -> dict[str, Any]:
    event = _event(request)
    await _router.publish_event(event)
    if wait:
        await _router.wait_idle()
    return {"queued": True, "correlation_id": event.correlation_id, "pending": _router.pending}


@app.post("/route")
async def route(request: EventRequest) -> dict[str, Any]:
    result = await _router.submit(_event(request))
    return {
        "ok": result.ok,
        "invocation_id": result.invocation_id,
        "correlation_id": result.correlation_id,
        "selected_namespace": result.selected_namespace,
        "tools_called": result.tools_called,
        "confidence": result.confidence,
        "response": result.final_response,
        "error_type": result.error_type,
        "error_message": result.error_message,
    }


@app.post("/entities")
def index_entity(request: EntityRequest) -> dict[str, Any]:
    entity = TextEntity(
        entity_id=request.entity_id,
        text=request.text,
        title=request.title,
        entity_type=request.entity_type,
    )
    try:
        _indexer.delete_by_entity_id(entity.entity_id)
        chunks = _indexer.index_entity(entity)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    _entities[entity.entity_id] = entity
    _index_store.save(_indexer.snapshot())
    return {
        "chunks_created": len(chunks),
        "parent_chunks": sum(1 for chunk in chunks if chunk.level == "parent"),
        "child_chunks": sum(1 for chunk in chunks if chunk.level == "child"),
        "chunk_ids": [chunk.id for chunk in chunks],
    }


@app.delete("/entities/{entity_id}")
def delete_entity(entity_id: str) -> dict[str, Any]:
    removed = _indexer.chunk_ids_for(entity_id)
    if not removed and entity_id not in _entities:
        raise HTTPException(status_code=404, detail=f"Entity not indexed: {entity_id}")
    _indexer.delete_by_entity_id(entity_id)
    _entities.pop(entity_id, None)
    _index_store.save(_indexer.snapshot())
    return {"deleted_chunks": len(removed)}


@app.post("/search")
def search(request: SearchRequest) -> dict[str, Any]:
    hits = _indexer.search(
        request.query, k=request.k, level=request.level, entity_type=request.entity_type
    )
    items = []
    for hit in hits:
        entity = _entities.get(hit.chunk.source_entity_id)
        text = (
            " ".join(tokenize(entity.chunkable_text())[hit.chunk.start_token : hit.chunk.end_token])
            if entity is not None
            else None
        )
        items.append({**hit.chunk.to_dict(), "score": hit.score, "rank": hit.rank, "text": text})
    return {"items": items}


@app.get("/invocations")
def invocations(limit: int = 20) -> dict[str, Any]:
    return {"items": [record.to_dict() for record in _invocations.list_recent(limit=limit)]}


@app.get("/invocations/{invocation_id}")
def invocation_detail(invocation_id: str) -> dict[str, Any]:
    try:
        record = _invocations.get(invocation_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return record.to_dict()


@app.post("/feedback/namespace")
def namespace_feedback(request: NamespaceFeedbackRequest) -> dict[str, Any]:
    _require_invocation(request.invocation_id)
    return {"trained": _trainer.train_namespace(request.invocation_id, request.namespace)}


@app.post("/feedback/tool")
def tool_feedback(request: ToolFeedbackRequest) -> dict[str, Any]:
    _require_invocation(request.invocation_id)
    trained = _trainer.train_tool_selection(request.invocation_id, request.tool, request.keywords)
    return {"trained": trained}


@app.post("/feedback")
def feedback(request: FeedbackRequest) -> dict[str, Any]:
    """Store a correction and apply the corrections recorded for its turn."""
    corrected = (
        request.corrected_data
        if isinstance(request.corrected_data, str)
        else json.dumps(request.corrected_data)
    )
    stored = _feedback.add(
        Feedback(
            turn_id=request.turn_id,
            invocation_id=request.invocation_id,
            component=request.component,
            corrected_data=corrected,
        )
    )
    return {"feedback_id": stored.id, "applied": _trainer.train_from_feedback(request.turn_id)}


@app.get("/adaptation")
def adaptation() -> dict[str, Any]:
    state = _trainer.adaptation_state()
    if not state:
        raise HTTPException(status_code=404, detail="No active configuration")
    return state


@app.get("/metrics")
def metrics() -> dict[str, Any]:
    return {**_invocations.summary(), "index": _index_store.stats()}
