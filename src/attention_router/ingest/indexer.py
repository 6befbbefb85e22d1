"""Two-level chunk indexing: chunk -> embed -> insert -> register."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from attention_router.config import ChunkingConfig
from attention_router.ingest.chunker import SemanticChunker
from attention_router.ingest.embedder import Embedder
from attention_router.retrieval.vector_index import HnswIndex
from attention_router.types import Chunk, ChunkLevel, SearchHit, SemanticIndexable


@dataclass(slots=True)
class IndexSnapshot:
    """Everything needed to restore the indexer without re-embedding."""

    index: HnswIndex
    chunks: list[Chunk] = field(default_factory=list)


class ChunkEmbeddingIndexer:
    """Coordinates chunker/embedder/vector index stages for entities.

    Each entity is cut into parent chunks (about 200 tokens) and every parent
    into child chunks (about 25 tokens). Child positions are expressed in the
    entity's token stream, like parent positions. All chunk texts of one entity
    are embedded in a single batch call.

    Re-indexing an updated entity is `delete_by_entity_id` followed by
    `index_entity`; the pair is not atomic, so a concurrent `search` can see the
    entity partially or fully missing in between.
    """

    def __init__(
        self,
        index: HnswIndex,
        embedder: Embedder,
        *,
        parent_chunker: SemanticChunker | None = None,
        child_chunker: SemanticChunker | None = None,
    ) -> None:
        if embedder.dimension != index.dimension:
            raise ValueError(
                f"embedder dimension {embedder.dimension} does not match index dimension {index.dimension}"
            )
        self.index = index
        self.embedder = embedder
        self.parent_chunker = parent_chunker or SemanticChunker(embedder, ChunkingConfig.parent())
        self.child_chunker = child_chunker or SemanticChunker(embedder, ChunkingConfig.child())
        self._registry: dict[str, list[str]] = {}
        self._chunks: dict[str, Chunk] = {}

    def index_entity(self, entity: SemanticIndexable) -> list[Chunk]:
        """Chunk, embed and insert one entity; returns the created chunks."""

        text = entity.chunkable_text()
        if not text.strip():
            return []

        chunks: list[Chunk] = []
        texts: list[str] = []
        for parent in self.parent_chunker.chunk(text):
            chunks.append(self._make_chunk(entity, parent.start_token, parent.end_token, "parent"))
            texts.append(parent.text)
            for child in self.child_chunker.chunk(parent.text):
                chunks.append(
                    self._make_chunk(
                        entity,
                        parent.start_token + child.start_token,
                        parent.start_token + child.end_token,
                        "child",
                    )
                )
                texts.append(child.text)

        embeddings = self.embedder.generate_batch(texts)
        if len(embeddings) != len(chunks):
            raise ValueError(
                f"embedder returned {len(embeddings)} vectors for {len(chunks)} chunks"
            )
        for chunk, embedding in zip(chunks, embeddings, strict=True):
            self.index.insert(chunk.id, embedding)
            self._chunks[chunk.id] = chunk

        self._registry[entity.entity_id] = [chunk.id for chunk in chunks]
        logger.debug(
            "Indexed {} {} into {} chunks", entity.entity_type, entity.entity_id, len(chunks)
        )
        return chunks

    def delete_by_entity_id(self, entity_id: str) -> None:
        for chunk_id in self._registry.pop(entity_id, []):
            self.index.delete(chunk_id)
            self._chunks.pop(chunk_id, None)

    def chunk_ids_for(self, entity_id: str) -> list[str]:
        return list(self._registry.get(entity_id, []))

    def get_chunk(self, chunk_id: str) -> Chunk | None:
        return self._chunks.get(chunk_id)

    def registered_entities(self) -> list[str]:
        return list(self._registry)

    def search(
        self,
        query: str,
        *,
        k: int = 10,
        level: ChunkLevel | None = None,
        entity_type: str | None = None,
    ) -> list[SearchHit]:
        """Semantic search over indexed chunks, most similar first."""

        if not query.strip() or self.index.size == 0:
            return []

        # Oversample when filtering so the filtered list can still reach k.
        pool = k if level is None and entity_type is None else k * 4
        hits: list[SearchHit] = []
        for chunk_id, score in self.index.query(self.embedder.generate(query), pool):
            chunk = self._chunks.get(chunk_id)
            if chunk is None:
                continue
            if level is not None and chunk.level != level:
                continue
            if entity_type is not None and chunk.source_entity_type != entity_type:
                continue
            hits.append(SearchHit(chunk=chunk, score=score, rank=len(hits) + 1))
            if len(hits) >= k:
                break
        return hits

    def rebuild(self, entities: Iterable[SemanticIndexable]) -> int:
        """Drop every registered chunk and re-index `entities` from scratch."""

        for entity_id in list(self._registry):
            self.delete_by_entity_id(entity_id)
        for chunk_id in self.index.ids():
            self.index.delete(chunk_id)

        total = 0
        for entity in entities:
            total += len(self.index_entity(entity))
        logger.info("Rebuilt vector index with {} chunks", total)
        return total

    def snapshot(self) -> IndexSnapshot:
        return IndexSnapshot(index=self.index, chunks=list(self._chunks.values()))

    def restore(self, snapshot: IndexSnapshot) -> int:
        """Adopt a persisted index; chunk records without a vector are dropped."""

        if snapshot.index.dimension != self.embedder.dimension:
            raise ValueError("snapshot dimension does not match embedder dimension")
        self.index = snapshot.index
        self._registry = {}
        self._chunks = {}
        dropped = 0
        for chunk in snapshot.chunks:
            if not self.index.contains(chunk.id):
                dropped += 1
                continue
            self._chunks[chunk.id] = chunk
            self._registry.setdefault(chunk.source_entity_id, []).append(chunk.id)
        if dropped:
            logger.warning("Dropped {} chunk records missing from the vector index", dropped)
        return len(self._chunks)

    @staticmethod
    def _make_chunk(
        entity: SemanticIndexable,
        start: int,
        end: int,
        level: ChunkLevel,
    ) -> Chunk:
        return Chunk(
            id=str(uuid.uuid4()),
            source_entity_id=entity.entity_id,
            source_entity_type=entity.entity_type,
            start_token=start,
            end_token=end,
            level=level,
        )
