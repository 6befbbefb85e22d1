"""Semantic chunking over segmenter output."""

from __future__ import annotations

from dataclasses import dataclass

from attention_router.config import ChunkingConfig
from attention_router.ingest.embedder import Embedder
from attention_router.ingest.segmenter import TextSegmenter, tokenize
from attention_router.retrieval.vector_index import cosine_similarity
from attention_router.types import Segment


@dataclass(slots=True)
class _Span:
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


class SemanticChunker:
    """Groups sentences or windows into size-bounded, topic-coherent chunks.

    Design notes:
    1. Segmentation first.
       `TextSegmenter` yields sentences, or overlapping windows when the text is
       unpunctuated. Every segment carries its position in the whitespace token
       stream of the input.

    2. Boundary detection second.
       All segments are embedded in one batch. A boundary is placed between
       neighbours whose cosine similarity falls below `similarity_threshold`, or
       where extending the current group would pass `target_chunk_size`.

    3. Guardrails last.
       Groups below `min_chunk_size` are folded into the previous chunk while
       that chunk is still small or the result stays within the target size.
       Anything above `max_chunk_size` is cut into `max_chunk_size` token
       windows.

    Chunks are contiguous token spans of the input, so overlapping windows are
    never duplicated inside a chunk and positions map straight back to the
    source text.
    """

    def __init__(
        self,
        embedder: Embedder,
        config: ChunkingConfig | None = None,
        segmenter: TextSegmenter | None = None,
    ) -> None:
        self.embedder = embedder
        self.config = config or ChunkingConfig()
        self.segmenter = segmenter or TextSegmenter()

    @property
    def name(self) -> str:
        return self.config.name

    def chunk(self, text: str) -> list[Segment]:
        if not text.strip():
            return []

        tokens = tokenize(text)
        segments = self.segmenter.split(
            text,
            window_size=self.config.window_size,
            overlap=self.config.overlap,
        )
        if not segments:
            return []

        if len(segments) == 1 and segments[0].token_count < self.config.min_chunk_size:
            return [segments[0]]

        embeddings = self.embedder.generate_batch([segment.text for segment in segments])
        similarities = [
            cosine_similarity(embeddings[i], embeddings[i + 1])
            for i in range(len(embeddings) - 1)
        ]

        groups = self._group(segments, self._detect_boundaries(similarities, segments))
        spans = self._enforce_max(self._merge_small(groups))
        return [
            Segment(
                text=" ".join(tokens[span.start : span.end]),
                start_token=span.start,
                end_token=span.end,
            )
            for span in spans
        ]

    def _detect_boundaries(
        self, similarities: list[float], segments: list[Segment]
    ) -> list[int]:
        boundaries: list[int] = []
        group_start = segments[0].start_token
        for i, similarity in enumerate(similarities):
            following = segments[i + 1]
            semantic_break = similarity < self.config.similarity_threshold
            size_break = following.end_token - group_start > self.config.target_chunk_size
            if semantic_break or size_break:
                boundaries.append(i + 1)
                group_start = following.start_token
        return boundaries

    @staticmethod
    def _group(segments: list[Segment], boundaries: list[int]) -> list[_Span]:
        spans: list[_Span] = []
        start = 0
        for stop in [*boundaries, len(segments)]:
            members = segments[start:stop]
            start = stop
            if not members:
                continue
            # Overlapping windows: the next group begins where the last one ended.
            begin = max(members[0].start_token, spans[-1].end if spans else 0)
            if members[-1].end_token > begin:
                spans.append(_Span(begin, members[-1].end_token))
        return spans

    def _merge_small(self, spans: list[_Span]) -> list[_Span]:
        merged: list[_Span] = []
        for span in spans:
            if merged and span.size < self.config.min_chunk_size:
                previous = merged[-1]
                combined = span.end - previous.start
                if (
                    previous.size < self.config.min_chunk_size
                    or combined <= self.config.target_chunk_size
                ):
                    previous.end = max(previous.end, span.end)
                    continue
            merged.append(_Span(span.start, span.end))
        return merged

    def _enforce_max(self, spans: list[_Span]) -> list[_Span]:
        limit = self.config.max_chunk_size
        output: list[_Span] = []
        for span in spans:
            start = span.start
            while span.end - start > limit:
                output.append(_Span(start, start + limit))
                start += limit
            output.append(_Span(start, span.end))
        return output
