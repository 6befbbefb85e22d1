"""Embedding abstractions and deterministic baseline implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from attention_router.exceptions import EmbeddingError


class Embedder(ABC):
    """Embedding provider contract used by indexing and routing.

    Every vector has exactly `dimension` components.
    """

    dimension: int

    @abstractmethod
    def generate(self, text: str) -> list[float]:
        """Embed one text."""

    def generate_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts. Providers with a batch endpoint override this."""
        return [self.generate(text) for text in texts]


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    This class is primarily used for local tests and offline runs. In
    production, wrap a real provider with `LangChainEmbedder`.
    """

    def __init__(self, dimension: int = 384) -> None:
        self.dimension = dimension

    def generate(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapter over any LangChain `Embeddings` implementation."""

    def __init__(self, embeddings: Any, dimension: int) -> None:
        self._embeddings = embeddings
        self.dimension = dimension

    def generate(self, text: str) -> list[float]:
        try:
            vector = self._embeddings.embed_query(text)
        except Exception as exc:
            raise EmbeddingError(f"Embedding provider failed: {exc}") from exc
        return self._check([float(value) for value in vector])

    def generate_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            vectors = self._embeddings.embed_documents(texts)
        except Exception as exc:
            raise EmbeddingError(f"Embedding provider failed: {exc}") from exc
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Provider returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return [self._check([float(value) for value in vector]) for vector in vectors]

    def _check(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise EmbeddingError(
                f"Provider returned {len(vector)} dimensions, expected {self.dimension}"
            )
        return vector
