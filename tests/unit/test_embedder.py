import math

import pytest

from attention_router.exceptions import EmbeddingError
from attention_router.ingest.embedder import HashingEmbedder, LangChainEmbedder


class _FakeEmbeddings:
    def __init__(self, dimension: int, fail: bool = False) -> None:
        self.dimension = dimension
        self.fail = fail

    def embed_query(self, text: str) -> list[float]:
        if self.fail:
            raise ConnectionError("provider down")
        return [float(len(text))] * self.dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self.embed_query(text) for text in texts]


def test_hashing_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashingEmbedder(dimension=64)

    vector = embedder.generate("Set a timer for pasta")

    assert len(vector) == 64
    assert vector == embedder.generate("set a TIMER for pasta")
    assert math.isclose(sum(value * value for value in vector), 1.0)
    assert embedder.generate("   ") == [0.0] * 64
    assert embedder.generate_batch(["a", "b"]) == [embedder.generate("a"), embedder.generate("b")]


def test_langchain_embedder_checks_dimension_and_wraps_errors() -> None:
    embedder = LangChainEmbedder(_FakeEmbeddings(4), dimension=4)

    assert embedder.generate("abc") == [3.0, 3.0, 3.0, 3.0]
    assert embedder.generate_batch([]) == []
    assert len(embedder.generate_batch(["a", "bb"])) == 2

    with pytest.raises(EmbeddingError):
        LangChainEmbedder(_FakeEmbeddings(3), dimension=4).generate("abc")
    with pytest.raises(EmbeddingError):
        LangChainEmbedder(_FakeEmbeddings(4, fail=True), dimension=4).generate("abc")
